"""Durable archive of completed hands in PostgreSQL."""
import json
from datetime import datetime, timezone

from clawpoker.db.connection import Database, db
from clawpoker.game.models import ActionLogEntry, Hand
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)


def _ts(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class HandArchive:
    """Writes finished hands and their action logs to PostgreSQL.

    Archiving is best effort: live state in the game store is the source of
    truth and a failed write never affects play.
    """

    def __init__(self, database: Database = db):
        self._db = database

    async def save_hand(self, hand: Hand, actions: list[ActionLogEntry]) -> None:
        """Insert a completed hand and its actions in one transaction.

        Re-archiving the same hand is a no-op.
        """
        players = [
            {
                "agent_id": p.agent_id,
                "name": p.name,
                "seat_index": p.seat_index,
                "hole_cards": p.hole_cards,
                "starting_stack": p.starting_stack,
                "total_bet": p.total_bet,
                "folded": p.folded,
            }
            for p in hand.players
        ]

        async with self._db.transaction() as conn:
            inserted = await conn.execute(
                """
                INSERT INTO hand_history (
                    hand_id, table_id, hand_number, dealer_seat, pot_total,
                    community_cards, players, side_pots, winners, started_at, completed_at
                )
                VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7::jsonb, $8::jsonb, $9::jsonb, $10, $11)
                ON CONFLICT (hand_id) DO NOTHING
                """,
                hand.hand_id,
                hand.table_id,
                hand.hand_number,
                hand.dealer_seat,
                hand.pot,
                json.dumps(hand.community_cards),
                json.dumps(players),
                json.dumps([p.to_dict() for p in hand.side_pots]),
                json.dumps([w.to_dict() for w in hand.winners]),
                _ts(hand.started_at),
                _ts(hand.completed_at or hand.started_at),
            )
            if inserted.endswith(" 0"):
                return

            await conn.executemany(
                """
                INSERT INTO hand_actions (hand_id, seq, agent_id, action, amount, street, reason, acted_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                """,
                [
                    (
                        a.hand_id, seq, a.agent_id, a.action.value, a.amount,
                        a.street.value, a.reason.value, _ts(a.at),
                    )
                    for seq, a in enumerate(actions, start=1)
                ],
            )

        logger.debug(f"Archived hand {hand.hand_id} with {len(actions)} actions")

    async def archive(self, hand: Hand, actions: list[ActionLogEntry]) -> None:
        """Fire-and-forget wrapper: log failures instead of raising."""
        try:
            await self.save_hand(hand, actions)
        except Exception as e:
            logger.error(f"Failed to archive hand {hand.hand_id}: {e}")
