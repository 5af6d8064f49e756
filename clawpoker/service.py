"""Game operations as atomic read-validate-mutate-commit units.

Every mutation loads fresh copies of the documents it needs inside a store
transaction, runs the engine on them and commits. When a commit loses a
race the whole cycle runs again on fresh state, so the loser sees the
domain outcome (hand already started, not your turn) instead of
overwriting the winner.
"""
import asyncio
import random
import time
import uuid
from typing import Awaitable, Callable, Optional, TypeVar

from clawpoker.auth.api_keys import issue_api_key, parse_api_key, validate_agent_name, verify_secret
from clawpoker.config import config
from clawpoker.game import betting, table as seats
from clawpoker.game.errors import (
    ConcurrentUpdateError,
    IntegrityError,
    NotFoundError,
    RejectedError,
    UnauthorizedError,
)
from clawpoker.game.models import (
    ActionLogEntry,
    ActionReason,
    ActionType,
    Agent,
    Hand,
    PlayerToAct,
    Table,
    TableStatus,
)
from clawpoker.game.views import agent_profile, check_status, hand_view, leaderboard, table_summary, table_view
from clawpoker.state.archive import HandArchive
from clawpoker.state.game_store import GameStore, Transaction
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_TABLES = [
    # name, small blind, big blind, min buy-in, max buy-in, seats
    ("Micro Stakes", 1, 2, 20, 200, 6),
    ("Low Stakes", 5, 10, 100, 1000, 9),
    ("High Rollers", 25, 50, 500, 5000, 6),
]


class GameService:
    """Entry point for every state change, shared by the API, jobs and CLI."""

    def __init__(
        self,
        store: GameStore,
        archive: Optional[HandArchive] = None,
        rng: Optional[random.Random] = None,
        retries: Optional[int] = None,
    ):
        """Initialize the service.

        Args:
            store: Where tables, hands and agents live.
            archive: Optional PostgreSQL archive for completed hands.
            rng: Shuffle source; seed for reproducible deals.
            retries: Attempts per operation on concurrent updates.
        """
        self.store = store
        self.archive = archive
        self.rng = rng or random.SystemRandom()
        self.retries = retries or config.commit_retries
        self._archive_tasks: set[asyncio.Task] = set()

    async def _run(self, label: str, operation: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run `operation` in a transaction, retrying on commit conflicts."""
        for attempt in range(1, self.retries + 1):
            try:
                async with self.store.transaction() as tx:
                    result = await operation(tx)
                return result
            except ConcurrentUpdateError:
                if attempt >= self.retries:
                    logger.info(f"{label}: gave up after {attempt} conflicting attempts")
                    raise
                logger.debug(f"{label}: concurrent update, retrying ({attempt}/{self.retries})")
        raise ConcurrentUpdateError(label)

    # Loading helpers

    @staticmethod
    async def _table(tx: Transaction, table_id: str) -> Table:
        table = await tx.get_table(table_id)
        if table is None:
            raise NotFoundError("TABLE_NOT_FOUND", f"Table {table_id} not found")
        return table

    @staticmethod
    async def _agent(tx: Transaction, agent_id: str) -> Agent:
        agent = await tx.get_agent(agent_id)
        if agent is None:
            raise NotFoundError("AGENT_NOT_FOUND", f"Agent {agent_id} not found")
        return agent

    @staticmethod
    async def _live_hand(tx: Transaction, table: Table) -> Optional[Hand]:
        if not table.current_hand_id:
            return None
        hand = await tx.get_hand(table.current_hand_id)
        return hand if hand is not None and not hand.is_complete else None

    # Agents

    async def register_agent(self, name: str, description: str = "", now: Optional[float] = None) -> tuple[Agent, str]:
        """Create an agent with the starting balance.

        Returns:
            (agent, api_key). The key is only ever returned here.
        """
        name = validate_agent_name(name)
        agent_id = uuid.uuid4().hex
        api_key, key_hash = issue_api_key(agent_id)
        agent = Agent(
            agent_id=agent_id,
            name=name,
            description=description[:500],
            api_key_hash=key_hash,
            balance=config.starting_balance,
            created_at=now if now is not None else time.time(),
        )

        async def op(tx: Transaction) -> Agent:
            await tx.claim_name(name, agent_id)
            tx.put_agent(agent)
            return agent

        await self._run("register", op)
        logger.info(f"Registered agent {name} ({agent_id})")
        return agent, api_key

    async def authenticate(self, api_key: str) -> Agent:
        """Resolve an API key to its agent.

        Raises:
            UnauthorizedError: Unknown agent or wrong secret.
        """
        agent_id, secret = parse_api_key(api_key)
        agent = await self.store.get_agent(agent_id)
        if agent is None or not verify_secret(secret, agent.api_key_hash):
            raise UnauthorizedError()
        return agent

    # Tables

    async def create_table(
        self,
        name: str,
        small_blind: int,
        big_blind: int,
        min_buy_in: int,
        max_buy_in: int,
        max_seats: int = 6,
        now: Optional[float] = None,
    ) -> Table:
        table = seats.create_table(
            name, small_blind, big_blind, min_buy_in, max_buy_in, max_seats,
            now=now if now is not None else time.time(),
        )

        async def op(tx: Transaction) -> Table:
            tx.put_table(table)
            return table

        await self._run("create_table", op)
        logger.info(f"Created table {name} ({table.table_id}) {small_blind}/{big_blind}")
        return table

    async def setup_default_tables(self) -> list[Table]:
        """Seed the standard tables on an empty store. Returns those created."""
        if await self.store.list_tables():
            return []
        created = []
        for offset, (name, sb, bb, lo, hi, max_seats) in enumerate(DEFAULT_TABLES):
            # Distinct creation times keep lobby order stable
            created.append(await self.create_table(name, sb, bb, lo, hi, max_seats, now=time.time() + offset * 1e-3))
        return created

    async def join_table(self, agent_id: str, table_id: str, buy_in: int, seat_index: Optional[int] = None) -> int:
        """Seat an agent, debiting the buy-in from their wallet."""
        async def op(tx: Transaction) -> int:
            table = await self._table(tx, table_id)
            agent = await self._agent(tx, agent_id)
            index = seats.join(table, agent, buy_in, seat_index)
            tx.put_table(table)
            tx.put_agent(agent)
            return index

        return await self._run("join", op)

    async def leave_table(self, agent_id: str, table_id: str) -> int:
        """Unseat an agent and credit their chips back. Returns the refund."""
        async def op(tx: Transaction) -> int:
            table = await self._table(tx, table_id)
            agent = await self._agent(tx, agent_id)
            hand = await self._live_hand(tx, table)
            refund = seats.leave(table, agent, hand)
            tx.put_table(table)
            tx.put_agent(agent)
            if hand is not None and hand.player_index(agent_id) is not None:
                tx.put_hand(hand)
            return refund

        return await self._run("leave", op)

    async def rebuy(self, agent_id: str, table_id: str, amount: int) -> int:
        """Top up a stack between hands. Returns the new stack."""
        async def op(tx: Transaction) -> int:
            table = await self._table(tx, table_id)
            agent = await self._agent(tx, agent_id)
            stack = seats.rebuy(table, agent, amount)
            tx.put_table(table)
            tx.put_agent(agent)
            return stack

        return await self._run("rebuy", op)

    async def toggle_sit_out(self, agent_id: str, table_id: str) -> bool:
        async def op(tx: Transaction) -> bool:
            table = await self._table(tx, table_id)
            sitting_out = seats.toggle_sit_out(table, agent_id)
            tx.put_table(table)
            return sitting_out

        return await self._run("sit_out", op)

    async def remove_idle(self, table_id: str, seat_index: int, agent_id: str) -> int:
        """Remove a timed-out, sitting-out occupant between hands."""
        async def op(tx: Transaction) -> int:
            table = await self._table(tx, table_id)
            agent = await self._agent(tx, agent_id)
            refund = seats.remove_seat(table, seat_index, agent)
            tx.put_table(table)
            tx.put_agent(agent)
            return refund

        refund = await self._run("remove_idle", op)
        logger.info(f"Removed idle agent {agent_id} from table {table_id}, refunded {refund}")
        return refund

    async def release_hold(self, table_id: str) -> Table:
        """Operator override: allow hands again after an integrity hold."""
        async def op(tx: Transaction) -> Table:
            table = await self._table(tx, table_id)
            if table.hold_reason:
                logger.warning(f"Releasing hold on table {table_id}: {table.hold_reason}")
            table.hold_reason = None
            seats.refresh_status(table)
            tx.put_table(table)
            return table

        return await self._run("release_hold", op)

    # Hands

    async def start_hand(self, table_id: str, now: Optional[float] = None) -> Hand:
        """Deal a new hand at a table.

        Raises:
            HandInProgressError: Someone else started one first.
            RejectedError: Not enough eligible players.
        """
        now = now if now is not None else time.time()

        async def op(tx: Transaction) -> Hand:
            table = await self._table(tx, table_id)
            hand = betting.start_hand(table, now, self.rng)
            tx.put_table(table)
            tx.put_hand(hand)
            if hand.is_complete:
                await self._record_results(tx, hand)
            return hand

        hand = await self._run("start_hand", op)
        self._after_commit(hand)
        return hand

    async def act(
        self,
        agent_id: str,
        table_id: str,
        action: ActionType,
        amount: Optional[int] = None,
        now: Optional[float] = None,
    ) -> tuple[ActionLogEntry, Hand]:
        """Apply an agent's own action to the live hand at a table."""
        now = now if now is not None else time.time()

        async def op(tx: Transaction) -> tuple[ActionLogEntry, Hand]:
            table = await self._table(tx, table_id)
            hand = await self._live_hand(tx, table)
            if hand is None:
                raise RejectedError("NO_HAND", "No hand in progress at this table")

            entry = betting.apply_action(table, hand, agent_id, action, amount, ActionReason.PLAYER, now)

            seat_index = table.seat_of(agent_id)
            if seat_index is not None:
                table.seats[seat_index].timeouts = 0
            await self._commit_hand(tx, table, hand, entry)
            return entry, hand

        entry, hand = await self._run("act", op)
        self._after_commit(hand)
        return entry, hand

    async def force_timeout(self, hand_id: str, agent_id: str, now: Optional[float] = None) -> Optional[ActionLogEntry]:
        """Act for a player whose clock ran out: check if free, else fold.

        Re-checks, on fresh state, that this same player is still on turn
        and past their deadline plus grace; otherwise nothing happens.
        Running it twice for one turn therefore applies at most one action.

        Returns:
            The forced action, or None if the turn had already moved on.
        """
        now = now if now is not None else time.time()

        async def op(tx: Transaction) -> Optional[tuple[ActionLogEntry, Hand]]:
            hand = await tx.get_hand(hand_id)
            if hand is None or hand.is_complete:
                return None
            current = hand.current_player()
            if current is None or current.agent_id != agent_id:
                return None
            if not betting.turn_expired(hand, now):
                return None

            table = await self._table(tx, hand.table_id)
            entry = betting.apply_action(
                table, hand, agent_id, betting.timeout_action(hand), reason=ActionReason.TIMEOUT, now=now
            )

            seat_index = table.seat_of(agent_id)
            if seat_index is not None:
                seat = table.seats[seat_index]
                seat.timeouts += 1
                if seat.timeouts >= config.max_timeouts and not seat.sitting_out:
                    seat.sitting_out = True
                    seats.refresh_status(table)
                    logger.info(f"{seat.name} sat out at table {table.table_id} after {seat.timeouts} timeouts")

            await self._commit_hand(tx, table, hand, entry)
            return entry, hand

        result = await self._run("force_timeout", op)
        if result is None:
            return None
        entry, hand = result
        logger.info(f"Timeout: {entry.agent_id} {entry.action.value} in hand {hand_id}")
        self._after_commit(hand)
        return entry

    async def _commit_hand(self, tx: Transaction, table: Table, hand: Hand, entry: ActionLogEntry) -> None:
        tx.append_action(entry)
        tx.put_hand(hand)
        tx.put_table(table)
        if hand.is_complete:
            await self._record_results(tx, hand)

    async def _record_results(self, tx: Transaction, hand: Hand) -> None:
        """Update agent stats for a finished hand, in the same transaction."""
        won = {}
        for winner in hand.winners:
            won[winner.agent_id] = won.get(winner.agent_id, 0) + winner.amount

        for player in hand.players:
            agent = await tx.get_agent(player.agent_id)
            if agent is None:
                logger.warning(f"Agent {player.agent_id} missing while recording hand {hand.hand_id}")
                continue
            amount = won.get(player.agent_id, 0)
            agent.hands_played += 1
            agent.total_losses += player.total_bet
            agent.total_winnings += amount
            if amount > player.total_bet:
                agent.hands_won += 1
            tx.put_agent(agent)

    def _after_commit(self, hand: Hand) -> None:
        """Archive a completed hand in the background."""
        if not hand.is_complete or self.archive is None:
            return
        task = asyncio.create_task(self._archive(hand))
        self._archive_tasks.add(task)
        task.add_done_callback(self._archive_tasks.discard)

    async def _archive(self, hand: Hand) -> None:
        actions = await self.store.hand_actions(hand.hand_id)
        await self.archive.archive(hand, actions)

    # Recovery

    async def recover_table(self, table_id: str, now: Optional[float] = None) -> Optional[str]:
        """Bring one table back to a consistent state.

        Returns:
            Description of what was repaired, or None if nothing was needed.
        """
        now = now if now is not None else time.time()

        async def op(tx: Transaction) -> Optional[str]:
            table = await self._table(tx, table_id)
            note = await self._recover(tx, table, now)
            if note:
                tx.put_table(table)
            return note

        note = await self._run("recover", op)
        if note:
            logger.warning(f"Recovered table {table_id}: {note}")
        return note

    async def _recover(self, tx: Transaction, table: Table, now: float) -> Optional[str]:
        if table.hold_reason:
            # Waiting on an operator
            return None

        if table.current_hand_id is None:
            if table.status == TableStatus.PLAYING:
                seats.refresh_status(table)
                return "playing without a hand"
            if table.status == TableStatus.WAITING and len(table.eligible_seats()) >= 2:
                seats.refresh_status(table)
                return "waiting with enough players"
            return None

        hand = await tx.get_hand(table.current_hand_id)
        if hand is None:
            # Seat stacks only change at settlement, so voiding keeps every chip
            table.current_hand_id = None
            seats.refresh_status(table)
            return "hand missing, voided"

        if hand.is_complete:
            return self._resettle(table, hand, now)

        try:
            seats.check_chip_ledger(hand)
        except IntegrityError as e:
            table.hold_reason = e.message
            logger.error(f"Table {table.table_id} hand {hand.hand_id}: {e.message}")
            return f"on hold: {e.message}"

        note = None
        if table.status != TableStatus.PLAYING:
            table.status = TableStatus.PLAYING
            note = "status restored to playing"

        if betting.is_stuck(hand):
            betting.force_advance(table, hand, now)
            tx.put_hand(hand)
            if hand.is_complete:
                await self._record_results(tx, hand)
            note = "stuck hand advanced"

        return note

    @staticmethod
    def _resettle(table: Table, hand: Hand, now: float) -> str:
        """A complete hand is still referenced by its table.

        If seats already hold the final stacks only the reference is stale.
        If they still hold the starting stacks, settle now. Anything else
        cannot be decided safely.
        """
        won: dict[str, int] = {}
        for winner in hand.winners:
            won[winner.agent_id] = won.get(winner.agent_id, 0) + winner.amount

        present = [p for p in hand.players if not p.left_table]
        stacks = {}
        for player in present:
            seat = table.seats[player.seat_index]
            stacks[player.agent_id] = seat.stack if seat and seat.agent_id == player.agent_id else None

        if all(stacks[p.agent_id] == p.starting_stack - p.total_bet + won.get(p.agent_id, 0) for p in present):
            table.current_hand_id = None
            table.last_hand_completed_at = hand.completed_at or now
            seats.refresh_status(table)
            return "released completed hand"

        if all(stacks[p.agent_id] == p.starting_stack for p in present):
            seats.reconcile_after_hand(table, hand, won, hand.completed_at or now)
            return "settled completed hand"

        table.hold_reason = f"Hand #{hand.hand_number} complete but seat stacks match neither before nor after"
        return f"on hold: {table.hold_reason}"

    # Read views

    async def list_tables(self) -> list[dict]:
        return [table_summary(t) for t in await self.store.list_tables()]

    async def table_state(self, table_id: str, viewer_id: Optional[str] = None) -> dict:
        """Table with its live hand (or the last one) as the viewer may see it."""
        table = await self.store.get_table(table_id)
        if table is None:
            raise NotFoundError("TABLE_NOT_FOUND", f"Table {table_id} not found")
        hand = None
        if table.current_hand_id:
            hand = await self.store.get_hand(table.current_hand_id)
        else:
            recent = await self.store.recent_hands(table_id, limit=1)
            hand = recent[0] if recent else None
        return table_view(table, hand, viewer_id)

    async def check(self, agent: Agent) -> dict:
        """Heartbeat for polling agents."""
        seated = []
        for table in await self.store.list_tables():
            if table.seat_of(agent.agent_id) is None:
                continue
            hand = await self.store.get_hand(table.current_hand_id) if table.current_hand_id else None
            seated.append((table, hand))
        return check_status(agent, seated)

    async def leaderboard(self, limit: int = 20) -> list[dict]:
        return leaderboard(await self.store.list_agents(), limit)

    async def profile(self, name: str) -> dict:
        agent = await self.store.find_agent_by_name(name)
        if agent is None:
            raise NotFoundError("AGENT_NOT_FOUND", f"Agent '{name}' not found")
        return agent_profile(agent)

    async def hand_history(self, table_id: str, limit: int = 10, viewer_id: Optional[str] = None) -> list[dict]:
        if await self.store.get_table(table_id) is None:
            raise NotFoundError("TABLE_NOT_FOUND", f"Table {table_id} not found")
        return [hand_view(h, viewer_id) for h in await self.store.recent_hands(table_id, limit)]

    async def hand_actions(self, hand_id: str) -> list[dict]:
        if await self.store.get_hand(hand_id) is None:
            raise NotFoundError("HAND_NOT_FOUND", f"Hand {hand_id} not found")
        return [a.to_dict() for a in await self.store.hand_actions(hand_id)]

    async def due_turns(self, now: float) -> list[tuple[str, str]]:
        """(hand_id, agent_id) for every live hand whose actor is past deadline and grace."""
        due = []
        for hand_id in await self.store.active_hand_ids():
            hand = await self.store.get_hand(hand_id)
            if hand is None or hand.is_complete or not isinstance(hand.turn, PlayerToAct):
                continue
            if betting.turn_expired(hand, now):
                due.append((hand_id, hand.players[hand.turn.index].agent_id))
        return due
