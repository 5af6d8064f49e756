"""Turn timeout sweeper."""
import time
from typing import Optional

from clawpoker.config import config
from clawpoker.game.errors import ConflictError, GameError
from clawpoker.service import GameService
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)


async def sweep_timeouts(service: GameService, now: Optional[float] = None) -> dict:
    """Force default actions on expired turns and clear out idle seats.

    Expired turns get a check when it is free and a fold otherwise, through
    the same engine entry point players use. Between hands, occupants that
    were sat out for repeated timeouts are removed and refunded.

    Returns:
        Counts of forced actions and removed seats.
    """
    now = now if now is not None else time.time()
    forced = 0
    removed = 0

    for hand_id, agent_id in await service.due_turns(now):
        try:
            if await service.force_timeout(hand_id, agent_id, now):
                forced += 1
        except ConflictError as e:
            logger.debug(f"Timeout on hand {hand_id} lost a race: {e.message}")
        except GameError as e:
            logger.warning(f"Timeout on hand {hand_id} rejected: {e.code} {e.message}")

    for table in await service.store.list_tables():
        if table.current_hand_id:
            continue
        for seat_index, seat in table.occupied():
            if not seat.sitting_out or seat.timeouts < config.max_timeouts:
                continue
            try:
                await service.remove_idle(table.table_id, seat_index, seat.agent_id)
                removed += 1
            except ConflictError as e:
                logger.debug(f"Removal at table {table.table_id} lost a race: {e.message}")
            except GameError as e:
                # Seat changed hands, sat back in or a hand started since the scan
                logger.debug(f"Removal at table {table.table_id} skipped: {e.message}")

    if forced or removed:
        logger.info(f"Sweep: {forced} forced actions, {removed} idle seats removed")
    return {"forced": forced, "removed": removed}
