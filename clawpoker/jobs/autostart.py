"""Start hands at tables that are ready for one."""
import time
from typing import Optional

from clawpoker.config import config
from clawpoker.game.errors import ConflictError, RejectedError
from clawpoker.game.models import TableStatus
from clawpoker.service import GameService
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)


async def autostart_hands(service: GameService, now: Optional[float] = None, delay: Optional[float] = None) -> dict:
    """Deal at every between-hands table whose inter-hand pause has passed.

    Losing the race to another starter is expected and only logged at
    debug level.

    Returns:
        Ids of hands started.
    """
    now = now if now is not None else time.time()
    delay = config.autostart_delay_seconds if delay is None else delay
    started = []

    for table in await service.store.list_tables():
        if table.status != TableStatus.BETWEEN_HANDS or table.hold_reason:
            continue
        if len(table.eligible_seats()) < 2:
            continue
        if table.last_hand_completed_at is not None and now - table.last_hand_completed_at < delay:
            continue

        try:
            hand = await service.start_hand(table.table_id, now)
            started.append(hand.hand_id)
        except ConflictError as e:
            logger.debug(f"Autostart at table {table.table_id} skipped: {e.message}")
        except RejectedError as e:
            logger.debug(f"Autostart at table {table.table_id} not possible: {e.message}")

    if started:
        logger.info(f"Autostart: dealt {len(started)} hands")
    return {"started": started}
