"""Integrity pass: put tables back into a consistent state."""
import time
from typing import Optional

from clawpoker.game.errors import ConflictError
from clawpoker.service import GameService
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)


async def recover_tables(service: GameService, now: Optional[float] = None) -> dict:
    """Check every table against its hand and repair what can be repaired.

    Fixes tables marked playing without a live hand, waiting tables that
    could deal, missing hands (voided), completed hands still referenced,
    and live hands that nobody can move. Tables whose chips do not add up
    are put on hold for an operator instead.

    Returns:
        Mapping of table id to what was done.
    """
    now = now if now is not None else time.time()
    repaired: dict[str, str] = {}

    for table in await service.store.list_tables():
        try:
            note = await service.recover_table(table.table_id, now)
        except ConflictError as e:
            logger.debug(f"Recovery of table {table.table_id} deferred: {e.message}")
            continue
        if note:
            repaired[table.table_id] = note

    return {"repaired": repaired}
