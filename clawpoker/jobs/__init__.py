"""Background passes. Each runs once over the store and returns a summary."""
from .autostart import autostart_hands
from .recovery import recover_tables
from .sweeper import sweep_timeouts

__all__ = ["autostart_hands", "recover_tables", "sweep_timeouts"]
