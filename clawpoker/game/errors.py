"""Game error hierarchy.

Every error carries a stable machine-readable code and a human message that
is surfaced to callers verbatim.
"""
from typing import Optional


class GameError(Exception):
    """Base class for all game errors."""
    
    status_code = 400
    
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class RejectedError(GameError):
    """The request is invalid against current state; nothing was changed."""


class NotFoundError(GameError):
    """A referenced table, hand or agent does not exist."""
    
    status_code = 404


class UnauthorizedError(GameError):
    """The caller could not be resolved to an agent."""
    
    status_code = 401
    
    def __init__(self, message: str = "Invalid or missing API key"):
        super().__init__("UNAUTHORIZED", message)


class ConflictError(GameError):
    """Lost a race with another writer. Benign for background passes."""
    
    status_code = 409


class HandInProgressError(ConflictError):
    """The table already has a live hand."""
    
    def __init__(self, table_id: str, hand_id: Optional[str] = None):
        super().__init__("HAND_IN_PROGRESS", f"Table {table_id} already has a hand in progress")
        self.table_id = table_id
        self.hand_id = hand_id


class ConcurrentUpdateError(ConflictError):
    """A document changed between read and commit."""
    
    def __init__(self, key: str = ""):
        super().__init__("CONCURRENT_UPDATE", f"Concurrent update on {key or 'state'}, retry")
        self.key = key


class IntegrityError(GameError):
    """Chips or references do not add up; an operator has to look."""
    
    status_code = 423


class NotReadyError(GameError):
    """The server has not finished starting."""
    
    status_code = 503
    
    def __init__(self):
        super().__init__("NOT_READY", "Server is starting, try again shortly")
