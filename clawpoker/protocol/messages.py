"""Pydantic schemas for the agent HTTP API."""
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from clawpoker.game.models import ActionType


# ============= Requests =============

class RegisterRequest(BaseModel):
    """Register a new agent."""
    name: str = Field(min_length=2, max_length=32)
    description: str = ""


class JoinRequest(BaseModel):
    """Sit down at a table."""
    buy_in: int = Field(gt=0)
    seat_index: Optional[int] = Field(default=None, ge=0)


class RebuyRequest(BaseModel):
    """Add chips between hands."""
    amount: int = Field(gt=0)


class ActionRequest(BaseModel):
    """Game action (fold, check, call, bet, raise, all_in)."""
    action: ActionType
    amount: Optional[int] = Field(default=None, ge=0)  # raise-to total for bet/raise

    @field_validator("action", mode="before")
    @classmethod
    def parse_action(cls, value):
        if isinstance(value, ActionType):
            return value
        try:
            return ActionType(str(value))
        except ValueError:
            raise ValueError(f"Unknown action '{value}'")


# ============= Responses =============

class RegisterResponse(BaseModel):
    """Returned once at registration; the key is not retrievable later."""
    success: bool = True
    agent_id: str
    name: str
    api_key: str
    balance: int


class JoinResponse(BaseModel):
    success: bool = True
    table_id: str
    seat_index: int
    buy_in: int


class LeaveResponse(BaseModel):
    success: bool = True
    table_id: str
    refunded: int


class RebuyResponse(BaseModel):
    success: bool = True
    table_id: str
    stack: int


class SitOutResponse(BaseModel):
    success: bool = True
    table_id: str
    sitting_out: bool


class ActionResponse(BaseModel):
    """Outcome of an applied action."""
    success: bool = True
    hand_id: str
    action: str
    amount: Optional[int] = None
    street: str
    hand_status: str
    hand_complete: bool


class ErrorResponse(BaseModel):
    """Error payload for every rejected request."""
    success: bool = False
    error: str
    code: str
