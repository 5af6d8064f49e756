"""Persistent game documents: tables, hands, agents and the action log."""
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Optional, Union


class TableStatus(str, Enum):
    """Table lifecycle states."""
    WAITING = "waiting"                # Fewer than two players can be dealt in
    BETWEEN_HANDS = "between_hands"    # Ready for the next hand
    PLAYING = "playing"                # A hand is in progress


class Street(str, Enum):
    """Hand status. Showdown happens inside the river, it is never stored."""
    PREFLOP = "preflop"
    FLOP = "flop"
    TURN = "turn"
    RIVER = "river"
    COMPLETE = "complete"


class ActionType(str, Enum):
    """Player actions."""
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    BET = "bet"
    RAISE = "raise"
    ALL_IN = "all_in"

    @classmethod
    def _missing_(cls, value: object) -> Optional["ActionType"]:
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class ActionReason(str, Enum):
    """Who triggered an action."""
    PLAYER = "player"
    TIMEOUT = "timeout"
    SYSTEM = "system"


@dataclass
class Seat:
    """An occupied seat."""
    agent_id: str
    name: str
    stack: int
    sitting_out: bool = False
    timeouts: int = 0  # Consecutive forced actions

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "name": self.name,
            "stack": self.stack,
            "sitting_out": self.sitting_out,
            "timeouts": self.timeouts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Seat":
        return cls(
            agent_id=data["agent_id"],
            name=data["name"],
            stack=data["stack"],
            sitting_out=data.get("sitting_out", False),
            timeouts=data.get("timeouts", 0),
        )


@dataclass
class Table:
    """A poker table and its seats."""
    table_id: str
    name: str
    small_blind: int
    big_blind: int
    min_buy_in: int
    max_buy_in: int
    max_seats: int
    seats: list[Optional[Seat]] = field(default_factory=list)
    dealer_seat: int = 0
    status: TableStatus = TableStatus.WAITING
    current_hand_id: Optional[str] = None
    hand_count: int = 0
    last_hand_completed_at: Optional[float] = None
    hold_reason: Optional[str] = None  # Set when chips could not be reconciled
    created_at: float = 0.0
    version: int = 0

    def __post_init__(self):
        if not self.seats:
            self.seats = [None] * self.max_seats

    def seat_of(self, agent_id: str) -> Optional[int]:
        """Seat index held by an agent, if any."""
        for index, seat in enumerate(self.seats):
            if seat is not None and seat.agent_id == agent_id:
                return index
        return None

    def occupied(self) -> list[tuple[int, Seat]]:
        return [(i, s) for i, s in enumerate(self.seats) if s is not None]

    def eligible_seats(self) -> list[int]:
        """Seats that would be dealt into the next hand, in seat order."""
        return [i for i, s in self.occupied() if not s.sitting_out and s.stack > 0]

    def to_dict(self) -> dict:
        return {
            "table_id": self.table_id,
            "name": self.name,
            "small_blind": self.small_blind,
            "big_blind": self.big_blind,
            "min_buy_in": self.min_buy_in,
            "max_buy_in": self.max_buy_in,
            "max_seats": self.max_seats,
            "seats": [s.to_dict() if s else None for s in self.seats],
            "dealer_seat": self.dealer_seat,
            "status": self.status.value,
            "current_hand_id": self.current_hand_id,
            "hand_count": self.hand_count,
            "last_hand_completed_at": self.last_hand_completed_at,
            "hold_reason": self.hold_reason,
            "created_at": self.created_at,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Table":
        return cls(
            table_id=data["table_id"],
            name=data["name"],
            small_blind=data["small_blind"],
            big_blind=data["big_blind"],
            min_buy_in=data["min_buy_in"],
            max_buy_in=data["max_buy_in"],
            max_seats=data["max_seats"],
            seats=[Seat.from_dict(s) if s else None for s in data["seats"]],
            dealer_seat=data.get("dealer_seat", 0),
            status=TableStatus(data.get("status", "waiting")),
            current_hand_id=data.get("current_hand_id"),
            hand_count=data.get("hand_count", 0),
            last_hand_completed_at=data.get("last_hand_completed_at"),
            hold_reason=data.get("hold_reason"),
            created_at=data.get("created_at", 0.0),
            version=data.get("version", 0),
        )


@dataclass
class HandPlayer:
    """A player dealt into a hand."""
    agent_id: str
    name: str
    seat_index: int
    hole_cards: list[str]
    starting_stack: int
    stack: int
    current_bet: int = 0   # This street
    total_bet: int = 0     # This hand
    folded: bool = False
    all_in: bool = False
    has_acted: bool = False
    left_table: bool = False  # Folded and cashed out mid-hand

    @property
    def can_act(self) -> bool:
        return not self.folded and not self.all_in

    def commit_chips(self, amount: int) -> int:
        """Move chips from stack into the current bet.

        Args:
            amount: Chips requested; capped at the remaining stack.

        Returns:
            Chips actually moved.
        """
        moved = min(amount, self.stack)
        self.stack -= moved
        self.current_bet += moved
        self.total_bet += moved
        if self.stack == 0:
            self.all_in = True
        return moved

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "name": self.name,
            "seat_index": self.seat_index,
            "hole_cards": list(self.hole_cards),
            "starting_stack": self.starting_stack,
            "stack": self.stack,
            "current_bet": self.current_bet,
            "total_bet": self.total_bet,
            "folded": self.folded,
            "all_in": self.all_in,
            "has_acted": self.has_acted,
            "left_table": self.left_table,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HandPlayer":
        return cls(**data)


@dataclass(frozen=True)
class NobodyToAct:
    """No player is due to act."""

    def to_dict(self) -> None:
        return None


@dataclass(frozen=True)
class PlayerToAct:
    """The player at this index in the hand's player list is due to act."""
    index: int

    def to_dict(self) -> dict:
        return {"player": self.index}


Turn = Union[NobodyToAct, PlayerToAct]
NOBODY = NobodyToAct()


def turn_from_dict(data: Optional[dict]) -> Turn:
    if data is None:
        return NOBODY
    return PlayerToAct(data["player"])


@dataclass
class SidePot:
    """A pot tier and who can win it."""
    amount: int
    eligible: list[str]  # agent ids

    def to_dict(self) -> dict:
        return {"amount": self.amount, "eligible": list(self.eligible)}

    @classmethod
    def from_dict(cls, data: dict) -> "SidePot":
        return cls(amount=data["amount"], eligible=list(data["eligible"]))


@dataclass
class Winner:
    """A payout at hand end."""
    agent_id: str
    name: str
    amount: int
    hand: str  # description

    def to_dict(self) -> dict:
        return {"agent_id": self.agent_id, "name": self.name, "amount": self.amount, "hand": self.hand}

    @classmethod
    def from_dict(cls, data: dict) -> "Winner":
        return cls(**data)


@dataclass
class LastAction:
    """Most recent action, for display."""
    agent_id: str
    action: ActionType
    amount: Optional[int]
    at: float

    def to_dict(self) -> dict:
        return {"agent_id": self.agent_id, "action": self.action.value, "amount": self.amount, "at": self.at}

    @classmethod
    def from_dict(cls, data: dict) -> "LastAction":
        return cls(
            agent_id=data["agent_id"],
            action=ActionType(data["action"]),
            amount=data.get("amount"),
            at=data["at"],
        )


@dataclass
class Hand:
    """One deal at a table, from blinds to payout."""
    hand_id: str
    table_id: str
    hand_number: int
    players: list[HandPlayer]
    deck: list[str]
    dealer_seat: int
    status: Street = Street.PREFLOP
    community_cards: list[str] = field(default_factory=list)
    pot: int = 0
    side_pots: list[SidePot] = field(default_factory=list)
    current_bet: int = 0
    last_raise_size: int = 0
    turn: Turn = NOBODY
    action_deadline: Optional[float] = None
    last_action: Optional[LastAction] = None
    started_at: float = 0.0
    completed_at: Optional[float] = None
    winners: list[Winner] = field(default_factory=list)
    version: int = 0

    @property
    def is_complete(self) -> bool:
        return self.status == Street.COMPLETE

    def player_index(self, agent_id: str) -> Optional[int]:
        for index, player in enumerate(self.players):
            if player.agent_id == agent_id:
                return index
        return None

    def current_player(self) -> Optional[HandPlayer]:
        if isinstance(self.turn, PlayerToAct):
            return self.players[self.turn.index]
        return None

    def live_players(self) -> list[HandPlayer]:
        """Players who have not folded."""
        return [p for p in self.players if not p.folded]

    def to_dict(self) -> dict:
        return {
            "hand_id": self.hand_id,
            "table_id": self.table_id,
            "hand_number": self.hand_number,
            "players": [p.to_dict() for p in self.players],
            "deck": list(self.deck),
            "dealer_seat": self.dealer_seat,
            "status": self.status.value,
            "community_cards": list(self.community_cards),
            "pot": self.pot,
            "side_pots": [p.to_dict() for p in self.side_pots],
            "current_bet": self.current_bet,
            "last_raise_size": self.last_raise_size,
            "turn": self.turn.to_dict(),
            "action_deadline": self.action_deadline,
            "last_action": self.last_action.to_dict() if self.last_action else None,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "winners": [w.to_dict() for w in self.winners],
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Hand":
        return cls(
            hand_id=data["hand_id"],
            table_id=data["table_id"],
            hand_number=data["hand_number"],
            players=[HandPlayer.from_dict(p) for p in data["players"]],
            deck=list(data["deck"]),
            dealer_seat=data["dealer_seat"],
            status=Street(data["status"]),
            community_cards=list(data.get("community_cards", [])),
            pot=data.get("pot", 0),
            side_pots=[SidePot.from_dict(p) for p in data.get("side_pots", [])],
            current_bet=data.get("current_bet", 0),
            last_raise_size=data.get("last_raise_size", 0),
            turn=turn_from_dict(data.get("turn")),
            action_deadline=data.get("action_deadline"),
            last_action=LastAction.from_dict(data["last_action"]) if data.get("last_action") else None,
            started_at=data.get("started_at", 0.0),
            completed_at=data.get("completed_at"),
            winners=[Winner.from_dict(w) for w in data.get("winners", [])],
            version=data.get("version", 0),
        )


@dataclass(frozen=True)
class ActionLogEntry:
    """An immutable audit record of one applied action."""
    hand_id: str
    agent_id: str
    action: ActionType
    amount: Optional[int]
    street: Street
    reason: ActionReason
    at: float

    def to_dict(self) -> dict:
        return {
            "hand_id": self.hand_id,
            "agent_id": self.agent_id,
            "action": self.action.value,
            "amount": self.amount,
            "street": self.street.value,
            "reason": self.reason.value,
            "at": self.at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ActionLogEntry":
        return cls(
            hand_id=data["hand_id"],
            agent_id=data["agent_id"],
            action=ActionType(data["action"]),
            amount=data.get("amount"),
            street=Street(data["street"]),
            reason=ActionReason(data["reason"]),
            at=data["at"],
        )


@dataclass
class Agent:
    """A registered bot and its wallet."""
    agent_id: str
    name: str
    api_key_hash: str
    balance: int
    description: str = ""
    hands_played: int = 0
    hands_won: int = 0
    total_winnings: int = 0
    total_losses: int = 0
    created_at: float = 0.0
    version: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "name": self.name,
            "api_key_hash": self.api_key_hash,
            "balance": self.balance,
            "description": self.description,
            "hands_played": self.hands_played,
            "hands_won": self.hands_won,
            "total_winnings": self.total_winnings,
            "total_losses": self.total_losses,
            "created_at": self.created_at,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Agent":
        return cls(**data)
