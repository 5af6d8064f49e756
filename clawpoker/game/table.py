"""Seat management: buy-ins, cash-outs, sit-outs and post-hand reconciliation."""
import uuid
from typing import Optional

from clawpoker.config import config
from clawpoker.game.errors import IntegrityError, RejectedError
from clawpoker.game.models import Agent, Hand, Seat, Table, TableStatus
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)

MAX_SEATS = 9


def create_table(
    name: str,
    small_blind: int,
    big_blind: int,
    min_buy_in: int,
    max_buy_in: int,
    max_seats: int = 6,
    now: float = 0.0,
    table_id: Optional[str] = None,
) -> Table:
    """Create an empty table.

    Raises:
        RejectedError: If blinds, buy-in range or seat count are inconsistent.
    """
    if not 0 < small_blind <= big_blind:
        raise RejectedError("INVALID_TABLE", "Blinds must satisfy 0 < small blind <= big blind")
    if not 0 < min_buy_in <= max_buy_in:
        raise RejectedError("INVALID_TABLE", "Buy-ins must satisfy 0 < min <= max")
    if not 2 <= max_seats <= MAX_SEATS:
        raise RejectedError("INVALID_TABLE", f"Seat count must be between 2 and {MAX_SEATS}")

    return Table(
        table_id=table_id or uuid.uuid4().hex,
        name=name,
        small_blind=small_blind,
        big_blind=big_blind,
        min_buy_in=min_buy_in,
        max_buy_in=max_buy_in,
        max_seats=max_seats,
        created_at=now,
    )


def refresh_status(table: Table) -> None:
    """Recompute waiting/between-hands for a table without a live hand."""
    if table.current_hand_id:
        return
    if len(table.eligible_seats()) >= 2:
        table.status = TableStatus.BETWEEN_HANDS
    else:
        table.status = TableStatus.WAITING


def join(table: Table, agent: Agent, buy_in: int, seat_index: Optional[int] = None) -> int:
    """Seat an agent, moving the buy-in from their wallet to the table.

    Args:
        table: Table to join; mutated.
        agent: Joining agent; their balance is debited.
        buy_in: Chips to bring to the table.
        seat_index: Requested seat, or the first empty one.

    Returns:
        The seat index taken.

    Raises:
        RejectedError: Buy-in out of range, balance too low, already
            seated, or no such free seat.
    """
    if not table.min_buy_in <= buy_in <= table.max_buy_in:
        raise RejectedError(
            "BUY_IN_RANGE",
            f"Buy-in must be between {table.min_buy_in} and {table.max_buy_in}"
        )
    if agent.balance < buy_in:
        raise RejectedError("INSUFFICIENT_BALANCE", f"Insufficient balance, you have {agent.balance}")
    if table.seat_of(agent.agent_id) is not None:
        raise RejectedError("ALREADY_SEATED", "Already seated at this table")

    if seat_index is None:
        free = [i for i, seat in enumerate(table.seats) if seat is None]
        if not free:
            raise RejectedError("TABLE_FULL", "Table is full")
        seat_index = free[0]
    elif not 0 <= seat_index < table.max_seats:
        raise RejectedError("INVALID_SEAT", f"Seat must be between 0 and {table.max_seats - 1}")
    elif table.seats[seat_index] is not None:
        raise RejectedError("SEAT_TAKEN", f"Seat {seat_index} is taken")

    agent.balance -= buy_in
    table.seats[seat_index] = Seat(agent_id=agent.agent_id, name=agent.name, stack=buy_in)
    refresh_status(table)

    logger.info(f"{agent.name} joined table {table.table_id} at seat {seat_index} with {buy_in}")
    return seat_index


def leave(table: Table, agent: Agent, hand: Optional[Hand] = None) -> int:
    """Unseat an agent and return their chips to their wallet.

    A player still live in the current hand cannot leave. One who has
    folded can: they are paid what remains of their hand stack now and
    skipped when the hand is reconciled. If they already did that and sat
    back down, only the new seat's stack is theirs to take.

    Args:
        table: Table to leave; mutated.
        agent: Leaving agent; their balance is credited.
        hand: The table's live hand, if any.

    Returns:
        Chips refunded.
    """
    seat_index = table.seat_of(agent.agent_id)
    if seat_index is None:
        raise RejectedError("NOT_SEATED", "Not seated at this table")
    seat = table.seats[seat_index]
    refund = seat.stack

    if hand is not None and not hand.is_complete:
        index = hand.player_index(agent.agent_id)
        if index is not None and not hand.players[index].left_table:
            player = hand.players[index]
            if not player.folded:
                raise RejectedError("LIVE_HAND", "Cannot leave during a hand you are still in, fold first")
            refund = player.stack
            player.left_table = True

    table.seats[seat_index] = None
    agent.balance += refund
    refresh_status(table)

    logger.info(f"{agent.name} left table {table.table_id}, refunded {refund}")
    return refund


def rebuy(table: Table, agent: Agent, amount: int) -> int:
    """Top up a seated agent's stack from their wallet.

    Returns:
        The new stack.
    """
    seat_index = table.seat_of(agent.agent_id)
    if seat_index is None:
        raise RejectedError("NOT_SEATED", "Not seated at this table")
    if table.current_hand_id:
        raise RejectedError("HAND_RUNNING", "Cannot rebuy while a hand is in progress")
    if amount <= 0:
        raise RejectedError("BUY_IN_RANGE", "Rebuy amount must be positive")

    seat = table.seats[seat_index]
    if seat.stack + amount > table.max_buy_in:
        raise RejectedError(
            "BUY_IN_RANGE",
            f"Stack after rebuy cannot exceed {table.max_buy_in} (currently {seat.stack})"
        )
    if agent.balance < amount:
        raise RejectedError("INSUFFICIENT_BALANCE", f"Insufficient balance, you have {agent.balance}")

    agent.balance -= amount
    seat.stack += amount
    refresh_status(table)
    return seat.stack


def toggle_sit_out(table: Table, agent_id: str) -> bool:
    """Flip an agent's sitting-out flag. Takes effect from the next deal.

    Returns:
        True if the agent is now sitting out.
    """
    seat_index = table.seat_of(agent_id)
    if seat_index is None:
        raise RejectedError("NOT_SEATED", "Not seated at this table")

    seat = table.seats[seat_index]
    seat.sitting_out = not seat.sitting_out
    if not seat.sitting_out:
        seat.timeouts = 0
    refresh_status(table)
    return seat.sitting_out


def remove_seat(table: Table, seat_index: int, agent: Agent, max_timeouts: Optional[int] = None) -> int:
    """Remove an occupant sat out for timeouts and refund their stack.

    Only between hands, and only while the seat is still sitting out with
    at least `max_timeouts` strikes; an agent who sat back in keeps it.
    """
    if max_timeouts is None:
        max_timeouts = config.max_timeouts
    seat = table.seats[seat_index]
    if seat is None or seat.agent_id != agent.agent_id:
        raise RejectedError("NOT_SEATED", "Seat is not held by this agent")
    if table.current_hand_id:
        raise RejectedError("HAND_RUNNING", "Cannot remove a seat while a hand is in progress")
    if not seat.sitting_out or seat.timeouts < max_timeouts:
        raise RejectedError("NOT_IDLE", f"Seat {seat_index} is back in play")

    table.seats[seat_index] = None
    agent.balance += seat.stack
    refresh_status(table)
    return seat.stack


def reconcile_after_hand(table: Table, hand: Hand, winnings: dict[str, int], now: float) -> None:
    """Write final stacks back to the seats and release the table.

    Each dealt player's seat becomes ``starting_stack - total_bet + won``.
    Players who folded and left mid-hand were already paid. A seat that no
    longer holds the player it was dealt to means chips cannot be placed;
    the table is put on hold instead of guessing.
    """
    lost: list[str] = []

    for player in hand.players:
        won = winnings.get(player.agent_id, 0)
        final_stack = player.starting_stack - player.total_bet + won

        if player.left_table:
            if won:
                lost.append(f"{player.name} left but won {won}")
            continue

        seat = table.seats[player.seat_index]
        if seat is None or seat.agent_id != player.agent_id:
            lost.append(f"{player.name} no longer at seat {player.seat_index} ({final_stack} chips)")
            continue

        seat.stack = final_stack

    table.current_hand_id = None
    table.last_hand_completed_at = now

    if lost:
        table.hold_reason = f"Hand #{hand.hand_number}: " + "; ".join(lost)
        logger.error(f"Table {table.table_id} on hold, unreconciled chips: {table.hold_reason}")

    refresh_status(table)


def check_chip_ledger(hand: Hand) -> None:
    """Verify a hand's chips add up.

    Live: every player's stack plus total bet equals their starting stack
    and the pot equals the sum of bets. Complete: payouts equal the pot.

    Raises:
        IntegrityError: If the books do not balance.
    """
    for player in hand.players:
        if player.stack + player.total_bet != player.starting_stack or player.stack < 0:
            raise IntegrityError(
                "CHIPS_UNACCOUNTED",
                f"{player.name}: stack {player.stack} + bets {player.total_bet} != {player.starting_stack}"
            )

    bets = sum(p.total_bet for p in hand.players)
    if hand.pot != bets:
        raise IntegrityError("CHIPS_UNACCOUNTED", f"Pot {hand.pot} != total bets {bets}")

    if hand.is_complete:
        paid = sum(w.amount for w in hand.winners)
        if paid != hand.pot:
            raise IntegrityError("CHIPS_UNACCOUNTED", f"Paid {paid} of pot {hand.pot}")
