"""Hand state machine: dealing, blinds, betting rounds and settlement.

All functions here are pure over the Table and Hand documents they are
given: they validate first, then mutate in place. Callers work on fresh
copies loaded inside a store transaction, so a rejected action never
leaves partial changes behind.
"""
import random
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from clawpoker.config import config
from clawpoker.game.cards import deal, new_shuffled_deck
from clawpoker.game.errors import HandInProgressError, IntegrityError, RejectedError
from clawpoker.game.hand_eval import best_hands, evaluate_hand
from clawpoker.game.models import (
    NOBODY,
    ActionLogEntry,
    ActionReason,
    ActionType,
    Hand,
    HandPlayer,
    LastAction,
    PlayerToAct,
    SidePot,
    Street,
    Table,
    TableStatus,
    Turn,
    Winner,
)
from clawpoker.game.pot import Contribution, calculate_side_pots, calculate_winnings, clockwise_from_button
from clawpoker.game.table import reconcile_after_hand
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)

# street -> (next street, community cards revealed on entering it)
_NEXT_STREET = {
    Street.PREFLOP: (Street.FLOP, 3),
    Street.FLOP: (Street.TURN, 1),
    Street.TURN: (Street.RIVER, 1),
}


@dataclass
class ValidAction:
    """An action the player on turn may take, with amount bounds."""
    action: ActionType
    min_amount: Optional[int] = None
    max_amount: Optional[int] = None

    def to_dict(self) -> dict:
        data: dict = {"action": self.action.value}
        if self.min_amount is not None:
            data["min_amount"] = self.min_amount
            data["max_amount"] = self.max_amount
        return data


def start_hand(
    table: Table,
    now: float,
    rng: Optional[random.Random] = None,
    action_timeout: Optional[float] = None,
) -> Hand:
    """Deal a new hand at a table.

    Moves the button, deals hole cards in seat order, posts blinds and puts
    the first player on the clock. The table is marked playing.

    Args:
        table: Table to deal at; mutated.
        now: Current timestamp (seconds).
        rng: Shuffle source; seed it for reproducible deals.
        action_timeout: Seconds each player gets to act.

    Returns:
        The new hand. It may already be complete if nobody could act
        after the blinds (everyone all-in).

    Raises:
        HandInProgressError: The table already has a live hand.
        IntegrityError: The table is on hold for an operator.
        RejectedError: Fewer than two players can be dealt in.
    """
    if table.status == TableStatus.PLAYING or table.current_hand_id:
        raise HandInProgressError(table.table_id, table.current_hand_id)
    if table.hold_reason:
        raise IntegrityError("TABLE_ON_HOLD", f"Table is on hold: {table.hold_reason}")

    eligible = table.eligible_seats()
    if len(eligible) < 2:
        raise RejectedError("NOT_ENOUGH_PLAYERS", "Need at least 2 players with chips to start a hand")

    deck = new_shuffled_deck(rng)
    players = []
    for seat_index in eligible:
        seat = table.seats[seat_index]
        players.append(HandPlayer(
            agent_id=seat.agent_id,
            name=seat.name,
            seat_index=seat_index,
            hole_cards=deal(deck, 2),
            starting_stack=seat.stack,
            stack=seat.stack,
        ))

    dealer_seat = clockwise_from_button(eligible, table.dealer_seat, table.max_seats)[0]
    hand = Hand(
        hand_id=uuid.uuid4().hex,
        table_id=table.table_id,
        hand_number=table.hand_count + 1,
        players=players,
        deck=deck,
        dealer_seat=dealer_seat,
        started_at=now,
    )

    table.dealer_seat = dealer_seat
    table.hand_count += 1
    table.status = TableStatus.PLAYING
    table.current_hand_id = hand.hand_id

    first_to_act = _post_blinds(table, hand)

    logger.info(
        f"Started hand #{hand.hand_number} on table {table.table_id} "
        f"({len(players)} players, button seat {dealer_seat})"
    )

    turn = _next_actor(hand, first_to_act - 1)
    if isinstance(turn, PlayerToAct):
        _set_turn(hand, turn, now, action_timeout)
    else:
        _advance_street(table, hand, now, action_timeout)

    return hand


def _post_blinds(table: Table, hand: Hand) -> int:
    """Post small and big blinds.

    Heads-up the button posts the small blind and acts first preflop;
    otherwise the two seats after the button post and the next one acts.
    Blinds are capped at the poster's stack.

    Returns:
        Index of the first player to act preflop.
    """
    count = len(hand.players)
    button = next(i for i, p in enumerate(hand.players) if p.seat_index == hand.dealer_seat)

    if count == 2:
        sb_index, bb_index, first = button, (button + 1) % 2, button
    else:
        sb_index = (button + 1) % count
        bb_index = (button + 2) % count
        first = (button + 3) % count

    sb_player, bb_player = hand.players[sb_index], hand.players[bb_index]
    sb_amount = sb_player.commit_chips(table.small_blind)
    bb_amount = bb_player.commit_chips(table.big_blind)

    hand.pot = sb_amount + bb_amount
    hand.current_bet = max(sb_amount, bb_amount)
    hand.last_raise_size = hand.current_bet

    logger.debug(f"Blinds posted: {sb_player.name}={sb_amount}, {bb_player.name}={bb_amount}")
    return first


def apply_action(
    table: Table,
    hand: Hand,
    agent_id: str,
    action: Union[ActionType, str],
    amount: Optional[int] = None,
    reason: ActionReason = ActionReason.PLAYER,
    now: float = 0.0,
    action_timeout: Optional[float] = None,
    grace: Optional[float] = None,
) -> ActionLogEntry:
    """Apply one action for the player on turn.

    The single entry point for every hand mutation after the deal, shared
    by agents, the timeout sweeper and recovery.

    Args:
        table: Owning table; updated when the hand completes.
        hand: Hand to act in; mutated.
        agent_id: Acting agent.
        action: Action kind (enum or its string value).
        amount: Raise-to total for bet/raise; ignored otherwise.
        reason: Who triggered the action. Only player actions are held to
            the deadline.
        now: Current timestamp (seconds).
        action_timeout: Seconds the next player gets to act.
        grace: Seconds tolerated past the deadline for player actions.

    Returns:
        The log entry for the applied action.

    Raises:
        RejectedError: The action is not legal right now.
    """
    if hand.is_complete:
        raise RejectedError("HAND_COMPLETE", "Hand is already complete")

    index = hand.player_index(agent_id)
    if index is None:
        raise RejectedError("NOT_IN_HAND", "You are not in this hand")
    if not isinstance(hand.turn, PlayerToAct) or hand.turn.index != index:
        raise RejectedError("NOT_YOUR_TURN", "Not your turn")

    if reason == ActionReason.PLAYER and turn_expired(hand, now, grace):
        raise RejectedError("DEADLINE_PASSED", "Action deadline has passed")

    try:
        action = ActionType(action)
    except ValueError:
        raise RejectedError("INVALID_ACTION", f"Unknown action: {action}")

    player = hand.players[index]
    to_call = hand.current_bet - player.current_bet
    street = hand.status
    logged_amount: Optional[int] = None

    if action == ActionType.FOLD:
        player.folded = True

    elif action == ActionType.CHECK:
        if to_call > 0:
            raise RejectedError("ILLEGAL_CHECK", f"Cannot check, {to_call} to call")

    elif action == ActionType.CALL:
        if to_call <= 0:
            raise RejectedError("NOTHING_TO_CALL", "Nothing to call, check instead")
        logged_amount = player.commit_chips(to_call)
        hand.pot += logged_amount

    elif action in (ActionType.BET, ActionType.RAISE):
        target = _validate_raise(hand, player, amount)
        hand.pot += _raise_to(hand, player, target)
        logged_amount = target

    elif action == ActionType.ALL_IN:
        target = player.stack + player.current_bet
        if target > hand.current_bet:
            logged_amount = _raise_to(hand, player, target)
        else:
            logged_amount = player.commit_chips(player.stack)
        hand.pot += logged_amount

    player.has_acted = True
    hand.last_action = LastAction(agent_id=agent_id, action=action, amount=logged_amount, at=now)
    entry = ActionLogEntry(
        hand_id=hand.hand_id,
        agent_id=agent_id,
        action=action,
        amount=logged_amount,
        street=street,
        reason=reason,
        at=now,
    )

    if len(hand.live_players()) == 1:
        _award_uncontested(table, hand, now)
        return entry

    turn = _next_actor(hand, index)
    if isinstance(turn, PlayerToAct):
        _set_turn(hand, turn, now, action_timeout)
    else:
        _advance_street(table, hand, now, action_timeout)

    return entry


def _validate_raise(hand: Hand, player: HandPlayer, amount: Optional[int]) -> int:
    """Check a bet/raise-to amount against the min-raise law.

    A raise must reach ``current_bet + last_raise_size`` unless it puts the
    player all-in.

    Returns:
        The validated raise-to total.
    """
    if amount is None:
        raise RejectedError("AMOUNT_REQUIRED", "Bet and raise require an amount")
    amount = int(amount)

    max_total = player.stack + player.current_bet
    if amount > max_total:
        raise RejectedError("INSUFFICIENT_FUNDS", f"Insufficient chips, you can bet at most {max_total}")
    if amount <= hand.current_bet:
        raise RejectedError("NOT_A_RAISE", f"Amount must be more than the current bet of {hand.current_bet}")

    min_total = hand.current_bet + hand.last_raise_size
    if amount < min_total and amount != max_total:
        raise RejectedError("BELOW_MIN_RAISE", f"Minimum raise is to {min_total}")

    return amount


def _raise_to(hand: Hand, player: HandPlayer, target: int) -> int:
    """Raise the player's street bet to `target`. Returns chips moved.

    Only a full raise resets the minimum; a short all-in leaves it alone.
    """
    raise_size = target - hand.current_bet
    moved = player.commit_chips(target - player.current_bet)
    if raise_size >= hand.last_raise_size:
        hand.last_raise_size = raise_size
    hand.current_bet = target
    return moved


def _needs_to_act(hand: Hand, player: HandPlayer) -> bool:
    return player.can_act and (player.current_bet < hand.current_bet or not player.has_acted)


def _next_actor(hand: Hand, after_index: int) -> Turn:
    """First player after `after_index` (in seat order, wrapping) owed an action."""
    count = len(hand.players)
    for offset in range(1, count + 1):
        index = (after_index + offset) % count
        if _needs_to_act(hand, hand.players[index]):
            return PlayerToAct(index)
    return NOBODY


def _set_turn(hand: Hand, turn: Turn, now: float, action_timeout: Optional[float]) -> None:
    if action_timeout is None:
        action_timeout = config.action_timeout_seconds
    hand.turn = turn
    hand.action_deadline = now + action_timeout if isinstance(turn, PlayerToAct) else None


def _advance_street(table: Table, hand: Hand, now: float, action_timeout: Optional[float]) -> None:
    """Close the current street and open the next one, or go to showdown.

    When fewer than two players can still bet, the rest of the board is
    dealt out without further action.
    """
    while True:
        if hand.status == Street.RIVER:
            _showdown(table, hand, now)
            return

        for player in hand.players:
            player.current_bet = 0
            player.has_acted = False
        hand.current_bet = 0
        hand.last_raise_size = table.big_blind

        next_street, count = _NEXT_STREET[hand.status]
        hand.community_cards.extend(deal(hand.deck, count))
        hand.status = next_street
        logger.debug(f"Hand {hand.hand_id} {next_street.value}: {hand.community_cards}")

        can_act = [i for i, p in enumerate(hand.players) if p.can_act]
        if len(can_act) >= 2:
            order = clockwise_from_button(
                [hand.players[i].seat_index for i in can_act], hand.dealer_seat, table.max_seats
            )
            first = next(i for i in can_act if hand.players[i].seat_index == order[0])
            _set_turn(hand, PlayerToAct(first), now, action_timeout)
            return

        hand.turn = NOBODY
        hand.action_deadline = None


def _award_uncontested(table: Table, hand: Hand, now: float) -> None:
    """Everyone else folded: the last player takes the whole pot unseen."""
    winner = hand.live_players()[0]
    hand.side_pots = [SidePot(amount=hand.pot, eligible=[winner.agent_id])]
    hand.winners = [Winner(agent_id=winner.agent_id, name=winner.name, amount=hand.pot, hand="Others folded")]
    _finish(table, hand, {winner.agent_id: hand.pot}, now)


def _showdown(table: Table, hand: Hand, now: float) -> None:
    """Evaluate live hands and pay every pot tier."""
    pots = calculate_side_pots(
        Contribution(p.agent_id, p.total_bet, p.folded) for p in hand.players
    )
    results = {
        p.agent_id: evaluate_hand(p.hole_cards, hand.community_cards)
        for p in hand.live_players()
    }

    # Odd chips go to the tied winner nearest the button's left
    seat_order = clockwise_from_button(
        [p.seat_index for p in hand.players], hand.dealer_seat, table.max_seats
    )
    by_seat = {p.seat_index: p.agent_id for p in hand.players}
    clockwise = [by_seat[seat] for seat in seat_order]

    winners_by_pot: dict[int, list[str]] = {}
    for pot_index, pot in enumerate(pots):
        contenders = [(aid, results[aid]) for aid in clockwise if aid in pot.eligible and aid in results]
        if not contenders:
            raise IntegrityError("UNCLAIMED_POT", f"Pot of {pot.amount} has no eligible winner")
        winners_by_pot[pot_index] = best_hands(contenders)

    winnings = calculate_winnings(pots, winners_by_pot)
    names = {p.agent_id: p.name for p in hand.players}

    hand.side_pots = pots
    hand.winners = [
        Winner(agent_id=aid, name=names[aid], amount=winnings[aid], hand=results[aid].description)
        for aid in clockwise if winnings.get(aid)
    ]
    _finish(table, hand, winnings, now)


def _finish(table: Table, hand: Hand, winnings: dict[str, int], now: float) -> None:
    hand.status = Street.COMPLETE
    hand.turn = NOBODY
    hand.action_deadline = None
    hand.completed_at = now

    reconcile_after_hand(table, hand, winnings, now)

    summary = ", ".join(f"{w.name} +{w.amount} ({w.hand})" for w in hand.winners)
    logger.info(f"Hand #{hand.hand_number} complete on table {table.table_id}: {summary}")


def valid_actions(hand: Hand, agent_id: str) -> list[ValidAction]:
    """Actions available to an agent; empty unless it is their turn.

    Bet/raise bounds are raise-to totals for the street.
    """
    player = hand.current_player()
    if hand.is_complete or player is None or player.agent_id != agent_id:
        return []

    to_call = hand.current_bet - player.current_bet
    max_total = player.stack + player.current_bet
    actions = [ValidAction(ActionType.FOLD)]

    if to_call <= 0:
        actions.append(ValidAction(ActionType.CHECK))
    elif to_call <= player.stack:
        actions.append(ValidAction(ActionType.CALL, to_call, to_call))

    if max_total > hand.current_bet:
        kind = ActionType.BET if hand.current_bet == 0 else ActionType.RAISE
        min_total = min(hand.current_bet + hand.last_raise_size, max_total)
        actions.append(ValidAction(kind, min_total, max_total))

    if player.stack > 0:
        actions.append(ValidAction(ActionType.ALL_IN, max_total, max_total))

    return actions


def turn_expired(hand: Hand, now: float, grace: Optional[float] = None) -> bool:
    """Whether the clock on the current turn has run out, grace included.

    Players are heard up to the deadline plus grace; only after that may the
    sweeper act for them.
    """
    if grace is None:
        grace = config.action_grace_seconds
    return hand.action_deadline is not None and now > hand.action_deadline + grace


def timeout_action(hand: Hand) -> ActionType:
    """Default action for a player who ran out of time: check if free, else fold."""
    player = hand.current_player()
    if player is not None and player.current_bet >= hand.current_bet:
        return ActionType.CHECK
    return ActionType.FOLD


def is_stuck(hand: Hand) -> bool:
    """A live hand with nobody able to move it forward."""
    if hand.is_complete:
        return False
    player = hand.current_player()
    return player is None or not player.can_act


def force_advance(table: Table, hand: Hand, now: float, action_timeout: Optional[float] = None) -> None:
    """Push a stuck hand forward through the normal street logic.

    Picks the next player owed an action if there is one; otherwise closes
    the street (running the board out to showdown as needed).
    """
    if not is_stuck(hand):
        return

    start = hand.turn.index if isinstance(hand.turn, PlayerToAct) else -1
    turn = _next_actor(hand, start)
    if isinstance(turn, PlayerToAct):
        _set_turn(hand, turn, now, action_timeout)
    else:
        _advance_street(table, hand, now, action_timeout)
    logger.warning(f"Force-advanced stuck hand {hand.hand_id} on table {table.table_id}")
