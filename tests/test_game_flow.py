"""Tests for complete hands: streets, showdown and payouts."""
import random
from typing import Optional

from clawpoker.game.betting import apply_action, start_hand
from clawpoker.game.models import ActionType, Hand, Seat, SidePot, Street, Table, TableStatus
from clawpoker.game.table import check_chip_ledger


def make_table(stacks: list[int], small_blind: int = 1, big_blind: int = 2, button: int = 0) -> Table:
    """Create a six-seat table with `p<seat>` sitting in the first seats."""
    table = Table(
        table_id="t1",
        name="Test",
        small_blind=small_blind,
        big_blind=big_blind,
        min_buy_in=1,
        max_buy_in=100_000,
        max_seats=6,
    )
    for seat_index, stack in enumerate(stacks):
        table.seats[seat_index] = Seat(agent_id=f"p{seat_index}", name=f"player_{seat_index}", stack=stack)
    table.dealer_seat = (button - 1) % 6
    table.status = TableStatus.BETWEEN_HANDS
    return table


def rig(hand: Hand, holes: dict[str, str], board: str) -> None:
    """Replace hole cards and the rest of the deck with known cards."""
    for player in hand.players:
        player.hole_cards = holes[player.agent_id].split()
    hand.deck = board.split()


def act(table: Table, hand: Hand, action, amount: Optional[int] = None):
    return apply_action(table, hand, hand.current_player().agent_id, action, amount, now=1001.0, action_timeout=30)


def seat_stacks(table: Table) -> dict[str, int]:
    return {seat.agent_id: seat.stack for _, seat in table.occupied()}


class TestHeadsUp:
    """Test heads-up play from the deal to the flop."""

    def test_button_posts_small_blind_and_acts_first(self):
        """Test button and blind positions from a fresh table."""
        table = make_table([100, 100])
        table.dealer_seat = 0
        hand = start_hand(table, 1000.0, random.Random(3))

        assert hand.dealer_seat == 1
        assert hand.players[1].current_bet == 1
        assert hand.players[0].current_bet == 2
        assert hand.current_player().agent_id == "p1"

        act(table, hand, ActionType.CALL)
        assert hand.current_player().agent_id == "p0"
        assert hand.status == Street.PREFLOP

        act(table, hand, ActionType.CHECK)
        assert hand.status == Street.FLOP
        assert len(hand.community_cards) == 3
        assert hand.current_player().agent_id == "p0"
        assert hand.pot == 4

    def test_fold_awards_pot(self):
        """Test folding preflop hands the blinds to the other player."""
        table = make_table([100, 100])
        hand = start_hand(table, 1000.0, random.Random(3))

        act(table, hand, ActionType.FOLD)

        assert hand.is_complete
        assert hand.winners[0].agent_id == "p1"
        assert hand.winners[0].amount == 3
        assert hand.winners[0].hand == "Others folded"
        assert hand.side_pots == [SidePot(amount=3, eligible=["p1"])]
        assert seat_stacks(table) == {"p0": 99, "p1": 101}
        assert table.status == TableStatus.BETWEEN_HANDS
        assert table.current_hand_id is None
        assert table.last_hand_completed_at == 1001.0


class TestStreets:
    """Test betting round completion."""

    def test_round_completion_resets_bets(self):
        """Test moving to the flop clears street bets and acted flags."""
        table = make_table([100, 100, 100])
        hand = start_hand(table, 1000.0, random.Random(3))

        act(table, hand, ActionType.CALL)
        act(table, hand, ActionType.CALL)
        # Big blind keeps the option
        assert hand.current_player().agent_id == "p2"
        act(table, hand, ActionType.CHECK)

        assert hand.status == Street.FLOP
        assert hand.current_bet == 0
        assert hand.last_raise_size == 2
        assert all(p.current_bet == 0 and not p.has_acted for p in hand.players)
        assert hand.pot == 6
        assert hand.current_player().agent_id == "p1"

    def test_raise_reopens_action(self):
        """Test a re-raise gives earlier players another turn."""
        table = make_table([100, 100, 100])
        hand = start_hand(table, 1000.0, random.Random(3))

        act(table, hand, ActionType.RAISE, 6)
        act(table, hand, ActionType.CALL)
        act(table, hand, ActionType.RAISE, 20)

        assert hand.current_player().agent_id == "p0"
        act(table, hand, ActionType.CALL)
        assert hand.current_player().agent_id == "p1"
        act(table, hand, ActionType.CALL)
        assert hand.status == Street.FLOP
        assert hand.pot == 60

    def test_entries_record_street(self):
        """Test log entries carry the street they were taken on."""
        table = make_table([100, 100])
        hand = start_hand(table, 1000.0, random.Random(3))

        first = act(table, hand, ActionType.CALL)
        second = act(table, hand, ActionType.CHECK)
        third = act(table, hand, ActionType.CHECK)

        assert [e.street for e in (first, second, third)] == [Street.PREFLOP, Street.PREFLOP, Street.FLOP]
        assert first.amount == 1
        assert second.amount is None

    def test_all_in_runs_out_board(self):
        """Test the board is dealt out once nobody can bet."""
        table = make_table([50, 200])
        hand = start_hand(table, 1000.0, random.Random(3))

        act(table, hand, ActionType.ALL_IN)
        act(table, hand, ActionType.CALL)

        assert hand.is_complete
        assert len(hand.community_cards) == 5
        assert sum(seat_stacks(table).values()) == 250
        check_chip_ledger(hand)


class TestShowdown:
    """Test showdown evaluation and payouts."""

    def check_down(self, table: Table, hand: Hand) -> None:
        while not hand.is_complete:
            act(table, hand, ActionType.CHECK)

    def test_best_hand_wins(self):
        """Test the higher pair takes the pot."""
        table = make_table([100, 100])
        hand = start_hand(table, 1000.0, random.Random(3))
        rig(hand, {"p0": "As Ad", "p1": "Kc Kd"}, "2h 7c 9s Jd 3c")

        act(table, hand, ActionType.CALL)
        self.check_down(table, hand)

        assert hand.community_cards == ["2h", "7c", "9s", "Jd", "3c"]
        assert len(hand.winners) == 1
        assert hand.winners[0].agent_id == "p0"
        assert hand.winners[0].amount == 4
        assert hand.winners[0].hand == "Pair of Aces"
        assert seat_stacks(table) == {"p0": 102, "p1": 98}
        check_chip_ledger(hand)

    def test_split_pot_odd_chip(self):
        """Test a tied pot gives the odd chip to the first winner left of the button."""
        table = make_table([100, 100, 100])
        hand = start_hand(table, 1000.0, random.Random(3))
        rig(hand, {"p0": "2c 3d", "p1": "6c 7d", "p2": "4c 5d"}, "As Ks Qs Js Ts")

        act(table, hand, ActionType.CALL)
        act(table, hand, ActionType.FOLD)
        self.check_down(table, hand)

        amounts = {w.agent_id: w.amount for w in hand.winners}
        assert amounts == {"p2": 3, "p0": 2}
        assert all(w.hand == "Royal Flush" for w in hand.winners)
        assert seat_stacks(table) == {"p0": 100, "p1": 99, "p2": 101}

    def test_side_pots(self):
        """Test a short all-in can only win the main pot."""
        table = make_table([50, 150, 300])
        hand = start_hand(table, 1000.0, random.Random(3))
        rig(hand, {"p0": "As Ad", "p1": "Ks Kd", "p2": "Qs Qd"}, "2h 7c 9h Jd 3c")

        act(table, hand, ActionType.ALL_IN)
        act(table, hand, ActionType.ALL_IN)
        act(table, hand, ActionType.CALL)

        assert hand.is_complete
        assert [p.amount for p in hand.side_pots] == [150, 200]
        amounts = {w.agent_id: w.amount for w in hand.winners}
        assert amounts == {"p0": 150, "p1": 200}
        assert seat_stacks(table) == {"p0": 150, "p1": 200, "p2": 150}
        check_chip_ledger(hand)

    def test_folded_money_stays_in_pot(self):
        """Test chips from a folded player go to the showdown winner."""
        table = make_table([100, 100, 100])
        hand = start_hand(table, 1000.0, random.Random(3))
        rig(hand, {"p0": "As Ad", "p1": "Ks Kd", "p2": "Qs Qd"}, "2h 7c 9h Jd 3c")

        act(table, hand, ActionType.RAISE, 10)
        act(table, hand, ActionType.FOLD)
        act(table, hand, ActionType.CALL)
        self.check_down(table, hand)

        assert hand.winners[0].agent_id == "p0"
        assert hand.winners[0].amount == 21
        assert sum(seat_stacks(table).values()) == 300
