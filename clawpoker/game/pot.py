"""Pot and side-pot calculation."""
from dataclasses import dataclass
from typing import Iterable

from clawpoker.game.models import SidePot
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Contribution:
    """What one dealt-in player put into the pot over the whole hand."""
    agent_id: str
    total_bet: int
    folded: bool


def calculate_side_pots(contributions: Iterable[Contribution]) -> list[SidePot]:
    """Partition the pot into threshold tiers.
    
    Each distinct contribution level is a tier worth
    ``(level - previous_level) * players_at_or_above_level``. Folded players
    fund the tiers they reached but cannot win them. A tier nobody can win
    (everyone who reached it folded) is folded into the nearest lower tier
    that has a winner, or the next higher one if none lies below, so the
    tiers always sum to the total contributed.
    
    Args:
        contributions: Every player dealt into the hand, folded or not.
        
    Returns:
        Pots ordered main pot first.
    """
    contributions = [c for c in contributions if c.total_bet > 0]
    levels = sorted({c.total_bet for c in contributions})
    
    pots: list[SidePot] = []
    orphaned = 0
    previous = 0
    
    for level in levels:
        reached = [c for c in contributions if c.total_bet >= level]
        amount = (level - previous) * len(reached)
        eligible = [c.agent_id for c in reached if not c.folded]
        previous = level
        
        if eligible:
            pots.append(SidePot(amount=amount + orphaned, eligible=eligible))
            orphaned = 0
        elif pots:
            pots[-1].amount += amount
        else:
            orphaned += amount
    
    if orphaned:
        # Everybody folded; only reachable with corrupted state
        logger.warning(f"{orphaned} chips have no eligible winner")
        pots.append(SidePot(amount=orphaned, eligible=[]))
    
    return pots


def calculate_winnings(
    side_pots: list[SidePot],
    winners_by_pot: dict[int, list[str]]
) -> dict[str, int]:
    """Calculate how much each player wins.
    
    Each pot is split evenly between its winners. Odd chips go one at a
    time to winners in the order given, so callers pass winners ordered
    clockwise from the button.
    
    Args:
        side_pots: List of side pots.
        winners_by_pot: Dict of pot_index -> list of winner agent ids.
        
    Returns:
        Dict of agent_id -> amount won.
    """
    winnings: dict[str, int] = {}
    
    for pot_idx, pot in enumerate(side_pots):
        winners = winners_by_pot.get(pot_idx)
        if not winners:
            continue
        
        share, remainder = divmod(pot.amount, len(winners))
        for i, winner in enumerate(winners):
            winnings[winner] = winnings.get(winner, 0) + share + (1 if i < remainder else 0)
    
    return winnings


def clockwise_from_button(seat_indices: Iterable[int], dealer_seat: int, max_seats: int) -> list[int]:
    """Order seats starting with the first seat left of the button.
    
    The button itself comes last.
    """
    return sorted(seat_indices, key=lambda seat: (seat - dealer_seat - 1) % max_seats)
