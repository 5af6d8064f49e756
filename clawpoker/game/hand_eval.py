"""Hand evaluation for Texas Hold'em."""
from enum import IntEnum
from typing import Optional, Sequence
from dataclasses import dataclass, field
from collections import Counter
from itertools import combinations

from clawpoker.game.cards import Card, CardLike, Rank, to_card


class HandRank(IntEnum):
    """Poker hand rankings (higher is better)."""
    HIGH_CARD = 1
    PAIR = 2
    TWO_PAIR = 3
    THREE_OF_A_KIND = 4
    STRAIGHT = 5
    FLUSH = 6
    FULL_HOUSE = 7
    FOUR_OF_A_KIND = 8
    STRAIGHT_FLUSH = 9
    ROYAL_FLUSH = 10


@dataclass
class HandResult:
    """Result of hand evaluation."""
    rank: HandRank
    values: tuple[int, ...]  # Tiebreakers, most significant first
    description: str
    cards: list[Card] = field(default_factory=list, compare=False)
    
    def __lt__(self, other: "HandResult") -> bool:
        return compare(self, other) < 0
    
    def __gt__(self, other: "HandResult") -> bool:
        return compare(self, other) > 0


def _is_straight(ranks: list[int]) -> bool:
    """Check if ranks form a straight (wheel included)."""
    distinct = sorted(set(ranks))
    if len(distinct) != 5:
        return False
    if distinct == [2, 3, 4, 5, 14]:
        return True
    return distinct[-1] - distinct[0] == 4


def _straight_high(ranks: list[int]) -> int:
    """High card of a straight; the wheel plays to the 5."""
    distinct = sorted(set(ranks))
    if distinct == [2, 3, 4, 5, 14]:
        return 5
    return distinct[-1]


def _evaluate_5_cards(cards: list[Card]) -> HandResult:
    """Evaluate exactly 5 cards.
    
    Args:
        cards: Exactly 5 cards.
        
    Returns:
        HandResult with ranking.
    """
    ranks = [c.rank.value for c in cards]
    is_flush = len({c.suit for c in cards}) == 1
    is_straight = _is_straight(ranks)
    
    # (rank, count) ordered by count then rank, both descending
    counts = sorted(Counter(ranks).items(), key=lambda x: (x[1], x[0]), reverse=True)
    
    if is_flush and is_straight:
        high = _straight_high(ranks)
        if high == 14:
            return HandResult(HandRank.ROYAL_FLUSH, (14,), "Royal Flush", cards)
        return HandResult(
            HandRank.STRAIGHT_FLUSH, (high,),
            f"Straight Flush, {Rank(high).label} high", cards
        )
    
    if counts[0][1] == 4:
        quad, kicker = counts[0][0], counts[1][0]
        return HandResult(
            HandRank.FOUR_OF_A_KIND, (quad, kicker),
            f"Four of a Kind, {Rank(quad).label}s", cards
        )
    
    if counts[0][1] == 3 and counts[1][1] == 2:
        trips, pair = counts[0][0], counts[1][0]
        return HandResult(
            HandRank.FULL_HOUSE, (trips, pair),
            f"Full House, {Rank(trips).label}s full of {Rank(pair).label}s", cards
        )
    
    if is_flush:
        ordered = tuple(sorted(ranks, reverse=True))
        return HandResult(HandRank.FLUSH, ordered, f"Flush, {Rank(ordered[0]).label} high", cards)
    
    if is_straight:
        high = _straight_high(ranks)
        return HandResult(HandRank.STRAIGHT, (high,), f"Straight, {Rank(high).label} high", cards)
    
    kickers = tuple(r for r, _ in counts[1:])
    
    if counts[0][1] == 3:
        trips = counts[0][0]
        return HandResult(
            HandRank.THREE_OF_A_KIND, (trips,) + kickers,
            f"Three of a Kind, {Rank(trips).label}s", cards
        )
    
    if counts[0][1] == 2 and counts[1][1] == 2:
        high_pair, low_pair, kicker = counts[0][0], counts[1][0], counts[2][0]
        return HandResult(
            HandRank.TWO_PAIR, (high_pair, low_pair, kicker),
            f"Two Pair, {Rank(high_pair).label}s and {Rank(low_pair).label}s", cards
        )
    
    if counts[0][1] == 2:
        pair = counts[0][0]
        return HandResult(HandRank.PAIR, (pair,) + kickers, f"Pair of {Rank(pair).label}s", cards)
    
    ordered = tuple(sorted(ranks, reverse=True))
    return HandResult(HandRank.HIGH_CARD, ordered, f"High Card, {Rank(ordered[0]).label}", cards)


def evaluate(cards: Sequence[CardLike]) -> HandResult:
    """Evaluate the best 5-card hand out of 5 to 7 cards.
    
    Every 5-card combination is scored and the best kept.
    
    Args:
        cards: Card codes ('As', 'Td', ...) or Card instances.
        
    Returns:
        Best possible HandResult.
        
    Raises:
        ValueError: If fewer than 5 or more than 7 cards, or duplicates.
    """
    parsed = [to_card(c) for c in cards]
    if not 5 <= len(parsed) <= 7:
        raise ValueError(f"Need 5 to 7 cards, got {len(parsed)}")
    if len(set(parsed)) != len(parsed):
        raise ValueError("Duplicate cards in hand")
    
    best: Optional[HandResult] = None
    for combo in combinations(parsed, 5):
        result = _evaluate_5_cards(list(combo))
        if best is None or compare(result, best) > 0:
            best = result
    
    return best  # type: ignore


def evaluate_hand(hole_cards: Sequence[CardLike], community_cards: Sequence[CardLike]) -> HandResult:
    """Evaluate a player's hole cards together with the board."""
    return evaluate(list(hole_cards) + list(community_cards))


def compare(a: HandResult, b: HandResult) -> int:
    """Order two hands.
    
    Rank class decides first, then tiebreakers element by element, with a
    missing element counting as zero.
    
    Returns:
        1 if a wins, -1 if b wins, 0 for an exact tie.
    """
    if a.rank != b.rank:
        return 1 if a.rank > b.rank else -1
    for i in range(max(len(a.values), len(b.values))):
        av = a.values[i] if i < len(a.values) else 0
        bv = b.values[i] if i < len(b.values) else 0
        if av != bv:
            return 1 if av > bv else -1
    return 0


def best_hands(results: list[tuple[str, HandResult]]) -> list[str]:
    """Return the ids holding the strongest hand (several on a tie).
    
    Args:
        results: List of (player_id, HandResult) tuples.
    """
    winners: list[str] = []
    best: Optional[HandResult] = None
    for player_id, result in results:
        order = 1 if best is None else compare(result, best)
        if order > 0:
            winners, best = [player_id], result
        elif order == 0:
            winners.append(player_id)
    return winners
