"""Card and deck primitives."""
import random
from enum import Enum
from dataclasses import dataclass
from typing import Iterable, Optional, Union


class Suit(str, Enum):
    """Card suits."""
    SPADES = "s"
    HEARTS = "h"
    DIAMONDS = "d"
    CLUBS = "c"
    
    @property
    def symbol(self) -> str:
        return {"s": "♠", "h": "♥", "d": "♦", "c": "♣"}[self.value]
    
    def __str__(self) -> str:
        return self.value


class Rank(int, Enum):
    """Card ranks (2-14, where 14 is Ace)."""
    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13
    ACE = 14
    
    @property
    def label(self) -> str:
        """Plural-friendly name used in hand descriptions."""
        return {11: "Jack", 12: "Queen", 13: "King", 14: "Ace"}.get(self.value, str(self.value))
    
    def __str__(self) -> str:
        return RANK_CHARS[self.value - 2]


RANK_CHARS = "23456789TJQKA"


@dataclass(frozen=True)
class Card:
    """A playing card, serialized as a 2-char code such as 'As' or 'Td'."""
    rank: Rank
    suit: Suit
    
    def __str__(self) -> str:
        return f"{self.rank}{self.suit}"
    
    def __repr__(self) -> str:
        return str(self)
    
    @property
    def pretty(self) -> str:
        return f"{self.rank}{self.suit.symbol}"
    
    @classmethod
    def from_string(cls, s: str) -> "Card":
        """Parse card from string like 'Ah', 'Ts', '10s', '2c'.
        
        Args:
            s: Card string (rank + suit).
            
        Returns:
            Card instance.
            
        Raises:
            ValueError: If the string is not a card.
        """
        if len(s) < 2:
            raise ValueError(f"Invalid card: {s!r}")
        
        suit = Suit(s[-1].lower())
        rank_str = s[:-1].upper()
        if rank_str == "10":
            rank_str = "T"
        if len(rank_str) != 1 or rank_str not in RANK_CHARS:
            raise ValueError(f"Invalid card rank: {s!r}")
        
        return cls(rank=Rank(RANK_CHARS.index(rank_str) + 2), suit=suit)


CardLike = Union[Card, str]


def to_card(card: CardLike) -> Card:
    """Coerce a card code or Card into a Card."""
    return card if isinstance(card, Card) else Card.from_string(card)


def full_deck() -> list[str]:
    """All 52 card codes in a fixed order."""
    return [f"{rank}{suit}" for suit in Suit for rank in Rank]


def new_shuffled_deck(rng: Optional[random.Random] = None) -> list[str]:
    """Build a freshly shuffled 52-card deck.
    
    Args:
        rng: Shuffle source. Pass a seeded random.Random for reproducible
            deals; defaults to the OS entropy source.
            
    Returns:
        Card codes, top of the deck first.
    """
    rng = rng or random.SystemRandom()
    cards = full_deck()
    # Fisher-Yates
    for i in range(len(cards) - 1, 0, -1):
        j = rng.randint(0, i)
        cards[i], cards[j] = cards[j], cards[i]
    return cards


def deal(deck: list[str], count: int) -> list[str]:
    """Remove and return `count` cards from the top of the deck.
    
    Raises:
        ValueError: If not enough cards remain.
    """
    if count > len(deck):
        raise ValueError(f"Cannot deal {count} cards, only {len(deck)} remain")
    dealt = deck[:count]
    del deck[:count]
    return dealt


def format_cards(cards: Iterable[CardLike]) -> str:
    """Human-readable card list, e.g. 'A♠ K♥'."""
    return " ".join(to_card(c).pretty for c in cards)
