from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")
SUITS = ("hearts", "diamonds", "clubs", "spades")
SUIT_LETTERS = {"hearts": "h", "diamonds": "d", "clubs": "c", "spades": "s"}
LETTER_SUITS = {letter: suit for suit, letter in SUIT_LETTERS.items()}

_SYSTEM_RNG = random.SystemRandom()


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def label(self) -> str:
        return f"{self.rank}{SUIT_LETTERS[self.suit]}"

    def to_dict(self) -> Dict[str, str]:
        return {"rank": self.rank, "suit": self.suit}


# Built once; every round copies it before shuffling.
_TEMPLATE_DECK = tuple(Card(rank, suit) for suit in SUITS for rank in RANKS)


def fresh_deck() -> List[Card]:
    return list(_TEMPLATE_DECK)


def shuffle(cards: Sequence[Card], rng: Optional[random.Random] = None) -> List[Card]:
    """Return a shuffled copy of ``cards``; the input sequence is left untouched."""
    shuffled = list(cards)
    (rng or _SYSTEM_RNG).shuffle(shuffled)
    return shuffled


def build_deck(seed: Optional[int] = None) -> List[Card]:
    rng = random.Random(seed) if seed is not None else None
    return shuffle(fresh_deck(), rng)


def deal(deck: List[Card], count: int) -> List[Card]:
    if len(deck) < count:
        raise ValueError("Not enough cards left in deck")
    cards = deck[:count]
    del deck[:count]
    return cards


def parse_label(label: str) -> Card:
    if len(label) not in (2, 3):
        raise ValueError(f"Invalid card label: {label}")
    suit = LETTER_SUITS.get(label[-1])
    if suit is None:
        raise ValueError(f"Invalid suit: {label[-1]}")
    return Card(label[:-1], suit)


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [parse_label(label) for label in labels]
