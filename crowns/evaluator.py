from __future__ import annotations

import itertools
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from .cards import RANKS, Card
from .errors import EvaluationPrecondition
from .models import COMMUNITY_CARD_COUNT, PRIVATE_CARD_COUNT

RANK_VALUE = {rank: idx for idx, rank in enumerate(RANKS, start=2)}
HAND_SIZE = PRIVATE_CARD_COUNT + COMMUNITY_CARD_COUNT

Score = Tuple[int, List[int]]

HAND_NAMES = {
    0: "High Card",
    1: "Pair",
    2: "Two Pair",
    3: "Three of a Kind",
    4: "Straight",
    5: "Flush",
    6: "Full House",
    7: "Four of a Kind",
    8: "Straight Flush",
}


@dataclass
class HandEvaluation:
    winners: FrozenSet[str]
    hand_names: Dict[str, str] = field(default_factory=dict)

    @property
    def is_tie(self) -> bool:
        return len(self.winners) > 1


Evaluator = Callable[[Mapping[str, Sequence[Card]]], HandEvaluation]


def evaluate_best(cards: Sequence[Card]) -> Score:
    """Return a strength tuple for the best 5-card combination. Higher is better."""
    best: Optional[Score] = None
    for combo in itertools.combinations(cards, 5):
        rank = _evaluate_five(combo)
        if best is None or rank > best:
            best = rank
    assert best is not None
    return best


def describe_rank(score: Score) -> str:
    category, kickers = score
    if category == 8 and kickers and kickers[0] == RANK_VALUE["A"]:
        return "Royal Flush"
    return HAND_NAMES[category]


def evaluate_hands(player_hands: Mapping[str, Sequence[Card]], hand_size: int = HAND_SIZE) -> HandEvaluation:
    """Rank each player's combined private + community cards.

    Every hand must hold exactly ``hand_size`` distinct cards. All players
    sharing the top score are returned as winners.
    """
    if not player_hands:
        raise EvaluationPrecondition("No hands to evaluate")
    scores: Dict[str, Score] = {}
    for player_id, cards in player_hands.items():
        if len(cards) != hand_size:
            raise EvaluationPrecondition(f"Hand for {player_id} has {len(cards)} cards, expected {hand_size}")
        if len(set(cards)) != len(cards):
            raise EvaluationPrecondition(f"Hand for {player_id} contains duplicate cards")
        scores[player_id] = evaluate_best(cards)

    best = max(scores.values())
    winners = frozenset(player_id for player_id, score in scores.items() if score == best)
    names = {player_id: describe_rank(score) for player_id, score in scores.items()}
    return HandEvaluation(winners=winners, hand_names=names)


def _evaluate_five(cards: Sequence[Card]) -> Score:
    values = sorted((RANK_VALUE[card.rank] for card in cards), reverse=True)
    flush = len({card.suit for card in cards}) == 1
    straight = _straight_high(cards)
    # Largest group first; the higher rank wins between groups of equal size.
    groups = sorted(((count, value) for value, count in Counter(values).items()), reverse=True)
    shape = [count for count, _ in groups]
    by_group = [value for _, value in groups]

    if straight and flush:
        return (8, [straight])
    if shape == [4, 1]:
        return (7, by_group)
    if shape == [3, 2]:
        return (6, by_group)
    if flush:
        return (5, values)
    if straight:
        return (4, [straight])
    if shape == [3, 1, 1]:
        return (3, by_group)
    if shape == [2, 2, 1]:
        return (2, by_group)
    if shape == [2, 1, 1, 1]:
        return (1, by_group)
    return (0, values)


def _straight_high(cards: Sequence[Card]) -> Optional[int]:
    present = {RANK_VALUE[card.rank] for card in cards}
    if RANK_VALUE["A"] in present:
        present.add(1)  # wheel
    for high in range(RANK_VALUE["A"], 4, -1):
        if all(high - offset in present for offset in range(5)):
            return high
    return None
