import pytest

from crowns.cards import Card, build_deck, parse_cards
from crowns.errors import EvaluationPrecondition
from crowns.evaluator import describe_rank, evaluate_best, evaluate_hands


def test_evaluate_best_identifies_all_hand_categories():
    cases = [
        (8, ["9h", "Kh", "Qh", "Jh", "10h"]),  # straight flush
        (7, ["As", "Ah", "Ad", "Ac", "Kd"]),  # four of a kind
        (6, ["Qc", "Qd", "Qs", "9h", "9s"]),  # full house
        (5, ["Ah", "Jh", "9h", "6h", "2h"]),  # flush
        (4, ["9h", "8d", "7c", "6s", "5h"]),  # straight
        (3, ["8h", "8d", "8s", "Qd", "Js"]),  # three of a kind
        (2, ["7h", "7d", "4s", "4c", "As"]),  # two pair
        (1, ["6h", "6s", "Qh", "8d", "4c"]),  # one pair
        (0, ["As", "Kd", "Jh", "9c", "4d"]),  # high card
    ]

    for expected_rank, labels in cases:
        cards = parse_cards(labels)
        rank, _ = evaluate_best(cards)
        assert rank == expected_rank, f"labels={labels}"


def test_describe_rank_names_royal_flush_separately():
    royal = evaluate_best(parse_cards(["Ah", "Kh", "Qh", "Jh", "10h"]))
    king_high = evaluate_best(parse_cards(["9h", "Kh", "Qh", "Jh", "10h"]))
    assert describe_rank(royal) == "Royal Flush"
    assert describe_rank(king_high) == "Straight Flush"


def test_evaluate_best_handles_wheel_straight():
    cards = parse_cards(["Ah", "2d", "3c", "4s", "5h", "9d", "Kd"])
    rank, detail = evaluate_best(cards)
    assert rank == 4
    assert detail[0] == 5


def test_evaluate_best_compares_kickers_for_equal_pairs():
    hand_a = parse_cards(["Ah", "Ad", "Kc", "Qs", "9h", "2d", "3c"])
    hand_b = parse_cards(["Ah", "Ad", "Qc", "Js", "8h", "2d", "3c"])
    assert evaluate_best(hand_a) > evaluate_best(hand_b)


def test_card_validation_rejects_invalid_values():
    with pytest.raises(ValueError, match="Invalid rank"):
        Card("1", "hearts")
    with pytest.raises(ValueError, match="Invalid suit"):
        Card("A", "x")


def test_evaluate_hands_picks_single_winner_from_eleven_cards():
    community = parse_cards(["2c", "7d", "9h", "Js", "Kc"])
    hands = {
        "aces": parse_cards(["Ah", "Ad", "3s", "4h", "6c", "Qd"]) + community,
        "threes": parse_cards(["3c", "3h", "4c", "5s", "Qh", "8d"]) + community,
    }

    evaluation = evaluate_hands(hands)

    assert evaluation.winners == frozenset({"aces"})
    assert not evaluation.is_tie
    assert evaluation.hand_names == {"aces": "Pair", "threes": "Pair"}


def test_evaluate_hands_reports_tie_when_board_plays():
    community = parse_cards(["As", "Ks", "Qs", "Js", "10s"])
    hands = {
        "p1": parse_cards(["2h", "3h", "4d", "5c", "7d", "8c"]) + community,
        "p2": parse_cards(["2d", "3d", "4h", "5h", "7c", "8d"]) + community,
    }

    evaluation = evaluate_hands(hands)

    assert evaluation.winners == frozenset({"p1", "p2"})
    assert evaluation.is_tie
    assert evaluation.hand_names["p1"] == "Royal Flush"


def test_evaluate_hands_rejects_bad_input():
    deck = build_deck(seed=11)
    with pytest.raises(EvaluationPrecondition):
        evaluate_hands({})
    with pytest.raises(EvaluationPrecondition, match="expected 11"):
        evaluate_hands({"short": deck[:7]})
    with pytest.raises(EvaluationPrecondition, match="duplicate"):
        evaluate_hands({"dupes": deck[:10] + deck[:1]})


def test_evaluate_hands_across_seeded_decks():
    for seed in range(5):
        deck = build_deck(seed=seed)
        hands = {f"p{idx}": deck[idx * 11 : (idx + 1) * 11] for idx in range(4)}
        evaluation = evaluate_hands(hands)
        assert evaluation.winners
        assert set(evaluation.winners) <= set(hands)
        assert set(evaluation.hand_names) == set(hands)
