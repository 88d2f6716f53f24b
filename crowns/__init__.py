"""Rules for three-round crown tables, shared by the host and the tests."""

from .cards import Card, RANKS, SUITS, build_deck, deal, fresh_deck, shuffle
from .errors import (
    AccessDenied,
    EvaluationPrecondition,
    GameError,
    GameLocked,
    InsufficientFunds,
    NotFound,
    StorageError,
    TableFull,
)
from .evaluator import HandEvaluation, evaluate_best, evaluate_hands
from .game import GameOrchestrator, GameResult, NextStep
from .ledger import Ledger, Settlement, compute_settlement
from .models import GameStatus, RoundPhase, TimingConfig
from .rounds import RoundController, RoundOutcome
from .seating import JoinResult, SeatManager
from .snapshot import GameStateView, build_snapshot
from .storage import MemoryStorage

__all__ = [
    "Card",
    "RANKS",
    "SUITS",
    "build_deck",
    "deal",
    "fresh_deck",
    "shuffle",
    "AccessDenied",
    "EvaluationPrecondition",
    "GameError",
    "GameLocked",
    "InsufficientFunds",
    "NotFound",
    "StorageError",
    "TableFull",
    "HandEvaluation",
    "evaluate_best",
    "evaluate_hands",
    "GameOrchestrator",
    "GameResult",
    "NextStep",
    "Ledger",
    "Settlement",
    "compute_settlement",
    "GameStatus",
    "RoundPhase",
    "TimingConfig",
    "RoundController",
    "RoundOutcome",
    "JoinResult",
    "SeatManager",
    "GameStateView",
    "build_snapshot",
    "MemoryStorage",
]
