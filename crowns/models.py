from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from .cards import Card

MAX_ROUNDS = 3
CROWNS_TO_WIN = 2
COMMUNITY_CARD_COUNT = 5
PRIVATE_CARD_COUNT = 6
RESERVE_ROUNDS = 3
MIN_PLAYERS = 2
DEFAULT_SEATS = 6
DECK_SIZE = 52

# Every seat must be dealable from one deck.
MAX_SEATS = (DECK_SIZE - COMMUNITY_CARD_COUNT) // PRIVATE_CARD_COUNT

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GameStatus(str, Enum):
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class RoundPhase(str, Enum):
    PENDING = "pending"
    DEALT = "dealt"
    REVEALING = "revealing"
    RESOLVED = "resolved"


@dataclass
class TimingConfig:
    start_delay_ms: int = 2_000
    reveal_ms: int = 12_000
    result_display_ms: int = 15_000


@dataclass
class User:
    username: str
    balance: Decimal = ZERO
    is_admin: bool = False
    is_suspended: bool = False
    id: str = field(default_factory=lambda: new_id("U"))
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.balance = to_money(self.balance)


@dataclass
class Table:
    name: str
    stake: Decimal
    password: Optional[str] = None
    max_seats: int = DEFAULT_SEATS
    id: str = field(default_factory=lambda: new_id("T"))
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.stake = to_money(self.stake)
        if self.stake <= 0:
            raise ValueError("Stake must be positive")
        if self.max_seats < MIN_PLAYERS:
            raise ValueError("Table needs at least two seats")
        if self.max_seats > MAX_SEATS:
            raise ValueError(f"A table seats at most {MAX_SEATS} players")

    @property
    def is_private(self) -> bool:
        return bool(self.password)


@dataclass
class Game:
    table_id: str
    status: GameStatus = GameStatus.WAITING
    current_round: int = 0
    total_pot: Decimal = ZERO
    commission: Decimal = ZERO
    id: str = field(default_factory=lambda: new_id("G"))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass
class GamePlayer:
    game_id: str
    user_id: str
    seat: int
    rounds_won: int = 0
    active: bool = True
    winnings: Decimal = ZERO
    staked: Decimal = ZERO
    id: str = field(default_factory=lambda: new_id("P"))
    joined_at: datetime = field(default_factory=utcnow)


@dataclass
class Round:
    game_id: str
    number: int
    community: List[Card]
    hands: Dict[str, List[Card]]
    phase: RoundPhase = RoundPhase.DEALT
    winner_id: Optional[str] = None
    winning_hand: Optional[str] = None
    is_tie: bool = False
    id: str = field(default_factory=lambda: new_id("R"))
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not 1 <= self.number <= MAX_ROUNDS:
            raise ValueError(f"Invalid round number: {self.number}")
        if len(self.community) != COMMUNITY_CARD_COUNT:
            raise ValueError(f"Round needs {COMMUNITY_CARD_COUNT} community cards")
        for user_id, cards in self.hands.items():
            if len(cards) != PRIVATE_CARD_COUNT:
                raise ValueError(f"Hand for {user_id} needs {PRIVATE_CARD_COUNT} cards")

    @property
    def is_resolved(self) -> bool:
        return self.phase == RoundPhase.RESOLVED


@dataclass
class Settings:
    commission_rate: Decimal = Decimal("5.00")
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class AuditLog:
    event_type: str
    game_id: Optional[str] = None
    user_id: Optional[str] = None
    details: Dict[str, object] = field(default_factory=dict)
    id: str = field(default_factory=lambda: new_id("A"))
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class PlayerStats:
    user_id: str
    games_played: int = 0
    games_won: int = 0
    rounds_won: int = 0
    total_staked: Decimal = ZERO
    total_winnings: Decimal = ZERO
    updated_at: datetime = field(default_factory=utcnow)
