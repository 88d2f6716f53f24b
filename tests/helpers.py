from __future__ import annotations

import asyncio
import random
from decimal import Decimal
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from crowns.cards import Card
from crowns.evaluator import Evaluator, HandEvaluation, evaluate_hands
from crowns.models import Table, TimingConfig, User
from crowns.rounds import RoundOutcome
from crowns.storage import MemoryStorage
from crowns_host.service import TableService

ZERO_TIMING = TimingConfig(start_delay_ms=0, reveal_ms=0, result_display_ms=0)


def create_table(
    *,
    stake: str = "5.00",
    balances: Sequence[str] = ("100.00", "100.00"),
    max_seats: int = 6,
    password: Optional[str] = None,
    commission_rate: str = "5.00",
) -> Tuple[MemoryStorage, Table, List[User]]:
    """Storage holding one table and a user per entry in ``balances``."""
    storage = MemoryStorage()
    storage.update_settings(commission_rate=Decimal(commission_rate))
    table = storage.create_table(
        Table(name="Test Table", stake=Decimal(stake), password=password, max_seats=max_seats)
    )
    users = [
        storage.create_user(User(username=f"Player{idx}", balance=Decimal(balance)))
        for idx, balance in enumerate(balances)
    ]
    return storage, table, users


class ScriptedEvaluator:
    """Declares round winners in order instead of ranking the cards."""

    def __init__(self, script: Sequence[Sequence[str]], hand_name: str = "Pair") -> None:
        self.script = [list(winners) for winners in script]
        self.hand_name = hand_name
        self.calls: List[Dict[str, List[Card]]] = []

    def __call__(self, player_hands: Mapping[str, Sequence[Card]]) -> HandEvaluation:
        self.calls.append({pid: list(cards) for pid, cards in player_hands.items()})
        winners = self.script[len(self.calls) - 1]
        return HandEvaluation(
            winners=frozenset(winners),
            hand_names={pid: self.hand_name for pid in player_hands},
        )


def create_service(
    storage: MemoryStorage,
    evaluator: Evaluator = evaluate_hands,
    timing: TimingConfig = ZERO_TIMING,
    seed: int = 7,
) -> TableService:
    return TableService(storage, timing=timing, evaluator=evaluator, rng=random.Random(seed))


def seat_all(service: TableService, table: Table, users: Sequence[User]) -> str:
    """Seat every user synchronously and return the game id."""
    game_id = ""
    for user in users:
        game_id = service.seats.join(table.id, user.id).game.id
    return game_id


def resolve_current(service: TableService, game_id: str) -> RoundOutcome:
    rnd = service.games.current_round(game_id)
    assert rnd is not None
    service.rounds.open_reveal(rnd.id)
    return service.rounds.resolve_round(rnd.id)


def balance(storage: MemoryStorage, user: User) -> Decimal:
    record = storage.get_user(user.id)
    assert record is not None
    return record.balance


class Recorder:
    """Collects everything the broadcaster sends, per user."""

    def __init__(self) -> None:
        self.messages: List[Tuple[str, str, Dict[str, object]]] = []

    def sink(self, user_id: str):
        async def send(msg_type: str, payload: Dict[str, object]) -> None:
            self.messages.append((user_id, msg_type, payload))

        return send

    def of_type(self, msg_type: str, user_id: Optional[str] = None) -> List[Dict[str, object]]:
        return [
            payload
            for uid, kind, payload in self.messages
            if kind == msg_type and (user_id is None or uid == user_id)
        ]

    def types(self, user_id: str) -> List[str]:
        return [kind for uid, kind, _ in self.messages if uid == user_id]


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)
