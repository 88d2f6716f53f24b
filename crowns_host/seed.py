from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, List

from crowns.models import Table, User, to_money
from crowns.storage import MemoryStorage

LOGGER = logging.getLogger("crowns_host")

DEFAULT_TABLES = (
    ("Beginner Table", Decimal("1.00")),
    ("Intermediate Table", Decimal("5.00")),
    ("High Rollers", Decimal("10.00")),
)


def seed_defaults(storage: MemoryStorage, commission_rate: Decimal = Decimal("5.00")) -> List[Table]:
    """Install the stock tables and commission rate into an empty store."""
    storage.update_settings(commission_rate=to_money(commission_rate))
    if storage.list_tables():
        LOGGER.info("Tables already present; skipping defaults")
        return storage.list_tables()
    tables = [storage.create_table(Table(name=name, stake=stake)) for name, stake in DEFAULT_TABLES]
    LOGGER.info("Created default tables: %s", ", ".join(table.name for table in tables))
    return tables


def parse_player_spec(spec: str) -> User:
    name, sep, balance = spec.partition(":")
    if not sep or not name.strip():
        raise ValueError(f"Expected NAME:BALANCE, got {spec!r}")
    try:
        amount = to_money(balance)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid balance in {spec!r}") from exc
    return User(username=name.strip(), balance=amount)


def seed_players(storage: MemoryStorage, specs: Iterable[str]) -> List[User]:
    users = []
    for spec in specs:
        user = parse_player_spec(spec)
        existing = storage.get_user_by_username(user.username)
        if existing is not None:
            users.append(existing)
            continue
        users.append(storage.create_user(user))
        LOGGER.info("Created player %s (%s) with balance %s", user.username, user.id, user.balance)
    return users
