"""In-memory implementation of the storage capability.

Records are copied on the way in and on the way out, so callers only ever
see snapshots and must write changes back through the ``update_*`` calls,
exactly as they would against a database.
"""

from __future__ import annotations

import copy
import dataclasses
import threading
from typing import Dict, List, Optional, TypeVar

from .errors import NotFound
from .models import (
    AuditLog,
    Game,
    GamePlayer,
    GameStatus,
    PlayerStats,
    Round,
    Settings,
    Table,
    User,
    utcnow,
)

RecordT = TypeVar("RecordT")


class MemoryStorage:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._tables: Dict[str, Table] = {}
        self._games: Dict[str, Game] = {}
        self._players: Dict[str, GamePlayer] = {}
        self._rounds: Dict[str, Round] = {}
        self._settings = Settings()
        self._audit: List[AuditLog] = []
        self._stats: Dict[str, PlayerStats] = {}

    # Users -----------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return _copy(self._users.get(user_id))

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return _copy(user)
        return None

    def list_users(self) -> List[User]:
        with self._lock:
            return [_copy(user) for user in self._users.values()]

    def create_user(self, user: User) -> User:
        with self._lock:
            self._users[user.id] = _copy(user)
            return _copy(user)

    def update_user(self, user_id: str, **changes: object) -> User:
        with self._lock:
            return self._update(self._users, user_id, "User", changes)

    # Tables ----------------------------------------------------------

    def get_table(self, table_id: str) -> Optional[Table]:
        with self._lock:
            return _copy(self._tables.get(table_id))

    def list_tables(self) -> List[Table]:
        with self._lock:
            return [_copy(table) for table in self._tables.values()]

    def create_table(self, table: Table) -> Table:
        with self._lock:
            self._tables[table.id] = _copy(table)
            return _copy(table)

    def update_table(self, table_id: str, **changes: object) -> Table:
        with self._lock:
            return self._update(self._tables, table_id, "Table", changes)

    # Games -----------------------------------------------------------

    def get_game(self, game_id: str) -> Optional[Game]:
        with self._lock:
            return _copy(self._games.get(game_id))

    def find_open_game(self, table_id: str) -> Optional[Game]:
        with self._lock:
            for game in self._games.values():
                if game.table_id == table_id and game.status != GameStatus.COMPLETED:
                    return _copy(game)
        return None

    def list_games(self, status: Optional[GameStatus] = None) -> List[Game]:
        with self._lock:
            return [_copy(game) for game in self._games.values() if status is None or game.status == status]

    def create_game(self, game: Game) -> Game:
        with self._lock:
            self._games[game.id] = _copy(game)
            return _copy(game)

    def update_game(self, game_id: str, **changes: object) -> Game:
        with self._lock:
            return self._update(self._games, game_id, "Game", changes)

    # Game players ----------------------------------------------------

    def get_game_player(self, game_id: str, user_id: str) -> Optional[GamePlayer]:
        with self._lock:
            for player in self._players.values():
                if player.game_id == game_id and player.user_id == user_id:
                    return _copy(player)
        return None

    def list_game_players(self, game_id: str) -> List[GamePlayer]:
        with self._lock:
            players = [_copy(p) for p in self._players.values() if p.game_id == game_id]
        return sorted(players, key=lambda p: p.seat)

    def create_game_player(self, player: GamePlayer) -> GamePlayer:
        with self._lock:
            self._players[player.id] = _copy(player)
            return _copy(player)

    def update_game_player(self, player_id: str, **changes: object) -> GamePlayer:
        with self._lock:
            return self._update(self._players, player_id, "Game player", changes)

    # Rounds ----------------------------------------------------------

    def get_round(self, round_id: str) -> Optional[Round]:
        with self._lock:
            return _copy(self._rounds.get(round_id))

    def list_rounds(self, game_id: str) -> List[Round]:
        with self._lock:
            rounds = [_copy(r) for r in self._rounds.values() if r.game_id == game_id]
        return sorted(rounds, key=lambda r: r.number)

    def create_round(self, rnd: Round) -> Round:
        with self._lock:
            self._rounds[rnd.id] = _copy(rnd)
            return _copy(rnd)

    def update_round(self, round_id: str, **changes: object) -> Round:
        with self._lock:
            return self._update(self._rounds, round_id, "Round", changes)

    # Settings --------------------------------------------------------

    def get_settings(self) -> Settings:
        with self._lock:
            return _copy(self._settings)

    def update_settings(self, **changes: object) -> Settings:
        with self._lock:
            self._settings = dataclasses.replace(self._settings, updated_at=utcnow(), **changes)
            return _copy(self._settings)

    # Audit log -------------------------------------------------------

    def create_audit_log(self, entry: AuditLog) -> AuditLog:
        with self._lock:
            self._audit.append(_copy(entry))
            return _copy(entry)

    def list_audit_logs(self, limit: int = 100, game_id: Optional[str] = None) -> List[AuditLog]:
        """Newest first."""
        with self._lock:
            entries = [e for e in reversed(self._audit) if game_id is None or e.game_id == game_id]
            return [_copy(e) for e in entries[:limit]]

    # Player stats ----------------------------------------------------

    def get_player_stats(self, user_id: str) -> Optional[PlayerStats]:
        with self._lock:
            return _copy(self._stats.get(user_id))

    def update_player_stats(self, user_id: str, **changes: object) -> PlayerStats:
        with self._lock:
            current = self._stats.get(user_id) or PlayerStats(user_id=user_id)
            self._stats[user_id] = dataclasses.replace(current, updated_at=utcnow(), **changes)
            return _copy(self._stats[user_id])

    def increment_player_stats(self, user_id: str, **deltas: object) -> PlayerStats:
        with self._lock:
            current = self._stats.get(user_id) or PlayerStats(user_id=user_id)
            changes = {name: getattr(current, name) + delta for name, delta in deltas.items()}
            self._stats[user_id] = dataclasses.replace(current, updated_at=utcnow(), **changes)
            return _copy(self._stats[user_id])

    def _update(self, records: Dict[str, RecordT], record_id: str, label: str, changes: Dict[str, object]) -> RecordT:
        current = records.get(record_id)
        if current is None:
            raise NotFound(f"{label} not found")
        updated = dataclasses.replace(current, **changes)
        records[record_id] = updated
        return _copy(updated)


def _copy(record: Optional[RecordT]) -> Optional[RecordT]:
    return copy.deepcopy(record) if record is not None else None
