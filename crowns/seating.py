from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import AccessDenied, GameLocked, InsufficientFunds, NotFound, TableFull
from .game import GameOrchestrator
from .ledger import Ledger
from .models import RESERVE_ROUNDS, Game, GamePlayer, GameStatus, Table, User
from .storage import MemoryStorage

LOGGER = logging.getLogger("crowns")


@dataclass
class JoinResult:
    table: Table
    game: Game
    player: GamePlayer
    seated: bool


@dataclass
class TableSummary:
    table_id: str
    name: str
    stake: str
    is_private: bool
    max_seats: int
    game_id: Optional[str] = None
    status: Optional[str] = None
    player_names: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, object]:
        return {
            "table_id": self.table_id,
            "name": self.name,
            "stake": self.stake,
            "is_private": self.is_private,
            "max_seats": self.max_seats,
            "game_id": self.game_id,
            "status": self.status,
            "player_count": len(self.player_names),
            "player_names": list(self.player_names),
        }


class SeatManager:
    """Seat allocation per table. Joins to one table are serialized."""

    def __init__(self, storage: MemoryStorage, ledger: Ledger, games: GameOrchestrator) -> None:
        self.storage = storage
        self.ledger = ledger
        self.games = games
        self._table_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, table_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._table_locks.get(table_id)
            if lock is None:
                lock = self._table_locks[table_id] = threading.Lock()
            return lock

    def join(self, table_id: str, user_id: str, password: Optional[str] = None) -> JoinResult:
        table = self.storage.get_table(table_id)
        if table is None:
            raise NotFound("Table not found")
        user = self.storage.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        if table.is_private and password != table.password:
            raise AccessDenied("Wrong table password")

        with self._lock_for(table_id):
            game = self.storage.find_open_game(table_id)
            existing = self.storage.get_game_player(game.id, user_id) if game else None
            if existing and existing.active:
                return JoinResult(table=table, game=game, player=existing, seated=False)

            self._check_reserve(user, table)
            if game is None:
                game = self.games.open_game(table_id)
            if game.status != GameStatus.WAITING:
                raise GameLocked("Game already in progress")

            seat = self._free_seat(game, table)
            if existing:
                player = self.storage.update_game_player(existing.id, seat=seat, active=True)
            else:
                player = self.storage.create_game_player(GamePlayer(game_id=game.id, user_id=user_id, seat=seat))

        LOGGER.info("%s took seat %s at %s (game %s)", user.username, seat, table.name, game.id)
        return JoinResult(table=table, game=game, player=player, seated=True)

    def leave(self, table_id: str, user_id: str) -> GamePlayer:
        """Give up a seat before the game starts."""
        with self._lock_for(table_id):
            game = self.storage.find_open_game(table_id)
            player = self.storage.get_game_player(game.id, user_id) if game else None
            if game is None or player is None or not player.active:
                raise NotFound("Not seated at this table")
            if game.status != GameStatus.WAITING:
                raise GameLocked("Cannot leave a game in progress")
            player = self.storage.update_game_player(player.id, active=False)
        LOGGER.info("User %s left seat %s of game %s", user_id, player.seat, game.id)
        return player

    def lobby(self) -> List[TableSummary]:
        summaries = []
        for table in self.storage.list_tables():
            summary = TableSummary(
                table_id=table.id,
                name=table.name,
                stake=str(table.stake),
                is_private=table.is_private,
                max_seats=table.max_seats,
            )
            game = self.storage.find_open_game(table.id)
            if game is not None:
                summary.game_id = game.id
                summary.status = game.status.value
                for player in self.games.active_players(game.id):
                    user = self.storage.get_user(player.user_id)
                    summary.player_names.append(user.username if user else "Unknown")
            summaries.append(summary)
        return summaries

    def _check_reserve(self, user: User, table: Table) -> None:
        if not self.ledger.can_afford(user.id, table.stake, RESERVE_ROUNDS):
            LOGGER.warning("Rejected %s at %s: balance %s below reserve", user.username, table.name, user.balance)
            raise InsufficientFunds(user.id, required=table.stake * RESERVE_ROUNDS, available=user.balance)

    def _free_seat(self, game: Game, table: Table) -> int:
        taken = {p.seat for p in self.games.active_players(game.id)}
        for idx in range(table.max_seats):
            if idx not in taken:
                return idx
        raise TableFull("Table full")
