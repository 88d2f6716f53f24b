from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from .errors import GameError, NotFound
from .ledger import Ledger, Settlement, compute_settlement
from .models import (
    MAX_ROUNDS,
    MIN_PLAYERS,
    ZERO,
    AuditLog,
    Game,
    GamePlayer,
    GameStatus,
    Round,
    Table,
    utcnow,
)
from .rounds import RoundController, RoundOutcome
from .storage import MemoryStorage

LOGGER = logging.getLogger("crowns")


class NextStep(str, Enum):
    NEXT_ROUND = "next_round"
    TABLE_WIN = "table_win"
    BEST_OF_THREE = "best_of_three"


@dataclass
class GameResult:
    game: Game
    winner_ids: List[str]
    settlement: Optional[Settlement] = None
    refunds: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def aborted(self) -> bool:
        return self.settlement is None


class GameOrchestrator:
    """Game state machine: waiting -> in_progress -> completed."""

    def __init__(self, storage: MemoryStorage, ledger: Ledger, rounds: RoundController) -> None:
        self.storage = storage
        self.ledger = ledger
        self.rounds = rounds

    # Lookups ---------------------------------------------------------

    def require_game(self, game_id: str) -> Game:
        game = self.storage.get_game(game_id)
        if game is None:
            raise NotFound("Game not found")
        return game

    def require_table(self, table_id: str) -> Table:
        table = self.storage.get_table(table_id)
        if table is None:
            raise NotFound("Table not found")
        return table

    def active_players(self, game_id: str) -> List[GamePlayer]:
        return [p for p in self.storage.list_game_players(game_id) if p.active]

    def current_round(self, game_id: str) -> Optional[Round]:
        game = self.require_game(game_id)
        for rnd in self.storage.list_rounds(game_id):
            if rnd.number == game.current_round:
                return rnd
        return None

    # Lifecycle -------------------------------------------------------

    def open_game(self, table_id: str) -> Game:
        """Return the table's single non-completed game, creating it if needed."""
        game = self.storage.find_open_game(table_id)
        if game is None:
            game = self.storage.create_game(Game(table_id=table_id))
            LOGGER.info("Created game %s for table %s", game.id, table_id)
        return game

    def can_start(self, game_id: str) -> bool:
        game = self.require_game(game_id)
        return game.status == GameStatus.WAITING and len(self.active_players(game_id)) >= MIN_PLAYERS

    def start_game(self, game_id: str) -> Round:
        game = self.require_game(game_id)
        if game.status != GameStatus.WAITING:
            raise GameError(f"Game {game_id} is {game.status.value}, cannot start")
        if len(self.active_players(game_id)) < MIN_PLAYERS:
            raise GameError("Not enough active players to start a game")

        game = self.storage.update_game(game_id, status=GameStatus.IN_PROGRESS, started_at=utcnow())
        self.storage.create_audit_log(
            AuditLog(event_type="game_started", game_id=game_id, details={"table_id": game.table_id})
        )
        LOGGER.info("Game %s started at table %s", game_id, game.table_id)
        return self.rounds.deal_round(game, self.require_table(game.table_id), 1)

    def advance_round(self, game_id: str) -> Round:
        game = self.require_game(game_id)
        if game.status != GameStatus.IN_PROGRESS:
            raise GameError(f"Game {game_id} is {game.status.value}, cannot deal")
        if game.current_round >= MAX_ROUNDS:
            raise GameError(f"Game {game_id} already played {MAX_ROUNDS} rounds")
        return self.rounds.deal_round(game, self.require_table(game.table_id), game.current_round + 1)

    def decide_next(self, outcome: RoundOutcome) -> NextStep:
        if outcome.is_table_winner:
            return NextStep.TABLE_WIN
        if outcome.round.number >= MAX_ROUNDS:
            return NextStep.BEST_OF_THREE
        return NextStep.NEXT_ROUND

    def winner_set(self, game_id: str, step: NextStep, outcome: RoundOutcome) -> List[str]:
        if step == NextStep.TABLE_WIN:
            if outcome.winner_id is None:
                raise GameError("Table win recorded without a winner")
            return [outcome.winner_id]
        if step == NextStep.BEST_OF_THREE:
            return [p.user_id for p in self.active_players(game_id) if p.rounds_won > 0]
        raise GameError("Game is not over yet")

    def complete_game(self, game_id: str, winner_ids: List[str]) -> Optional[GameResult]:
        """Settle the pot and close the game. Does nothing for a completed game."""
        game = self.require_game(game_id)
        if game.status == GameStatus.COMPLETED:
            LOGGER.warning("Game %s already completed; skipping payout", game_id)
            return None

        settlement = compute_settlement(game.total_pot, self.storage.get_settings().commission_rate, winner_ids)
        # Status flips before any credit so a repeated call can never pay twice.
        game = self.storage.update_game(
            game_id,
            status=GameStatus.COMPLETED,
            commission=settlement.commission,
            completed_at=utcnow(),
        )

        players = {p.user_id: p for p in self.storage.list_game_players(game_id)}
        for user_id, amount in settlement.payouts.items():
            self.ledger.credit(user_id, amount)
            self.storage.update_game_player(players[user_id].id, winnings=amount)
        for player in players.values():
            if not player.active:
                continue
            won = player.user_id in settlement.payouts
            self.storage.increment_player_stats(
                player.user_id,
                games_played=1,
                games_won=1 if won else 0,
                total_winnings=settlement.payouts.get(player.user_id, ZERO),
            )

        self.storage.create_audit_log(
            AuditLog(
                event_type="game_ended",
                game_id=game_id,
                details={
                    "winner_count": len(winner_ids),
                    "total_pot": str(settlement.total_pot),
                    "commission": str(settlement.commission),
                    "residual": str(settlement.residual),
                },
            )
        )
        if settlement.residual:
            LOGGER.info("Game %s settled with rounding residual %s", game_id, settlement.residual)
        LOGGER.info(
            "Game %s completed; winners=%s commission=%s",
            game_id,
            winner_ids,
            settlement.commission,
        )
        return GameResult(game=game, winner_ids=list(winner_ids), settlement=settlement)

    def abort_game(self, game_id: str, reason: str) -> Optional[GameResult]:
        """Close a game without a winner, returning every player's stakes."""
        game = self.require_game(game_id)
        if game.status == GameStatus.COMPLETED:
            return None

        game = self.storage.update_game(
            game_id,
            status=GameStatus.COMPLETED,
            commission=ZERO,
            completed_at=utcnow(),
        )
        refunds: Dict[str, Decimal] = {}
        for player in self.storage.list_game_players(game_id):
            if player.staked > 0:
                self.ledger.credit(player.user_id, player.staked)
                refunds[player.user_id] = player.staked
        self.storage.create_audit_log(
            AuditLog(
                event_type="game_aborted",
                game_id=game_id,
                details={"reason": reason, "refunds": {uid: str(amount) for uid, amount in refunds.items()}},
            )
        )
        LOGGER.warning("Game %s aborted (%s); refunded %s", game_id, reason, refunds)
        return GameResult(game=game, winner_ids=[], refunds=refunds)
