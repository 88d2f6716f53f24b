from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional

from .cards import Card, deal, fresh_deck, shuffle
from .errors import GameError, NotFound
from .evaluator import Evaluator, evaluate_hands
from .ledger import Ledger
from .models import (
    COMMUNITY_CARD_COUNT,
    CROWNS_TO_WIN,
    PRIVATE_CARD_COUNT,
    AuditLog,
    Game,
    GamePlayer,
    Round,
    RoundPhase,
    Table,
    utcnow,
)
from .storage import MemoryStorage

LOGGER = logging.getLogger("crowns")

# RoundController drives one deal: antes, cards, evaluation. Timing between
# the phases belongs to the host; this class only enforces their order.


@dataclass
class RoundOutcome:
    round: Round
    winner_id: Optional[str]
    hand_name: Optional[str]
    rounds_won: int = 0

    @property
    def is_tie(self) -> bool:
        return self.winner_id is None

    @property
    def is_table_winner(self) -> bool:
        return self.winner_id is not None and self.rounds_won >= CROWNS_TO_WIN


class RoundController:
    def __init__(
        self,
        storage: MemoryStorage,
        ledger: Ledger,
        evaluator: Evaluator = evaluate_hands,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.storage = storage
        self.ledger = ledger
        self.evaluator = evaluator
        self.rng = rng

    def deal_round(self, game: Game, table: Table, number: int) -> Round:
        """pending -> dealt: collect every ante, then deal and persist the round."""
        players = [p for p in self.storage.list_game_players(game.id) if p.active]
        if not players:
            raise GameError("No active players to deal")

        self.ledger.collect_antes([p.user_id for p in players], table.stake)
        round_pot = table.stake * len(players)
        try:
            self.storage.update_game(game.id, total_pot=game.total_pot + round_pot, current_round=number)
            for player in players:
                self.storage.update_game_player(player.id, staked=player.staked + table.stake)
            rnd = self._deal_and_record(game, players, number)
        except Exception:
            LOGGER.error("Dealing round %s of %s failed; returning antes", number, game.id)
            self.ledger.refund([p.user_id for p in players], table.stake)
            self.storage.update_game(game.id, total_pot=game.total_pot, current_round=game.current_round)
            for player in players:
                self.storage.update_game_player(player.id, staked=player.staked)
            raise

        for player in players:
            self.storage.increment_player_stats(player.user_id, total_staked=table.stake)
        self.storage.create_audit_log(
            AuditLog(
                event_type="round_started",
                game_id=game.id,
                details={"round": number, "player_count": len(players), "pot": str(round_pot)},
            )
        )
        LOGGER.info("Round %s dealt for game %s (%s players)", number, game.id, len(players))
        return rnd

    def _deal_and_record(self, game: Game, players: List[GamePlayer], number: int) -> Round:
        deck = shuffle(fresh_deck(), self.rng)
        community = deal(deck, COMMUNITY_CARD_COUNT)
        hands: Dict[str, List[Card]] = {}
        for player in players:
            hands[player.user_id] = deal(deck, PRIVATE_CARD_COUNT)
        return self.storage.create_round(
            Round(game_id=game.id, number=number, community=community, hands=hands, phase=RoundPhase.DEALT)
        )

    def open_reveal(self, round_id: str) -> Round:
        """dealt -> revealing: the timed look-at-your-cards window begins."""
        rnd = self._require_round(round_id)
        if rnd.phase != RoundPhase.DEALT:
            raise GameError(f"Round {rnd.number} is {rnd.phase.value}, expected dealt")
        return self.storage.update_round(round_id, phase=RoundPhase.REVEALING)

    def resolve_round(self, round_id: str) -> RoundOutcome:
        """revealing -> resolved: evaluate hands and record a single winner or a tie."""
        rnd = self._require_round(round_id)
        if rnd.phase != RoundPhase.REVEALING:
            raise GameError(f"Round {rnd.number} is {rnd.phase.value}, expected revealing")

        players = {p.user_id: p for p in self.storage.list_game_players(rnd.game_id) if p.active}
        combined = {user_id: list(rnd.hands.get(user_id, [])) + list(rnd.community) for user_id in players}
        evaluation = self.evaluator(combined)

        if len(evaluation.winners) == 1:
            (winner_id,) = evaluation.winners
            hand_name = evaluation.hand_names.get(winner_id)
            winner = players[winner_id]
            updated_player = self.storage.update_game_player(winner.id, rounds_won=winner.rounds_won + 1)
            rnd = self.storage.update_round(
                round_id,
                phase=RoundPhase.RESOLVED,
                winner_id=winner_id,
                winning_hand=hand_name,
                is_tie=False,
                completed_at=utcnow(),
            )
            self.storage.increment_player_stats(winner_id, rounds_won=1)
            outcome = RoundOutcome(
                round=rnd,
                winner_id=winner_id,
                hand_name=hand_name,
                rounds_won=updated_player.rounds_won,
            )
            self.storage.create_audit_log(
                AuditLog(
                    event_type="round_winner",
                    game_id=rnd.game_id,
                    user_id=winner_id,
                    details={
                        "round": rnd.number,
                        "hand_name": hand_name,
                        "is_table_winner": outcome.is_table_winner,
                    },
                )
            )
            LOGGER.info("Round %s of %s won by %s with %s", rnd.number, rnd.game_id, winner_id, hand_name)
            return outcome

        rnd = self.storage.update_round(
            round_id,
            phase=RoundPhase.RESOLVED,
            is_tie=True,
            completed_at=utcnow(),
        )
        self.storage.create_audit_log(
            AuditLog(
                event_type="round_tie",
                game_id=rnd.game_id,
                details={"round": rnd.number, "tied": sorted(evaluation.winners)},
            )
        )
        LOGGER.info("Round %s of %s tied between %s", rnd.number, rnd.game_id, sorted(evaluation.winners))
        return RoundOutcome(round=rnd, winner_id=None, hand_name=None)

    def _require_round(self, round_id: str) -> Round:
        rnd = self.storage.get_round(round_id)
        if rnd is None:
            raise NotFound("Round not found")
        return rnd
