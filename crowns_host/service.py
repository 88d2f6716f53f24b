from __future__ import annotations

import logging
import random
from typing import Awaitable, Callable, Dict, List, Optional

from crowns.errors import GameError, NotFound
from crowns.evaluator import Evaluator, evaluate_hands
from crowns.game import GameOrchestrator, GameResult, NextStep
from crowns.ledger import Ledger
from crowns.models import GamePlayer, GameStatus, Round, TimingConfig
from crowns.rounds import RoundController, RoundOutcome
from crowns.seating import JoinResult, SeatManager
from crowns.storage import MemoryStorage

from .actor import GameActor, GameRegistry
from .broadcast import Sink, StateBroadcaster

LOGGER = logging.getLogger("crowns_host")

JOIN_ATTEMPTS = 2

# TableService paces every table: it owns the timers between phases and
# hands each transition to the rules in ``crowns``. Networking stays in
# server.py.


class TableService:
    def __init__(
        self,
        storage: MemoryStorage,
        timing: Optional[TimingConfig] = None,
        evaluator: Evaluator = evaluate_hands,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.storage = storage
        self.timing = timing or TimingConfig()
        self.ledger = Ledger(storage)
        self.rounds = RoundController(storage, self.ledger, evaluator=evaluator, rng=rng)
        self.games = GameOrchestrator(storage, self.ledger, self.rounds)
        self.seats = SeatManager(storage, self.ledger, self.games)
        self.registry = GameRegistry()
        self.broadcaster = StateBroadcaster(storage)

    # Player-facing operations ----------------------------------------

    async def join(
        self,
        table_id: str,
        user_id: str,
        sink: Optional[Sink] = None,
        password: Optional[str] = None,
    ) -> JoinResult:
        for _ in range(JOIN_ATTEMPTS):
            result = self.seats.join(table_id, user_id, password)
            game_id = result.game.id
            actor = self.registry.get_or_create(game_id, table_id)
            async with actor.lock:
                if actor.closed or self.storage.get_game(game_id).status == GameStatus.COMPLETED:
                    # Finished while we waited; the next attempt seats into a fresh game.
                    if self.registry.get(game_id) is actor:
                        self.registry.destroy(game_id)
                    continue
                actor.connected.add(user_id)
                if sink is not None:
                    self.broadcaster.subscribe(game_id, user_id, sink)
                await self._publish_state(actor)
                if not actor.start_pending and self.games.can_start(game_id):
                    actor.start_pending = True
                    actor.schedule(
                        self.timing.start_delay_ms,
                        "start",
                        lambda: self._run(actor, lambda: self._start_game(actor)),
                    )
            return result
        raise NotFound("Game already finished")

    async def leave(self, table_id: str, user_id: str) -> GamePlayer:
        player = self.seats.leave(table_id, user_id)
        actor = self.registry.get(player.game_id)
        if actor is not None:
            async with actor.lock:
                actor.connected.discard(user_id)
                self.broadcaster.unsubscribe(actor.game_id, user_id)
                if not actor.closed:
                    await self._publish_state(actor)
        return player

    async def disconnect(self, user_id: str, sink: Optional[Sink] = None) -> None:
        """Presence only: the seat, the antes and the results stay with the player.

        With ``sink`` given, games where the user has since subscribed a newer
        sink are left alone.
        """
        for actor in self.registry.for_user(user_id):
            async with actor.lock:
                if not self.broadcaster.unsubscribe(actor.game_id, user_id, sink):
                    continue
                actor.connected.discard(user_id)
                if not actor.closed:
                    await self._publish_state(actor)
            LOGGER.info("User %s disconnected from game %s", user_id, actor.game_id)

    def lobby(self) -> List[Dict[str, object]]:
        return [summary.to_payload() for summary in self.seats.lobby()]

    async def publish_state(self, game_id: str) -> None:
        actor = self.registry.get(game_id)
        connected = set(actor.connected) if actor else set()
        await self.broadcaster.publish_state(game_id, connected)

    # Operator operations ---------------------------------------------

    async def abort_game(self, game_id: str, reason: str = "aborted by operator") -> Optional[GameResult]:
        actor = self.registry.get(game_id)
        if actor is None:
            return self.games.abort_game(game_id, reason)
        async with actor.lock:
            actor.cancel_timer()
            result = self.games.abort_game(game_id, reason)
            if result is not None:
                await self.broadcaster.publish_event(game_id, "game-ended", _ended_payload(result))
                await self._publish_state(actor)
            self._teardown(actor)
        return result

    # Timed lifecycle -------------------------------------------------

    async def _run(self, actor: GameActor, step: Callable[[], Awaitable[None]]) -> None:
        async with actor.lock:
            if actor.closed or actor.halted:
                return
            try:
                await step()
            except GameError as exc:
                await self._halt(actor, exc.code, exc.msg, exc)
            except Exception as exc:
                await self._halt(actor, "INTERNAL", "Internal error", exc)

    async def _start_game(self, actor: GameActor) -> None:
        actor.start_pending = False
        if not self.games.can_start(actor.game_id):
            LOGGER.info("Game %s no longer has enough players; start postponed", actor.game_id)
            return
        rnd = self.games.start_game(actor.game_id)
        await self._open_reveal(actor, rnd)

    async def _open_reveal(self, actor: GameActor, rnd: Round) -> None:
        await self._publish_state(actor)
        self.rounds.open_reveal(rnd.id)
        actor.schedule(
            self.timing.reveal_ms,
            f"reveal:{rnd.number}",
            lambda: self._run(actor, lambda: self._resolve_round(actor, rnd.id, rnd.number)),
        )

    async def _resolve_round(self, actor: GameActor, round_id: str, number: int) -> None:
        if not self._is_current(actor, number):
            return
        outcome = self.rounds.resolve_round(round_id)
        step = self.games.decide_next(outcome)
        await self._announce(actor, outcome)

        if step == NextStep.NEXT_ROUND:
            await self._publish_state(actor)
            actor.schedule(
                self.timing.result_display_ms,
                f"next-round:{number + 1}",
                lambda: self._run(actor, lambda: self._next_round(actor, number + 1)),
            )
            return
        await self._finish(actor, self.games.winner_set(actor.game_id, step, outcome))

    async def _next_round(self, actor: GameActor, number: int) -> None:
        if not self._is_current(actor, number - 1):
            return
        rnd = self.games.advance_round(actor.game_id)
        await self._open_reveal(actor, rnd)

    async def _finish(self, actor: GameActor, winner_ids: List[str]) -> None:
        result = self.games.complete_game(actor.game_id, winner_ids)
        if result is not None:
            await self.broadcaster.publish_event(actor.game_id, "game-ended", _ended_payload(result))
            await self._publish_state(actor)
        self._teardown(actor)

    async def _announce(self, actor: GameActor, outcome: RoundOutcome) -> None:
        if outcome.is_tie:
            await self.broadcaster.publish_event(actor.game_id, "round-tie", {"round": outcome.round.number})
            return
        user = self.storage.get_user(outcome.winner_id)
        await self.broadcaster.publish_event(
            actor.game_id,
            "round-winner",
            {
                "round": outcome.round.number,
                "user_id": outcome.winner_id,
                "username": user.username if user else None,
                "hand_name": outcome.hand_name,
                "is_table_winner": outcome.is_table_winner,
            },
        )

    def _is_current(self, actor: GameActor, number: int) -> bool:
        game = self.storage.get_game(actor.game_id)
        if game is None or game.status != GameStatus.IN_PROGRESS or game.current_round != number:
            LOGGER.warning("Ignoring stale timer for game %s round %s", actor.game_id, number)
            return False
        return True

    async def _halt(self, actor: GameActor, code: str, msg: str, exc: Exception) -> None:
        LOGGER.error("Game %s halted: %s", actor.game_id, msg, exc_info=exc)
        actor.halt()
        await self.broadcaster.publish_error(actor.game_id, code, msg)

    async def _publish_state(self, actor: GameActor) -> None:
        await self.broadcaster.publish_state(actor.game_id, set(actor.connected))

    def _teardown(self, actor: GameActor) -> None:
        self.registry.destroy(actor.game_id)
        self.broadcaster.drop_game(actor.game_id)


def _ended_payload(result: GameResult) -> Dict[str, object]:
    settlement = result.settlement
    return {
        "game_id": result.game.id,
        "winner_ids": list(result.winner_ids),
        "commission": str(result.game.commission),
        "payouts": {uid: str(amount) for uid, amount in settlement.payouts.items()} if settlement else {},
        "refunds": {uid: str(amount) for uid, amount in result.refunds.items()},
        "aborted": result.aborted,
    }
