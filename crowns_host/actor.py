from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

LOGGER = logging.getLogger("crowns_host")

TimerCallback = Callable[[], Awaitable[None]]


class GameActor:
    """Owns everything ephemeral about one running game.

    All transitions for the game run under ``lock``. At most one timer is
    pending at a time; scheduling a new one cancels the previous, and
    ``close`` cancels whatever is left.
    """

    def __init__(self, game_id: str, table_id: str) -> None:
        self.game_id = game_id
        self.table_id = table_id
        self.lock = asyncio.Lock()
        self.connected: Set[str] = set()
        self.start_pending = False
        self.halted = False
        self.closed = False
        self.timer_label: Optional[str] = None
        self._timer: Optional[asyncio.Task] = None
        self._done = asyncio.Event()

    def schedule(self, delay_ms: int, label: str, callback: TimerCallback) -> None:
        if self.closed or self.halted:
            return
        self.cancel_timer()
        self.timer_label = label
        self._timer = asyncio.create_task(self._fire(delay_ms, label, callback))

    async def _fire(self, delay_ms: int, label: str, callback: TimerCallback) -> None:
        await asyncio.sleep(max(delay_ms, 0) / 1000)
        # Detach first: the callback may close the actor, which must not cancel this task.
        self._timer = None
        self.timer_label = None
        if self.closed:
            return
        LOGGER.debug("Game %s timer %s fired", self.game_id, label)
        await callback()

    def cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self.timer_label = None

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def halt(self) -> None:
        self.cancel_timer()
        self.halted = True

    def close(self) -> None:
        self.cancel_timer()
        self.closed = True
        self.connected.clear()
        self._done.set()

    async def wait_closed(self, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self._done.wait(), timeout=timeout)


class GameRegistry:
    """Live actors by game id: created on first join, destroyed on completion."""

    def __init__(self) -> None:
        self._actors: Dict[str, GameActor] = {}

    def get(self, game_id: str) -> Optional[GameActor]:
        return self._actors.get(game_id)

    def get_or_create(self, game_id: str, table_id: str) -> GameActor:
        actor = self._actors.get(game_id)
        if actor is None:
            actor = self._actors[game_id] = GameActor(game_id, table_id)
            LOGGER.debug("Registered actor for game %s", game_id)
        return actor

    def destroy(self, game_id: str) -> None:
        actor = self._actors.pop(game_id, None)
        if actor is not None:
            actor.close()

    def for_user(self, user_id: str) -> List[GameActor]:
        return [actor for actor in self._actors.values() if user_id in actor.connected]

    def __len__(self) -> int:
        return len(self._actors)

    def __contains__(self, game_id: object) -> bool:
        return game_id in self._actors
