from __future__ import annotations

import asyncio
import logging
from typing import AbstractSet, Awaitable, Callable, Dict, Optional

from crowns.snapshot import build_snapshot
from crowns.storage import MemoryStorage

LOGGER = logging.getLogger("crowns_host")

Sink = Callable[[str, Dict[str, object]], Awaitable[None]]


class StateBroadcaster:
    """Fan-out of snapshots and events to every subscriber of a game.

    One sink per user per game; a newer subscription replaces the older one.
    """

    def __init__(self, storage: MemoryStorage) -> None:
        self.storage = storage
        self._subscribers: Dict[str, Dict[str, Sink]] = {}

    def subscribe(self, game_id: str, user_id: str, sink: Sink) -> None:
        self._subscribers.setdefault(game_id, {})[user_id] = sink

    def unsubscribe(self, game_id: str, user_id: str, sink: Optional[Sink] = None) -> bool:
        """Drop the user's sink; with ``sink`` given, only if it is still the current one."""
        subscribers = self._subscribers.get(game_id)
        if not subscribers or user_id not in subscribers:
            return True
        if sink is not None and subscribers[user_id] is not sink:
            return False
        del subscribers[user_id]
        return True

    def drop_game(self, game_id: str) -> None:
        self._subscribers.pop(game_id, None)

    def subscribers(self, game_id: str) -> Dict[str, Sink]:
        return dict(self._subscribers.get(game_id, {}))

    async def publish_state(self, game_id: str, connected: AbstractSet[str] = frozenset()) -> None:
        targets = self.subscribers(game_id)
        if not targets:
            return
        sends = []
        for user_id, sink in targets.items():
            view = build_snapshot(self.storage, game_id, viewer_id=user_id, connected=connected)
            sends.append(sink("game-state", view.to_payload()))
        await self._deliver(game_id, "game-state", sends)

    async def publish_event(self, game_id: str, msg_type: str, payload: Dict[str, object]) -> None:
        targets = self.subscribers(game_id)
        if not targets:
            return
        await self._deliver(game_id, msg_type, [sink(msg_type, dict(payload)) for sink in targets.values()])

    async def publish_error(self, game_id: str, code: str, msg: str) -> None:
        await self.publish_event(game_id, "error", {"code": code, "msg": msg, "game_id": game_id})

    async def _deliver(self, game_id: str, msg_type: str, sends) -> None:
        results = await asyncio.gather(*sends, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                LOGGER.warning("Dropped %s for game %s: %s", msg_type, game_id, result)
