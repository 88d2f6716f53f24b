from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

import websockets
from websockets.asyncio.server import ServerConnection, serve

from crowns.errors import GameError
from crowns.snapshot import build_snapshot

from .broadcast import Sink
from .service import TableService

LOGGER = logging.getLogger("crowns_host")

# HostServer glues TableService to WebSocket clients. Every network concern
# lives here; the service never sees a socket, only per-user sinks.


@dataclass
class ClientSession:
    websocket: ServerConnection
    role: str = "player"
    user_id: Optional[str] = None
    sink: Optional[Sink] = None


class HostServer:
    def __init__(self, service: TableService, operator_token: Optional[str] = None) -> None:
        self.service = service
        self.operator_token = operator_token

    async def start(self, host: str = "0.0.0.0", port: int = 8765) -> None:
        async with serve(self._handle_connection, host, port):
            LOGGER.info("Crown tables listening on %s:%s", host, port)
            await asyncio.Future()

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        session = ClientSession(websocket=websocket)
        try:
            async for raw in websocket:
                await self._dispatch(session, self._decode(raw))
        except websockets.ConnectionClosed:
            pass
        finally:
            await self._drop_session(session)

    async def _drop_session(self, session: ClientSession) -> None:
        if session.user_id is not None:
            await self.service.disconnect(session.user_id, sink=session.sink)

    async def _dispatch(self, session: ClientSession, message: Dict[str, object]) -> None:
        msg_type = message.get("type")
        if msg_type == "hello":
            await self._handle_hello(session, message)
        elif msg_type == "join-table":
            await self._handle_join(session, message)
        elif msg_type == "leave-table":
            await self._handle_leave(session, message)
        elif msg_type == "list-tables":
            await self._send_json(session.websocket, "tables", {"tables": self.service.lobby()})
        elif msg_type == "control":
            await self._handle_control(session, message)
        else:
            await self._send_error(session.websocket, code="UNKNOWN_TYPE", msg="Unsupported message type")

    async def _handle_hello(self, session: ClientSession, message: Dict[str, object]) -> None:
        role_raw = message.get("role") or "player"
        role = role_raw.strip().casefold() if isinstance(role_raw, str) else "player"
        if role == "operator":
            if not self.operator_token or message.get("token") != self.operator_token:
                await self._send_error(session.websocket, code="BAD_TOKEN", msg="Operator token rejected")
                return
            LOGGER.info("Operator connected")
        session.role = role
        await self._send_json(session.websocket, "welcome", {"role": session.role})

    async def _handle_join(self, session: ClientSession, message: Dict[str, object]) -> None:
        table_id = message.get("table_id")
        user_id = message.get("user_id")
        password = message.get("password")
        if not isinstance(table_id, str) or not isinstance(user_id, str):
            await self._send_error(session.websocket, code="BAD_SCHEMA", msg="table_id and user_id required")
            return
        if session.user_id is not None and session.user_id != user_id:
            await self._send_error(session.websocket, code="BAD_SCHEMA", msg="Connection belongs to another user")
            return

        if session.sink is None:
            session.sink = self._sink(session.websocket)
        try:
            result = await self.service.join(
                table_id,
                user_id,
                sink=session.sink,
                password=password if isinstance(password, str) else None,
            )
        except GameError as exc:
            LOGGER.warning("Join rejected table=%s user=%s reason=%s", table_id, user_id, exc.code)
            await self._send_error(session.websocket, code=exc.code, msg=exc.msg)
            return

        session.user_id = user_id
        await self._send_json(
            session.websocket,
            "joined",
            {"game_id": result.game.id, "table_id": table_id, "seat": result.player.seat},
        )

    async def _handle_leave(self, session: ClientSession, message: Dict[str, object]) -> None:
        table_id = message.get("table_id")
        if not isinstance(table_id, str) or session.user_id is None:
            await self._send_error(session.websocket, code="BAD_SCHEMA", msg="Join a table first")
            return
        try:
            player = await self.service.leave(table_id, session.user_id)
        except GameError as exc:
            await self._send_error(session.websocket, code=exc.code, msg=exc.msg)
            return
        await self._send_json(session.websocket, "left", {"game_id": player.game_id, "table_id": table_id})

    async def _handle_control(self, session: ClientSession, message: Dict[str, object]) -> None:
        if session.role != "operator":
            await self._send_error(session.websocket, code="FORBIDDEN", msg="Operator role required")
            return
        command_raw = message.get("command") or message.get("cmd")
        game_id = message.get("game_id")
        if not isinstance(command_raw, str) or not isinstance(game_id, str):
            await self._send_json(session.websocket, "control/error", {"error": "COMMAND_REQUIRED"})
            return
        command = command_raw.strip().upper()
        try:
            if command == "ABORT_GAME":
                result = await self.service.abort_game(game_id)
                status = "aborted" if result is not None else "already_completed"
                await self._send_json(session.websocket, "control/ack", {"command": command, "status": status})
            elif command == "REQUEST_STATE":
                view = build_snapshot(self.service.storage, game_id)
                await self._send_json(session.websocket, "game-state", view.to_payload())
            else:
                await self._send_json(session.websocket, "control/error", {"command": command, "error": "UNKNOWN_COMMAND"})
        except GameError as exc:
            await self._send_json(session.websocket, "control/error", {"command": command, "error": exc.code})

    def _sink(self, websocket: ServerConnection) -> Sink:
        async def send(msg_type: str, payload: Dict[str, object]) -> None:
            await self._send_json(websocket, msg_type, payload)

        return send

    async def _send_json(self, websocket: ServerConnection, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(self._envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: ServerConnection, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg})

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        body = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body)

    def _decode(self, raw: str) -> Dict[str, object]:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return message if isinstance(message, dict) else {}
