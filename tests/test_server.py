from __future__ import annotations

import asyncio
import json
from decimal import Decimal

from crowns.models import TimingConfig
from crowns_host.server import ClientSession, HostServer

from .helpers import create_service, create_table

SLOW_TIMING = TimingConfig(start_delay_ms=60_000, reveal_ms=60_000, result_display_ms=60_000)


class DummyWebSocket:
    def __init__(self, incoming: list[str] | None = None) -> None:
        self.sent: list[str] = []
        self.incoming = list(incoming or [])
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self, *args, **kwargs) -> None:
        self.closed = True

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for raw in self.incoming:
            yield raw

    def payloads(self, msg_type: str | None = None) -> list[dict]:
        decoded = [json.loads(raw) for raw in self.sent]
        return [msg for msg in decoded if msg_type is None or msg["type"] == msg_type]


def setup_server(balances=("100.00", "100.00"), operator_token=None):
    storage, table, users = create_table(balances=balances)
    service = create_service(storage, timing=SLOW_TIMING)
    server = HostServer(service, operator_token=operator_token)
    return server, table, users


def test_join_table_sends_state_then_joined():
    server, table, (alice, _bob) = setup_server()
    websocket = DummyWebSocket()
    session = ClientSession(websocket=websocket)

    asyncio.run(server._dispatch(session, {"type": "join-table", "table_id": table.id, "user_id": alice.id}))

    types = [msg["type"] for msg in websocket.payloads()]
    assert types == ["game-state", "joined"]
    (joined,) = websocket.payloads("joined")
    assert joined["v"] == 1
    assert joined["seat"] == 0
    assert joined["table_id"] == table.id
    assert session.user_id == alice.id


def test_join_errors_are_forwarded_with_codes():
    server, table, (poor, _bob) = setup_server(balances=("10.00", "100.00"))
    websocket = DummyWebSocket()
    session = ClientSession(websocket=websocket)

    async def scenario():
        await server._dispatch(session, {"type": "join-table", "table_id": table.id, "user_id": poor.id})
        await server._dispatch(session, {"type": "join-table", "table_id": "T-missing", "user_id": poor.id})
        await server._dispatch(session, {"type": "join-table", "table_id": 7})

    asyncio.run(scenario())

    codes = [msg["code"] for msg in websocket.payloads("error")]
    assert codes == ["INSUFFICIENT_FUNDS", "NOT_FOUND", "BAD_SCHEMA"]
    assert session.user_id is None


def test_connection_cannot_switch_users():
    server, table, (alice, bob) = setup_server()
    websocket = DummyWebSocket()
    session = ClientSession(websocket=websocket)

    async def scenario():
        await server._dispatch(session, {"type": "join-table", "table_id": table.id, "user_id": alice.id})
        await server._dispatch(session, {"type": "join-table", "table_id": table.id, "user_id": bob.id})

    asyncio.run(scenario())

    (error,) = websocket.payloads("error")
    assert error["code"] == "BAD_SCHEMA"


def test_list_tables_and_unknown_messages():
    server, table, _users = setup_server()
    websocket = DummyWebSocket()
    session = ClientSession(websocket=websocket)

    async def scenario():
        await server._dispatch(session, {"type": "list-tables"})
        await server._dispatch(session, {"type": "shuffle-up"})
        await server._dispatch(session, server._decode("not json"))

    asyncio.run(scenario())

    (tables,) = websocket.payloads("tables")
    assert [t["table_id"] for t in tables["tables"]] == [table.id]
    assert [msg["code"] for msg in websocket.payloads("error")] == ["UNKNOWN_TYPE", "UNKNOWN_TYPE"]


def test_leave_table_frees_seat():
    server, table, (alice, _bob) = setup_server()
    websocket = DummyWebSocket()
    session = ClientSession(websocket=websocket)

    async def scenario():
        await server._dispatch(session, {"type": "join-table", "table_id": table.id, "user_id": alice.id})
        await server._dispatch(session, {"type": "leave-table", "table_id": table.id})

    asyncio.run(scenario())

    (left,) = websocket.payloads("left")
    assert left["table_id"] == table.id
    assert server.service.lobby()[0]["player_count"] == 0


def test_control_requires_operator_role():
    server, _table, _users = setup_server(operator_token="letmein")
    websocket = DummyWebSocket()
    session = ClientSession(websocket=websocket)

    async def scenario():
        await server._dispatch(session, {"type": "control", "command": "ABORT_GAME", "game_id": "G-1"})
        await server._dispatch(session, {"type": "hello", "role": "operator", "token": "nope"})

    asyncio.run(scenario())

    assert [msg["code"] for msg in websocket.payloads("error")] == ["FORBIDDEN", "BAD_TOKEN"]
    assert session.role == "player"


def test_operator_can_abort_running_game():
    server, table, (alice, bob) = setup_server(operator_token="letmein")
    operator_ws = DummyWebSocket()
    operator = ClientSession(websocket=operator_ws)

    async def scenario():
        result = await server.service.join(table.id, alice.id)
        await server.service.join(table.id, bob.id)
        server.service.games.start_game(result.game.id)
        await server._dispatch(operator, {"type": "hello", "role": "operator", "token": "letmein"})
        await server._dispatch(operator, {"type": "control", "command": "request_state", "game_id": result.game.id})
        await server._dispatch(operator, {"type": "control", "command": "ABORT_GAME", "game_id": result.game.id})
        await server._dispatch(operator, {"type": "control", "command": "ABORT_GAME", "game_id": result.game.id})
        await server._dispatch(operator, {"type": "control", "command": "ABORT_GAME", "game_id": "G-missing"})

    asyncio.run(scenario())

    (welcome,) = operator_ws.payloads("welcome")
    assert welcome["role"] == "operator"
    (state,) = operator_ws.payloads("game-state")
    assert state["status"] == "in_progress"
    assert all(p["cards"] == [] for p in state["players"])
    acks = [msg["status"] for msg in operator_ws.payloads("control/ack")]
    assert acks == ["aborted", "already_completed"]
    (error,) = operator_ws.payloads("control/error")
    assert error["error"] == "NOT_FOUND"
    assert server.service.ledger.balance(alice.id) == Decimal("100.00")


def test_closed_connection_only_drops_presence():
    server, table, (alice, _bob) = setup_server()
    join = json.dumps({"type": "join-table", "table_id": table.id, "user_id": alice.id})
    websocket = DummyWebSocket(incoming=[join])

    async def scenario():
        await server._handle_connection(websocket)
        game = server.service.storage.find_open_game(table.id)
        return game, server.service.registry.get(game.id)

    game, actor = asyncio.run(scenario())

    assert alice.id not in actor.connected
    assert server.service.storage.get_game_player(game.id, alice.id).active


def test_stale_connection_closing_leaves_reconnected_player_online():
    server, table, (alice, bob) = setup_server()
    old_ws, new_ws, bob_ws = DummyWebSocket(), DummyWebSocket(), DummyWebSocket()
    old_session = ClientSession(websocket=old_ws)
    new_session = ClientSession(websocket=new_ws)

    async def scenario():
        await server._dispatch(old_session, {"type": "join-table", "table_id": table.id, "user_id": alice.id})
        await server._dispatch(new_session, {"type": "join-table", "table_id": table.id, "user_id": alice.id})
        await server._drop_session(old_session)
        await server._dispatch(
            ClientSession(websocket=bob_ws), {"type": "join-table", "table_id": table.id, "user_id": bob.id}
        )

    asyncio.run(scenario())

    latest = new_ws.payloads("game-state")[-1]
    assert {p["user_id"]: p["connected"] for p in latest["players"]} == {alice.id: True, bob.id: True}
    assert len(old_ws.payloads("game-state")) == 1
