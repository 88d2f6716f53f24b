#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import websockets
from websockets.asyncio.client import ClientConnection, connect

logging.basicConfig(level=logging.INFO)

SUIT_SYMBOLS = {"hearts": "♥", "diamonds": "♦", "clubs": "♣", "spades": "♠"}

# WatchClient takes a seat and prints the table as the host reports it.
# There is nothing to decide during a round, so it never sends actions.


def format_cards(cards: List[Dict[str, str]]) -> str:
    if not cards:
        return "-"
    return " ".join(f"{card['rank']}{SUIT_SYMBOLS.get(card['suit'], '?')}" for card in cards)


class WatchClient:
    def __init__(self, url: str, user_id: Optional[str], table_id: Optional[str], password: Optional[str]) -> None:
        self.url = url
        self.user_id = user_id
        self.table_id = table_id
        self.password = password
        self.websocket: Optional[ClientConnection] = None

    async def run(self) -> None:
        async with connect(self.url) as ws:
            self.websocket = ws
            if self.table_id and self.user_id:
                payload: Dict[str, Any] = {"type": "join-table", "table_id": self.table_id, "user_id": self.user_id}
                if self.password:
                    payload["password"] = self.password
                await self._send(payload)
            else:
                await self._send({"type": "list-tables"})
            await self._loop()

    async def _loop(self) -> None:
        assert self.websocket is not None
        while True:
            try:
                raw = await self.websocket.recv()
            except websockets.ConnectionClosed:
                print("Host closed the connection")
                return
            msg = json.loads(raw)
            self._print_message(msg)
            if msg.get("type") == "game-ended":
                print("Game over. Press Ctrl+C to exit.")
            if msg.get("type") == "tables" and not self.table_id:
                break

    def _print_message(self, msg: Dict[str, Any]) -> None:
        msg_type = msg.get("type", "?")
        print(f"\n>>> {msg_type.upper()}")
        if msg_type == "tables":
            for table in msg.get("tables", []):
                lock = " (private)" if table["is_private"] else ""
                print(
                    f"{table['table_id']}: {table['name']}{lock} stake={table['stake']} "
                    f"players={table['player_count']}/{table['max_seats']} {', '.join(table['player_names'])}"
                )
        elif msg_type == "joined":
            print(f"Seat {msg['seat']} in game {msg['game_id']}")
        elif msg_type == "game-state":
            self._render_state(msg)
        elif msg_type == "round-winner":
            crown = " and takes the table" if msg.get("is_table_winner") else ""
            print(f"Round {msg['round']}: {msg.get('username')} wins with {msg.get('hand_name')}{crown}")
        elif msg_type == "round-tie":
            print(f"Round {msg['round']}: tie, no crown awarded")
        elif msg_type == "game-ended":
            if msg.get("aborted"):
                print(f"Game aborted; refunds {msg.get('refunds')}")
            else:
                print(f"Winners {msg.get('winner_ids')} | payouts {msg.get('payouts')} | commission {msg.get('commission')}")
        elif msg_type == "error":
            print(f"Error {msg.get('code')}: {msg.get('msg')}")
        else:
            print(json.dumps(msg, indent=2))

    def _render_state(self, msg: Dict[str, Any]) -> None:
        print(
            f"{msg['table_name']} | {msg['status']} | round {msg['current_round']} | "
            f"pot {msg['total_pot']} (stake {msg['stake']})"
        )
        print(f"Board: {format_cards(msg.get('community_cards', []))}")
        for player in msg.get("players", []):
            you = " <- you" if player["user_id"] == self.user_id else ""
            link = "✓" if player["connected"] else "×"
            crowns = "♛" * player["rounds_won"]
            print(
                f"  seat {player['seat']}: {player['username']} ({link}) balance={player['balance']} "
                f"{crowns} {format_cards(player['cards'])}{you}"
            )
        winner = msg.get("last_round_winner")
        if winner:
            print(f"Last round: {winner['winner_name']} with {winner['hand_name']}")

    async def _send(self, payload: Dict[str, Any]) -> None:
        assert self.websocket is not None
        await self.websocket.send(json.dumps(payload))


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crown tables watch client")
    parser.add_argument("--url", default="ws://127.0.0.1:8765")
    parser.add_argument("--user", help="User id to seat; omit to list tables")
    parser.add_argument("--table", help="Table id to join")
    parser.add_argument("--password", default=None)
    return parser.parse_args(argv)


def main(argv: list[str]) -> None:
    args = parse_args(argv)
    client = WatchClient(url=args.url, user_id=args.user, table_id=args.table, password=args.password)
    try:
        asyncio.run(client.run())
    except KeyboardInterrupt:
        print("\nSession closed")


if __name__ == "__main__":
    main(sys.argv[1:])
