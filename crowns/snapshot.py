from __future__ import annotations

from dataclasses import dataclass, field
from typing import AbstractSet, Dict, List, Optional

from .errors import NotFound
from .models import GameStatus
from .storage import MemoryStorage

# Views are built fresh for every recipient: community cards are shared,
# private cards only ever go to their owner.


@dataclass(frozen=True)
class PlayerView:
    user_id: str
    username: str
    balance: str
    seat: int
    cards: List[Dict[str, str]]
    rounds_won: int
    active: bool
    connected: bool

    def to_payload(self) -> Dict[str, object]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "balance": self.balance,
            "seat": self.seat,
            "cards": [dict(card) for card in self.cards],
            "rounds_won": self.rounds_won,
            "active": self.active,
            "connected": self.connected,
        }


@dataclass(frozen=True)
class RoundSummary:
    number: int
    winner_id: Optional[str]
    winner_name: Optional[str]
    hand_name: Optional[str]
    is_tie: bool

    def to_payload(self) -> Dict[str, object]:
        return {
            "round": self.number,
            "winner_id": self.winner_id,
            "winner_name": self.winner_name,
            "hand_name": self.hand_name,
            "is_tie": self.is_tie,
        }


@dataclass(frozen=True)
class GameStateView:
    game_id: str
    table_id: str
    table_name: str
    stake: str
    status: str
    current_round: int
    total_pot: str
    viewer_id: Optional[str]
    players: List[PlayerView] = field(default_factory=list)
    community_cards: List[Dict[str, str]] = field(default_factory=list)
    last_round_winner: Optional[RoundSummary] = None
    history: List[RoundSummary] = field(default_factory=list)

    def to_payload(self) -> Dict[str, object]:
        return {
            "game_id": self.game_id,
            "table_id": self.table_id,
            "table_name": self.table_name,
            "stake": self.stake,
            "status": self.status,
            "current_round": self.current_round,
            "total_pot": self.total_pot,
            "players": [player.to_payload() for player in self.players],
            "community_cards": [dict(card) for card in self.community_cards],
            "last_round_winner": self.last_round_winner.to_payload() if self.last_round_winner else None,
            "history": [entry.to_payload() for entry in self.history],
        }


def build_snapshot(
    storage: MemoryStorage,
    game_id: str,
    viewer_id: Optional[str] = None,
    connected: AbstractSet[str] = frozenset(),
) -> GameStateView:
    """Assemble the state of ``game_id`` as seen by ``viewer_id``."""
    game = storage.get_game(game_id)
    if game is None:
        raise NotFound("Game not found")
    table = storage.get_table(game.table_id)
    if table is None:
        raise NotFound("Table not found")

    rounds = storage.list_rounds(game_id)
    current = next((r for r in rounds if r.number == game.current_round), None)
    show_cards = game.status == GameStatus.IN_PROGRESS and current is not None

    names: Dict[str, str] = {}

    def username(user_id: str) -> str:
        if user_id not in names:
            user = storage.get_user(user_id)
            names[user_id] = user.username if user else "Unknown"
        return names[user_id]

    players = []
    for gp in storage.list_game_players(game_id):
        user = storage.get_user(gp.user_id)
        cards: List[Dict[str, str]] = []
        if show_cards and gp.user_id == viewer_id:
            cards = [card.to_dict() for card in current.hands.get(gp.user_id, [])]
        players.append(
            PlayerView(
                user_id=gp.user_id,
                username=username(gp.user_id),
                balance=str(user.balance) if user else "0.00",
                seat=gp.seat,
                cards=cards,
                rounds_won=gp.rounds_won,
                active=gp.active,
                connected=gp.user_id in connected,
            )
        )

    history = [
        RoundSummary(
            number=r.number,
            winner_id=r.winner_id,
            winner_name=username(r.winner_id) if r.winner_id else None,
            hand_name=r.winning_hand,
            is_tie=r.is_tie,
        )
        for r in rounds
        if r.is_resolved
    ]
    last = history[-1] if history else None

    return GameStateView(
        game_id=game.id,
        table_id=table.id,
        table_name=table.name,
        stake=str(table.stake),
        status=game.status.value,
        current_round=game.current_round,
        total_pot=str(game.total_pot),
        viewer_id=viewer_id,
        players=players,
        community_cards=[card.to_dict() for card in current.community] if show_cards else [],
        last_round_winner=last if last and not last.is_tie else None,
        history=history,
    )
