"""Error taxonomy shared by the rules package and the host.

Every error carries a machine-readable ``code`` so the host can forward it
to clients unchanged.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional


class GameError(Exception):
    code = "GAME_ERROR"

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
        self.msg = msg


class InsufficientFunds(GameError):
    code = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        user_id: str,
        required: Decimal,
        available: Decimal,
        msg: Optional[str] = None,
    ) -> None:
        super().__init__(msg or "Insufficient balance")
        self.user_id = user_id
        self.required = required
        self.available = available


class TableFull(GameError):
    code = "TABLE_FULL"


class NotFound(GameError):
    code = "NOT_FOUND"


class AccessDenied(GameError):
    code = "BAD_PASSWORD"


class GameLocked(GameError):
    code = "GAME_IN_PROGRESS"


class StorageError(GameError):
    code = "STORAGE_ERROR"


class EvaluationPrecondition(GameError):
    code = "BAD_HAND"
