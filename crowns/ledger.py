from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Sequence

from .errors import GameError, InsufficientFunds, NotFound
from .models import CENT, RESERVE_ROUNDS, ZERO, to_money
from .storage import MemoryStorage

LOGGER = logging.getLogger("crowns")


@dataclass(frozen=True)
class Settlement:
    total_pot: Decimal
    commission: Decimal
    distributable: Decimal
    share: Decimal
    payouts: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def paid_out(self) -> Decimal:
        return sum(self.payouts.values(), ZERO)

    @property
    def residual(self) -> Decimal:
        """Cents lost (positive) or over-paid (negative) by per-winner rounding."""
        return self.total_pot - self.commission - self.paid_out


def compute_settlement(total_pot: Decimal, commission_rate: Decimal, winner_ids: Sequence[str]) -> Settlement:
    total_pot = to_money(total_pot)
    if not winner_ids:
        # Nobody to pay: the house keeps the whole pot.
        return Settlement(total_pot=total_pot, commission=total_pot, distributable=ZERO, share=ZERO)

    commission = (total_pot * Decimal(commission_rate) / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
    distributable = total_pot - commission
    share = (distributable / len(winner_ids)).quantize(CENT, rounding=ROUND_HALF_UP)
    payouts = {winner_id: share for winner_id in winner_ids}
    return Settlement(
        total_pot=total_pot,
        commission=commission,
        distributable=distributable,
        share=share,
        payouts=payouts,
    )


class Ledger:
    """Balance movements against user records, one lock per user."""

    def __init__(self, storage: MemoryStorage) -> None:
        self.storage = storage
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def balance(self, user_id: str) -> Decimal:
        user = self.storage.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user.balance

    def debit(self, user_id: str, amount: Decimal) -> Decimal:
        amount = to_money(amount)
        if amount < 0:
            raise ValueError("Debit amount must be non-negative")
        with self._lock_for(user_id):
            current = self.balance(user_id)
            if current - amount < 0:
                raise InsufficientFunds(user_id, required=amount, available=current)
            updated = self.storage.update_user(user_id, balance=current - amount)
        LOGGER.debug("Debited %s from %s (balance=%s)", amount, user_id, updated.balance)
        return updated.balance

    def credit(self, user_id: str, amount: Decimal) -> Decimal:
        amount = to_money(amount)
        if amount < 0:
            raise ValueError("Credit amount must be non-negative")
        with self._lock_for(user_id):
            current = self.balance(user_id)
            updated = self.storage.update_user(user_id, balance=current + amount)
        LOGGER.debug("Credited %s to %s (balance=%s)", amount, user_id, updated.balance)
        return updated.balance

    def can_afford(self, user_id: str, stake: Decimal, rounds_reserved: int = RESERVE_ROUNDS) -> bool:
        return self.balance(user_id) >= to_money(stake) * rounds_reserved

    def collect_antes(self, user_ids: Iterable[str], stake: Decimal) -> Dict[str, Decimal]:
        """Debit ``stake`` from every user or from none of them."""
        collected: List[str] = []
        balances: Dict[str, Decimal] = {}
        try:
            for user_id in user_ids:
                balances[user_id] = self.debit(user_id, stake)
                collected.append(user_id)
        except GameError:
            self.refund(collected, stake)
            raise
        return balances

    def refund(self, user_ids: Iterable[str], amount: Decimal) -> None:
        for user_id in user_ids:
            self.credit(user_id, amount)
