"""
coredna/features/credits/balance.py

Per-user credit balance. Never negative: debits clamp at zero.
"""

import logging
from typing import Optional

from coredna.core.errors import ValidationError
from coredna.core.store import KeyValueStore, get_store
from coredna.features.providers.registry import user_namespace

logger = logging.getLogger(__name__)

CREDITS_KEY = "credits"


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Credit amount must be an integer", details={"amount": amount})
    if amount < 0:
        raise ValidationError("Credit amount must not be negative", details={"amount": amount})
    return amount


class CreditBalance:
    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store or get_store()

    def balance(self, user_id: str) -> int:
        value = self.store.get(user_namespace(user_id), CREDITS_KEY, 0)
        return max(0, int(value or 0))

    def debit(self, user_id: str, amount: int) -> int:
        """Subtract credits, clamping at zero. Returns the new balance."""
        amount = _check_amount(amount)
        current = self.balance(user_id)
        updated = max(0, current - amount)
        if amount:
            self.store.set(user_namespace(user_id), CREDITS_KEY, updated)
            logger.info(
                "[credits] debit",
                extra={"user_id": user_id, "credits": amount, "balance": updated, "clamped": current < amount},
            )
        return updated

    def credit(self, user_id: str, amount: int) -> int:
        """Add credits (credit pack purchase). Returns the new balance."""
        amount = _check_amount(amount)
        updated = self.balance(user_id) + amount
        self.store.set(user_namespace(user_id), CREDITS_KEY, updated)
        logger.info("[credits] credit", extra={"user_id": user_id, "credits": amount, "balance": updated})
        return updated
