"""Credit ledger: per-user balances gating paid searches.

Balances live in SQLite. A balance of -1 means unlimited. Users without a
row are provisioned with the configured default balance on first check.
"""

import logging
import sqlite3

from pydantic import BaseModel

from affiliate_scout.core.config import CreditsConfig
from affiliate_scout.core.db import debit_credits, get_credit_balance, set_credit_balance

logger = logging.getLogger(__name__)

UNLIMITED = -1


class CreditCheck(BaseModel):
    allowed: bool
    remaining: int


class InsufficientCreditsError(Exception):
    """The caller cannot afford the requested search."""

    def __init__(self, user_id: str, kind: str, remaining: int) -> None:
        super().__init__(f"user {user_id} has {remaining} {kind} credits left")
        self.user_id = user_id
        self.kind = kind
        self.remaining = remaining


class CreditLedger:
    """Checks and consumes credits.

    Usage::

        ledger = CreditLedger(conn, settings.credits)
        if ledger.check("u1", "topic_search", 1).allowed:
            ...  # run the search
            ledger.consume("u1", "topic_search", 1)
    """

    def __init__(self, conn: sqlite3.Connection, config: CreditsConfig) -> None:
        self._conn = conn
        self._config = config

    @property
    def enforced(self) -> bool:
        return self._config.enforce

    def balance(self, user_id: str, kind: str | None = None) -> int:
        """Current balance, provisioning the default for unknown users."""
        kind = kind or self._config.kind
        current = get_credit_balance(self._conn, user_id, kind)
        if current is None:
            current = self._config.default_balance
            set_credit_balance(self._conn, user_id, kind, current)
            logger.info("Provisioned %d %s credits for '%s'", current, kind, user_id)
        return current

    def check(self, user_id: str, kind: str, amount: int = 1) -> CreditCheck:
        """Return whether ``amount`` credits are available (never debits)."""
        remaining = self.balance(user_id, kind)
        allowed = remaining == UNLIMITED or remaining >= amount
        if not allowed:
            logger.info("Credit check failed for '%s': %d/%d %s", user_id, remaining, amount, kind)
        return CreditCheck(allowed=allowed, remaining=remaining)

    def consume(self, user_id: str, kind: str, amount: int = 1, reference: str | None = None) -> int:
        """Debit ``amount`` credits and return the new balance (-1 if unlimited).

        Raises:
            InsufficientCreditsError: If the balance does not cover ``amount``.
        """
        self.balance(user_id, kind)
        new_balance = debit_credits(self._conn, user_id, kind, amount, reference)
        if new_balance is None:
            remaining = get_credit_balance(self._conn, user_id, kind) or 0
            raise InsufficientCreditsError(user_id, kind, remaining)
        logger.debug("Consumed %d %s credits for '%s' -> %d", amount, kind, user_id, new_balance)
        return new_balance

    def grant(self, user_id: str, kind: str, amount: int) -> int:
        """Add credits (or set unlimited with -1). Returns the new balance."""
        if amount == UNLIMITED:
            new_balance = UNLIMITED
        else:
            current = self.balance(user_id, kind)
            new_balance = UNLIMITED if current == UNLIMITED else current + amount
        set_credit_balance(self._conn, user_id, kind, new_balance)
        logger.info("Granted %d %s credits to '%s' -> %d", amount, kind, user_id, new_balance)
        return new_balance
