"""Deterministic spending policy for the agent."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .config import PolicyConfig
from .ledger import SpendLedger
from .money import amount_to_base_units, format_amount, limit_to_base_units


@dataclass(frozen=True)
class PolicyDecision:
    """Allow/deny verdict. Denials always carry a displayable reason."""

    allowed: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        d: dict = {"allowed": self.allowed}
        if self.reason is not None:
            d["reason"] = self.reason
        return d


ALLOW = PolicyDecision(allowed=True)


class PolicyEvaluator:
    """
    The only deterministic gate on agent spending.

    Amounts are in display units; comparisons happen in base units with
    amounts rounded up and limits rounded down.
    """

    def __init__(self, config: PolicyConfig, ledger: SpendLedger):
        self.config = config
        self.ledger = ledger
        self.max_per_tx = limit_to_base_units(config.max_payment_per_tx)
        self.daily_limit = limit_to_base_units(config.daily_spending_limit)

    def evaluate(
        self,
        amount: Decimal | float | int | str,
        now: Optional[datetime] = None,
    ) -> PolicyDecision:
        self.ledger.reset_if_needed(now)

        if not self.config.auto_pay_enabled:
            return PolicyDecision(allowed=False, reason="Auto-pay disabled")

        return self.check_limits(amount)

    def check_limits(self, amount: Decimal | float | int | str) -> PolicyDecision:
        """Per-tx and daily checks against current ledger state, no reset."""
        amount_base = amount_to_base_units(amount)

        if amount_base < 0:
            return PolicyDecision(allowed=False, reason="Amount must not be negative")

        if amount_base > self.max_per_tx:
            return PolicyDecision(
                allowed=False,
                reason=f"Amount exceeds max payment per tx ({format_amount(self.max_per_tx)})",
            )

        if self.ledger.daily_spent + amount_base > self.daily_limit:
            return PolicyDecision(allowed=False, reason="Daily spending limit would be exceeded")

        return ALLOW
