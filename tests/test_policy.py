"""Tests for the deterministic spending policy."""

from datetime import datetime
from decimal import Decimal, InvalidOperation

import pytest

from autopay.config import PolicyConfig
from autopay.ledger import SpendLedger
from autopay.policy import PolicyEvaluator


@pytest.fixture
def ledger():
    return SpendLedger(now=datetime(2026, 3, 1, 9, 0))


def make_policy(ledger, **kwargs):
    defaults = dict(max_payment_per_tx=0.05, daily_spending_limit=0.50, auto_pay_enabled=True)
    defaults.update(kwargs)
    return PolicyEvaluator(PolicyConfig(**defaults), ledger)


NOON = datetime(2026, 3, 1, 12, 0)


class TestPolicyEvaluator:
    @pytest.mark.parametrize("amount", ["0", "0.01", "0.04", "0.05", Decimal("0.049999")])
    def test_allows_within_limits(self, ledger, amount):
        decision = make_policy(ledger).evaluate(amount, now=NOON)
        assert decision.allowed
        assert decision.reason is None

    @pytest.mark.parametrize("amount", ["0.050001", "0.06", "10.0", 1000])
    def test_denies_over_per_tx_regardless_of_spend(self, ledger, amount):
        decision = make_policy(ledger).evaluate(amount, now=NOON)
        assert not decision.allowed
        assert decision.reason == "Amount exceeds max payment per tx (0.05)"

    def test_denies_when_daily_limit_would_be_exceeded(self, ledger):
        ledger.debit(480_000)
        decision = make_policy(ledger).evaluate("0.04", now=NOON)
        assert not decision.allowed
        assert decision.reason == "Daily spending limit would be exceeded"

    def test_exactly_reaching_daily_limit_is_allowed(self, ledger):
        ledger.debit(460_000)
        assert make_policy(ledger).evaluate("0.04", now=NOON).allowed

    def test_auto_pay_disabled_denies_everything(self, ledger):
        policy = make_policy(ledger, auto_pay_enabled=False)
        for amount in ("0", "0.01", "100"):
            decision = policy.evaluate(amount, now=NOON)
            assert not decision.allowed
            assert decision.reason == "Auto-pay disabled"

    def test_negative_amount_denied(self, ledger):
        decision = make_policy(ledger).evaluate("-0.01", now=NOON)
        assert not decision.allowed
        assert "negative" in decision.reason

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", float("nan")])
    def test_non_finite_amount_is_rejected_without_debit(self, ledger, amount):
        with pytest.raises(InvalidOperation):
            make_policy(ledger).evaluate(amount, now=NOON)
        assert ledger.daily_spent == 0

    def test_rollover_resets_before_checking(self, ledger):
        ledger.debit(500_000)
        policy = make_policy(ledger)
        assert not policy.evaluate("0.01", now=NOON).allowed

        next_day = datetime(2026, 3, 2, 0, 1)
        assert policy.evaluate("0.01", now=next_day).allowed
        assert ledger.daily_spent == 0

    def test_reset_then_zero_never_denied_for_limits(self, ledger):
        ledger.debit(500_000)
        ledger.reset(NOON)
        assert make_policy(ledger).evaluate(0, now=NOON).allowed

    def test_check_limits_does_not_reset(self, ledger):
        ledger.debit(500_000)
        policy = make_policy(ledger)
        assert not policy.check_limits("0.01").allowed
        assert ledger.daily_spent == 500_000

    def test_float_limits_round_conservatively(self, ledger):
        policy = make_policy(ledger, max_payment_per_tx=0.1 + 0.2)
        assert policy.max_per_tx == 300_000
        assert policy.evaluate("0.3", now=NOON).allowed
