"""Tests for daily spend tracking."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from autopay.ledger import SpendLedger


class TestSpendLedger:
    def test_no_reset_within_same_day(self):
        ledger = SpendLedger(now=datetime(2026, 3, 1, 8, 0))
        assert not ledger.should_reset(datetime(2026, 3, 1, 23, 59))

    def test_rollover_after_midnight(self):
        ledger = SpendLedger(now=datetime(2026, 3, 1, 23, 59))
        ledger.debit(40_000)

        now = datetime(2026, 3, 2, 0, 1)
        assert ledger.should_reset(now)
        ledger.reset(now)
        assert ledger.daily_spent == 0
        assert ledger.last_reset_at == now

    def test_reset_if_needed_is_idempotent(self):
        ledger = SpendLedger(now=datetime(2026, 3, 1, 12, 0))
        ledger.debit(10_000)

        now = datetime(2026, 3, 2, 9, 30)
        assert ledger.reset_if_needed(now)
        assert not ledger.reset_if_needed(now)
        assert not ledger.should_reset(now)
        assert ledger.daily_spent == 0

    def test_multiple_days_crossed_resets_once(self):
        ledger = SpendLedger(now=datetime(2026, 3, 1, 12, 0))
        ledger.debit(10_000)
        assert ledger.reset_if_needed(datetime(2026, 3, 5, 12, 0))
        assert not ledger.reset_if_needed(datetime(2026, 3, 5, 18, 0))

    def test_debit_accumulates(self):
        ledger = SpendLedger()
        ledger.debit(40_000)
        assert ledger.debit(40_000) == 80_000
        assert ledger.daily_spent_float == 0.08

    def test_clock_is_used_when_now_omitted(self):
        current = [datetime(2026, 3, 1, 22, 0)]
        ledger = SpendLedger(clock=lambda: current[0])
        ledger.debit(5)
        current[0] = datetime(2026, 3, 2, 0, 0, 1)
        assert ledger.reset_if_needed()
        assert ledger.daily_spent == 0

    def test_concurrent_debits_are_not_lost(self):
        ledger = SpendLedger()

        with ThreadPoolExecutor(max_workers=16) as ex:
            list(ex.map(lambda _: ledger.debit(1), range(1000)))

        assert ledger.daily_spent == 1000

    def test_snapshot(self):
        ledger = SpendLedger(now=datetime(2026, 3, 1, 8, 0))
        ledger.debit(7)
        snap = ledger.snapshot()
        assert snap["daily_spent"] == 7
        assert snap["last_reset_at"] == "2026-03-01T08:00:00"
