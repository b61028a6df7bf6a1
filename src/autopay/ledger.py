"""
Daily spend tracking for the agent identity.

Spend is kept in integer base units. The daily counter is reset lazily:
the first check after local midnight zeroes it, there is no timer.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from .money import base_units_to_float

logger = logging.getLogger(__name__)


class SpendLedger:
    """Rolling daily spend for one agent identity."""

    def __init__(
        self,
        now: Optional[datetime] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._clock = clock
        self._lock = threading.RLock()
        self.daily_spent = 0
        self.last_reset_at = now or clock()

    @property
    def daily_spent_float(self) -> float:
        return base_units_to_float(self.daily_spent)

    def should_reset(self, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        with self._lock:
            return self.last_reset_at < midnight

    def reset(self, now: Optional[datetime] = None) -> None:
        now = now or self._clock()
        with self._lock:
            self.daily_spent = 0
            self.last_reset_at = now

    def reset_if_needed(self, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        with self._lock:
            if not self.should_reset(now):
                return False
            logger.info(
                "Daily spend reset (spent %s since %s)",
                self.daily_spent_float,
                self.last_reset_at.isoformat(),
            )
            self.reset(now)
            return True

    def debit(self, amount_base_units: int) -> int:
        """Add an approved amount; callers have already checked limits."""
        with self._lock:
            self.daily_spent += amount_base_units
            return self.daily_spent

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "daily_spent": self.daily_spent,
                "last_reset_at": self.last_reset_at.isoformat(),
            }
