# labops_core/clock.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

from django.utils import timezone

# Every lifecycle and QC service takes ``clock=``; a clock is any
# zero-argument callable returning an aware datetime.
Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return timezone.now()


class FixedClock:
    """
    Clock frozen at a given instant until moved explicitly.

    Used by tests and by backfills that replay historic events.
    """

    def __init__(self, now: datetime):
        self._now = now

    def __call__(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def advance(self, **delta) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now

    def __repr__(self) -> str:
        return f"FixedClock({self._now.isoformat()})"
