# labops_core/qc/scheduling.py

"""
Recurrence rules for quality-control runs.

PURE LOGIC.
- No Django imports
- compute_next_due() is a pure function of (frequency, now)
- Frequency descriptors are JSON mappings stored on the QC definition:
    {"type": "DAILY"}
    {"type": "WEEKLY", "dayOfWeek": "MONDAY"}
    {"type": "MONTHLY", "dayOfMonth": 15}
    {"type": "SPECIFIC_DATES", "dates": ["2026-03-01", ...]}
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional


DAILY = "DAILY"
WEEKLY = "WEEKLY"
MONTHLY = "MONTHLY"
SPECIFIC_DATES = "SPECIFIC_DATES"

FREQUENCY_TYPES = (DAILY, WEEKLY, MONTHLY, SPECIFIC_DATES)

WEEKDAYS = (
    "MONDAY",
    "TUESDAY",
    "WEDNESDAY",
    "THURSDAY",
    "FRIDAY",
    "SATURDAY",
    "SUNDAY",
)


# ===============================================================
# DESCRIPTOR PARSING
# ===============================================================

def _get(frequency: Mapping[str, Any], camel: str, snake: str) -> Any:
    if camel in frequency:
        return frequency[camel]
    return frequency.get(snake)


def _frequency_type(frequency: Mapping[str, Any]) -> str:
    if not isinstance(frequency, Mapping):
        raise ValueError("frequency must be a mapping")
    kind = str(frequency.get("type") or "").strip().upper()
    if kind not in FREQUENCY_TYPES:
        raise ValueError(f"Unknown frequency type: {frequency.get('type')!r}")
    return kind


def _weekday(frequency: Mapping[str, Any]) -> int:
    raw = _get(frequency, "dayOfWeek", "day_of_week")
    if isinstance(raw, int) and not isinstance(raw, bool):
        if 0 <= raw <= 6:
            return raw
        raise ValueError("dayOfWeek as a number must be 0 (Monday) .. 6 (Sunday)")
    name = str(raw or "").strip().upper()
    if name not in WEEKDAYS:
        raise ValueError(f"Unknown dayOfWeek: {raw!r}")
    return WEEKDAYS.index(name)


def _day_of_month(frequency: Mapping[str, Any]) -> int:
    raw = _get(frequency, "dayOfMonth", "day_of_month")
    try:
        day = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid dayOfMonth: {raw!r}") from None
    if not 1 <= day <= 31:
        raise ValueError("dayOfMonth must be between 1 and 31")
    return day


def _dates(frequency: Mapping[str, Any]) -> List[date]:
    raw = frequency.get("dates")
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ValueError("SPECIFIC_DATES requires a non-empty 'dates' list")
    out = []
    for item in raw:
        if isinstance(item, datetime):
            out.append(item.date())
        elif isinstance(item, date):
            out.append(item)
        else:
            try:
                out.append(date.fromisoformat(str(item)[:10]))
            except ValueError:
                raise ValueError(f"Invalid date in frequency: {item!r}") from None
    return sorted(out)


def validate_frequency(frequency: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Return a normalized copy of ``frequency`` or raise ValueError.
    """
    kind = _frequency_type(frequency)
    if kind == WEEKLY:
        return {"type": kind, "dayOfWeek": WEEKDAYS[_weekday(frequency)]}
    if kind == MONTHLY:
        return {"type": kind, "dayOfMonth": _day_of_month(frequency)}
    if kind == SPECIFIC_DATES:
        return {"type": kind, "dates": [d.isoformat() for d in _dates(frequency)]}
    return {"type": kind}


# ===============================================================
# NEXT DUE
# ===============================================================

def _clamped(year: int, month: int, day: int) -> int:
    return min(day, calendar.monthrange(year, month)[1])


def compute_next_due(frequency: Mapping[str, Any], now: datetime) -> Optional[datetime]:
    """
    Next time a control run is due after ``now``.

    WEEKLY and MONTHLY keep the time of day of ``now``. MONTHLY uses the
    last day of shorter months when dayOfMonth does not exist in them.
    SPECIFIC_DATES returns start of day (in now's timezone) of the earliest
    listed date strictly after now, or None when every date has passed.
    """
    kind = _frequency_type(frequency)

    if kind == DAILY:
        return now + timedelta(days=1)

    if kind == WEEKLY:
        days_ahead = (_weekday(frequency) - now.weekday()) % 7
        if days_ahead == 0:
            days_ahead = 7
        return now + timedelta(days=days_ahead)

    if kind == MONTHLY:
        day = _day_of_month(frequency)
        candidate = now.replace(day=_clamped(now.year, now.month, day))
        if candidate > now:
            return candidate
        year, month = (now.year + 1, 1) if now.month == 12 else (now.year, now.month + 1)
        return now.replace(year=year, month=month, day=_clamped(year, month, day))

    for day in _dates(frequency):
        start = datetime(day.year, day.month, day.day, tzinfo=now.tzinfo)
        if start > now:
            return start
    return None


def is_due(next_due: Optional[datetime], now: datetime, horizon: timedelta = timedelta(0)) -> bool:
    """
    True when ``next_due`` falls at or before now + horizon.
    """
    if next_due is None:
        return False
    return next_due <= now + horizon
