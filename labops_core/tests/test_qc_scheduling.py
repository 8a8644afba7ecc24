# labops_core/tests/test_qc_scheduling.py
from datetime import datetime, timedelta, timezone

import pytest

from labops_core.qc import scheduling
from labops_core.qc.scheduling import compute_next_due, is_due, validate_frequency

# Wednesday
NOW = datetime(2026, 3, 4, 10, 0, tzinfo=timezone.utc)


def test_daily():
    assert compute_next_due({"type": "DAILY"}, NOW) == NOW + timedelta(days=1)


def test_weekly_next_occurrence_strictly_after_now():
    monday = compute_next_due({"type": "WEEKLY", "dayOfWeek": "MONDAY"}, NOW)
    assert monday == datetime(2026, 3, 9, 10, 0, tzinfo=timezone.utc)

    same_day = compute_next_due({"type": "weekly", "day_of_week": "wednesday"}, NOW)
    assert same_day == datetime(2026, 3, 11, 10, 0, tzinfo=timezone.utc)

    assert compute_next_due({"type": "WEEKLY", "dayOfWeek": 4}, NOW).weekday() == 4


def test_weekly_is_idempotent():
    frequency = {"type": "WEEKLY", "dayOfWeek": "MONDAY"}
    assert compute_next_due(frequency, NOW) == compute_next_due(frequency, NOW)
    assert frequency == {"type": "WEEKLY", "dayOfWeek": "MONDAY"}


def test_monthly_this_month_or_next():
    assert compute_next_due({"type": "MONTHLY", "dayOfMonth": 15}, NOW) == datetime(
        2026, 3, 15, 10, 0, tzinfo=timezone.utc
    )
    assert compute_next_due({"type": "MONTHLY", "dayOfMonth": 4}, NOW) == datetime(
        2026, 4, 4, 10, 0, tzinfo=timezone.utc
    )
    assert compute_next_due({"type": "MONTHLY", "dayOfMonth": 1}, NOW) == datetime(
        2026, 4, 1, 10, 0, tzinfo=timezone.utc
    )


def test_monthly_clamps_short_months_and_rolls_year():
    feb = datetime(2026, 2, 10, 8, 0, tzinfo=timezone.utc)
    assert compute_next_due({"type": "MONTHLY", "dayOfMonth": 31}, feb) == datetime(
        2026, 2, 28, 8, 0, tzinfo=timezone.utc
    )
    december = datetime(2026, 12, 20, 8, 0, tzinfo=timezone.utc)
    assert compute_next_due({"type": "MONTHLY", "dayOfMonth": 5}, december) == datetime(
        2027, 1, 5, 8, 0, tzinfo=timezone.utc
    )


def test_specific_dates():
    frequency = {"type": "SPECIFIC_DATES", "dates": ["2026-03-20", "2026-03-01", "2026-03-10"]}
    assert compute_next_due(frequency, NOW) == datetime(2026, 3, 10, tzinfo=timezone.utc)

    today = {"type": "SPECIFIC_DATES", "dates": ["2026-03-04"]}
    assert compute_next_due(today, NOW) is None

    past = {"type": "SPECIFIC_DATES", "dates": ["2025-12-31"]}
    assert compute_next_due(past, NOW) is None


@pytest.mark.parametrize(
    "frequency",
    [
        {"type": "HOURLY"},
        {},
        {"type": "WEEKLY", "dayOfWeek": "FUNDAY"},
        {"type": "WEEKLY", "dayOfWeek": 9},
        {"type": "MONTHLY", "dayOfMonth": 0},
        {"type": "MONTHLY"},
        {"type": "SPECIFIC_DATES", "dates": []},
        {"type": "SPECIFIC_DATES", "dates": ["not-a-date"]},
    ],
)
def test_invalid_frequencies(frequency):
    with pytest.raises(ValueError):
        validate_frequency(frequency)


def test_validate_frequency_normalizes():
    assert validate_frequency({"type": "weekly", "day_of_week": "friday"}) == {
        "type": "WEEKLY",
        "dayOfWeek": "FRIDAY",
    }
    assert validate_frequency({"type": "SPECIFIC_DATES", "dates": ["2026-05-02", "2026-04-01"]}) == {
        "type": "SPECIFIC_DATES",
        "dates": ["2026-04-01", "2026-05-02"],
    }


def test_is_due():
    assert is_due(NOW, NOW)
    assert not is_due(NOW + timedelta(hours=2), NOW)
    assert is_due(NOW + timedelta(hours=2), NOW, horizon=timedelta(hours=24))
    assert not is_due(None, NOW)


def test_module_documents_frequency_shapes():
    assert scheduling.__doc__ is not None
    assert "SPECIFIC_DATES" in scheduling.__doc__
