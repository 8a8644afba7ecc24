# labops_core/tests/test_qc_reminders.py
from __future__ import annotations

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from labops_core.models import QualityControlDefinition
from labops_core.qc.reminders import scan_qc_schedule
from labops_core.services import quality_control as qc_service
from labops_core.tasks import send_qc_reminders

pytestmark = pytest.mark.django_db


def _set_due(definition, when):
    QualityControlDefinition.objects.filter(pk=definition.pk).update(next_due_at=when)


def test_scan_splits_due_and_overdue(make_qc_definition, clock):
    due_soon = make_qc_definition()
    overdue = make_qc_definition()
    later = make_qc_definition(frequency={"type": "WEEKLY", "dayOfWeek": "TUESDAY"})
    _set_due(overdue, clock() - timedelta(hours=2))

    report = scan_qc_schedule(horizon=timedelta(days=1), clock=clock)

    assert [row["id"] for row in report["overdue"]] == [overdue.pk]
    assert [row["id"] for row in report["due"]] == [due_soon.pk]
    assert later.pk not in {row["id"] for row in report["due"]}
    assert report["failing"] == []


def test_scan_reports_failing_definitions(make_qc_definition, clock, caplog):
    definition = make_qc_definition(rules="1-3s")
    qc_service.record_control_result(
        definition_id=definition.pk, values={"glucose": 20.0}, recorded_by="tech", clock=clock
    )

    with caplog.at_level("WARNING", logger="labops_core.qc.reminders"):
        report = scan_qc_schedule(horizon=timedelta(hours=1), clock=clock)

    assert [row["id"] for row in report["failing"]] == [definition.pk]
    assert report["failing"][0]["last_run_passed"] is False
    assert "QC last run not passed" in caplog.text


def test_send_qc_reminders_task_counts(make_qc_definition):
    definition = make_qc_definition()
    _set_due(definition, timezone.now() - timedelta(minutes=5))
    other = make_qc_definition()
    _set_due(other, timezone.now() + timedelta(days=30))

    counts = send_qc_reminders.apply(kwargs={"horizon_hours": 24}).get()

    assert counts == {"due": 0, "overdue": 1, "failing": 0}


def test_check_qc_due_command(make_qc_definition):
    definition = make_qc_definition()
    _set_due(definition, timezone.now() + timedelta(hours=2))

    out = StringIO()
    call_command("check_qc_due", "--hours", "4", stdout=out)
    output = out.getvalue()

    assert "OVERDUE: 0" in output
    assert "DUE: 1" in output
    assert f"#{definition.pk} " in output
    assert "FAILING: 0" in output
