# labops_core/tasks.py
from __future__ import annotations

from datetime import timedelta

from celery import shared_task
from django.conf import settings

from labops_core.qc.reminders import scan_qc_schedule


@shared_task
def send_qc_reminders(horizon_hours: float | None = None) -> dict:
    hours = settings.QC_REMINDER_HORIZON_HOURS if horizon_hours is None else horizon_hours
    report = scan_qc_schedule(horizon=timedelta(hours=float(hours)))
    return {key: len(rows) for key, rows in report.items()}
