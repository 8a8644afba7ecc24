# labops_core/qc/reminders.py
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List

from labops_core.clock import Clock, system_clock
from labops_core.services.quality_control import due_definitions, failing_definitions

logger = logging.getLogger(__name__)


def _describe(definition) -> Dict[str, Any]:
    return {
        "id": definition.pk,
        "test_code": definition.test_definition.code,
        "control_name": definition.control_name,
        "control_level": definition.control_level,
        "next_due_at": definition.next_due_at.isoformat() if definition.next_due_at else None,
        "last_run_passed": definition.last_run_passed,
    }


def scan_qc_schedule(*, horizon: timedelta = timedelta(days=1), clock: Clock = system_clock) -> Dict[str, List[Dict[str, Any]]]:
    """
    Collect QC definitions due within ``horizon`` and those whose last
    run failed or was indeterminate.

    Delivery (mail, SMS, dashboard) is left to the caller; this only
    reports and logs.
    """
    now = clock()
    due = []
    overdue = []
    for definition in due_definitions(horizon=horizon, clock=lambda: now):
        row = _describe(definition)
        if definition.next_due_at < now:
            overdue.append(row)
            logger.warning(
                "QC overdue: %s %s (level %s) was due %s",
                row["test_code"], row["control_name"], row["control_level"], row["next_due_at"],
            )
        else:
            due.append(row)
            logger.info(
                "QC due: %s %s (level %s) at %s",
                row["test_code"], row["control_name"], row["control_level"], row["next_due_at"],
            )

    failing = [_describe(d) for d in failing_definitions()]
    for row in failing:
        logger.warning(
            "QC last run not passed: %s %s (level %s)",
            row["test_code"], row["control_name"], row["control_level"],
        )

    return {"due": due, "overdue": overdue, "failing": failing}
