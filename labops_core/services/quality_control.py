# labops_core/services/quality_control.py
"""
Quality-control definitions and control-run recording.

record_control_result() is the only writer of ControlResult rows and of
QualityControlDefinition.next_due_at after creation.
"""

from __future__ import annotations

import logging
import numbers
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional

from django.db import transaction
from django.db.models import Max, Q

from labops_core.clock import Clock, system_clock
from labops_core.models import ControlResult, QualityControlDefinition, TestDefinition
from labops_core.qc.scheduling import compute_next_due, validate_frequency
from labops_core.qc.westgard import (
    RULE_WINDOWS,
    evaluate_westgard,
    format_rule_set,
    parse_rule_set,
    reference_stats_from_mapping,
)
from labops_core.services.locking import check_expected_version, versioned_update
from labops_core.workflows.exceptions import MissingReferenceStats

logger = logging.getLogger(__name__)

ENTITY = "QualityControlDefinition"

# Results that take part in trend evaluation.
EVALUATED_OUTCOMES = (ControlResult.OUTCOME_PASSED, ControlResult.OUTCOME_FAILED)

UPDATABLE_FIELDS = ("control_name", "control_level", "frequency", "westgard_rules", "is_active")


# ===============================================================
# Validation helpers
# ===============================================================

def _rules(value) -> str:
    rules = parse_rule_set(value)
    if not rules:
        raise ValueError("At least one Westgard rule is required")
    return format_rule_set(rules)


def _measured_values(values: Mapping[str, Any]) -> Dict[str, float]:
    if not isinstance(values, Mapping) or not values:
        raise ValueError("values must be a non-empty mapping of analyte -> number")

    out: Dict[str, float] = {}
    for analyte, value in values.items():
        name = str(analyte).strip()
        if not name:
            raise ValueError("analyte names must be non-empty")
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise ValueError(f"value for {name} must be a number")
        out[name] = float(value)
    return out


# ===============================================================
# Test definitions
# ===============================================================

def create_test_definition(*, code: str, name: str, analytes: Mapping[str, Any]) -> TestDefinition:
    code = (code or "").strip().upper()
    if not code:
        raise ValueError("code is required")

    stats = reference_stats_from_mapping(analytes or {})
    return TestDefinition.objects.create(
        code=code,
        name=(name or code).strip(),
        analytes={
            analyte: {"mean": s.mean, "stdDev": s.std_dev} for analyte, s in stats.items()
        },
    )


# ===============================================================
# QC definitions
# ===============================================================

def create_qc_definition(
    *,
    test_definition: TestDefinition,
    control_name: str,
    control_level: str,
    frequency: Mapping[str, Any],
    westgard_rules,
    clock: Clock = system_clock,
) -> QualityControlDefinition:
    control_name = (control_name or "").strip()
    if not control_name:
        raise ValueError("control_name is required")

    normalized = validate_frequency(frequency)
    definition = QualityControlDefinition.objects.create(
        test_definition=test_definition,
        control_name=control_name,
        control_level=str(control_level or "").strip(),
        frequency=normalized,
        westgard_rules=_rules(westgard_rules),
        next_due_at=compute_next_due(normalized, clock()),
    )

    logger.info(
        "QC definition %s created for %s; next due %s",
        definition.pk, test_definition.code, definition.next_due_at,
    )
    return definition


def update_qc_definition(
    *,
    definition_id: int,
    changes: Mapping[str, Any],
    expected_version: Optional[int] = None,
    clock: Clock = system_clock,
) -> QualityControlDefinition:
    """
    Apply a partial update. A new frequency re-arms next_due_at from now.
    """
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

    values: Dict[str, Any] = {}
    if "control_name" in changes:
        values["control_name"] = str(changes["control_name"] or "").strip()
        if not values["control_name"]:
            raise ValueError("control_name is required")
    if "control_level" in changes:
        values["control_level"] = str(changes["control_level"] or "").strip()
    if "westgard_rules" in changes:
        values["westgard_rules"] = _rules(changes["westgard_rules"])
    if "is_active" in changes:
        values["is_active"] = bool(changes["is_active"])

    with transaction.atomic():
        definition = QualityControlDefinition.objects.select_for_update().get(pk=definition_id)
        check_expected_version(
            entity=ENTITY,
            identifier=definition.pk,
            current=definition.version,
            expected=expected_version,
        )

        now = clock()
        if "frequency" in changes:
            values["frequency"] = validate_frequency(changes["frequency"])
            values["next_due_at"] = compute_next_due(values["frequency"], now)

        versioned_update(definition, entity=ENTITY, identifier=definition.pk, updated_at=now, **values)

    logger.info("QC definition %s updated: %s", definition.pk, ", ".join(sorted(values)))
    return definition


# ===============================================================
# Control runs
# ===============================================================

def record_control_result(
    *,
    definition_id: int,
    values: Mapping[str, Any],
    recorded_by: str,
    comments: str = "",
    expected_version: Optional[int] = None,
    clock: Clock = system_clock,
) -> ControlResult:
    """
    Persist one control run and evaluate the Westgard rules over the
    definition's trailing series.

    - PASSED / FAILED results re-arm next_due_at from the frequency.
    - If an analyte has no reference statistics the run is stored as
      INDETERMINATE (passed=False), next_due_at is left alone, and
      MissingReferenceStats is raised after commit with ``result`` set.
    """
    recorded_by = (recorded_by or "").strip()
    if not recorded_by:
        raise ValueError("recorded_by is required")
    measured = _measured_values(values)

    missing: Optional[MissingReferenceStats] = None

    with transaction.atomic():
        definition = (
            QualityControlDefinition.objects.select_for_update()
            .select_related("test_definition")
            .get(pk=definition_id)
        )
        check_expected_version(
            entity=ENTITY,
            identifier=definition.pk,
            current=definition.version,
            expected=expected_version,
        )

        rules = definition.rule_set()
        depth = max((RULE_WINDOWS[r] for r in rules), default=1)
        previous = list(
            definition.results.filter(outcome__in=EVALUATED_OUTCOMES)
            .order_by("-sequence")
            .values_list("values", flat=True)[: depth - 1]
        )
        series = list(reversed(previous)) + [measured]

        now = clock()
        evaluation = None
        try:
            evaluation = evaluate_westgard(series, definition.test_definition.reference_stats(), rules)
        except MissingReferenceStats as exc:
            missing = exc

        last = definition.results.aggregate(last=Max("sequence"))["last"] or 0

        if missing is not None:
            result = ControlResult.objects.create(
                definition=definition,
                sequence=last + 1,
                tested_at=now,
                values=measured,
                passed=False,
                outcome=ControlResult.OUTCOME_INDETERMINATE,
                recorded_by=recorded_by,
                comments=comments or "",
            )
            versioned_update(
                definition,
                entity=ENTITY,
                identifier=definition.pk,
                updated_at=now,
                last_run_at=now,
                last_run_passed=False,
            )
        else:
            result = ControlResult.objects.create(
                definition=definition,
                sequence=last + 1,
                tested_at=now,
                values=measured,
                passed=evaluation.passed,
                outcome=(
                    ControlResult.OUTCOME_PASSED
                    if evaluation.passed
                    else ControlResult.OUTCOME_FAILED
                ),
                violations=[v.to_dict() for v in evaluation.violations],
                not_evaluated=[s.to_dict() for s in evaluation.skipped],
                recorded_by=recorded_by,
                comments=comments or "",
            )
            versioned_update(
                definition,
                entity=ENTITY,
                identifier=definition.pk,
                updated_at=now,
                last_run_at=now,
                last_run_passed=evaluation.passed,
                next_due_at=compute_next_due(definition.frequency, now),
            )

    if missing is not None:
        missing.result = result
        logger.warning(
            "QC definition %s run #%s indeterminate: %s",
            definition.pk, result.sequence, missing,
        )
        raise missing

    if evaluation.passed:
        logger.info("QC definition %s run #%s passed", definition.pk, result.sequence)
    else:
        logger.warning(
            "QC definition %s run #%s failed Westgard rules: %s",
            definition.pk,
            result.sequence,
            ", ".join(f"{v.rule}[{v.analyte}]" for v in evaluation.violations),
        )
    return result


# ===============================================================
# Queries (no locking)
# ===============================================================

def control_history(*, definition_id: int, limit: Optional[int] = None):
    qs = ControlResult.objects.filter(definition_id=definition_id).order_by("sequence")
    if limit is not None:
        total = qs.count()
        qs = qs[max(0, total - int(limit)):]
    return qs


def due_definitions(*, horizon: timedelta = timedelta(days=1), clock: Clock = system_clock):
    """
    Active definitions due at or before now + horizon (overdue included).
    """
    cutoff = clock() + horizon
    return (
        QualityControlDefinition.objects.filter(is_active=True, next_due_at__lte=cutoff)
        .select_related("test_definition")
        .order_by("next_due_at", "id")
    )


def failing_definitions():
    return (
        QualityControlDefinition.objects.filter(Q(is_active=True) & Q(last_run_passed=False))
        .select_related("test_definition")
        .order_by("id")
    )
