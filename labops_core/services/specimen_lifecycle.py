# labops_core/services/specimen_lifecycle.py
"""
Authoritative specimen lifecycle service.

All specimen status changes MUST go through this module.
Never update Specimen.status directly in views, serializers or admin.

Every operation:
  1) locks the specimen row (select_for_update)
  2) optionally checks the caller's expected_version
  3) validates current -> target against the status graph
  4) writes status + stage fields with a version-guarded UPDATE
  5) appends one custody event
all inside one transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from labops_core.clock import Clock, system_clock
from labops_core.models import Specimen
from labops_core.services.custody import append_custody_event
from labops_core.services.locking import check_expected_version, versioned_update
from labops_core.specimens.catalog import get_specimen_type
from labops_core.specimens.numbering import format_specimen_number, specimen_number_prefix
from labops_core.specimens.quality_gate import REJECTION_REASON, evaluate_quality_gate
from labops_core.workflows import (
    HOLD_STATE,
    INITIAL_STATE,
    REJECTED_STATE,
    InvalidTransition,
    is_terminal,
    normalize_state,
    sequence_order,
    validate_transition,
)
from labops_core.workflows.custody import COLLECTION_DESCRIPTION
from labops_core.workflows.exceptions import ConcurrentModification

logger = logging.getLogger(__name__)

ENTITY = "Specimen"


# ===============================================================
# Helpers
# ===============================================================

def _required_actor(actor: str) -> str:
    actor = (actor or "").strip()
    if not actor:
        raise ValueError("actor is required")
    return actor


def _local_day(now: datetime):
    if timezone.is_aware(now):
        return timezone.localtime(now).date()
    return now.date()


def _lock(specimen_number: str, expected_version: Optional[int]) -> Specimen:
    specimen = Specimen.objects.select_for_update().get(specimen_number=specimen_number)
    check_expected_version(
        entity=ENTITY,
        identifier=specimen.specimen_number,
        current=specimen.version,
        expected=expected_version,
    )
    return specimen


def _apply(
    specimen: Specimen,
    *,
    target: str,
    event: str,
    actor: str,
    now: datetime,
    description: str = "",
    fields: Optional[Dict[str, Any]] = None,
    clock: Clock = system_clock,
) -> Specimen:
    """
    Validate, write and log one transition on an already locked specimen.
    """
    current = specimen.status
    validate_transition(current, target)

    versioned_update(
        specimen,
        entity=ENTITY,
        identifier=specimen.specimen_number,
        status=target,
        updated_at=now,
        **(fields or {}),
    )

    append_custody_event(
        specimen=specimen,
        event=event,
        actor=actor,
        description=description,
        from_status=current,
        to_status=target,
        timestamp=now,
        clock=clock,
    )

    logger.info(
        "Specimen %s: %s -> %s by %s",
        specimen.specimen_number, current, target, actor,
    )
    return specimen


def _transition(
    *,
    specimen_number: str,
    target: str,
    event: str,
    actor: str,
    clock: Clock,
    expected_version: Optional[int],
    description: str = "",
    fields=None,
) -> Specimen:
    """
    ``fields`` may be a dict or a callable(now) -> dict for stage timestamps.
    """
    actor = _required_actor(actor)

    with transaction.atomic():
        specimen = _lock(specimen_number, expected_version)
        now = clock()
        stage_fields = fields(now) if callable(fields) else fields
        return _apply(
            specimen,
            target=target,
            event=event,
            actor=actor,
            now=now,
            description=description,
            fields=stage_fields,
            clock=clock,
        )


# ===============================================================
# Creation
# ===============================================================

def collect(
    *,
    visit_reference: str,
    specimen_type: str,
    collected_by: str,
    collection_site: str = "",
    collection_conditions: str = "",
    clock: Clock = system_clock,
) -> Specimen:
    """
    Create a specimen in COLLECTED and seed its custody log.

    Specimen numbers are YYYYMMDD-<TYPECODE>-<NNNN>, counted per day and
    type. Two collectors racing for the same number surface as
    ConcurrentModification; the caller retries.
    """
    actor = _required_actor(collected_by)
    visit_reference = (visit_reference or "").strip()
    if not visit_reference:
        raise ValueError("visit_reference is required")

    stype = get_specimen_type(specimen_type)
    now = clock()
    prefix = specimen_number_prefix(_local_day(now), stype.code)

    with transaction.atomic():
        existing = Specimen.objects.filter(specimen_number__startswith=prefix).count()
        number = format_specimen_number(_local_day(now), stype.code, existing)

        try:
            with transaction.atomic():
                specimen = Specimen.objects.create(
                    specimen_number=number,
                    visit_reference=visit_reference,
                    specimen_type=stype.key,
                    collected_at=now,
                    collected_by=actor,
                    collection_site=collection_site or "",
                    collection_conditions=collection_conditions or "",
                    container_type=stype.container,
                )
        except IntegrityError as exc:
            logger.warning("Specimen number %s already taken", number)
            raise ConcurrentModification(
                ENTITY, number, f"Specimen number {number} was taken concurrently; retry."
            ) from exc

        description = COLLECTION_DESCRIPTION
        if collection_site:
            description = f"{description} at {collection_site}"

        append_custody_event(
            specimen=specimen,
            event="COLLECTED",
            actor=actor,
            description=description,
            to_status=INITIAL_STATE,
            timestamp=now,
            clock=clock,
        )

    logger.info(
        "Specimen %s collected (%s) for visit %s by %s",
        specimen.specimen_number, stype.key, visit_reference, actor,
    )
    return specimen


# ===============================================================
# Transport / receipt
# ===============================================================

def dispatch(
    *,
    specimen_number: str,
    dispatched_by: str,
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    return _transition(
        specimen_number=specimen_number,
        target="IN_TRANSIT",
        event="DISPATCHED",
        actor=dispatched_by,
        description="Specimen dispatched to laboratory",
        fields=lambda now: {"dispatched_at": now, "dispatched_by": dispatched_by.strip()},
        clock=clock,
        expected_version=expected_version,
    )


def receive(
    *,
    specimen_number: str,
    received_by: str,
    receipt_temperature: Optional[float] = None,
    receipt_condition: str = "",
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    condition = (receipt_condition or "").strip()
    description = "Specimen received at laboratory"
    if condition:
        description = f"{description}; condition {condition}"
    if receipt_temperature is not None:
        description = f"{description}; temperature {float(receipt_temperature):g}°C"

    return _transition(
        specimen_number=specimen_number,
        target="RECEIVED",
        event="RECEIVED",
        actor=received_by,
        description=description,
        fields=lambda now: {
            "received_at": now,
            "received_by": received_by.strip(),
            "receipt_temperature": (
                float(receipt_temperature) if receipt_temperature is not None else None
            ),
            "receipt_condition": condition,
        },
        clock=clock,
        expected_version=expected_version,
    )


def accession(
    *,
    specimen_number: str,
    accessioned_by: str,
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    return _transition(
        specimen_number=specimen_number,
        target="ACCESSIONED",
        event="ACCESSIONED",
        actor=accessioned_by,
        description="Specimen logged into laboratory system",
        fields=lambda now: {"accessioned_at": now, "accessioned_by": accessioned_by.strip()},
        clock=clock,
        expected_version=expected_version,
    )


# ===============================================================
# Acceptance / rejection
# ===============================================================

def _reject_locked(
    specimen: Specimen,
    *,
    rejected_by: str,
    reason: str,
    now: datetime,
    description: str,
    clock: Clock,
    extra_fields: Optional[Dict[str, Any]] = None,
) -> Specimen:
    fields = {
        "rejected_at": now,
        "rejected_by": rejected_by,
        "rejection_reason": reason,
    }
    fields.update(extra_fields or {})
    return _apply(
        specimen,
        target=REJECTED_STATE,
        event="REJECTED",
        actor=rejected_by,
        now=now,
        description=description,
        fields=fields,
        clock=clock,
    )


def accept(
    *,
    specimen_number: str,
    accepted_by: str,
    volume_received: Optional[float],
    container_type: str = "",
    preservative: str = "",
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    """
    Run the acceptance quality gate and move to ACCEPTED or REJECTED.

    A failed gate is NOT an error: the specimen is rejected with reason
    "Failed quality control checks" and returned normally. Callers must
    inspect ``specimen.status``. InvalidTransition is raised only when
    ACCEPTED itself is not reachable from the current state.
    """
    actor = _required_actor(accepted_by)

    with transaction.atomic():
        specimen = _lock(specimen_number, expected_version)
        validate_transition(specimen.status, "ACCEPTED")

        now = clock()
        stype = get_specimen_type(specimen.specimen_type)
        gate = evaluate_quality_gate(
            specimen_type=stype,
            volume_received=volume_received,
            receipt_condition=specimen.receipt_condition,
            receipt_temperature=specimen.receipt_temperature,
        )

        receipt_fields = {
            "volume_received": float(volume_received) if volume_received is not None else None,
            "container_type": (container_type or specimen.container_type or "").strip(),
            "preservative": (preservative or "").strip(),
            "quality_indicators": {
                **(specimen.quality_indicators or {}),
                "acceptance": {"passed": gate.passed, "failures": list(gate.failures)},
            },
        }

        if not gate.passed:
            logger.info(
                "Specimen %s failed acceptance checks: %s",
                specimen.specimen_number, gate.summary(),
            )
            return _reject_locked(
                specimen,
                rejected_by=actor,
                reason=REJECTION_REASON,
                now=now,
                description=f"{REJECTION_REASON}: {gate.summary()}",
                clock=clock,
                extra_fields=receipt_fields,
            )

        return _apply(
            specimen,
            target="ACCEPTED",
            event="ACCEPTED",
            actor=actor,
            now=now,
            description="Specimen passed acceptance checks",
            fields={
                **receipt_fields,
                "accepted_at": now,
                "accepted_by": actor,
                "required_volume": stype.minimum_volume,
            },
            clock=clock,
        )


def reject(
    *,
    specimen_number: str,
    rejected_by: str,
    reason: str,
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    actor = _required_actor(rejected_by)
    reason = (reason or "").strip()
    if not reason:
        raise ValueError("reason is required to reject a specimen")

    with transaction.atomic():
        specimen = _lock(specimen_number, expected_version)
        return _reject_locked(
            specimen,
            rejected_by=actor,
            reason=reason,
            now=clock(),
            description=f"Specimen rejected: {reason}",
            clock=clock,
        )


# ===============================================================
# Processing / analysis / review
# ===============================================================

def start_processing(
    *,
    specimen_number: str,
    performed_by: str,
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    return _transition(
        specimen_number=specimen_number,
        target="PROCESSING",
        event="PROCESSING_STARTED",
        actor=performed_by,
        description="Specimen processing started",
        fields=lambda now: {
            "processing_started_at": now,
            "processing_started_by": performed_by.strip(),
        },
        clock=clock,
        expected_version=expected_version,
    )


def aliquot(
    *,
    specimen_number: str,
    performed_by: str,
    aliquot_count: int,
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    count = int(aliquot_count)
    if count < 1:
        raise ValueError("aliquot_count must be >= 1")

    return _transition(
        specimen_number=specimen_number,
        target="ALIQUOTED",
        event="ALIQUOTED",
        actor=performed_by,
        description=f"Specimen divided into {count} aliquot(s)",
        fields=lambda now: {"aliquot_count": count, "processing_completed_at": now},
        clock=clock,
        expected_version=expected_version,
    )


def start_analysis(
    *,
    specimen_number: str,
    performed_by: str,
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    return _transition(
        specimen_number=specimen_number,
        target="IN_ANALYSIS",
        event="ANALYSIS_STARTED",
        actor=performed_by,
        description="Specimen analysis started",
        fields=lambda now: {
            "analysis_started_at": now,
            "analysis_started_by": performed_by.strip(),
        },
        clock=clock,
        expected_version=expected_version,
    )


def complete_analysis(
    *,
    specimen_number: str,
    performed_by: str,
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    return _transition(
        specimen_number=specimen_number,
        target="ANALYSIS_COMPLETE",
        event="ANALYSIS_COMPLETED",
        actor=performed_by,
        description="All requested tests completed",
        fields=lambda now: {
            "analysis_completed_at": now,
            "analysis_completed_by": performed_by.strip(),
        },
        clock=clock,
        expected_version=expected_version,
    )


def submit_for_review(
    *,
    specimen_number: str,
    submitted_by: str,
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    return _transition(
        specimen_number=specimen_number,
        target="UNDER_REVIEW",
        event="SUBMITTED_FOR_REVIEW",
        actor=submitted_by,
        description="Results submitted for review",
        fields=lambda now: {"submitted_for_review_at": now},
        clock=clock,
        expected_version=expected_version,
    )


def review(
    *,
    specimen_number: str,
    reviewed_by: str,
    comments: str = "",
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    comments = (comments or "").strip()
    return _transition(
        specimen_number=specimen_number,
        target="REVIEWED",
        event="REVIEWED",
        actor=reviewed_by,
        description="Results reviewed and approved" + (f": {comments}" if comments else ""),
        fields=lambda now: {
            "reviewed_at": now,
            "reviewed_by": reviewed_by.strip(),
            "review_comments": comments,
        },
        clock=clock,
        expected_version=expected_version,
    )


# ===============================================================
# Storage / disposal
# ===============================================================

def store(
    *,
    specimen_number: str,
    stored_by: str,
    storage_location: str,
    storage_temperature: str = "",
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    location = (storage_location or "").strip()
    if not location:
        raise ValueError("storage_location is required")

    return _transition(
        specimen_number=specimen_number,
        target="STORED",
        event="STORED",
        actor=stored_by,
        description=f"Specimen stored at {location}",
        fields=lambda now: {
            "stored_at": now,
            "stored_by": stored_by.strip(),
            "storage_location": location,
            "storage_temperature": (storage_temperature or "").strip(),
        },
        clock=clock,
        expected_version=expected_version,
    )


def dispose(
    *,
    specimen_number: str,
    disposed_by: str,
    disposal_method: str,
    disposal_batch: str = "",
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    method = (disposal_method or "").strip()
    if not method:
        raise ValueError("disposal_method is required")

    description = f"Specimen disposed by {method}"
    if disposal_batch:
        description = f"{description} (batch {disposal_batch})"

    return _transition(
        specimen_number=specimen_number,
        target="DISPOSED",
        event="DISPOSED",
        actor=disposed_by,
        description=description,
        fields=lambda now: {
            "disposed_at": now,
            "disposed_by": disposed_by.strip(),
            "disposal_method": method,
            "disposal_batch": (disposal_batch or "").strip(),
        },
        clock=clock,
        expected_version=expected_version,
    )


# ===============================================================
# Hold / resume / recall
# ===============================================================

def hold(
    *,
    specimen_number: str,
    held_by: str,
    reason: str,
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    actor = _required_actor(held_by)
    reason = (reason or "").strip()
    if not reason:
        raise ValueError("reason is required to place a specimen on hold")

    with transaction.atomic():
        specimen = _lock(specimen_number, expected_version)
        if specimen.status == HOLD_STATE:
            raise ValueError("Specimen is already on hold.")

        return _apply(
            specimen,
            target=HOLD_STATE,
            event="ON_HOLD",
            actor=actor,
            now=clock(),
            description=f"Specimen placed on hold: {reason}",
            fields={"status_before_hold": specimen.status, "hold_reason": reason},
            clock=clock,
        )


def resume(
    *,
    specimen_number: str,
    resumed_by: str,
    target: Optional[str] = None,
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    """
    Release a hold, by default back to the state the specimen was held in.

    Terminal targets are refused: leaving a hold by rejection or disposal
    goes through reject()/dispose() so their stage fields are recorded.
    """
    actor = _required_actor(resumed_by)

    with transaction.atomic():
        specimen = _lock(specimen_number, expected_version)
        resume_to = normalize_state(target or specimen.status_before_hold)

        if specimen.status != HOLD_STATE:
            raise InvalidTransition(
                specimen.status,
                resume_to or HOLD_STATE,
                f"Specimen is not on hold (status '{specimen.status}').",
            )
        if not resume_to:
            raise ValueError("No state to resume to; pass target explicitly")
        if is_terminal(resume_to):
            raise ValueError(
                f"Cannot resume into terminal state {resume_to}; use reject or dispose"
            )
        sequence_order(resume_to)

        return _apply(
            specimen,
            target=resume_to,
            event="RESUMED",
            actor=actor,
            now=clock(),
            description=f"Hold released; resumed at {resume_to}",
            fields={"status_before_hold": "", "hold_reason": ""},
            clock=clock,
        )


def recall(
    *,
    specimen_number: str,
    recalled_by: str,
    reason: str,
    clock: Clock = system_clock,
    expected_version: Optional[int] = None,
) -> Specimen:
    reason = (reason or "").strip()
    if not reason:
        raise ValueError("reason is required to recall a specimen")

    return _transition(
        specimen_number=specimen_number,
        target="RECALLED",
        event="RECALLED",
        actor=recalled_by,
        description=f"Specimen recalled: {reason}",
        fields=lambda now: {
            "recalled_at": now,
            "recalled_by": recalled_by.strip(),
            "recall_reason": reason,
        },
        clock=clock,
        expected_version=expected_version,
    )


# ===============================================================
# Queries (no locking)
# ===============================================================

def get_specimen(specimen_number: str) -> Specimen:
    return Specimen.objects.get(specimen_number=specimen_number)


def specimens_by_status(status: str):
    state = normalize_state(status)
    sequence_order(state)
    return Specimen.objects.filter(status=state)


def specimens_for_visit(visit_reference: str):
    return Specimen.objects.filter(visit_reference=visit_reference).order_by("collected_at", "id")
