# labops_core/services/custody.py
"""
Chain-of-custody persistence.

append_custody_event() must run inside the transaction that holds the
specimen row lock, so sequence numbers are gap-free and never reused.
"""

from __future__ import annotations

from typing import Any, Dict, List

from django.db.models import Max

from labops_core.clock import Clock, system_clock
from labops_core.models import CustodyEvent, Specimen
from labops_core.workflows.custody import replay_status_history


def append_custody_event(
    *,
    specimen: Specimen,
    event: str,
    actor: str,
    description: str = "",
    from_status: str = "",
    to_status: str = "",
    timestamp=None,
    clock: Clock = system_clock,
) -> CustodyEvent:
    if not (actor or "").strip():
        raise ValueError("actor is required for custody events")

    last = specimen.custody_events.aggregate(last=Max("sequence"))["last"] or 0

    return CustodyEvent.objects.create(
        specimen=specimen,
        sequence=last + 1,
        timestamp=timestamp or clock(),
        event=event,
        actor=actor.strip(),
        description=description or "",
        from_status=from_status or "",
        to_status=to_status or "",
    )


def custody_log(specimen: Specimen) -> List[Dict[str, Any]]:
    return [e.as_entry().to_dict() for e in specimen.custody_events.order_by("sequence")]


def status_history(specimen: Specimen) -> List[str]:
    entries = [e.as_entry() for e in specimen.custody_events.order_by("sequence")]
    return replay_status_history(entries)
