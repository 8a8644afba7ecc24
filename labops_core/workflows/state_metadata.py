# labops_core/workflows/state_metadata.py
from __future__ import annotations

from typing import Any, Dict, FrozenSet, Tuple

"""
Static display and compliance metadata per specimen state.

This module is PURE DATA.
- No Django imports
- Must list every state in SPECIMEN_STATES
- UI and API read these tables; no business decisions live here
"""

# ===============================================================
# LABELS AND DESCRIPTIONS
# ===============================================================
STATE_LABELS: Dict[str, Tuple[str, str]] = {
    "COLLECTED": ("Collected", "Specimen collected from patient"),
    "IN_TRANSIT": ("In Transit", "Specimen being transported to laboratory"),
    "RECEIVED": ("Received", "Specimen received at laboratory"),
    "ACCESSIONED": ("Accessioned", "Specimen logged into laboratory system"),
    "ACCEPTED": ("Accepted", "Specimen passed acceptance checks"),
    "REJECTED": ("Rejected", "Specimen failed acceptance checks - unsuitable for testing"),
    "PROCESSING": ("Processing", "Specimen being prepared for analysis"),
    "ALIQUOTED": ("Aliquoted", "Specimen divided into portions for different tests"),
    "IN_ANALYSIS": ("In Analysis", "Specimen currently being analyzed"),
    "ANALYSIS_COMPLETE": ("Analysis Complete", "All requested tests completed"),
    "UNDER_REVIEW": ("Under Review", "Results being reviewed by qualified personnel"),
    "REVIEWED": ("Reviewed", "Results reviewed and approved"),
    "STORED": ("Stored", "Specimen stored for retention period"),
    "DISPOSED": ("Disposed", "Specimen disposed according to protocols"),
    "ON_HOLD": ("On Hold", "Specimen processing temporarily suspended"),
    "RECALLED": ("Recalled", "Specimen recalled for additional testing"),
}

# ===============================================================
# UI COLORS
# ===============================================================
STATE_COLORS: Dict[str, str] = {
    "COLLECTED": "#FFA500",
    "IN_TRANSIT": "#FFA500",
    "RECEIVED": "#FFA500",
    "ACCESSIONED": "#FFA500",
    "ACCEPTED": "#0066CC",
    "PROCESSING": "#0066CC",
    "ALIQUOTED": "#0066CC",
    "IN_ANALYSIS": "#0066CC",
    "ANALYSIS_COMPLETE": "#FF6600",
    "UNDER_REVIEW": "#FF6600",
    "REVIEWED": "#00AA00",
    "STORED": "#00AA00",
    "DISPOSED": "#666666",
    "REJECTED": "#CC0000",
    "ON_HOLD": "#FFCC00",
    "RECALLED": "#9900CC",
}

UNKNOWN_COLOR = "#000000"

# ===============================================================
# CATEGORY FLAGS
# ===============================================================
AVAILABLE_FOR_TESTING: FrozenSet[str] = frozenset(
    {"ACCEPTED", "PROCESSING", "ALIQUOTED", "IN_ANALYSIS"}
)

TESTING_COMPLETE: FrozenSet[str] = frozenset(
    {"ANALYSIS_COMPLETE", "UNDER_REVIEW", "REVIEWED", "STORED", "DISPOSED"}
)

# ===============================================================
# NABL COMPLIANCE REQUIREMENTS
# ===============================================================
DEFAULT_REQUIREMENTS: Tuple[str, ...] = (
    "Follow standard operating procedures",
    "Maintain complete documentation",
    "Ensure traceability",
)

COMPLIANCE_REQUIREMENTS: Dict[str, Tuple[str, ...]] = {
    "COLLECTED": (
        "Record collection date and time",
        "Record collector identification",
        "Document collection conditions",
        "Verify patient identification",
    ),
    "RECEIVED": (
        "Record receipt date and time",
        "Record receiver identification",
        "Check specimen integrity",
        "Verify specimen identification",
    ),
    "ACCEPTED": (
        "Verify specimen quality",
        "Check volume adequacy",
        "Confirm container type",
        "Document acceptance criteria",
    ),
    "REJECTED": (
        "Document rejection reason",
        "Record rejecting personnel",
        "Notify requesting physician",
        "Follow rejection protocol",
    ),
    "REVIEWED": (
        "Technical review completed",
        "Results validated",
        "Quality control verified",
        "Authorized by qualified personnel",
    ),
    "DISPOSED": (
        "Follow disposal protocol",
        "Record disposal method",
        "Document disposal date",
        "Maintain disposal records",
    ),
}


# ===============================================================
# PUBLIC API
# ===============================================================

def _key(state: str) -> str:
    return (state or "").strip().upper()


def state_label(state: str) -> str:
    entry = STATE_LABELS.get(_key(state))
    return entry[0] if entry else _key(state)


def state_color(state: str) -> str:
    return STATE_COLORS.get(_key(state), UNKNOWN_COLOR)


def is_available_for_testing(state: str) -> bool:
    return _key(state) in AVAILABLE_FOR_TESTING


def is_testing_complete(state: str) -> bool:
    return _key(state) in TESTING_COMPLETE


def compliance_requirements(state: str) -> Tuple[str, ...]:
    return COMPLIANCE_REQUIREMENTS.get(_key(state), DEFAULT_REQUIREMENTS)


def state_metadata(state: str) -> Dict[str, Any]:
    """
    All display/compliance metadata for one state as a JSON-ready dict.
    """
    key = _key(state)
    label, description = STATE_LABELS.get(key, (key, ""))
    return {
        "label": label,
        "description": description,
        "color": state_color(key),
        "available_for_testing": is_available_for_testing(key),
        "testing_complete": is_testing_complete(key),
        "compliance_requirements": list(compliance_requirements(key)),
    }
