# labops_core/workflows/__init__.py
from __future__ import annotations

from typing import Any, Dict, FrozenSet, List, Tuple

from .exceptions import ConcurrentModification, InvalidTransition, MissingReferenceStats


# ===============================================================
# Canonical specimen lifecycle
# ===============================================================
# Ordered by sequence. The position (1-based) is the sequenceOrder used
# for the default forward-only comparison.
SPECIMEN_STATES: Tuple[str, ...] = (
    "COLLECTED",
    "IN_TRANSIT",
    "RECEIVED",
    "ACCESSIONED",
    "ACCEPTED",
    "REJECTED",
    "PROCESSING",
    "ALIQUOTED",
    "IN_ANALYSIS",
    "ANALYSIS_COMPLETE",
    "UNDER_REVIEW",
    "REVIEWED",
    "STORED",
    "DISPOSED",
    "ON_HOLD",
    "RECALLED",
)

SEQUENCE_ORDER: Dict[str, int] = {
    state: index for index, state in enumerate(SPECIMEN_STATES, start=1)
}

INITIAL_STATE = "COLLECTED"
HOLD_STATE = "ON_HOLD"
RECALL_STATE = "RECALLED"
REJECTED_STATE = "REJECTED"
DISPOSED_STATE = "DISPOSED"

TERMINAL_STATES: FrozenSet[str] = frozenset({REJECTED_STATE, DISPOSED_STATE})

# Rejection is only meaningful before processing begins.
REJECTION_CUTOFF = "ACCEPTED"

# Terminal absorption is checked before this set, so only STORED qualifies.
RECALL_SOURCES: FrozenSet[str] = frozenset({"STORED", DISPOSED_STATE})

# A recalled specimen re-enters the pipeline for additional testing.
RECALL_REENTRY: FrozenSet[str] = frozenset({"PROCESSING", "IN_ANALYSIS"})

# Suggested next steps per state. Every pair listed here must also pass
# can_transition(); _check_adjacency() enforces that at import time.
NEXT_POSSIBLE_STATES: Dict[str, FrozenSet[str]] = {
    "COLLECTED": frozenset({"IN_TRANSIT", "RECEIVED", "REJECTED"}),
    "IN_TRANSIT": frozenset({"RECEIVED", "REJECTED"}),
    "RECEIVED": frozenset({"ACCESSIONED", "REJECTED"}),
    "ACCESSIONED": frozenset({"ACCEPTED", "REJECTED"}),
    "ACCEPTED": frozenset({"PROCESSING"}),
    "PROCESSING": frozenset({"ALIQUOTED", "IN_ANALYSIS"}),
    "ALIQUOTED": frozenset({"IN_ANALYSIS"}),
    "IN_ANALYSIS": frozenset({"ANALYSIS_COMPLETE"}),
    "ANALYSIS_COMPLETE": frozenset({"UNDER_REVIEW"}),
    "UNDER_REVIEW": frozenset({"REVIEWED"}),
    "REVIEWED": frozenset({"STORED"}),
    "STORED": frozenset({"DISPOSED", "RECALLED"}),
    "RECALLED": frozenset({"PROCESSING", "IN_ANALYSIS"}),
    "ON_HOLD": frozenset({"PROCESSING", "IN_ANALYSIS", "UNDER_REVIEW", "STORED"}),
    "REJECTED": frozenset(),
    "DISPOSED": frozenset(),
}


# ===============================================================
# Helpers
# ===============================================================

def normalize_state(value: str) -> str:
    return str(value or "").strip().upper()


def _known(value: str) -> str:
    state = normalize_state(value)
    if state not in SEQUENCE_ORDER:
        raise ValueError(f"Unknown specimen state: {value!r}")
    return state


def sequence_order(state: str) -> int:
    return SEQUENCE_ORDER[_known(state)]


def is_terminal(state: str) -> bool:
    return _known(state) in TERMINAL_STATES


def _by_sequence(states) -> List[str]:
    return sorted(states, key=SEQUENCE_ORDER.__getitem__)


# ===============================================================
# Public workflow API
# ===============================================================

def can_transition(current: str, target: str) -> bool:
    """
    Decide whether a specimen in ``current`` may move to ``target``.

    Evaluation order:
      1) terminal states (REJECTED, DISPOSED) accept nothing
      2) ON_HOLD is reachable from every non-terminal state
      3) ON_HOLD may resume to any state
      4) RECALLED stays put or re-enters at PROCESSING or IN_ANALYSIS
      5) RECALLED is reachable only from STORED
      6) REJECTED only up to and including ACCEPTED
      7) otherwise forward-only, staying in place allowed
    """
    cur = _known(current)
    tgt = _known(target)

    if cur in TERMINAL_STATES:
        return False

    if tgt == HOLD_STATE:
        return True

    if cur == HOLD_STATE:
        return True

    if cur == RECALL_STATE:
        return tgt == cur or tgt in RECALL_REENTRY

    if tgt == RECALL_STATE:
        return cur in RECALL_SOURCES

    if tgt == REJECTED_STATE:
        return SEQUENCE_ORDER[cur] <= SEQUENCE_ORDER[REJECTION_CUTOFF]

    return SEQUENCE_ORDER[tgt] >= SEQUENCE_ORDER[cur]


def validate_transition(current: str, target: str) -> None:
    """
    Raises InvalidTransition if current -> target is not permitted.
    Unknown state names raise ValueError.
    """
    cur = _known(current)
    tgt = _known(target)

    if not can_transition(cur, tgt):
        if cur in TERMINAL_STATES:
            raise InvalidTransition(
                cur,
                tgt,
                f"Specimen is in terminal state '{cur}' and cannot move to '{tgt}'.",
            )
        raise InvalidTransition(cur, tgt)


def allowed_next_states(current: str) -> List[str]:
    """
    Suggested next states for ``current`` in sequence order.
    """
    return _by_sequence(NEXT_POSSIBLE_STATES[_known(current)])


def permitted_states(current: str) -> List[str]:
    """
    Every state ``current`` may legally move to, in sequence order.
    """
    cur = _known(current)
    return [s for s in SPECIMEN_STATES if s != cur and can_transition(cur, s)]


def workflow_definition() -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for UI.
    """
    from .state_metadata import state_metadata

    return {
        "kind": "specimen",
        "initial_state": INITIAL_STATE,
        "states": [
            {"state": s, "sequence_order": SEQUENCE_ORDER[s], **state_metadata(s)}
            for s in SPECIMEN_STATES
        ],
        "transitions": {s: allowed_next_states(s) for s in SPECIMEN_STATES},
        "terminal_states": _by_sequence(TERMINAL_STATES),
    }


def _check_adjacency() -> None:
    for state in SPECIMEN_STATES:
        if state not in NEXT_POSSIBLE_STATES:
            raise RuntimeError(f"No adjacency entry for specimen state {state}")
        for target in NEXT_POSSIBLE_STATES[state]:
            if not can_transition(state, target):
                raise RuntimeError(
                    f"Adjacency {state} -> {target} is rejected by can_transition"
                )


_check_adjacency()


__all__ = [
    "SPECIMEN_STATES",
    "SEQUENCE_ORDER",
    "INITIAL_STATE",
    "HOLD_STATE",
    "RECALL_STATE",
    "REJECTED_STATE",
    "DISPOSED_STATE",
    "TERMINAL_STATES",
    "RECALL_SOURCES",
    "NEXT_POSSIBLE_STATES",
    "normalize_state",
    "sequence_order",
    "is_terminal",
    "can_transition",
    "validate_transition",
    "allowed_next_states",
    "permitted_states",
    "workflow_definition",
    "InvalidTransition",
    "MissingReferenceStats",
    "ConcurrentModification",
]
