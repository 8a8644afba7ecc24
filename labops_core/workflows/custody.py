# labops_core/workflows/custody.py

"""
Chain-of-custody records.

The persisted log is a list of CustodyEvent rows per specimen; this
module holds the storage-independent view of one entry, its JSON shape,
and the replay that rebuilds a specimen's status history from the log.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from . import INITIAL_STATE, can_transition


COLLECTION_DESCRIPTION = "Specimen collected from patient"


@dataclass(frozen=True)
class CustodyEntry:
    sequence: int
    timestamp: datetime
    event: str
    actor: str
    description: str = ""
    from_status: Optional[str] = None
    to_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
            "event": self.event,
            "actor": self.actor,
            "description": self.description,
            "from_status": self.from_status,
            "to_status": self.to_status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustodyEntry":
        ts = data["timestamp"]
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)
        return cls(
            sequence=int(data["sequence"]),
            timestamp=ts,
            event=str(data["event"]),
            actor=str(data["actor"]),
            description=str(data.get("description") or ""),
            from_status=data.get("from_status"),
            to_status=data.get("to_status"),
        )


def replay_status_history(entries: Iterable[CustodyEntry]) -> List[str]:
    """
    Rebuild the ordered list of states a specimen passed through.

    Raises ValueError if the log is out of order, does not start with
    collection, or records a move the status graph never allowed.
    """
    history: List[str] = []
    last_sequence = 0

    for entry in entries:
        if entry.sequence <= last_sequence:
            raise ValueError(
                f"Custody log out of order at sequence {entry.sequence}"
            )
        last_sequence = entry.sequence

        if not entry.to_status:
            continue

        if not history:
            if entry.to_status != INITIAL_STATE:
                raise ValueError(
                    f"Custody log must start with {INITIAL_STATE}, got {entry.to_status}"
                )
            history.append(entry.to_status)
            continue

        current = history[-1]
        if entry.from_status and entry.from_status != current:
            raise ValueError(
                f"Custody gap at sequence {entry.sequence}: "
                f"expected from {current}, found {entry.from_status}"
            )
        if not can_transition(current, entry.to_status):
            raise ValueError(
                f"Custody log records illegal move {current} -> {entry.to_status}"
            )
        history.append(entry.to_status)

    return history
