# labops_core/workflows/exceptions.py

"""
Domain errors raised by the specimen workflow and the QC engine.

This module MUST remain free of Django, DRF, or persistence imports.
Transport layers translate these into HTTP responses.
"""

from __future__ import annotations

from typing import Iterable, Optional


class InvalidTransition(ValueError):
    """
    Raised when the status graph does not permit current -> target.

    The caller may pick another transition; it is never retried.
    """

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(
            message or f"Invalid specimen transition: {current} -> {target}"
        )


class MissingReferenceStats(ValueError):
    """
    Raised when a measured analyte has no mean/stdDev in its test definition.

    The QC service attaches the persisted (indeterminate) result as
    ``result`` before re-raising.
    """

    def __init__(self, analytes: Iterable[str], result=None):
        self.analytes = sorted(set(analytes))
        self.result = result
        super().__init__(
            "No reference statistics for analyte(s): " + ", ".join(self.analytes)
        )


class ConcurrentModification(Exception):
    """
    Raised when two writers raced on the same specimen or QC definition.
    """

    def __init__(self, entity: str, identifier, message: Optional[str] = None):
        self.entity = entity
        self.identifier = identifier
        super().__init__(
            message or f"{entity} {identifier} was modified concurrently; reload and retry."
        )


__all__ = [
    "InvalidTransition",
    "MissingReferenceStats",
    "ConcurrentModification",
]
