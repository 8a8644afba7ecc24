# labops_core/specimens/quality_gate.py

"""
Acceptance quality gate for received specimens.

A failed gate is an outcome, not an error: the lifecycle service routes
the specimen to REJECTED and the call still succeeds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .catalog import SpecimenType


REJECTION_REASON = "Failed quality control checks"

REJECTING_CONDITIONS = frozenset({"HEMOLYZED", "CLOTTED", "CONTAMINATED"})

REFRIGERATED_RANGE_C: Tuple[float, float] = (2.0, 8.0)


@dataclass(frozen=True)
class QualityGateResult:
    passed: bool
    failures: Tuple[str, ...] = field(default_factory=tuple)

    def summary(self) -> str:
        return "; ".join(self.failures)


def evaluate_quality_gate(
    *,
    specimen_type: SpecimenType,
    volume_received: Optional[float],
    receipt_condition: Optional[str] = None,
    receipt_temperature: Optional[float] = None,
) -> QualityGateResult:
    """
    Check volume, receipt condition and (for refrigerated types) receipt
    temperature. A missing temperature is not assessed.
    """
    failures = []

    if volume_received is None:
        failures.append("volume received not recorded")
    elif float(volume_received) < specimen_type.minimum_volume:
        failures.append(
            f"volume {float(volume_received):g} mL below minimum "
            f"{specimen_type.minimum_volume:g} mL"
        )

    condition = (receipt_condition or "").strip()
    if condition.upper() in REJECTING_CONDITIONS:
        failures.append(f"receipt condition {condition}")

    if specimen_type.requires_refrigeration and receipt_temperature is not None:
        low, high = REFRIGERATED_RANGE_C
        temperature = float(receipt_temperature)
        if temperature < low or temperature > high:
            failures.append(
                f"receipt temperature {temperature:g}°C outside {low:g}-{high:g}°C"
            )

    return QualityGateResult(passed=not failures, failures=tuple(failures))
