# labops_core/models/__init__.py

from .core import TimeStampedModel
from .quality_control import ControlResult, QualityControlDefinition, TestDefinition
from .specimen import STATUS_CHOICES, CustodyEvent, Specimen

__all__ = [
    "TimeStampedModel",
    "Specimen",
    "CustodyEvent",
    "STATUS_CHOICES",
    "TestDefinition",
    "QualityControlDefinition",
    "ControlResult",
]
