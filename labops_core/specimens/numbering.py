# labops_core/specimens/numbering.py
from __future__ import annotations

from datetime import date

# Format: YYYYMMDD-<TYPECODE>-<NNNN>, sequence restarts per day per type.
SEQUENCE_WIDTH = 4


def specimen_number_prefix(day: date, type_code: str) -> str:
    return f"{day:%Y%m%d}-{type_code.strip().upper()}-"


def format_specimen_number(day: date, type_code: str, existing_count: int) -> str:
    """
    Next number for ``day``/``type_code`` given how many numbers already share the prefix.
    """
    if existing_count < 0:
        raise ValueError("existing_count must be >= 0")
    sequence = existing_count + 1
    return f"{specimen_number_prefix(day, type_code)}{sequence:0{SEQUENCE_WIDTH}d}"
