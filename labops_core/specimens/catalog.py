# labops_core/specimens/catalog.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

"""
Specimen-type catalog.

PURE DATA + lookup.
- No Django imports
- Volumes are in mL; a minimum of 0.0 means volume is not assessed
- Consumed by the acceptance quality gate and specimen numbering
"""


@dataclass(frozen=True)
class SpecimenType:
    key: str
    label: str
    code: str
    container: str
    minimum_volume: float
    optimal_volume: float
    requires_refrigeration: bool = False
    requires_special_handling: bool = False
    storage_temperature: str = "Room temperature"
    max_storage_duration: str = "Follow standard protocols"


REFRIGERATED = "2-8°C"

# ===============================================================
# CATALOG
# ===============================================================
_TYPES: Tuple[SpecimenType, ...] = (
    # Blood
    SpecimenType("WHOLE_BLOOD", "Whole Blood", "WB", "EDTA tube", 2.0, 5.0,
                 requires_refrigeration=True, storage_temperature=REFRIGERATED,
                 max_storage_duration="24 hours"),
    SpecimenType("SERUM", "Serum", "SER", "Serum separator tube", 1.0, 3.0,
                 requires_refrigeration=True, storage_temperature=REFRIGERATED,
                 max_storage_duration="7 days (refrigerated)"),
    SpecimenType("PLASMA", "Plasma", "PLA", "EDTA/Heparin tube", 1.0, 3.0,
                 requires_refrigeration=True, storage_temperature=REFRIGERATED,
                 max_storage_duration="7 days (refrigerated)"),

    # Urine
    SpecimenType("RANDOM_URINE", "Random Urine", "RU", "Sterile container", 10.0, 50.0,
                 max_storage_duration="4 hours (room temp), 24 hours (refrigerated)"),
    SpecimenType("FIRST_MORNING_URINE", "First Morning Urine", "FMU", "Sterile container", 10.0, 50.0,
                 max_storage_duration="4 hours (room temp), 24 hours (refrigerated)"),
    SpecimenType("MIDSTREAM_URINE", "Midstream Urine", "MSU", "Sterile container", 10.0, 50.0,
                 max_storage_duration="4 hours (room temp), 24 hours (refrigerated)"),
    SpecimenType("TWENTY_FOUR_HOUR_URINE", "24-Hour Urine", "24HU", "Large container", 500.0, 3000.0,
                 requires_refrigeration=True, storage_temperature=REFRIGERATED,
                 max_storage_duration="24 hours (with preservative)"),

    # Other body fluids
    SpecimenType("CEREBROSPINAL_FLUID", "Cerebrospinal Fluid", "CSF", "Sterile tube", 0.5, 2.0,
                 requires_refrigeration=True, requires_special_handling=True,
                 storage_temperature=REFRIGERATED,
                 max_storage_duration="Immediate processing required"),
    SpecimenType("SYNOVIAL_FLUID", "Synovial Fluid", "SF", "Sterile tube", 0.5, 2.0,
                 requires_special_handling=True),
    SpecimenType("PLEURAL_FLUID", "Pleural Fluid", "PF", "Sterile tube", 1.0, 5.0,
                 requires_special_handling=True),
    SpecimenType("ASCITIC_FLUID", "Ascitic Fluid", "AF", "Sterile tube", 1.0, 5.0,
                 requires_special_handling=True),

    # Swabs
    SpecimenType("THROAT_SWAB", "Throat Swab", "TS", "Transport medium", 0.0, 0.0),
    SpecimenType("NASAL_SWAB", "Nasal Swab", "NS", "Transport medium", 0.0, 0.0),
    SpecimenType("WOUND_SWAB", "Wound Swab", "WS", "Transport medium", 0.0, 0.0),
    SpecimenType("VAGINAL_SWAB", "Vaginal Swab", "VS", "Transport medium", 0.0, 0.0),

    # Stool / sputum
    SpecimenType("STOOL", "Stool", "ST", "Stool container", 2.0, 10.0,
                 max_storage_duration="2 hours (room temp), 24 hours (refrigerated)"),
    SpecimenType("SPUTUM", "Sputum", "SP", "Sterile container", 2.0, 10.0,
                 requires_refrigeration=True, storage_temperature=REFRIGERATED,
                 max_storage_duration="2 hours (room temp), 24 hours (refrigerated)"),

    # Tissue
    SpecimenType("TISSUE_BIOPSY", "Tissue Biopsy", "TB", "Formalin container", 0.1, 5.0,
                 requires_special_handling=True,
                 storage_temperature="Room temperature (formalin)",
                 max_storage_duration="Indefinite (in formalin)"),

    # Special
    SpecimenType("SALIVA", "Saliva", "SAL", "Sterile tube", 1.0, 5.0),
    SpecimenType("HAIR", "Hair", "HR", "Envelope", 0.0, 0.0),
    SpecimenType("NAIL", "Nail", "NL", "Envelope", 0.0, 0.0),
)

SPECIMEN_TYPES: Dict[str, SpecimenType] = {t.key: t for t in _TYPES}

_BY_CODE: Dict[str, SpecimenType] = {t.code.upper(): t for t in _TYPES}


# ===============================================================
# PUBLIC API
# ===============================================================

def get_specimen_type(value: str) -> SpecimenType:
    """
    Resolve a specimen type by catalog key or short code (case-insensitive).
    """
    raw = str(value or "").strip().upper()
    key = raw.replace(" ", "_").replace("-", "_")

    found = SPECIMEN_TYPES.get(key) or _BY_CODE.get(raw)
    if found is None:
        raise ValueError(f"Unknown specimen type: {value!r}")
    return found


def specimen_type_choices() -> List[Tuple[str, str]]:
    return [(t.key, t.label) for t in _TYPES]
