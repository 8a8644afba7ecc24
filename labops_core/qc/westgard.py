# labops_core/qc/westgard.py

"""
Westgard multi-rule evaluation for quality-control runs.

PURE LOGIC.
- No Django imports
- Input is the ordered run history (oldest first) for one QC definition,
  each run a mapping of analyte -> measured value
- Only the trailing window each rule needs is examined; a pattern that
  occurred earlier and has since recovered is not reported
- A rule with too little history is skipped, never failed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple, Union

from labops_core.workflows.exceptions import MissingReferenceStats

logger = logging.getLogger(__name__)


# ===============================================================
# RULE DEFINITIONS
# ===============================================================
RULE_1_3S = "1-3s"
RULE_2_2S = "2-2s"
RULE_R_4S = "R-4s"
RULE_4_1S = "4-1s"
RULE_10_X = "10-x"

ALL_RULES: Tuple[str, ...] = (RULE_1_3S, RULE_2_2S, RULE_R_4S, RULE_4_1S, RULE_10_X)

# Number of most recent runs each rule needs.
RULE_WINDOWS: Dict[str, int] = {
    RULE_1_3S: 1,
    RULE_2_2S: 2,
    RULE_R_4S: 2,
    RULE_4_1S: 4,
    RULE_10_X: 10,
}

RULE_DESCRIPTIONS: Dict[str, str] = {
    RULE_1_3S: "One control exceeds mean ± 3SD",
    RULE_2_2S: "Two consecutive controls exceed 2SD on the same side",
    RULE_R_4S: "Difference between consecutive controls exceeds 4SD",
    RULE_4_1S: "Four consecutive controls exceed 1SD on the same side",
    RULE_10_X: "Ten consecutive controls on the same side of the mean",
}

_RULE_ALIASES: Dict[str, str] = {
    "1-3s": RULE_1_3S,
    "13s": RULE_1_3S,
    "2-2s": RULE_2_2S,
    "22s": RULE_2_2S,
    "r-4s": RULE_R_4S,
    "r4s": RULE_R_4S,
    "4-1s": RULE_4_1S,
    "41s": RULE_4_1S,
    "10-x": RULE_10_X,
    "10x": RULE_10_X,
}


def parse_rule_set(value: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
    """
    Normalize a rule set ("1-3s,2_2s, R-4s" or a list) to canonical names.

    Result is de-duplicated and in ALL_RULES order. Unknown names raise ValueError.
    """
    if value is None:
        return ()
    raw = value.split(",") if isinstance(value, str) else list(value)

    found = set()
    for item in raw:
        token = str(item or "").strip().lower().replace("_", "-").replace(" ", "")
        if not token:
            continue
        rule = _RULE_ALIASES.get(token)
        if rule is None:
            raise ValueError(f"Unknown Westgard rule: {item!r}")
        found.add(rule)

    return tuple(r for r in ALL_RULES if r in found)


def format_rule_set(rules: Iterable[str]) -> str:
    return ",".join(parse_rule_set(list(rules)))


# ===============================================================
# REFERENCE STATISTICS
# ===============================================================

@dataclass(frozen=True)
class AnalyteStats:
    mean: float
    std_dev: float

    def __post_init__(self):
        if self.std_dev < 0:
            raise ValueError("std_dev must be >= 0")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AnalyteStats":
        if "mean" not in data:
            raise ValueError("reference statistics require 'mean'")
        for key in ("stdDev", "std_dev", "sd"):
            if key in data:
                return cls(mean=float(data["mean"]), std_dev=float(data[key]))
        raise ValueError("reference statistics require 'stdDev'")


def reference_stats_from_mapping(
    parameters: Mapping[str, Any],
) -> Dict[str, AnalyteStats]:
    out: Dict[str, AnalyteStats] = {}
    for analyte, entry in (parameters or {}).items():
        if isinstance(entry, AnalyteStats):
            out[analyte] = entry
        else:
            out[analyte] = AnalyteStats.from_mapping(entry)
    return out


# ===============================================================
# RESULTS
# ===============================================================

@dataclass(frozen=True)
class RuleViolation:
    rule: str
    analyte: str
    values: Tuple[float, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule,
            "analyte": self.analyte,
            "values": list(self.values),
            "description": RULE_DESCRIPTIONS[self.rule],
        }


@dataclass(frozen=True)
class SkippedRule:
    rule: str
    analyte: str
    required: int
    available: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule,
            "analyte": self.analyte,
            "required": self.required,
            "available": self.available,
        }


@dataclass(frozen=True)
class WestgardEvaluation:
    passed: bool
    rules: Tuple[str, ...] = ()
    violations: Tuple[RuleViolation, ...] = field(default_factory=tuple)
    skipped: Tuple[SkippedRule, ...] = field(default_factory=tuple)

    @property
    def violated_rules(self) -> Tuple[str, ...]:
        hit = {v.rule for v in self.violations}
        return tuple(r for r in ALL_RULES if r in hit)


# ===============================================================
# RULE CHECKS
# ===============================================================

def _violates_1_3s(values: Sequence[float], s: AnalyteStats) -> bool:
    return abs(values[-1] - s.mean) > 3 * s.std_dev


def _violates_2_2s(values: Sequence[float], s: AnalyteStats) -> bool:
    last = values[-2:]
    upper = s.mean + 2 * s.std_dev
    lower = s.mean - 2 * s.std_dev
    return all(v > upper for v in last) or all(v < lower for v in last)


def _violates_r_4s(values: Sequence[float], s: AnalyteStats) -> bool:
    return abs(values[-1] - values[-2]) > 4 * s.std_dev


def _violates_4_1s(values: Sequence[float], s: AnalyteStats) -> bool:
    last = values[-4:]
    upper = s.mean + s.std_dev
    lower = s.mean - s.std_dev
    return all(v > upper for v in last) or all(v < lower for v in last)


def _violates_10_x(values: Sequence[float], s: AnalyteStats) -> bool:
    last = values[-10:]
    return all(v > s.mean for v in last) or all(v < s.mean for v in last)


RULE_CHECKS = {
    RULE_1_3S: _violates_1_3s,
    RULE_2_2S: _violates_2_2s,
    RULE_R_4S: _violates_r_4s,
    RULE_4_1S: _violates_4_1s,
    RULE_10_X: _violates_10_x,
}


# ===============================================================
# PUBLIC API
# ===============================================================

def _trailing_series(window: Sequence[Mapping[str, Any]], analyte: str) -> List[float]:
    """
    Consecutive measurements of ``analyte`` ending at the latest run.
    """
    series: List[float] = []
    for run in reversed(window):
        if analyte not in run or run[analyte] is None:
            break
        series.append(float(run[analyte]))
    series.reverse()
    return series


def evaluate_westgard(
    results: Sequence[Mapping[str, Any]],
    reference_stats: Mapping[str, Any],
    rules: Union[str, Iterable[str]],
) -> WestgardEvaluation:
    """
    Evaluate the active rules against the trailing runs of one QC series.

    Args:
        results: run values oldest first; the last entry is the run under test
        reference_stats: analyte -> AnalyteStats or {"mean", "stdDev"}
        rules: active rule subset

    Returns:
        WestgardEvaluation; passed is False if any active rule is violated
        for any analyte measured in the latest run.

    Raises:
        MissingReferenceStats: an analyte in the examined window has no stats
    """
    active = parse_rule_set(rules)
    if not results:
        return WestgardEvaluation(passed=True, rules=active)

    stats = reference_stats_from_mapping(reference_stats)
    depth = max((RULE_WINDOWS[r] for r in active), default=1)
    window = list(results[-depth:])

    measured = set()
    for run in window:
        measured.update(k for k, v in run.items() if v is not None)
    missing = measured - set(stats)
    if missing:
        raise MissingReferenceStats(missing)

    violations: List[RuleViolation] = []
    skipped: List[SkippedRule] = []

    for analyte in sorted(k for k, v in window[-1].items() if v is not None):
        series = _trailing_series(window, analyte)
        analyte_stats = stats[analyte]

        for rule in active:
            need = RULE_WINDOWS[rule]
            if len(series) < need:
                skipped.append(SkippedRule(rule, analyte, need, len(series)))
                logger.debug(
                    "Westgard %s not evaluated for %s: %d of %d runs",
                    rule, analyte, len(series), need,
                )
                continue

            if RULE_CHECKS[rule](series, analyte_stats):
                violations.append(RuleViolation(rule, analyte, tuple(series[-need:])))

    return WestgardEvaluation(
        passed=not violations,
        rules=active,
        violations=tuple(violations),
        skipped=tuple(skipped),
    )
