# labops_core/tests/test_state_metadata.py
from labops_core.workflows import SPECIMEN_STATES
from labops_core.workflows.state_metadata import (
    COMPLIANCE_REQUIREMENTS,
    DEFAULT_REQUIREMENTS,
    STATE_COLORS,
    STATE_LABELS,
    compliance_requirements,
    is_available_for_testing,
    is_testing_complete,
    state_color,
    state_label,
    state_metadata,
)


def test_every_state_has_label_and_color():
    assert set(STATE_LABELS) == set(SPECIMEN_STATES)
    assert set(STATE_COLORS) == set(SPECIMEN_STATES)


def test_category_flags():
    testing = [s for s in SPECIMEN_STATES if is_available_for_testing(s)]
    complete = [s for s in SPECIMEN_STATES if is_testing_complete(s)]
    assert testing == ["ACCEPTED", "PROCESSING", "ALIQUOTED", "IN_ANALYSIS"]
    assert complete == ["ANALYSIS_COMPLETE", "UNDER_REVIEW", "REVIEWED", "STORED", "DISPOSED"]


def test_compliance_requirements_fall_back_to_defaults():
    assert compliance_requirements("REJECTED") == COMPLIANCE_REQUIREMENTS["REJECTED"]
    assert compliance_requirements("IN_TRANSIT") == DEFAULT_REQUIREMENTS


def test_lookup_is_case_insensitive_and_tolerates_unknowns():
    assert state_label("on_hold") == "On Hold"
    assert state_color("nope") == "#000000"


def test_state_metadata_is_json_ready():
    meta = state_metadata("DISPOSED")
    assert meta["label"] == "Disposed"
    assert meta["testing_complete"] is True
    assert meta["available_for_testing"] is False
    assert isinstance(meta["compliance_requirements"], list)
    assert "Record disposal method" in meta["compliance_requirements"]
