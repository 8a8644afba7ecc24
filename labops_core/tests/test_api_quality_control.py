# labops_core/tests/test_api_quality_control.py
from __future__ import annotations

import pytest
from django.urls import reverse

from labops_core.models import ControlResult, QualityControlDefinition, TestDefinition

pytestmark = pytest.mark.django_db


def _create_definition(api_client, test_definition, **extra):
    payload = {
        "test_definition": test_definition.pk,
        "control_name": "Glucose QC",
        "control_level": "1",
        "frequency": {"type": "DAILY"},
        "westgard_rules": "1-3s,2-2s",
        **extra,
    }
    res = api_client.post(reverse("labops_core:qc-definition-list"), payload, format="json")
    assert res.status_code == 201, res.data
    return res.data


def _results_url(pk):
    return reverse("labops_core:qc-definition-results", kwargs={"pk": pk})


# ===============================================================
# Test definitions
# ===============================================================

def test_create_test_definition(api_client):
    res = api_client.post(
        reverse("labops_core:test-definition-list"),
        {"code": "hba1c", "name": "HbA1c", "analytes": {"hba1c": {"mean": 6.0, "sd": 0.2}}},
        format="json",
    )
    assert res.status_code == 201, res.data
    assert res.data["code"] == "HBA1C"
    assert res.data["analytes"] == {"hba1c": {"mean": 6.0, "stdDev": 0.2}}


def test_test_definition_rejects_bad_analytes(api_client):
    res = api_client.post(
        reverse("labops_core:test-definition-list"),
        {"code": "X1", "name": "X", "analytes": {"x": {"mean": 1.0, "stdDev": -1}}},
        format="json",
    )
    assert res.status_code == 400
    assert "analytes" in res.data


def test_test_definition_code_is_immutable(api_client, test_definition):
    url = reverse("labops_core:test-definition-detail", kwargs={"pk": test_definition.pk})
    res = api_client.patch(url, {"code": "OTHER"}, format="json")
    assert res.status_code == 400

    res = api_client.patch(url, {"name": "Fasting glucose"}, format="json")
    assert res.status_code == 200
    assert res.data["name"] == "Fasting glucose"


def test_delete_test_definition_in_use_is_a_409(api_client, test_definition, make_qc_definition):
    make_qc_definition()
    url = reverse("labops_core:test-definition-detail", kwargs={"pk": test_definition.pk})

    res = api_client.delete(url)
    assert res.status_code == 409
    assert TestDefinition.objects.filter(pk=test_definition.pk).exists()


def test_delete_unused_test_definition(api_client, test_definition):
    url = reverse("labops_core:test-definition-detail", kwargs={"pk": test_definition.pk})
    res = api_client.delete(url)
    assert res.status_code == 204


# ===============================================================
# QC definitions
# ===============================================================

def test_create_qc_definition(api_client, test_definition):
    data = _create_definition(api_client, test_definition, westgard_rules="13s, 22s")

    assert data["westgard_rules"] == "1-3s,2-2s"
    assert data["rules"] == ["1-3s", "2-2s"]
    assert data["test_code"] == test_definition.code
    assert data["next_due_at"] is not None
    assert data["version"] == 1


def test_create_qc_definition_validates_input(api_client, test_definition):
    url = reverse("labops_core:qc-definition-list")
    base = {
        "test_definition": test_definition.pk,
        "control_name": "Bad",
        "control_level": "1",
    }

    res = api_client.post(url, {**base, "frequency": {"type": "HOURLY"}, "westgard_rules": "1-3s"}, format="json")
    assert res.status_code == 400
    assert "frequency" in res.data

    res = api_client.post(url, {**base, "frequency": {"type": "DAILY"}, "westgard_rules": "7-7s"}, format="json")
    assert res.status_code == 400
    assert "westgard_rules" in res.data


def test_patch_qc_definition_with_version(api_client, test_definition):
    data = _create_definition(api_client, test_definition)
    url = reverse("labops_core:qc-definition-detail", kwargs={"pk": data["id"]})

    res = api_client.patch(url, {"control_level": "3", "expected_version": 1}, format="json")
    assert res.status_code == 200, res.data
    assert res.data["control_level"] == "3"
    assert res.data["version"] == 2

    res = api_client.patch(url, {"control_level": "2", "expected_version": 1}, format="json")
    assert res.status_code == 409

    res = api_client.patch(url, {"test_definition": test_definition.pk}, format="json")
    assert res.status_code == 400


# ===============================================================
# Control results
# ===============================================================

def test_record_and_list_results(api_client, test_definition, user):
    data = _create_definition(api_client, test_definition)
    url = _results_url(data["id"])

    res = api_client.post(url, {"values": {"glucose": 10.5}}, format="json")
    assert res.status_code == 201, res.data
    assert res.data["outcome"] == "PASSED"
    assert res.data["recorded_by"] == user.username

    res = api_client.post(url, {"values": {"glucose": 13.5}, "comments": "new lot"}, format="json")
    assert res.status_code == 201
    assert res.data["passed"] is False
    assert [v["rule"] for v in res.data["violations"]] == ["1-3s"]

    definition = QualityControlDefinition.objects.get(pk=data["id"])
    assert definition.last_run_passed is False

    res = api_client.get(url)
    assert res.status_code == 200
    assert res.data["count"] == 2
    assert [r["sequence"] for r in res.data["results"]] == [1, 2]

    res = api_client.get(url, {"outcome": "failed"})
    assert [r["sequence"] for r in res.data["results"]] == [2]


def test_missing_reference_stats_is_a_422(api_client, test_definition):
    data = _create_definition(api_client, test_definition)

    res = api_client.post(
        _results_url(data["id"]),
        {"values": {"glucose": 10.0, "lactate": 1.8}},
        format="json",
    )
    assert res.status_code == 422
    assert res.data["analytes"] == ["lactate"]
    assert res.data["result"]["outcome"] == "INDETERMINATE"
    assert ControlResult.objects.filter(definition_id=data["id"]).count() == 1


def test_record_rejects_empty_values(api_client, test_definition):
    data = _create_definition(api_client, test_definition)
    res = api_client.post(_results_url(data["id"]), {"values": {}}, format="json")
    assert res.status_code == 400


def test_results_for_unknown_definition_is_a_404(api_client):
    res = api_client.post(_results_url(999999), {"values": {"glucose": 10.0}}, format="json")
    assert res.status_code == 404


def test_due_endpoint(api_client, test_definition):
    data = _create_definition(api_client, test_definition)
    url = reverse("labops_core:qc-definition-due")

    res = api_client.get(url, {"hours": 48})
    assert res.status_code == 200
    assert [d["id"] for d in res.data] == [data["id"]]

    res = api_client.get(url, {"hours": 1})
    assert res.data == []

    res = api_client.get(url, {"hours": "soon"})
    assert res.status_code == 400
