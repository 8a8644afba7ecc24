# labops_core/tests/conftest.py

from __future__ import annotations

import uuid
from datetime import datetime, timezone as dt_timezone

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from labops_core.clock import FixedClock
from labops_core.services import quality_control as qc_service
from labops_core.services import specimen_lifecycle as lifecycle


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@pytest.fixture(autouse=True)
def _disable_security_redirects(settings):
    settings.SECURE_SSL_REDIRECT = False
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False


@pytest.fixture
def clock():
    # Wednesday 2026-03-04 10:00 UTC
    return FixedClock(datetime(2026, 3, 4, 10, 0, tzinfo=dt_timezone.utc))


@pytest.fixture
def user(db):
    User = get_user_model()
    return User.objects.create_user(username=_rand("tech"), password="pass")


@pytest.fixture
def api_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


# ===============================================================
# Specimen factories
# ===============================================================

@pytest.fixture
def make_specimen(db, clock):
    def _make(specimen_type="WHOLE_BLOOD", visit_reference=None, collected_by="phlebotomist"):
        return lifecycle.collect(
            visit_reference=visit_reference or _rand("VISIT"),
            specimen_type=specimen_type,
            collected_by=collected_by,
            collection_site="Ward 3",
            clock=clock,
        )

    return _make


@pytest.fixture
def received_specimen(make_specimen, clock):
    def _make(specimen_type="WHOLE_BLOOD", temperature=4.0, condition="Normal"):
        specimen = make_specimen(specimen_type=specimen_type)
        return lifecycle.receive(
            specimen_number=specimen.specimen_number,
            received_by="receptionist",
            receipt_temperature=temperature,
            receipt_condition=condition,
            clock=clock,
        )

    return _make


@pytest.fixture
def stored_specimen(received_specimen, clock):
    """
    A whole blood specimen walked all the way to STORED.
    """
    def _make():
        number = received_specimen().specimen_number
        common = {"specimen_number": number, "clock": clock}
        lifecycle.accession(accessioned_by="clerk", **common)
        lifecycle.accept(accepted_by="tech", volume_received=4.0, **common)
        lifecycle.start_processing(performed_by="tech", **common)
        lifecycle.aliquot(performed_by="tech", aliquot_count=2, **common)
        lifecycle.start_analysis(performed_by="analyst", **common)
        lifecycle.complete_analysis(performed_by="analyst", **common)
        lifecycle.submit_for_review(submitted_by="analyst", **common)
        lifecycle.review(reviewed_by="pathologist", **common)
        return lifecycle.store(stored_by="tech", storage_location="Freezer A / Rack 2", **common)

    return _make


# ===============================================================
# QC factories
# ===============================================================

@pytest.fixture
def test_definition(db):
    return qc_service.create_test_definition(
        code=_rand("GLU"),
        name="Glucose",
        analytes={"glucose": {"mean": 10.0, "stdDev": 1.0}},
    )


@pytest.fixture
def make_qc_definition(test_definition, clock):
    def _make(rules="1-3s,2-2s,R-4s,4-1s,10-x", frequency=None, definition=None):
        return qc_service.create_qc_definition(
            test_definition=definition or test_definition,
            control_name="Glucose control",
            control_level="2",
            frequency=frequency or {"type": "DAILY"},
            westgard_rules=rules,
            clock=clock,
        )

    return _make
