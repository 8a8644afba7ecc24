# labops_core/services/locking.py
from __future__ import annotations

import logging
from typing import Optional

from django.db.models import F

from labops_core.workflows.exceptions import ConcurrentModification

logger = logging.getLogger(__name__)


def check_expected_version(*, entity: str, identifier, current: int, expected: Optional[int]) -> None:
    """
    Fail fast when the caller edited a stale copy.
    """
    if expected is not None and int(expected) != int(current):
        logger.warning(
            "%s %s version mismatch: expected %s, found %s",
            entity, identifier, expected, current,
        )
        raise ConcurrentModification(
            entity,
            identifier,
            f"{entity} {identifier} is at version {current}, not {expected}; reload and retry.",
        )


def versioned_update(instance, *, entity: str, identifier, **changes) -> None:
    """
    UPDATE ... WHERE pk = ? AND version = ?, bumping version.

    Bypasses Model.save() (and with it the workflow write guard); the
    instance is refreshed from the database afterwards.
    """
    model = instance.__class__
    rows = model.objects.filter(pk=instance.pk, version=instance.version).update(
        version=F("version") + 1,
        **changes,
    )
    if rows != 1:
        logger.warning("%s %s changed underneath a locked update", entity, identifier)
        raise ConcurrentModification(entity, identifier)
    instance.refresh_from_db()
