# labops_core/models/specimen.py

from django.db import models

from labops_core.specimens.catalog import specimen_type_choices
from labops_core.workflows import INITIAL_STATE, SPECIMEN_STATES
from labops_core.workflows.custody import CustodyEntry
from labops_core.workflows.guards import AppendOnlyMixin, WorkflowWriteGuardMixin
from labops_core.workflows.state_metadata import state_label

from .core import TimeStampedModel


STATUS_CHOICES = [(s, state_label(s)) for s in SPECIMEN_STATES]


# ============================================================
# Specimen
# ============================================================
class Specimen(WorkflowWriteGuardMixin, TimeStampedModel):
    """
    A physical specimen and its lifecycle stage fields.

    ``status`` and the stage fields are written only by
    labops_core.services.specimen_lifecycle, which bumps ``version``
    on every transition.
    """

    WORKFLOW_FIELD = "status"

    specimen_number = models.CharField(max_length=40, unique=True)
    visit_reference = models.CharField(max_length=100, db_index=True)
    specimen_type = models.CharField(max_length=40, choices=specimen_type_choices())

    status = models.CharField(
        max_length=32,
        choices=STATUS_CHOICES,
        default=INITIAL_STATE,
        db_index=True,
        editable=False,
    )
    version = models.PositiveIntegerField(default=1)

    # Collection
    collected_at = models.DateTimeField()
    collected_by = models.CharField(max_length=150)
    collection_site = models.CharField(max_length=255, blank=True)
    collection_conditions = models.TextField(blank=True)

    # Transport / receipt
    dispatched_at = models.DateTimeField(null=True, blank=True)
    dispatched_by = models.CharField(max_length=150, blank=True)
    received_at = models.DateTimeField(null=True, blank=True)
    received_by = models.CharField(max_length=150, blank=True)
    receipt_temperature = models.FloatField(null=True, blank=True)
    receipt_condition = models.CharField(max_length=50, blank=True)
    accessioned_at = models.DateTimeField(null=True, blank=True)
    accessioned_by = models.CharField(max_length=150, blank=True)

    # Acceptance / rejection
    accepted_at = models.DateTimeField(null=True, blank=True)
    accepted_by = models.CharField(max_length=150, blank=True)
    volume_received = models.FloatField(null=True, blank=True)
    required_volume = models.FloatField(null=True, blank=True)
    container_type = models.CharField(max_length=100, blank=True)
    preservative = models.CharField(max_length=100, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.CharField(max_length=150, blank=True)
    rejection_reason = models.TextField(blank=True)

    # Processing / analysis
    processing_started_at = models.DateTimeField(null=True, blank=True)
    processing_started_by = models.CharField(max_length=150, blank=True)
    processing_completed_at = models.DateTimeField(null=True, blank=True)
    aliquot_count = models.PositiveIntegerField(default=0)
    analysis_started_at = models.DateTimeField(null=True, blank=True)
    analysis_started_by = models.CharField(max_length=150, blank=True)
    analysis_completed_at = models.DateTimeField(null=True, blank=True)
    analysis_completed_by = models.CharField(max_length=150, blank=True)

    # Review
    submitted_for_review_at = models.DateTimeField(null=True, blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    reviewed_by = models.CharField(max_length=150, blank=True)
    review_comments = models.TextField(blank=True)

    # Storage / disposal
    stored_at = models.DateTimeField(null=True, blank=True)
    stored_by = models.CharField(max_length=150, blank=True)
    storage_location = models.CharField(max_length=255, blank=True)
    storage_temperature = models.CharField(max_length=50, blank=True)
    disposed_at = models.DateTimeField(null=True, blank=True)
    disposed_by = models.CharField(max_length=150, blank=True)
    disposal_method = models.CharField(max_length=100, blank=True)
    disposal_batch = models.CharField(max_length=100, blank=True)

    # Hold / recall
    status_before_hold = models.CharField(max_length=32, blank=True)
    hold_reason = models.TextField(blank=True)
    recalled_at = models.DateTimeField(null=True, blank=True)
    recalled_by = models.CharField(max_length=150, blank=True)
    recall_reason = models.TextField(blank=True)

    quality_indicators = models.JSONField(default=dict, blank=True)
    comments = models.TextField(blank=True)

    class Meta:
        ordering = ["-collected_at", "-id"]

    def __str__(self):
        return f"{self.specimen_number} [{self.status}]"


# ============================================================
# Chain of custody
# ============================================================
class CustodyEvent(AppendOnlyMixin, models.Model):
    specimen = models.ForeignKey(
        Specimen,
        on_delete=models.CASCADE,
        related_name="custody_events",
    )
    sequence = models.PositiveIntegerField()
    timestamp = models.DateTimeField()
    event = models.CharField(max_length=64)
    actor = models.CharField(max_length=150)
    description = models.TextField(blank=True)
    from_status = models.CharField(max_length=32, blank=True)
    to_status = models.CharField(max_length=32, blank=True)

    class Meta:
        ordering = ["sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["specimen", "sequence"],
                name="uniq_custody_sequence_per_specimen",
            ),
        ]

    def as_entry(self) -> CustodyEntry:
        return CustodyEntry(
            sequence=self.sequence,
            timestamp=self.timestamp,
            event=self.event,
            actor=self.actor,
            description=self.description,
            from_status=self.from_status or None,
            to_status=self.to_status or None,
        )

    def __str__(self):
        return f"{self.specimen_id}#{self.sequence} {self.event} by {self.actor}"
