# labops_core/models/quality_control.py

from django.db import models

from labops_core.qc.westgard import parse_rule_set, reference_stats_from_mapping
from labops_core.workflows.guards import AppendOnlyMixin

from .core import TimeStampedModel


# ============================================================
# Test definition (reference statistics provider)
# ============================================================
class TestDefinition(TimeStampedModel):
    """
    ``analytes`` maps analyte name -> {"mean": float, "stdDev": float}.
    """

    __test__ = False  # not a pytest class

    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=255)
    analytes = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["code"]

    def reference_stats(self):
        return reference_stats_from_mapping(self.analytes or {})

    def __str__(self):
        return f"{self.code} - {self.name}"


# ============================================================
# QC definition
# ============================================================
class QualityControlDefinition(TimeStampedModel):
    test_definition = models.ForeignKey(
        TestDefinition,
        on_delete=models.PROTECT,
        related_name="qc_definitions",
    )
    control_name = models.CharField(max_length=255)
    control_level = models.CharField(max_length=20)
    frequency = models.JSONField(default=dict)
    westgard_rules = models.CharField(max_length=100)
    next_due_at = models.DateTimeField(null=True, blank=True, db_index=True)
    last_run_at = models.DateTimeField(null=True, blank=True)
    last_run_passed = models.BooleanField(null=True, blank=True)
    version = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["next_due_at", "id"]

    def rule_set(self):
        return parse_rule_set(self.westgard_rules)

    def __str__(self):
        return f"{self.control_name} (level {self.control_level})"


# ============================================================
# Control results (append-only series)
# ============================================================
class ControlResult(AppendOnlyMixin, models.Model):
    OUTCOME_PASSED = "PASSED"
    OUTCOME_FAILED = "FAILED"
    OUTCOME_INDETERMINATE = "INDETERMINATE"

    OUTCOME_CHOICES = [
        (OUTCOME_PASSED, "Passed"),
        (OUTCOME_FAILED, "Failed"),
        (OUTCOME_INDETERMINATE, "Indeterminate"),
    ]

    definition = models.ForeignKey(
        QualityControlDefinition,
        on_delete=models.CASCADE,
        related_name="results",
    )
    sequence = models.PositiveIntegerField()
    tested_at = models.DateTimeField()
    values = models.JSONField(default=dict)
    passed = models.BooleanField(default=False)
    outcome = models.CharField(max_length=20, choices=OUTCOME_CHOICES)
    violations = models.JSONField(default=list, blank=True)
    not_evaluated = models.JSONField(default=list, blank=True)
    recorded_by = models.CharField(max_length=150)
    comments = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["definition", "sequence"],
                name="uniq_control_result_sequence",
            ),
        ]

    def __str__(self):
        return f"{self.definition_id}#{self.sequence} {self.outcome}"
