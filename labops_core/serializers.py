from __future__ import annotations

from typing import Any, Dict

from rest_framework import serializers

from .models import ControlResult, CustodyEvent, QualityControlDefinition, Specimen, TestDefinition
from .qc.scheduling import validate_frequency
from .qc.westgard import format_rule_set, parse_rule_set, reference_stats_from_mapping
from .specimens.catalog import specimen_type_choices
from .workflows import allowed_next_states, permitted_states
from .workflows.state_metadata import state_color, state_label


# ===============================================================
# Helpers
# ===============================================================

class ImmutableFieldsMixin:
    """
    Blocks updates to selected fields if they appear in incoming validated data.
    """
    immutable_fields: tuple[str, ...] = ()

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        if self.instance is not None and self.immutable_fields:
            for field in self.immutable_fields:
                if field in attrs:
                    raise serializers.ValidationError(
                        {field: "This field is immutable."}
                    )
        return super().validate(attrs)


# ===============================================================
# Specimens (read side)
# ===============================================================

class SpecimenSerializer(serializers.ModelSerializer):
    status_label = serializers.SerializerMethodField()
    status_color = serializers.SerializerMethodField()
    next_states = serializers.SerializerMethodField()

    class Meta:
        model = Specimen
        fields = (
            "id",
            "specimen_number",
            "visit_reference",
            "specimen_type",
            "status",
            "status_label",
            "status_color",
            "next_states",
            "version",
            "collected_at",
            "collected_by",
            "collection_site",
            "collection_conditions",
            "dispatched_at",
            "received_at",
            "received_by",
            "receipt_temperature",
            "receipt_condition",
            "accessioned_at",
            "accepted_at",
            "accepted_by",
            "volume_received",
            "required_volume",
            "container_type",
            "preservative",
            "rejected_at",
            "rejected_by",
            "rejection_reason",
            "processing_started_at",
            "processing_completed_at",
            "aliquot_count",
            "analysis_started_at",
            "analysis_completed_at",
            "submitted_for_review_at",
            "reviewed_at",
            "reviewed_by",
            "review_comments",
            "stored_at",
            "storage_location",
            "storage_temperature",
            "disposed_at",
            "disposal_method",
            "disposal_batch",
            "status_before_hold",
            "hold_reason",
            "recalled_at",
            "recall_reason",
            "quality_indicators",
            "comments",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_status_label(self, obj) -> str:
        return state_label(obj.status)

    def get_status_color(self, obj) -> str:
        return state_color(obj.status)

    def get_next_states(self, obj) -> list[str]:
        return allowed_next_states(obj.status)


class CustodyEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = CustodyEvent
        fields = (
            "sequence",
            "timestamp",
            "event",
            "actor",
            "description",
            "from_status",
            "to_status",
        )
        read_only_fields = fields


class SpecimenNextStatesSerializer(serializers.Serializer):
    specimen_number = serializers.CharField()
    current = serializers.CharField()
    suggested = serializers.ListField(child=serializers.CharField())
    permitted = serializers.ListField(child=serializers.CharField())

    @classmethod
    def for_specimen(cls, specimen: Specimen) -> "SpecimenNextStatesSerializer":
        return cls(
            {
                "specimen_number": specimen.specimen_number,
                "current": specimen.status,
                "suggested": allowed_next_states(specimen.status),
                "permitted": permitted_states(specimen.status),
            }
        )


# ===============================================================
# Specimen lifecycle commands (write side)
# ===============================================================

class CollectSpecimenSerializer(serializers.Serializer):
    visit_reference = serializers.CharField(max_length=100)
    specimen_type = serializers.ChoiceField(choices=specimen_type_choices())
    collection_site = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    collection_conditions = serializers.CharField(required=False, allow_blank=True, default="")


class LifecycleActionSerializer(serializers.Serializer):
    expected_version = serializers.IntegerField(required=False, min_value=1)


class ReceiveSpecimenSerializer(LifecycleActionSerializer):
    receipt_temperature = serializers.FloatField(required=False, allow_null=True, default=None)
    receipt_condition = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")


class AcceptSpecimenSerializer(LifecycleActionSerializer):
    volume_received = serializers.FloatField(allow_null=True, min_value=0)
    container_type = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    preservative = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")


class ReasonSerializer(LifecycleActionSerializer):
    reason = serializers.CharField()


class AliquotSpecimenSerializer(LifecycleActionSerializer):
    aliquot_count = serializers.IntegerField(min_value=1)


class ReviewSpecimenSerializer(LifecycleActionSerializer):
    comments = serializers.CharField(required=False, allow_blank=True, default="")


class StoreSpecimenSerializer(LifecycleActionSerializer):
    storage_location = serializers.CharField(max_length=255)
    storage_temperature = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")


class DisposeSpecimenSerializer(LifecycleActionSerializer):
    disposal_method = serializers.CharField(max_length=100)
    disposal_batch = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")


class ResumeSpecimenSerializer(LifecycleActionSerializer):
    target = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")


# ===============================================================
# Quality control
# ===============================================================

class TestDefinitionSerializer(ImmutableFieldsMixin, serializers.ModelSerializer):
    immutable_fields = ("code",)

    class Meta:
        model = TestDefinition
        fields = ("id", "code", "name", "analytes", "is_active", "created_at", "updated_at")
        read_only_fields = ("id", "created_at", "updated_at")

    def validate_analytes(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Expected an object of analyte -> {mean, stdDev}.")
        try:
            stats = reference_stats_from_mapping(value)
        except (TypeError, ValueError) as exc:
            raise serializers.ValidationError(str(exc))
        return {a: {"mean": s.mean, "stdDev": s.std_dev} for a, s in stats.items()}


class QualityControlDefinitionSerializer(ImmutableFieldsMixin, serializers.ModelSerializer):
    immutable_fields = ("test_definition",)

    test_code = serializers.CharField(source="test_definition.code", read_only=True)
    rules = serializers.SerializerMethodField()
    expected_version = serializers.IntegerField(write_only=True, required=False, min_value=1)

    class Meta:
        model = QualityControlDefinition
        fields = (
            "id",
            "test_definition",
            "test_code",
            "control_name",
            "control_level",
            "frequency",
            "westgard_rules",
            "rules",
            "next_due_at",
            "last_run_at",
            "last_run_passed",
            "version",
            "is_active",
            "expected_version",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "next_due_at",
            "last_run_at",
            "last_run_passed",
            "version",
            "created_at",
            "updated_at",
        )

    def get_rules(self, obj) -> list[str]:
        return list(obj.rule_set())

    def validate_frequency(self, value):
        try:
            return validate_frequency(value)
        except ValueError as exc:
            raise serializers.ValidationError(str(exc))

    def validate_westgard_rules(self, value):
        try:
            rules = parse_rule_set(value)
        except ValueError as exc:
            raise serializers.ValidationError(str(exc))
        if not rules:
            raise serializers.ValidationError("At least one Westgard rule is required.")
        return format_rule_set(rules)


class ControlResultSerializer(serializers.ModelSerializer):
    class Meta:
        model = ControlResult
        fields = (
            "id",
            "definition",
            "sequence",
            "tested_at",
            "values",
            "passed",
            "outcome",
            "violations",
            "not_evaluated",
            "recorded_by",
            "comments",
            "created_at",
        )
        read_only_fields = fields


class RecordControlResultSerializer(serializers.Serializer):
    values = serializers.DictField(child=serializers.FloatField(), allow_empty=False)
    comments = serializers.CharField(required=False, allow_blank=True, default="")
    expected_version = serializers.IntegerField(required=False, min_value=1)
