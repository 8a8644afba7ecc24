# labops_core/filters.py
import django_filters as df

from .models import ControlResult, QualityControlDefinition, Specimen


class SpecimenFilter(df.FilterSet):
    status = df.CharFilter(method="filter_status")
    specimen_type = df.CharFilter(field_name="specimen_type", lookup_expr="iexact")
    visit_reference = df.CharFilter(field_name="visit_reference")
    specimen_number = df.CharFilter(field_name="specimen_number", lookup_expr="icontains")
    collected_at = df.IsoDateTimeFromToRangeFilter()

    class Meta:
        model = Specimen
        fields = ["status", "specimen_type", "visit_reference", "specimen_number", "collected_at"]

    def filter_status(self, queryset, name, value):
        return queryset.filter(status=(value or "").strip().upper())


class QualityControlDefinitionFilter(df.FilterSet):
    test_definition = df.NumberFilter(field_name="test_definition_id")
    test_code = df.CharFilter(field_name="test_definition__code", lookup_expr="iexact")
    next_due_at = df.IsoDateTimeFromToRangeFilter()

    class Meta:
        model = QualityControlDefinition
        fields = ["test_definition", "test_code", "control_level", "is_active", "last_run_passed", "next_due_at"]


class ControlResultFilter(df.FilterSet):
    outcome = df.CharFilter(field_name="outcome", lookup_expr="iexact")
    tested_at = df.IsoDateTimeFromToRangeFilter()

    class Meta:
        model = ControlResult
        fields = ["outcome", "passed", "tested_at"]
