# labops_core/admin.py

from django.contrib import admin

from .models import ControlResult, CustodyEvent, QualityControlDefinition, Specimen, TestDefinition


class ReadOnlyAdminMixin:
    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================
# Chain of custody (READ-ONLY AUDIT LOG)
# =============================================================

class CustodyEventInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = CustodyEvent
    extra = 0
    ordering = ("sequence",)
    fields = ("sequence", "timestamp", "event", "actor", "from_status", "to_status", "description")
    readonly_fields = fields


@admin.register(CustodyEvent)
class CustodyEventAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("specimen", "sequence", "event", "actor", "from_status", "to_status", "timestamp")
    list_filter = ("event", "to_status")
    search_fields = ("specimen__specimen_number", "actor")
    ordering = ("-timestamp", "-id")
    readonly_fields = [f.name for f in CustodyEvent._meta.fields]


# =============================================================
# Specimens (status changes only through the lifecycle services)
# =============================================================

@admin.register(Specimen)
class SpecimenAdmin(admin.ModelAdmin):
    list_display = (
        "specimen_number",
        "specimen_type",
        "status",
        "visit_reference",
        "collected_at",
        "collected_by",
    )
    list_filter = ("status", "specimen_type")
    search_fields = ("specimen_number", "visit_reference")
    ordering = ("-collected_at", "-id")
    readonly_fields = ("specimen_number", "status", "version", "status_before_hold", "created_at", "updated_at")
    inlines = (CustodyEventInline,)

    def has_add_permission(self, request):
        return False


# =============================================================
# Quality control
# =============================================================

@admin.register(TestDefinition)
class TestDefinitionAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "is_active")
    search_fields = ("code", "name")
    list_filter = ("is_active",)


class ControlResultInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = ControlResult
    extra = 0
    ordering = ("-sequence",)
    fields = ("sequence", "tested_at", "outcome", "values", "violations", "recorded_by")
    readonly_fields = fields


@admin.register(QualityControlDefinition)
class QualityControlDefinitionAdmin(admin.ModelAdmin):
    list_display = (
        "control_name",
        "test_definition",
        "control_level",
        "westgard_rules",
        "next_due_at",
        "last_run_passed",
        "is_active",
    )
    list_filter = ("is_active", "last_run_passed", "control_level")
    search_fields = ("control_name", "test_definition__code")
    readonly_fields = ("next_due_at", "last_run_at", "last_run_passed", "version", "created_at", "updated_at")
    inlines = (ControlResultInline,)
