# labops_core/migrations/0001_initial.py

import django.db.models.deletion
from django.db import migrations, models


SPECIMEN_TYPE_CHOICES = [
    ("WHOLE_BLOOD", "Whole Blood"),
    ("SERUM", "Serum"),
    ("PLASMA", "Plasma"),
    ("RANDOM_URINE", "Random Urine"),
    ("FIRST_MORNING_URINE", "First Morning Urine"),
    ("MIDSTREAM_URINE", "Midstream Urine"),
    ("TWENTY_FOUR_HOUR_URINE", "24-Hour Urine"),
    ("CEREBROSPINAL_FLUID", "Cerebrospinal Fluid"),
    ("SYNOVIAL_FLUID", "Synovial Fluid"),
    ("PLEURAL_FLUID", "Pleural Fluid"),
    ("ASCITIC_FLUID", "Ascitic Fluid"),
    ("THROAT_SWAB", "Throat Swab"),
    ("NASAL_SWAB", "Nasal Swab"),
    ("WOUND_SWAB", "Wound Swab"),
    ("VAGINAL_SWAB", "Vaginal Swab"),
    ("STOOL", "Stool"),
    ("SPUTUM", "Sputum"),
    ("TISSUE_BIOPSY", "Tissue Biopsy"),
    ("SALIVA", "Saliva"),
    ("HAIR", "Hair"),
    ("NAIL", "Nail"),
]

STATUS_CHOICES = [
    ("COLLECTED", "Collected"),
    ("IN_TRANSIT", "In Transit"),
    ("RECEIVED", "Received"),
    ("ACCESSIONED", "Accessioned"),
    ("ACCEPTED", "Accepted"),
    ("REJECTED", "Rejected"),
    ("PROCESSING", "Processing"),
    ("ALIQUOTED", "Aliquoted"),
    ("IN_ANALYSIS", "In Analysis"),
    ("ANALYSIS_COMPLETE", "Analysis Complete"),
    ("UNDER_REVIEW", "Under Review"),
    ("REVIEWED", "Reviewed"),
    ("STORED", "Stored"),
    ("DISPOSED", "Disposed"),
    ("ON_HOLD", "On Hold"),
    ("RECALLED", "Recalled"),
]


def _stage(name):
    return [
        (f"{name}_at", models.DateTimeField(blank=True, null=True)),
        (f"{name}_by", models.CharField(blank=True, max_length=150)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Specimen",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("specimen_number", models.CharField(max_length=40, unique=True)),
                ("visit_reference", models.CharField(db_index=True, max_length=100)),
                ("specimen_type", models.CharField(choices=SPECIMEN_TYPE_CHOICES, max_length=40)),
                ("status", models.CharField(choices=STATUS_CHOICES, db_index=True, default="COLLECTED", editable=False, max_length=32)),
                ("version", models.PositiveIntegerField(default=1)),
                ("collected_at", models.DateTimeField()),
                ("collected_by", models.CharField(max_length=150)),
                ("collection_site", models.CharField(blank=True, max_length=255)),
                ("collection_conditions", models.TextField(blank=True)),
                *_stage("dispatched"),
                *_stage("received"),
                ("receipt_temperature", models.FloatField(blank=True, null=True)),
                ("receipt_condition", models.CharField(blank=True, max_length=50)),
                *_stage("accessioned"),
                *_stage("accepted"),
                ("volume_received", models.FloatField(blank=True, null=True)),
                ("required_volume", models.FloatField(blank=True, null=True)),
                ("container_type", models.CharField(blank=True, max_length=100)),
                ("preservative", models.CharField(blank=True, max_length=100)),
                *_stage("rejected"),
                ("rejection_reason", models.TextField(blank=True)),
                *_stage("processing_started"),
                ("processing_completed_at", models.DateTimeField(blank=True, null=True)),
                ("aliquot_count", models.PositiveIntegerField(default=0)),
                *_stage("analysis_started"),
                *_stage("analysis_completed"),
                ("submitted_for_review_at", models.DateTimeField(blank=True, null=True)),
                *_stage("reviewed"),
                ("review_comments", models.TextField(blank=True)),
                *_stage("stored"),
                ("storage_location", models.CharField(blank=True, max_length=255)),
                ("storage_temperature", models.CharField(blank=True, max_length=50)),
                *_stage("disposed"),
                ("disposal_method", models.CharField(blank=True, max_length=100)),
                ("disposal_batch", models.CharField(blank=True, max_length=100)),
                ("status_before_hold", models.CharField(blank=True, max_length=32)),
                ("hold_reason", models.TextField(blank=True)),
                *_stage("recalled"),
                ("recall_reason", models.TextField(blank=True)),
                ("quality_indicators", models.JSONField(blank=True, default=dict)),
                ("comments", models.TextField(blank=True)),
            ],
            options={
                "ordering": ["-collected_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="CustodyEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sequence", models.PositiveIntegerField()),
                ("timestamp", models.DateTimeField()),
                ("event", models.CharField(max_length=64)),
                ("actor", models.CharField(max_length=150)),
                ("description", models.TextField(blank=True)),
                ("from_status", models.CharField(blank=True, max_length=32)),
                ("to_status", models.CharField(blank=True, max_length=32)),
                ("specimen", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="custody_events", to="labops_core.specimen")),
            ],
            options={
                "ordering": ["sequence"],
            },
        ),
        migrations.AddConstraint(
            model_name="custodyevent",
            constraint=models.UniqueConstraint(fields=("specimen", "sequence"), name="uniq_custody_sequence_per_specimen"),
        ),
        migrations.CreateModel(
            name="TestDefinition",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.CharField(max_length=50, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("analytes", models.JSONField(blank=True, default=dict)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["code"],
            },
        ),
        migrations.CreateModel(
            name="QualityControlDefinition",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("control_name", models.CharField(max_length=255)),
                ("control_level", models.CharField(max_length=20)),
                ("frequency", models.JSONField(default=dict)),
                ("westgard_rules", models.CharField(max_length=100)),
                ("next_due_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("last_run_at", models.DateTimeField(blank=True, null=True)),
                ("last_run_passed", models.BooleanField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=1)),
                ("is_active", models.BooleanField(default=True)),
                ("test_definition", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="qc_definitions", to="labops_core.testdefinition")),
            ],
            options={
                "ordering": ["next_due_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="ControlResult",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sequence", models.PositiveIntegerField()),
                ("tested_at", models.DateTimeField()),
                ("values", models.JSONField(default=dict)),
                ("passed", models.BooleanField(default=False)),
                ("outcome", models.CharField(choices=[("PASSED", "Passed"), ("FAILED", "Failed"), ("INDETERMINATE", "Indeterminate")], max_length=20)),
                ("violations", models.JSONField(blank=True, default=list)),
                ("not_evaluated", models.JSONField(blank=True, default=list)),
                ("recorded_by", models.CharField(max_length=150)),
                ("comments", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("definition", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="results", to="labops_core.qualitycontroldefinition")),
            ],
            options={
                "ordering": ["sequence"],
            },
        ),
        migrations.AddConstraint(
            model_name="controlresult",
            constraint=models.UniqueConstraint(fields=("definition", "sequence"), name="uniq_control_result_sequence"),
        ),
    ]
