# labops_core/views.py
"""
HTTP transport over the lifecycle and QC services.

No business rules live here: views parse input, call one service
function, and translate domain errors into HTTP responses.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import timedelta

from django.conf import settings
from django.db.models import ProtectedError
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import APIException, NotFound, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import ControlResultFilter, QualityControlDefinitionFilter, SpecimenFilter
from .models import ControlResult, QualityControlDefinition, Specimen, TestDefinition
from .serializers import (
    AcceptSpecimenSerializer,
    AliquotSpecimenSerializer,
    CollectSpecimenSerializer,
    ControlResultSerializer,
    CustodyEventSerializer,
    DisposeSpecimenSerializer,
    LifecycleActionSerializer,
    QualityControlDefinitionSerializer,
    ReasonSerializer,
    ReceiveSpecimenSerializer,
    RecordControlResultSerializer,
    ResumeSpecimenSerializer,
    ReviewSpecimenSerializer,
    SpecimenNextStatesSerializer,
    SpecimenSerializer,
    StoreSpecimenSerializer,
    TestDefinitionSerializer,
)
from .services import quality_control as qc_service
from .services import specimen_lifecycle as lifecycle
from .workflows import InvalidTransition, workflow_definition
from .workflows.exceptions import ConcurrentModification, MissingReferenceStats

logger = logging.getLogger(__name__)


# =============================================================
# Error translation
# =============================================================

class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The resource was modified concurrently; reload and retry."
    default_code = "conflict"


@contextmanager
def _domain_errors():
    """
    InvalidTransition / ValueError -> 400, ConcurrentModification -> 409,
    missing rows -> 404. MissingReferenceStats is handled by its caller.
    """
    try:
        yield
    except InvalidTransition as exc:
        raise ValidationError({"status": str(exc)})
    except ConcurrentModification as exc:
        raise Conflict(str(exc))
    except (Specimen.DoesNotExist, QualityControlDefinition.DoesNotExist) as exc:
        raise NotFound(str(exc))
    except MissingReferenceStats:
        raise
    except ValueError as exc:
        raise ValidationError({"detail": str(exc)})


def _actor(request) -> str:
    return request.user.get_username()


# =============================================================
# Workflow definition (static metadata)
# =============================================================

class SpecimenWorkflowDefinitionView(APIView):
    """
    GET /lims/workflows/specimen/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(workflow_definition())


# =============================================================
# Specimens
# =============================================================

class SpecimenViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read endpoints plus one POST action per lifecycle operation.

    ``accept`` answers 200 with status REJECTED when the acceptance
    checks fail; only an unreachable ACCEPTED state is a 400.
    """

    queryset = Specimen.objects.all()
    serializer_class = SpecimenSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = SpecimenFilter
    lookup_field = "specimen_number"
    lookup_value_regex = "[^/]+"

    def _run(self, request, specimen_number, serializer_class, operation, actor_kwarg):
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)

        kwargs = dict(serializer.validated_data)
        kwargs[actor_kwarg] = _actor(request)

        with _domain_errors():
            specimen = operation(specimen_number=specimen_number, **kwargs)

        return Response(SpecimenSerializer(specimen).data)

    @extend_schema(request=CollectSpecimenSerializer, responses=SpecimenSerializer)
    @action(detail=False, methods=["post"])
    def collect(self, request):
        serializer = CollectSpecimenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with _domain_errors():
            specimen = lifecycle.collect(collected_by=_actor(request), **serializer.validated_data)

        return Response(SpecimenSerializer(specimen).data, status=status.HTTP_201_CREATED)

    # APIView.dispatch() is taken; the route keeps the plain verb.
    @extend_schema(request=LifecycleActionSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"], url_path="dispatch", url_name="dispatch")
    def dispatch_specimen(self, request, specimen_number=None):
        return self._run(request, specimen_number, LifecycleActionSerializer, lifecycle.dispatch, "dispatched_by")

    @extend_schema(request=ReceiveSpecimenSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def receive(self, request, specimen_number=None):
        return self._run(request, specimen_number, ReceiveSpecimenSerializer, lifecycle.receive, "received_by")

    @extend_schema(request=LifecycleActionSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def accession(self, request, specimen_number=None):
        return self._run(request, specimen_number, LifecycleActionSerializer, lifecycle.accession, "accessioned_by")

    @extend_schema(request=AcceptSpecimenSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def accept(self, request, specimen_number=None):
        return self._run(request, specimen_number, AcceptSpecimenSerializer, lifecycle.accept, "accepted_by")

    @extend_schema(request=ReasonSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def reject(self, request, specimen_number=None):
        return self._run(request, specimen_number, ReasonSerializer, lifecycle.reject, "rejected_by")

    @extend_schema(request=LifecycleActionSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"], url_path="start-processing")
    def start_processing(self, request, specimen_number=None):
        return self._run(request, specimen_number, LifecycleActionSerializer, lifecycle.start_processing, "performed_by")

    @extend_schema(request=AliquotSpecimenSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def aliquot(self, request, specimen_number=None):
        return self._run(request, specimen_number, AliquotSpecimenSerializer, lifecycle.aliquot, "performed_by")

    @extend_schema(request=LifecycleActionSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"], url_path="start-analysis")
    def start_analysis(self, request, specimen_number=None):
        return self._run(request, specimen_number, LifecycleActionSerializer, lifecycle.start_analysis, "performed_by")

    @extend_schema(request=LifecycleActionSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"], url_path="complete-analysis")
    def complete_analysis(self, request, specimen_number=None):
        return self._run(request, specimen_number, LifecycleActionSerializer, lifecycle.complete_analysis, "performed_by")

    @extend_schema(request=LifecycleActionSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"], url_path="submit-for-review")
    def submit_for_review(self, request, specimen_number=None):
        return self._run(request, specimen_number, LifecycleActionSerializer, lifecycle.submit_for_review, "submitted_by")

    @extend_schema(request=ReviewSpecimenSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def review(self, request, specimen_number=None):
        return self._run(request, specimen_number, ReviewSpecimenSerializer, lifecycle.review, "reviewed_by")

    @extend_schema(request=StoreSpecimenSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def store(self, request, specimen_number=None):
        return self._run(request, specimen_number, StoreSpecimenSerializer, lifecycle.store, "stored_by")

    @extend_schema(request=DisposeSpecimenSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def dispose(self, request, specimen_number=None):
        return self._run(request, specimen_number, DisposeSpecimenSerializer, lifecycle.dispose, "disposed_by")

    @extend_schema(request=ReasonSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def hold(self, request, specimen_number=None):
        return self._run(request, specimen_number, ReasonSerializer, lifecycle.hold, "held_by")

    @extend_schema(request=ResumeSpecimenSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def resume(self, request, specimen_number=None):
        return self._run(request, specimen_number, ResumeSpecimenSerializer, lifecycle.resume, "resumed_by")

    @extend_schema(request=ReasonSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def recall(self, request, specimen_number=None):
        return self._run(request, specimen_number, ReasonSerializer, lifecycle.recall, "recalled_by")

    @extend_schema(responses=CustodyEventSerializer(many=True))
    @action(detail=True, methods=["get"])
    def custody(self, request, specimen_number=None):
        specimen = self.get_object()
        events = specimen.custody_events.order_by("sequence")
        return Response(CustodyEventSerializer(events, many=True).data)

    @extend_schema(responses=SpecimenNextStatesSerializer)
    @action(detail=True, methods=["get"], url_path="next")
    def next_states(self, request, specimen_number=None):
        specimen = self.get_object()
        return Response(SpecimenNextStatesSerializer.for_specimen(specimen).data)


# =============================================================
# Test definitions
# =============================================================

class TestDefinitionViewSet(viewsets.ModelViewSet):
    queryset = TestDefinition.objects.all().order_by("code", "id")
    serializer_class = TestDefinitionSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ["code", "is_active"]

    def perform_create(self, serializer):
        data = dict(serializer.validated_data)
        data.pop("is_active", None)
        with _domain_errors():
            serializer.instance = qc_service.create_test_definition(**data)

    def destroy(self, request, *args, **kwargs):
        try:
            return super().destroy(request, *args, **kwargs)
        except ProtectedError:
            raise Conflict("Test definition is referenced by QC definitions; deactivate it instead.")


# =============================================================
# QC definitions and control results
# =============================================================

class QualityControlDefinitionViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = QualityControlDefinition.objects.select_related("test_definition").all()
    serializer_class = QualityControlDefinitionSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = QualityControlDefinitionFilter

    def perform_create(self, serializer):
        data = dict(serializer.validated_data)
        data.pop("expected_version", None)
        data.pop("is_active", None)
        with _domain_errors():
            serializer.instance = qc_service.create_qc_definition(**data)

    def perform_update(self, serializer):
        changes = dict(serializer.validated_data)
        expected = changes.pop("expected_version", None)
        with _domain_errors():
            serializer.instance = qc_service.update_qc_definition(
                definition_id=serializer.instance.pk,
                changes=changes,
                expected_version=expected,
            )

    @extend_schema(
        methods=["post"],
        request=RecordControlResultSerializer,
        responses={201: ControlResultSerializer},
    )
    @extend_schema(methods=["get"], responses=ControlResultSerializer(many=True))
    @action(detail=True, methods=["get", "post"])
    def results(self, request, pk=None):
        definition = get_object_or_404(QualityControlDefinition, pk=pk)

        if request.method == "GET":
            qs = ControlResultFilter(
                request.query_params,
                queryset=qc_service.control_history(definition_id=definition.pk),
            ).qs
            page = self.paginate_queryset(qs)
            if page is not None:
                return self.get_paginated_response(ControlResultSerializer(page, many=True).data)
            return Response(ControlResultSerializer(qs, many=True).data)

        serializer = RecordControlResultSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            with _domain_errors():
                result = qc_service.record_control_result(
                    definition_id=definition.pk,
                    recorded_by=_actor(request),
                    **serializer.validated_data,
                )
        except MissingReferenceStats as exc:
            return Response(
                {
                    "detail": str(exc),
                    "analytes": exc.analytes,
                    "result": ControlResultSerializer(exc.result).data if exc.result else None,
                },
                status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            )

        return Response(ControlResultSerializer(result).data, status=status.HTTP_201_CREATED)

    @extend_schema(responses=QualityControlDefinitionSerializer(many=True))
    @action(detail=False, methods=["get"])
    def due(self, request):
        raw = request.query_params.get("hours")
        try:
            hours = float(raw) if raw not in (None, "") else float(settings.QC_REMINDER_HORIZON_HOURS)
        except ValueError:
            raise ValidationError({"hours": "Must be a number."})

        qs = qc_service.due_definitions(horizon=timedelta(hours=hours))
        return Response(QualityControlDefinitionSerializer(qs, many=True).data)
