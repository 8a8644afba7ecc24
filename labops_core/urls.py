# labops_core/urls.py

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    QualityControlDefinitionViewSet,
    SpecimenViewSet,
    SpecimenWorkflowDefinitionView,
    TestDefinitionViewSet,
)

app_name = "labops_core"

router = DefaultRouter()
router.register(r"specimens", SpecimenViewSet, basename="specimen")
router.register(r"test-definitions", TestDefinitionViewSet, basename="test-definition")
router.register(r"qc-definitions", QualityControlDefinitionViewSet, basename="qc-definition")

urlpatterns = [
    path(
        "workflows/specimen/",
        SpecimenWorkflowDefinitionView.as_view(),
        name="specimen-workflow-definition",
    ),
    path("", include(router.urls)),
]
