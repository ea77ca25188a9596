"""Route registration for the signup form service."""
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import FormSchemaViewSet, SubmissionViewSet, department_form, download_file, health

router = DefaultRouter()
router.register("forms", FormSchemaViewSet, basename="form")
router.register("submissions", SubmissionViewSet, basename="submission")

urlpatterns = [
    path("healthz/", health, name="signup-health"),
    path("departments/<str:department_id>/form/", department_form, name="department-form"),
    path("files/<str:token>/", download_file, name="submission-file-download"),
    path("", include(router.urls)),
]
