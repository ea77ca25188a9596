"""API views for the signup form service."""
from __future__ import annotations

import logging
from typing import List, Tuple

from django.core import signing
from django.core.files.storage import default_storage
from django.http import FileResponse
from django.urls import reverse
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action, api_view
from rest_framework.exceptions import NotFound
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .authentication import IsAdminRole
from .errors import (
    CollaboratorFailure,
    FieldIdLocked,
    FormServiceError,
    IntegrityViolation,
    PreconditionError,
    SchemaConstructionError,
    SchemaNotFound,
    SubmissionValidationError,
    UploadFailed,
)
from .files import resolve_file, sign_file
from .models import FormSchema, Submission
from .pipeline import SubmissionAttempt, SubmissionPipeline
from .rendering import collect_input, render_schema
from .serializers import (
    FormSchemaSerializer,
    FormSchemaWriteSerializer,
    ReviewSerializer,
    SubmissionSerializer,
)
from .store import SchemaStore

logger = logging.getLogger(__name__)

ERROR_STATUS: List[Tuple[type, int]] = [
    (SchemaConstructionError, status.HTTP_400_BAD_REQUEST),
    (SubmissionValidationError, status.HTTP_400_BAD_REQUEST),
    (SchemaNotFound, status.HTTP_404_NOT_FOUND),
    (PreconditionError, status.HTTP_409_CONFLICT),
    (FieldIdLocked, status.HTTP_409_CONFLICT),
    (UploadFailed, status.HTTP_502_BAD_GATEWAY),
    (CollaboratorFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
    (IntegrityViolation, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def api_exception_handler(exc, context):  # type: ignore[no-untyped-def]
    """Render form-core errors as tagged responses; defer the rest to DRF."""

    if not isinstance(exc, FormServiceError):
        return exception_handler(exc, context)

    status_code = next(
        (code for error_class, code in ERROR_STATUS if isinstance(exc, error_class)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    body = {"code": exc.code, "detail": exc.detail}
    if isinstance(exc, (SchemaConstructionError, SubmissionValidationError)):
        body["errors"] = exc.errors
    if isinstance(exc, UploadFailed):
        body["field"] = exc.field_id
    if isinstance(exc, IntegrityViolation):
        logger.error("Integrity violation: %s", exc.detail)
    return Response(body, status=status_code)


def _user_id(request: Request):  # type: ignore[no-untyped-def]
    return getattr(request.user, "id", None) if request.user.is_authenticated else None


class FormSchemaViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    queryset = FormSchema.objects.all()
    serializer_class = FormSchemaSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["name", "description"]
    ordering_fields = ["name", "updated_at"]
    ordering = ["name"]
    store = SchemaStore()

    def get_permissions(self):  # type: ignore[override]
        if self.action in {"create", "destroy"}:
            return [IsAdminRole()]
        return super().get_permissions()

    def get_queryset(self):  # type: ignore[override]
        return self.store.list_schemas(self.request.query_params.get("department_id"))

    def create(self, request: Request, *args, **kwargs):  # type: ignore[override]
        """Insert a form or replace the one with the same department and name."""

        payload = FormSchemaWriteSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        schema, created = self.store.save_schema(payload.validated_data, created_by=_user_id(request))
        serializer = self.get_serializer(schema)
        return Response(
            serializer.data, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )

    def perform_destroy(self, instance: FormSchema) -> None:
        self.store.delete_schema(instance)

    @action(detail=True, methods=["get"], url_path="render")
    def inputs(self, request, *args, **kwargs):  # type: ignore[override]
        """Describe the inputs a client should render for this form."""

        schema = self.get_object()
        return Response({"form": str(schema.id), "inputs": render_schema(schema.definitions)})

    @action(
        detail=True,
        methods=["post"],
        url_path="submit",
        parser_classes=[MultiPartParser, FormParser, JSONParser],
    )
    def submit(self, request: Request, pk=None):  # type: ignore[override]
        pipeline = SubmissionPipeline(store=self.store)
        attempt = SubmissionAttempt(pk, _user_id(request))
        snapshot = pipeline.collect(attempt)
        raw_input = collect_input(snapshot.fields, request.data, request.FILES)
        submission = pipeline.run(attempt, snapshot, raw_input)
        return Response(SubmissionSerializer(submission).data, status=status.HTTP_201_CREATED)


class SubmissionViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Submission.objects.select_related("form").all()
    serializer_class = SubmissionSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [OrderingFilter]
    ordering_fields = ["submitted_at", "status"]
    ordering = ["-submitted_at"]

    def get_permissions(self):  # type: ignore[override]
        if self.action in {"approve", "reject"}:
            return [IsAdminRole()]
        return super().get_permissions()

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset()
        if not getattr(self.request.user, "is_admin", False):
            queryset = queryset.filter(user_id=self.request.user.id)
        form_id = self.request.query_params.get("form")
        if form_id:
            queryset = queryset.filter(form_id=form_id)
        status_value = self.request.query_params.get("status")
        if status_value:
            queryset = queryset.filter(status=status_value)
        return queryset

    def _review(self, request: Request, status_value: str) -> Response:
        submission = self.get_object()
        review = ReviewSerializer(data=request.data)
        review.is_valid(raise_exception=True)
        submission.mark_reviewed(status_value, request.user.id, review.validated_data["notes"])
        logger.info("Submission %s %s by %s", submission.id, status_value, request.user.id)
        return Response(self.get_serializer(submission).data)

    @action(detail=True, methods=["post"], url_path="approve")
    def approve(self, request, *args, **kwargs):  # type: ignore[override]
        return self._review(request, Submission.APPROVED)

    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request, *args, **kwargs):  # type: ignore[override]
        return self._review(request, Submission.REJECTED)

    @action(detail=True, methods=["get"], url_path=r"files/(?P<field_id>[\w-]+)")
    def file_url(self, request, field_id=None, *args, **kwargs):  # type: ignore[override]
        """Issue a time-limited download link for one uploaded file."""

        submission = self.get_object()
        ref = submission.file_reference(field_id)
        if ref is None:
            raise NotFound(f"Submission has no file for '{field_id}'.")
        token = sign_file(ref, submission.data[field_id].get("name", ""))
        url = request.build_absolute_uri(reverse("submission-file-download", args=[token]))
        return Response({"field": field_id, "url": url})


@api_view(["GET"])
def department_form(request: Request, department_id: str) -> Response:
    """Active form for a department, with the inputs to render."""

    schema = SchemaStore().load_schema(department_id)
    return Response(
        {
            "form": FormSchemaSerializer(schema).data,
            "inputs": render_schema(schema.definitions),
        }
    )


@api_view(["GET"])
def download_file(request: Request, token: str):  # type: ignore[override]
    try:
        payload = resolve_file(token)
    except signing.SignatureExpired:
        return Response({"detail": "This download link has expired."}, status=status.HTTP_410_GONE)
    except signing.BadSignature as exc:
        raise NotFound("Unknown download link.") from exc
    if not default_storage.exists(payload["ref"]):
        raise NotFound("The file is no longer available.")
    return FileResponse(
        default_storage.open(payload["ref"], "rb"),
        as_attachment=True,
        filename=payload.get("name") or payload["ref"].rsplit("/", 1)[-1],
    )


@api_view(["GET"])
def health(request):  # type: ignore[override]
    """Readiness endpoint for orchestration tooling."""

    return Response({"status": "ok"})
