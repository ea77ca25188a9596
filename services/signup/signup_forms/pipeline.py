"""Submission pipeline: validate, upload files, persist."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional

from django.core.files.storage import Storage, default_storage
from django.db import DatabaseError, transaction
from django.utils import timezone

from .errors import (
    FormServiceError,
    NoActiveSchema,
    PersistFailed,
    SchemaNotFound,
    SchemaWithdrawn,
    SubmissionValidationError,
    UploadFailed,
)
from .fields import FileField, FileSelection
from .models import FormSchema, SchemaSnapshot, Submission
from .store import SchemaStore
from .tasks import send_submission_confirmation
from .validation import is_blank, validate_submission

logger = logging.getLogger(__name__)


class SubmissionAttempt:
    """Tracks one run through the pipeline."""

    COLLECTING = "collecting"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    PERSISTING = "persisting"
    COMPLETE = "complete"
    FAILED = "failed"

    TRANSITIONS = {
        COLLECTING: {VALIDATING},
        VALIDATING: {UPLOADING, FAILED},
        UPLOADING: {PERSISTING, FAILED},
        PERSISTING: {COMPLETE, FAILED},
    }

    def __init__(self, form_id: uuid.UUID | str, user_id: Optional[str]) -> None:
        self.form_id = form_id
        self.user_id = user_id
        self.state = self.COLLECTING
        self.snapshot: Optional[SchemaSnapshot] = None
        self.uploaded: Dict[str, str] = {}
        self.failure: Optional[FormServiceError] = None
        self.submission: Optional[Submission] = None

    def advance(self, state: str) -> None:
        if state not in self.TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Cannot move submission attempt from {self.state} to {state}")
        logger.debug("Submission attempt for form %s: %s -> %s", self.form_id, self.state, state)
        self.state = state

    def fail(self, error: FormServiceError) -> FormServiceError:
        self.advance(self.FAILED)
        self.failure = error
        return error

    @property
    def orphaned_refs(self) -> List[str]:
        return list(self.uploaded.values())


def object_path(user_id: Optional[str], field_id: str, selection: FileSelection) -> str:
    """Storage path for an upload, namespaced by the submitting user."""

    stamp = int(timezone.now().timestamp() * 1000)
    suffix = f".{selection.extension}" if selection.extension else ""
    return f"{user_id or 'anonymous'}/{field_id}_{stamp}{suffix}"


class SubmissionPipeline:
    def __init__(self, store: Optional[SchemaStore] = None, storage: Optional[Storage] = None) -> None:
        self.store = store or SchemaStore()
        self.storage = storage or default_storage

    def submit(
        self,
        form_id: uuid.UUID | str,
        raw_input: Mapping[str, Any],
        user_id: Optional[str] = None,
    ) -> Submission:
        attempt = SubmissionAttempt(form_id, user_id)
        return self.run(attempt, self.collect(attempt), raw_input)

    def collect(self, attempt: SubmissionAttempt) -> SchemaSnapshot:
        """Capture the schema the whole attempt is checked against."""

        try:
            schema = self.store.get_schema(attempt.form_id)
        except SchemaNotFound as exc:
            raise NoActiveSchema() from exc
        if not schema.is_active:
            raise NoActiveSchema(f"Form {schema.name} is not accepting submissions.")
        attempt.snapshot = schema.snapshot()
        return attempt.snapshot

    def run(
        self, attempt: SubmissionAttempt, snapshot: SchemaSnapshot, raw_input: Mapping[str, Any]
    ) -> Submission:
        attempt.snapshot = snapshot
        attempt.advance(attempt.VALIDATING)
        result = validate_submission(snapshot.fields, raw_input)
        if not result.is_valid:
            raise attempt.fail(SubmissionValidationError(result.errors))

        attempt.advance(attempt.UPLOADING)
        data = self._upload(attempt, snapshot, raw_input)

        attempt.advance(attempt.PERSISTING)
        submission = self._persist(attempt, snapshot, data)

        attempt.advance(attempt.COMPLETE)
        attempt.submission = submission
        logger.info(
            "Submission %s stored for form %s v%s", submission.id, snapshot.form_id, snapshot.version
        )
        transaction.on_commit(lambda: _queue_confirmation(submission.id))
        return submission

    def _upload(
        self, attempt: SubmissionAttempt, snapshot: SchemaSnapshot, raw_input: Mapping[str, Any]
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for definition in snapshot.fields:
            value = raw_input.get(definition.id)
            if not isinstance(definition, FileField):
                if not is_blank(value):
                    data[definition.id] = value if isinstance(value, (bool, int, float)) else str(value)
                continue
            if not isinstance(value, FileSelection):
                continue
            try:
                if value.upload is None:
                    raise ValueError("file selection has no content")
                ref = self.storage.save(object_path(attempt.user_id, definition.id, value), value.upload)
            except Exception as exc:
                if attempt.uploaded:
                    logger.warning(
                        "Upload of %s failed; orphaned objects from this attempt: %s",
                        definition.id,
                        ", ".join(attempt.orphaned_refs),
                    )
                raise attempt.fail(UploadFailed(definition.id, cause=exc)) from exc
            attempt.uploaded[definition.id] = ref
            data[definition.id] = {
                "ref": ref,
                "name": value.name,
                "size": value.size,
                "extension": value.extension,
            }
        return data

    def _persist(
        self, attempt: SubmissionAttempt, snapshot: SchemaSnapshot, data: Dict[str, Any]
    ) -> Submission:
        allowed = set(snapshot.field_ids)
        data = {key: value for key, value in data.items() if key in allowed}
        try:
            with transaction.atomic():
                if not FormSchema.objects.select_for_update().filter(pk=snapshot.form_id).exists():
                    raise SchemaWithdrawn()
                return Submission.objects.create(
                    form_id=snapshot.form_id,
                    user_id=attempt.user_id,
                    data=data,
                    form_version=snapshot.version,
                    schema_fields=snapshot.to_payload(),
                    status=Submission.PENDING,
                )
        except SchemaWithdrawn as exc:
            self._log_orphans(attempt, "form was deleted")
            raise attempt.fail(exc)
        except DatabaseError as exc:
            logger.exception("Persisting submission for form %s failed", snapshot.form_id)
            self._log_orphans(attempt, "persist failed")
            raise attempt.fail(PersistFailed(cause=exc)) from exc

    def _log_orphans(self, attempt: SubmissionAttempt, reason: str) -> None:
        if attempt.uploaded:
            logger.warning(
                "Submission for form %s abandoned (%s); orphaned objects: %s",
                attempt.form_id,
                reason,
                ", ".join(attempt.orphaned_refs),
            )


def _queue_confirmation(submission_id: uuid.UUID) -> None:
    try:
        send_submission_confirmation.delay(str(submission_id))
    except Exception:
        logger.exception("Could not queue confirmation for submission %s", submission_id)
