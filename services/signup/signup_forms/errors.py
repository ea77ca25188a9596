"""Error taxonomy shared by the schema store and the submission pipeline."""
from __future__ import annotations

from typing import Dict, List, Optional


class FormServiceError(Exception):
    """Base class for every failure the form core reports."""

    code = "error"
    default_detail = "Form service error."

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class SchemaConstructionError(FormServiceError):
    """A form schema is internally inconsistent and was not saved."""

    code = "invalid_schema"
    default_detail = "The form schema is invalid."

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"{self.default_detail} {len(self.errors)} problem(s) found.")


class SubmissionValidationError(FormServiceError):
    """Submitted answers violate the schema they were collected against."""

    code = "invalid_submission"
    default_detail = "The submission is invalid."

    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__()


class SchemaNotFound(FormServiceError):
    code = "not_found"
    default_detail = "No form schema is configured."


class PreconditionError(FormServiceError):
    code = "precondition_failed"


class NoActiveSchema(PreconditionError):
    code = "no_active_schema"
    default_detail = "There is no active form to submit against."


class SchemaWithdrawn(PreconditionError):
    code = "schema_withdrawn"
    default_detail = "The form was deleted while the submission was in progress."


class CollaboratorFailure(FormServiceError):
    """Storage or network failure; not correctable by the user."""

    code = "collaborator_failure"
    default_detail = "A backing service failed. Please retry."

    def __init__(self, detail: Optional[str] = None, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(detail)


class StoreUnavailable(CollaboratorFailure):
    code = "store_unavailable"
    default_detail = "The form store is unavailable."


class UploadFailed(CollaboratorFailure):
    code = "upload_failed"
    default_detail = "A file could not be uploaded. Please resubmit."

    def __init__(self, field_id: str, cause: Optional[BaseException] = None) -> None:
        self.field_id = field_id
        super().__init__(f"Upload of field '{field_id}' failed.", cause)


class PersistFailed(CollaboratorFailure):
    code = "persist_failed"
    default_detail = "The submission could not be saved. Please resubmit."


class IntegrityViolation(FormServiceError):
    """Stored data breaks an invariant the core enforces; indicates a bug."""

    code = "integrity_violation"
    default_detail = "Stored form data is inconsistent."


class FieldIdLocked(FormServiceError):
    code = "field_id_locked"
    default_detail = "Saved field ids cannot be changed."
