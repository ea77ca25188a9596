"""Persistence boundary for form schemas."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Optional, Tuple

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import QuerySet

from .errors import IntegrityViolation, SchemaConstructionError, SchemaNotFound, StoreUnavailable
from .models import FormSchema
from .validation import build_fields

logger = logging.getLogger(__name__)


class SchemaStore:
    """Load and save department form schemas.

    Absence of a schema is reported as :class:`SchemaNotFound`; any database
    failure is reported as :class:`StoreUnavailable` so callers can tell "not
    configured yet" apart from "cannot reach the store".
    """

    def load_schema(self, department_id: str) -> FormSchema:
        """Return the department's active schema, newest first."""

        try:
            schema = (
                FormSchema.objects.filter(department_id=department_id, is_active=True)
                .order_by("-updated_at")
                .first()
            )
        except DatabaseError as exc:
            logger.exception("Loading schema for department %s failed", department_id)
            raise StoreUnavailable(cause=exc) from exc
        if schema is None:
            raise SchemaNotFound(f"Department {department_id} has no active form.")
        return schema

    def get_schema(self, form_id: uuid.UUID | str) -> FormSchema:
        try:
            return FormSchema.objects.get(pk=form_id)
        except (FormSchema.DoesNotExist, ValidationError) as exc:
            raise SchemaNotFound(f"Form {form_id} does not exist.") from exc
        except DatabaseError as exc:
            logger.exception("Loading form %s failed", form_id)
            raise StoreUnavailable(cause=exc) from exc

    def list_schemas(self, department_id: Optional[str] = None) -> QuerySet[FormSchema]:
        queryset = FormSchema.objects.all()
        if department_id:
            queryset = queryset.filter(department_id=department_id)
        return queryset

    def save_schema(
        self, payload: Mapping[str, Any], created_by: Optional[str] = None
    ) -> Tuple[FormSchema, bool]:
        """Insert or replace the schema keyed by ``(department_id, name)``.

        Nothing is written unless the whole payload validates. Returns the
        stored schema and whether it was newly created.
        """

        department_id = str(payload.get("department_id") or "").strip()
        try:
            definitions = build_fields(payload)
        except SchemaConstructionError as exc:
            if not department_id:
                exc.errors.insert(0, "Department is required")
            raise
        if not department_id:
            raise SchemaConstructionError(["Department is required"])

        values = {
            "description": str(payload.get("description") or ""),
            "form_fields": [definition.to_payload() for definition in definitions],
            "is_active": bool(payload.get("is_active", True)),
        }
        name = payload["name"].strip()

        try:
            try:
                return self._upsert(department_id, name, values, created_by)
            except IntegrityError:
                # Lost an insert race on (department_id, name): the row now
                # exists, so the second attempt takes the update path.
                logger.info("Concurrent create of form %r in %s, retrying as update", name, department_id)
                return self._upsert(department_id, name, values, created_by)
        except IntegrityError as exc:
            logger.error("Form %r in %s violates the store constraints", name, department_id)
            raise IntegrityViolation(f"Form '{name}' could not be stored consistently.") from exc
        except DatabaseError as exc:
            logger.exception("Saving form %r for department %s failed", name, department_id)
            raise StoreUnavailable(cause=exc) from exc

    def _upsert(
        self, department_id: str, name: str, values: Mapping[str, Any], created_by: Optional[str]
    ) -> Tuple[FormSchema, bool]:
        with transaction.atomic():
            schema = (
                FormSchema.objects.select_for_update()
                .filter(department_id=department_id, name=name)
                .first()
            )
            if schema is None:
                schema = FormSchema.objects.create(
                    department_id=department_id,
                    name=name,
                    created_by=created_by or "",
                    **values,
                )
                logger.info("Created form %s (%s) for department %s", schema.id, name, department_id)
                return schema, True

            unchanged = all(getattr(schema, attr) == value for attr, value in values.items())
            if unchanged:
                return schema, False
            for attr, value in values.items():
                setattr(schema, attr, value)
            schema.version += 1
            schema.save(update_fields=[*values.keys(), "version", "updated_at"])
            logger.info("Replaced form %s with version %s", schema.id, schema.version)
            return schema, False

    def delete_schema(self, schema: FormSchema) -> int:
        """Delete a schema; its submissions go with it."""

        form_id = schema.pk
        try:
            with transaction.atomic():
                cascaded = schema.submissions.count()
                schema.delete()
        except DatabaseError as exc:
            logger.exception("Deleting form %s failed", form_id)
            raise StoreUnavailable(cause=exc) from exc
        logger.info("Deleted form %s and %s submission(s)", form_id, cascaded)
        return cascaded
