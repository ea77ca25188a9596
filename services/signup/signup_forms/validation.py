"""Pure validation of form schemas and of submissions against them."""
from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .errors import SchemaConstructionError
from .fields import (
    DROPDOWN,
    FILE,
    FIELD_CLASSES,
    TEXT_LIKE_TYPES,
    DropdownField,
    FieldDefinition,
    FileField,
    FileSelection,
    parse_field,
)

MIN_NAME_LENGTH = 3

FIELD_ID_PATTERN = re.compile(r"^[\w-]+$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[\d\s\-\+\(\)]+$")


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _field_errors(position: int, entry: Any) -> List[str]:
    if not isinstance(entry, Mapping):
        return [f"Field {position}: must be an object"]

    errors: List[str] = []
    field_id = entry.get("id")
    named = isinstance(field_id, str) and not is_blank(field_id)
    where = f"Field '{field_id}'" if named else f"Field {position}"
    for key in ("id", "label", "type"):
        value = entry.get(key)
        if is_blank(value):
            errors.append(f"{where}: {key} is required")
        elif key != "type" and not isinstance(value, str):
            errors.append(f"{where}: {key} must be text")
    if named and not FIELD_ID_PATTERN.match(field_id):
        errors.append(f"{where}: id may only contain letters, digits, '_' and '-'")
    if "required" in entry and not isinstance(entry["required"], bool):
        errors.append(f"{where}: required must be true or false")

    field_type = entry.get("type")
    if is_blank(field_type):
        return errors
    if not isinstance(field_type, str) or field_type not in FIELD_CLASSES:
        errors.append(f"{where}: unknown type '{field_type}'")
        return errors

    if field_type in TEXT_LIKE_TYPES:
        bounds = entry.get("validation") or {}
        if not isinstance(bounds, Mapping):
            errors.append(f"{where}: validation must be an object")
            return errors
        low, high = bounds.get("min"), bounds.get("max")
        for key, value in (("min", low), ("max", high)):
            if value is not None and not _is_count(value):
                errors.append(f"{where}: validation.{key} must be a non-negative integer")
        if _is_count(low) and _is_count(high) and low > high:
            errors.append(f"{where}: validation.min cannot exceed validation.max")
    elif field_type == DROPDOWN:
        options = entry.get("options")
        if not isinstance(options, (list, tuple)) or not options:
            errors.append(f"{where}: dropdown fields need at least one option")
        elif any(not isinstance(option, str) or not option.strip() for option in options):
            errors.append(f"{where}: dropdown options cannot be blank")
    elif field_type == FILE:
        size = entry.get("maxFileSize")
        if size is not None and (not _is_count(size) or size == 0):
            errors.append(f"{where}: maxFileSize must be a positive integer")
        file_types = entry.get("fileTypes")
        if file_types is not None and (
            not isinstance(file_types, (list, tuple))
            or any(not isinstance(value, str) or not value.strip() for value in file_types)
        ):
            errors.append(f"{where}: fileTypes must be a list of extensions")
    return errors


def validate_schema(payload: Mapping[str, Any]) -> List[str]:
    """Return every structural problem of a schema payload.

    The payload uses the wire shape (``name``, ``fields``). Nothing
    short-circuits, so an author sees all problems at once.
    """

    errors: List[str] = []
    name = payload.get("name")
    name = name.strip() if isinstance(name, str) else ""
    if not name:
        errors.append("Form name is required")
    elif len(name) < MIN_NAME_LENGTH:
        errors.append(f"Form name must be at least {MIN_NAME_LENGTH} characters long")

    raw_fields = payload.get("fields")
    if not isinstance(raw_fields, (list, tuple)) or not raw_fields:
        errors.append("Form must contain at least one field")
        return errors

    for position, entry in enumerate(raw_fields, start=1):
        errors.extend(_field_errors(position, entry))

    ids = Counter(
        str(entry["id"])
        for entry in raw_fields
        if isinstance(entry, Mapping) and isinstance(entry.get("id"), str) and entry["id"].strip()
    )
    for field_id, count in ids.items():
        if count > 1:
            errors.append(f"Duplicate field id '{field_id}' used by {count} fields")
    return errors


def build_fields(payload: Mapping[str, Any]) -> Tuple[FieldDefinition, ...]:
    """Validate a schema payload and construct its typed field list."""

    errors = validate_schema(payload)
    if errors:
        raise SchemaConstructionError(errors)
    return tuple(parse_field(entry) for entry in payload["fields"])


@dataclass
class SubmissionValidation:
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _file_error(definition: FileField, value: Any) -> str | None:
    if not isinstance(value, FileSelection):
        return "Please upload a valid file"
    if not definition.accepts(value.extension):
        return f"File type must be one of: {', '.join(definition.file_types)}"
    if value.size > definition.max_file_size_bytes:
        return f"File size must be less than {definition.max_file_size}MB"
    return None


def validate_field(definition: FieldDefinition, value: Any) -> str | None:
    """Return the first problem with one answer, or ``None``."""

    if is_blank(value):
        if definition.required:
            return f"{definition.label} is required"
        return None

    if isinstance(definition, FileField):
        return _file_error(definition, value)
    if isinstance(value, FileSelection):
        return f"{definition.label} does not accept files"

    text = str(value)
    if definition.field_type == "email" and not EMAIL_PATTERN.match(text):
        return "Please enter a valid email address"
    if definition.field_type == "phone" and not PHONE_PATTERN.match(text):
        return "Please enter a valid phone number"

    bounds = getattr(definition, "validation", None)
    if bounds is not None:
        if bounds.min is not None and len(text) < bounds.min:
            return f"Minimum {bounds.min} characters required"
        if bounds.max is not None and len(text) > bounds.max:
            return f"Maximum {bounds.max} characters allowed"

    if isinstance(definition, DropdownField) and text not in definition.options:
        return f"{definition.label} must be one of the allowed options"
    return None


def validate_submission(
    fields: Sequence[FieldDefinition], raw_input: Mapping[str, Any]
) -> SubmissionValidation:
    """Check every field in schema order and collect one message per field."""

    result = SubmissionValidation()
    for definition in fields:
        message = validate_field(definition, raw_input.get(definition.id))
        if message:
            result.errors[definition.id] = message
    return result
