"""Input contracts for rendering a form and collecting raw answers."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .fields import DropdownField, FieldDefinition, FileField, FileSelection

INPUT_TYPES = {
    "text": "text",
    "email": "email",
    "phone": "tel",
    "dropdown": "select",
    "file": "file",
}


def render_field(definition: FieldDefinition) -> Dict[str, Any]:
    contract: Dict[str, Any] = {
        "name": definition.id,
        "label": definition.label,
        "kind": definition.field_type,
        "input_type": INPUT_TYPES[definition.field_type],
        "required": definition.required,
    }
    if isinstance(definition, DropdownField):
        contract["placeholder"] = definition.placeholder or f"Select {definition.label.lower()}"
        contract["options"] = list(definition.options)
    elif isinstance(definition, FileField):
        contract["accept"] = ",".join(definition.extensions)
        contract["max_size_bytes"] = definition.max_file_size_bytes
    else:
        contract["placeholder"] = definition.placeholder or f"Enter {definition.label.lower()}"
        bounds = definition.validation
        if bounds is not None:
            if bounds.min is not None:
                contract["min_length"] = bounds.min
            if bounds.max is not None:
                contract["max_length"] = bounds.max
    return contract


def render_schema(fields: Sequence[FieldDefinition]) -> List[Dict[str, Any]]:
    """Describe every input in display order."""

    return [render_field(definition) for definition in fields]


def _selection(upload: Any) -> Optional[FileSelection]:
    if upload is None:
        return None
    return FileSelection(name=upload.name, size=upload.size, upload=upload)


def collect_input(
    fields: Sequence[FieldDefinition],
    data: Mapping[str, Any],
    files: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Gather the raw answer for each field from request data and uploads.

    Keys that are not fields of the form are not collected.
    """

    files = files or {}
    raw: Dict[str, Any] = {}
    for definition in fields:
        if isinstance(definition, FileField):
            raw[definition.id] = _selection(files.get(definition.id))
        else:
            raw[definition.id] = data.get(definition.id)
    return raw
