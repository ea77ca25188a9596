"""Editing session over a form's field list."""
from __future__ import annotations

import copy
import re
from typing import Any, Dict, Iterable, List, Optional

from .errors import FieldIdLocked
from .fields import DEFAULT_FILE_TYPES, DROPDOWN, FIELD_CLASSES, FILE, default_max_file_size

WHITESPACE = re.compile(r"\s+")


def normalize_field_id(value: str) -> str:
    return WHITESPACE.sub("_", value.strip().lower())


class SchemaEditor:
    """Mutable working copy of a field list between loads and saves.

    Ids of fields that came from a saved schema are locked: submissions are
    keyed by them, so an author has to remove and re-add a field instead of
    renaming it.
    """

    def __init__(self, fields: Optional[Iterable[Dict[str, Any]]] = None) -> None:
        self.fields: List[Dict[str, Any]] = [copy.deepcopy(dict(entry)) for entry in fields or ()]
        self.locked_ids = {entry["id"] for entry in self.fields if entry.get("id")}
        self._counter = len(self.fields)

    @classmethod
    def for_schema(cls, schema) -> "SchemaEditor":
        return cls(schema.form_fields)

    def _index(self, field_id: str) -> int:
        for index, entry in enumerate(self.fields):
            if entry.get("id") == field_id:
                return index
        raise KeyError(field_id)

    def _next_id(self, field_type: str) -> str:
        taken = {entry.get("id") for entry in self.fields}
        while True:
            self._counter += 1
            candidate = f"{field_type}_field_{self._counter}"
            if candidate not in taken:
                return candidate

    def add_field(self, field_type: str, **attrs: Any) -> Dict[str, Any]:
        if field_type not in FIELD_CLASSES:
            raise ValueError(f"Unknown field type: {field_type!r}")
        explicit_id = attrs.pop("id", None)
        entry: Dict[str, Any] = {
            "id": normalize_field_id(explicit_id) if explicit_id else self._next_id(field_type),
            "type": field_type,
            "label": f"{field_type.capitalize()} Field",
            "required": False,
        }
        if field_type == DROPDOWN:
            entry["options"] = ["Option 1", "Option 2"]
        elif field_type == FILE:
            entry["fileTypes"] = list(DEFAULT_FILE_TYPES)
            entry["maxFileSize"] = default_max_file_size()
        entry.update(attrs)
        self.fields.append(entry)
        return entry

    def update_field(self, field_id: str, **changes: Any) -> Dict[str, Any]:
        entry = self.fields[self._index(field_id)]
        new_id = changes.get("id")
        if new_id is not None:
            new_id = normalize_field_id(new_id)
            if new_id != field_id and field_id in self.locked_ids:
                raise FieldIdLocked(f"Field '{field_id}' is saved and cannot be renamed.")
            changes["id"] = new_id
        entry.update(changes)
        return entry

    def remove_field(self, field_id: str) -> None:
        del self.fields[self._index(field_id)]

    def move_field(self, field_id: str, index: int) -> None:
        entry = self.fields.pop(self._index(field_id))
        self.fields.insert(max(0, min(index, len(self.fields))), entry)

    def toggle_required(self, field_id: str) -> bool:
        entry = self.fields[self._index(field_id)]
        entry["required"] = not entry.get("required", False)
        return entry["required"]

    def to_payload(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self.fields)
