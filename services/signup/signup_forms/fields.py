"""Field definitions for department signup forms."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple

from django.conf import settings

TEXT = "text"
EMAIL = "email"
PHONE = "phone"
DROPDOWN = "dropdown"
FILE = "file"

FIELD_TYPES = [
    (TEXT, "Text"),
    (EMAIL, "Email"),
    (PHONE, "Phone"),
    (DROPDOWN, "Dropdown"),
    (FILE, "File Upload"),
]

TEXT_LIKE_TYPES = frozenset({TEXT, EMAIL, PHONE})

DEFAULT_FILE_TYPES: Tuple[str, ...] = ("pdf", "docx", "image")

FILE_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "pdf": (".pdf",),
    "docx": (".docx",),
    "image": (".jpg", ".jpeg", ".png", ".gif"),
}

BYTES_PER_MEGABYTE = 1_048_576


def default_max_file_size() -> int:
    return int(getattr(settings, "FORM_DEFAULT_MAX_FILE_SIZE_MB", 5))


def extensions_for(file_types: Tuple[str, ...]) -> Tuple[str, ...]:
    """Expand categories such as ``image`` into concrete dotted extensions."""

    extensions = []
    for file_type in file_types:
        for extension in FILE_CATEGORIES.get(file_type, ("." + file_type.lstrip("."),)):
            if extension not in extensions:
                extensions.append(extension)
    return tuple(extensions)


@dataclass(frozen=True)
class LengthBounds:
    min: Optional[int] = None
    max: Optional[int] = None

    def to_payload(self) -> Dict[str, int]:
        payload: Dict[str, int] = {}
        if self.min is not None:
            payload["min"] = self.min
        if self.max is not None:
            payload["max"] = self.max
        return payload


@dataclass(frozen=True)
class FieldDefinition:
    """One configurable input of a form.

    Subclasses carry only the constraints that apply to their kind, so a text
    field can never hold dropdown options and a dropdown never holds file
    limits.
    """

    id: str
    label: str
    required: bool = False
    placeholder: str = ""

    field_type: ClassVar[str] = ""

    @property
    def is_text_like(self) -> bool:
        return self.field_type in TEXT_LIKE_TYPES

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "type": self.field_type,
            "label": self.label,
            "required": self.required,
        }
        if self.placeholder:
            payload["placeholder"] = self.placeholder
        return payload


@dataclass(frozen=True)
class TextField(FieldDefinition):
    validation: Optional[LengthBounds] = None

    field_type: ClassVar[str] = TEXT

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.validation is not None and self.validation.to_payload():
            payload["validation"] = self.validation.to_payload()
        return payload


@dataclass(frozen=True)
class EmailField(TextField):
    field_type: ClassVar[str] = EMAIL


@dataclass(frozen=True)
class PhoneField(TextField):
    field_type: ClassVar[str] = PHONE


@dataclass(frozen=True)
class DropdownField(FieldDefinition):
    options: Tuple[str, ...] = ()

    field_type: ClassVar[str] = DROPDOWN

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["options"] = list(self.options)
        return payload


@dataclass(frozen=True)
class FileField(FieldDefinition):
    file_types: Tuple[str, ...] = DEFAULT_FILE_TYPES
    max_file_size: int = field(default_factory=default_max_file_size)

    field_type: ClassVar[str] = FILE

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size * BYTES_PER_MEGABYTE

    @property
    def extensions(self) -> Tuple[str, ...]:
        return extensions_for(self.file_types)

    def accepts(self, extension: str) -> bool:
        """Match a bare extension against the allowed types and categories."""

        extension = extension.lower().lstrip(".")
        if not extension:
            return False
        return extension in self.file_types or "." + extension in self.extensions

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["fileTypes"] = list(self.file_types)
        payload["maxFileSize"] = self.max_file_size
        return payload


FIELD_CLASSES: Dict[str, type] = {
    TEXT: TextField,
    EMAIL: EmailField,
    PHONE: PhoneField,
    DROPDOWN: DropdownField,
    FILE: FileField,
}


def parse_field(payload: Mapping[str, Any]) -> FieldDefinition:
    """Build the typed definition for one already-validated wire payload.

    Attributes that do not apply to the field's type are dropped.
    """

    field_type = payload["type"]
    common = {
        "id": str(payload["id"]),
        "label": str(payload["label"]),
        "required": bool(payload.get("required", False)),
        "placeholder": str(payload.get("placeholder") or ""),
    }
    if field_type in TEXT_LIKE_TYPES:
        bounds = payload.get("validation") or {}
        validation = None
        if bounds.get("min") is not None or bounds.get("max") is not None:
            validation = LengthBounds(min=bounds.get("min"), max=bounds.get("max"))
        return FIELD_CLASSES[field_type](validation=validation, **common)
    if field_type == DROPDOWN:
        return DropdownField(options=tuple(payload.get("options") or ()), **common)
    if field_type == FILE:
        file_types = tuple(
            dict.fromkeys(str(value).lower().lstrip(".") for value in payload.get("fileTypes") or ())
        )
        return FileField(
            file_types=file_types or DEFAULT_FILE_TYPES,
            max_file_size=int(payload.get("maxFileSize") or default_max_file_size()),
            **common,
        )
    raise ValueError(f"Unknown field type: {field_type!r}")


@dataclass(frozen=True)
class FileSelection:
    """A file chosen by the submitter but not uploaded yet."""

    name: str
    size: int
    upload: Any = None

    @property
    def extension(self) -> str:
        return os.path.splitext(self.name)[1].lower().lstrip(".")
