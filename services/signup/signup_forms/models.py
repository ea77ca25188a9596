"""Database models for department signup forms."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import List, Optional, Tuple

from django.db import models
from django.utils import timezone

from .fields import FieldDefinition, parse_field


@dataclass(frozen=True)
class SchemaSnapshot:
    """The schema exactly as it was when a submission attempt started."""

    form_id: uuid.UUID
    version: int
    department_id: str
    name: str
    fields: Tuple[FieldDefinition, ...]

    @property
    def field_ids(self) -> List[str]:
        return [definition.id for definition in self.fields]

    def to_payload(self) -> List[dict]:
        return [definition.to_payload() for definition in self.fields]


class FormSchema(models.Model):
    """A department's signup form definition."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    department_id = models.CharField(max_length=64, db_index=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    form_fields = models.JSONField(default=list, blank=True)
    version = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)
    created_by = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["department_id", "name"]
        constraints = [
            models.UniqueConstraint(
                fields=["department_id", "name"], name="unique_form_name_per_department"
            )
        ]

    def __str__(self) -> str:
        return f"{self.name} v{self.version}"

    @property
    def definitions(self) -> Tuple[FieldDefinition, ...]:
        return tuple(parse_field(entry) for entry in self.form_fields)

    def snapshot(self) -> SchemaSnapshot:
        return SchemaSnapshot(
            form_id=self.id,
            version=self.version,
            department_id=self.department_id,
            name=self.name,
            fields=self.definitions,
        )


class Submission(models.Model):
    """One user's answers to a specific version of a form."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (APPROVED, "Approved"),
        (REJECTED, "Rejected"),
    ]

    REVIEW_STATUSES = {APPROVED, REJECTED}

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    form = models.ForeignKey(FormSchema, related_name="submissions", on_delete=models.CASCADE)
    user_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    data = models.JSONField(default=dict, blank=True)
    form_version = models.PositiveIntegerField(default=1)
    schema_fields = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=PENDING)
    submitted_at = models.DateTimeField(auto_now_add=True)
    reviewed_by = models.CharField(max_length=64, blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    review_notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-submitted_at"]
        indexes = [
            models.Index(fields=["status"], name="submission_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.form_id} by {self.user_id or 'anonymous'} ({self.status})"

    def file_reference(self, field_id: str) -> Optional[str]:
        value = self.data.get(field_id)
        if isinstance(value, dict):
            return value.get("ref")
        return None

    def mark_reviewed(self, status: str, reviewer: str, notes: str = "") -> None:
        if status not in self.REVIEW_STATUSES:
            raise ValueError(f"Cannot review a submission as {status!r}")
        self.status = status
        self.reviewed_by = reviewer
        self.reviewed_at = timezone.now()
        self.review_notes = notes
        self.save(update_fields=["status", "reviewed_by", "reviewed_at", "review_notes"])
