"""Serializers for the signup form service."""
from __future__ import annotations

from rest_framework import serializers

from .models import FormSchema, Submission


class FormSchemaSerializer(serializers.ModelSerializer):
    fields = serializers.JSONField(source="form_fields", read_only=True)

    class Meta:
        model = FormSchema
        fields = [
            "id",
            "department_id",
            "name",
            "description",
            "version",
            "is_active",
            "created_by",
            "created_at",
            "updated_at",
            "fields",
        ]
        read_only_fields = fields


class FormSchemaWriteSerializer(serializers.Serializer):
    """Envelope of a save request.

    Only types are checked here; structural rules are enforced by the schema
    validator so the author receives every problem in one response.
    """

    department_id = serializers.CharField(required=False, allow_blank=True, default="", max_length=64)
    name = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    is_active = serializers.BooleanField(required=False, default=True)
    fields = serializers.JSONField(required=False, default=list)


class SubmissionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Submission
        fields = [
            "id",
            "form",
            "user_id",
            "data",
            "form_version",
            "schema_fields",
            "status",
            "submitted_at",
            "reviewed_by",
            "reviewed_at",
            "review_notes",
        ]
        read_only_fields = fields


class ReviewSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")
