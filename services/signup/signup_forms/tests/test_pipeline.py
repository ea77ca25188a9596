"""Tests for the submission pipeline."""
from __future__ import annotations

from unittest import mock

from django.core import mail
from django.core.files.storage import InMemoryStorage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import OperationalError
from django.test import TestCase

from signup_forms.errors import (
    NoActiveSchema,
    PersistFailed,
    SchemaWithdrawn,
    SubmissionValidationError,
    UploadFailed,
)
from signup_forms.fields import FileSelection
from signup_forms.models import FormSchema, Submission
from signup_forms.pipeline import SubmissionAttempt, SubmissionPipeline
from signup_forms.store import SchemaStore
from signup_forms.tasks import send_submission_confirmation

MB = 1_048_576


def upload(name: str, content: bytes = b"%PDF-1.4 test") -> FileSelection:
    file = SimpleUploadedFile(name, content, content_type="application/pdf")
    return FileSelection(name=name, size=file.size, upload=file)


class SubmissionPipelineTests(TestCase):
    def setUp(self) -> None:
        self.store = SchemaStore()
        self.schema, _ = self.store.save_schema(
            {
                "department_id": "dept-hr",
                "name": "Onboarding",
                "fields": [
                    {"id": "full_name", "type": "text", "label": "Full Name", "required": True},
                    {"id": "email", "type": "email", "label": "Email"},
                    {
                        "id": "resume",
                        "type": "file",
                        "label": "Resume",
                        "fileTypes": ["pdf"],
                        "maxFileSize": 5,
                    },
                    {
                        "id": "offer_letter",
                        "type": "file",
                        "label": "Offer Letter",
                        "fileTypes": ["pdf"],
                        "maxFileSize": 5,
                    },
                ],
            }
        )
        self.storage = InMemoryStorage()
        self.pipeline = SubmissionPipeline(store=self.store, storage=self.storage)

    def test_successful_submission_uploads_files_and_persists(self) -> None:
        submission = self.pipeline.submit(
            self.schema.id,
            {"full_name": "Ada Lovelace", "resume": upload("CV.PDF"), "ignored": "x"},
            user_id="user-7",
        )

        stored = Submission.objects.get(pk=submission.pk)
        self.assertEqual(stored.status, Submission.PENDING)
        self.assertEqual(stored.user_id, "user-7")
        self.assertEqual(stored.form_version, 1)
        self.assertEqual(set(stored.data), {"full_name", "resume"})
        resume = stored.data["resume"]
        self.assertTrue(resume["ref"].startswith("user-7/resume_"))
        self.assertEqual(resume["name"], "CV.PDF")
        self.assertEqual(resume["extension"], "pdf")
        self.assertTrue(self.storage.exists(resume["ref"]))
        self.assertEqual(
            [entry["id"] for entry in stored.schema_fields],
            ["full_name", "email", "resume", "offer_letter"],
        )

    def test_whitespace_answer_to_optional_field_is_not_stored(self) -> None:
        submission = self.pipeline.submit(
            self.schema.id, {"full_name": "Ada", "email": "   "}, user_id="user-7"
        )
        self.assertEqual(Submission.objects.get(pk=submission.pk).data, {"full_name": "Ada"})

    def test_validation_failure_happens_before_any_upload(self) -> None:
        storage = mock.Mock()
        pipeline = SubmissionPipeline(store=self.store, storage=storage)
        oversized = FileSelection(name="resume.pdf", size=6 * MB, upload=mock.Mock())

        with self.assertRaises(SubmissionValidationError) as ctx:
            pipeline.submit(self.schema.id, {"full_name": "Ada", "resume": oversized})

        self.assertEqual(ctx.exception.errors, {"resume": "File size must be less than 5MB"})
        storage.save.assert_not_called()
        self.assertFalse(Submission.objects.exists())

    def test_all_field_errors_are_reported_together(self) -> None:
        with self.assertRaises(SubmissionValidationError) as ctx:
            self.pipeline.submit(
                self.schema.id, {"full_name": "", "email": "nope", "resume": upload("cv.docx")}
            )
        self.assertEqual(
            ctx.exception.errors,
            {
                "full_name": "Full Name is required",
                "email": "Please enter a valid email address",
                "resume": "File type must be one of: pdf",
            },
        )

    def test_inactive_schema_never_starts(self) -> None:
        FormSchema.objects.filter(pk=self.schema.pk).update(is_active=False)
        with self.assertRaises(NoActiveSchema):
            self.pipeline.submit(self.schema.id, {"full_name": "Ada"})

    def test_unknown_form_is_a_precondition_failure(self) -> None:
        with self.assertRaises(NoActiveSchema):
            self.pipeline.submit("0d1c5a0e-0000-4000-8000-000000000000", {"full_name": "Ada"})

    def test_upload_failure_reports_first_failing_field_and_persists_nothing(self) -> None:
        storage = mock.Mock()
        storage.save.side_effect = ["user-1/resume_1.pdf", OSError("bucket unavailable")]
        pipeline = SubmissionPipeline(store=self.store, storage=storage)

        with self.assertLogs("signup_forms.pipeline", level="WARNING") as logs:
            with self.assertRaises(UploadFailed) as ctx:
                pipeline.submit(
                    self.schema.id,
                    {
                        "full_name": "Ada",
                        "resume": upload("cv.pdf"),
                        "offer_letter": upload("offer.pdf"),
                    },
                    user_id="user-1",
                )

        self.assertEqual(ctx.exception.field_id, "offer_letter")
        self.assertIsInstance(ctx.exception.cause, OSError)
        self.assertIn("user-1/resume_1.pdf", "\n".join(logs.output))
        self.assertEqual(storage.save.call_count, 2)
        self.assertFalse(Submission.objects.exists())

    def test_persist_failure_is_reported(self) -> None:
        attempt = SubmissionAttempt(self.schema.id, "user-1")
        snapshot = self.pipeline.collect(attempt)
        with mock.patch.object(
            Submission.objects, "create", side_effect=OperationalError("connection lost")
        ):
            with self.assertRaises(PersistFailed):
                self.pipeline.run(attempt, snapshot, {"full_name": "Ada"})
        self.assertEqual(attempt.state, SubmissionAttempt.FAILED)
        self.assertIsInstance(attempt.failure, PersistFailed)

    def test_schema_deleted_mid_flight_invalidates_attempt(self) -> None:
        attempt = SubmissionAttempt(self.schema.id, "user-1")
        snapshot = self.pipeline.collect(attempt)
        self.store.delete_schema(FormSchema.objects.get(pk=self.schema.pk))

        with self.assertRaises(SchemaWithdrawn):
            self.pipeline.run(attempt, snapshot, {"full_name": "Ada"})
        self.assertFalse(Submission.objects.exists())

    def test_submission_keeps_the_schema_it_was_collected_against(self) -> None:
        attempt = SubmissionAttempt(self.schema.id, "user-1")
        snapshot = self.pipeline.collect(attempt)

        self.store.save_schema(
            {
                "department_id": "dept-hr",
                "name": "Onboarding",
                "fields": [{"id": "nickname", "type": "text", "label": "Nickname"}],
            }
        )

        submission = self.pipeline.run(
            attempt, snapshot, {"full_name": "Ada", "nickname": "Countess"}
        )
        self.assertEqual(submission.data, {"full_name": "Ada"})
        self.assertEqual(submission.form_version, 1)
        self.assertEqual(FormSchema.objects.get().version, 2)
        self.assertEqual(attempt.state, SubmissionAttempt.COMPLETE)

    def test_confirmation_is_queued_after_commit(self) -> None:
        with mock.patch("signup_forms.pipeline.send_submission_confirmation") as task:
            with self.captureOnCommitCallbacks(execute=True):
                submission = self.pipeline.submit(
                    self.schema.id, {"full_name": "Ada", "email": "ada@example.com"}
                )
        task.delay.assert_called_once_with(str(submission.id))

    def test_broker_failure_does_not_fail_the_submission(self) -> None:
        with mock.patch("signup_forms.pipeline.send_submission_confirmation") as task:
            task.delay.side_effect = ConnectionError("broker down")
            with self.assertLogs("signup_forms.pipeline", level="ERROR"):
                with self.captureOnCommitCallbacks(execute=True):
                    submission = self.pipeline.submit(self.schema.id, {"full_name": "Ada"})
        self.assertTrue(Submission.objects.filter(pk=submission.pk).exists())


class ConfirmationTaskTests(TestCase):
    def setUp(self) -> None:
        self.schema, _ = SchemaStore().save_schema(
            {
                "department_id": "dept-hr",
                "name": "Onboarding",
                "fields": [
                    {"id": "full_name", "type": "text", "label": "Full Name"},
                    {"id": "email", "type": "email", "label": "Email"},
                ],
            }
        )

    def _submission(self, data):
        return Submission.objects.create(
            form=self.schema, data=data, schema_fields=self.schema.form_fields
        )

    def test_sends_to_first_email_answer(self) -> None:
        submission = self._submission({"full_name": "Ada", "email": "ada@example.com"})
        self.assertTrue(send_submission_confirmation(str(submission.id)))
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["ada@example.com"])
        self.assertIn("Onboarding", mail.outbox[0].body)

    def test_skips_without_email_answer(self) -> None:
        submission = self._submission({"full_name": "Ada"})
        self.assertFalse(send_submission_confirmation(str(submission.id)))
        self.assertEqual(len(mail.outbox), 0)
