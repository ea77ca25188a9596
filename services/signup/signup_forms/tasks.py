"""Background tasks for the signup form service."""
from __future__ import annotations

import logging
from typing import Optional

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from .fields import EMAIL
from .models import Submission

logger = logging.getLogger(__name__)

CONFIRMATION_SUBJECT = "Welcome to the Team! Registration Confirmed"


def _recipient(submission: Submission) -> Optional[str]:
    """First answered email field, in the order the form asked for it."""

    for entry in submission.schema_fields:
        if entry.get("type") == EMAIL and submission.data.get(entry["id"]):
            return str(submission.data[entry["id"]])
    return None


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def send_submission_confirmation(self, submission_id: str) -> bool:
    """Email the submitter once their signup form has been received."""

    try:
        submission = Submission.objects.select_related("form").get(id=submission_id)
    except Submission.DoesNotExist:
        logger.warning("Submission %s does not exist", submission_id)
        return False

    recipient = _recipient(submission)
    if recipient is None:
        logger.debug("Submission %s has no email answer; skipping confirmation", submission_id)
        return False

    body = (
        f"Your registration for {submission.form.name} has been received.\n\n"
        "Next steps:\n"
        "- Log in to your dashboard to upload any remaining documents\n"
        "- Check for assignments from your admin\n"
        "- Complete your profile information\n"
    )
    try:
        send_mail(
            CONFIRMATION_SUBJECT,
            body,
            settings.ONBOARDING_EMAIL_FROM,
            [recipient],
        )
    except OSError as exc:
        logger.warning("Confirmation for submission %s failed: %s", submission_id, exc)
        raise self.retry(exc=exc, countdown=min(300, 30 * 2 ** self.request.retries))
    logger.info("Sent confirmation for submission %s", submission_id)
    return True
