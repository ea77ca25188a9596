"""Celery application for the signup form service."""
from __future__ import annotations

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "signup_service.settings")

app = Celery("signup_service")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
