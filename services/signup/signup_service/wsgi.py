"""WSGI config for the signup form service."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "signup_service.settings")

application = get_wsgi_application()
