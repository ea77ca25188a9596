"""Time-limited download tokens for uploaded submission files."""
from __future__ import annotations

from typing import Any, Dict, Optional

from django.conf import settings
from django.core import signing

SALT = "signup_forms.files"


def _signer() -> signing.TimestampSigner:
    return signing.TimestampSigner(salt=SALT)


def sign_file(ref: str, name: str, ttl_seconds: Optional[int] = None) -> str:
    """Token granting access to one stored object for ``ttl_seconds``."""

    ttl = ttl_seconds if ttl_seconds is not None else settings.FORM_FILE_URL_TTL_SECONDS
    return _signer().sign_object({"ref": ref, "name": name, "ttl": int(ttl)})


def resolve_file(token: str) -> Dict[str, Any]:
    """Return the signed payload, raising ``SignatureExpired``/``BadSignature``."""

    signer = _signer()
    payload = signer.unsign_object(token)
    signer.unsign_object(token, max_age=payload["ttl"])
    return payload
