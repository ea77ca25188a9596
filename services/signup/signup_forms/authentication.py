"""Identity forwarded by the API gateway."""
from __future__ import annotations

from dataclasses import dataclass

from rest_framework import authentication, permissions

ADMIN = "admin"
EMPLOYEE = "employee"

ROLES = {ADMIN, EMPLOYEE}


@dataclass(frozen=True)
class GatewayUser:
    """Caller identity as asserted by the gateway; never re-validated here."""

    id: str
    role: str = EMPLOYEE

    is_authenticated = True

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


class GatewayHeaderAuthentication(authentication.BaseAuthentication):
    """Read ``X-User-Id`` and ``X-User-Role`` set by the gateway."""

    def authenticate(self, request):  # type: ignore[override]
        user_id = request.headers.get("X-User-Id", "").strip()
        if not user_id:
            return None
        role = request.headers.get("X-User-Role", EMPLOYEE).strip().lower()
        if role not in ROLES:
            role = EMPLOYEE
        return GatewayUser(id=user_id, role=role), None


class IsAdminRole(permissions.BasePermission):
    message = "Only administrators can change forms or review submissions."

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return bool(getattr(request.user, "is_admin", False))
