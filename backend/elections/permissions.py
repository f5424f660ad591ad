from __future__ import annotations

from rest_framework.permissions import BasePermission

from users.models import User


class CanViewElectionReports(BasePermission):
    """Election-office roles may read reports and integrity data."""

    message = "You do not have permission to view election reports."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False

        if user.is_superuser:
            return True

        return getattr(user, "role", None) in {
            User.ROLE_SUPERADMIN,
            User.ROLE_ORCHESTRATOR,
            User.ROLE_APPROVER,
            User.ROLE_ADMIN,
        }
