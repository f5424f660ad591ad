from __future__ import annotations

from django.conf import settings
from rest_framework import exceptions
from rest_framework.authentication import CSRFCheck
from rest_framework_simplejwt.authentication import JWTAuthentication


class CookieJWTAuthentication(JWTAuthentication):
    """Accept the staff JWT from the Authorization header or the access cookie."""

    def authenticate(self, request):
        header_auth = super().authenticate(request)
        if header_auth is not None:
            return header_auth

        raw_token = request.COOKIES.get(getattr(settings, "AUTH_COOKIE_ACCESS_NAME", "evoting_access"))
        if not raw_token:
            return None

        validated_token = self.get_validated_token(raw_token)
        self._enforce_csrf(request)
        user = self.get_user(validated_token)
        return user, validated_token

    def _enforce_csrf(self, request) -> None:
        check = CSRFCheck(lambda req: None)
        check.process_request(request)
        reason = check.process_view(request, None, (), {})
        if reason:
            raise exceptions.PermissionDenied(f"CSRF Failed: {reason}")
