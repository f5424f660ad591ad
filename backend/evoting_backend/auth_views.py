from __future__ import annotations

from datetime import datetime, timezone as datetime_timezone

from django.conf import settings
from django.contrib.auth import get_user_model
from django.middleware.csrf import get_token
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.tokens import AccessToken, RefreshToken

from audit.models import AuditLog
from audit.services import log_event, log_public_event

from .throttles import AuthLoginIPRateThrottle, AuthLoginUserRateThrottle


User = get_user_model()


def _to_utc_expiration(token) -> datetime:
    exp_ts = int(token["exp"])
    return datetime.fromtimestamp(exp_ts, tz=datetime_timezone.utc)


def _cookie_kwargs() -> dict:
    return {
        "httponly": True,
        "secure": getattr(settings, "AUTH_COOKIE_SECURE", False),
        "samesite": getattr(settings, "AUTH_COOKIE_SAMESITE", "Lax"),
        "path": getattr(settings, "AUTH_COOKIE_PATH", "/"),
        "domain": getattr(settings, "AUTH_COOKIE_DOMAIN", None),
    }


def _set_auth_cookies(response: Response, *, access: str, refresh: str | None = None) -> None:
    access_exp = _to_utc_expiration(AccessToken(access))
    response.set_cookie(
        getattr(settings, "AUTH_COOKIE_ACCESS_NAME", "evoting_access"),
        access,
        expires=access_exp,
        **_cookie_kwargs(),
    )

    if refresh:
        refresh_exp = _to_utc_expiration(RefreshToken(refresh))
        response.set_cookie(
            getattr(settings, "AUTH_COOKIE_REFRESH_NAME", "evoting_refresh"),
            refresh,
            expires=refresh_exp,
            **_cookie_kwargs(),
        )


def _clear_auth_cookies(response: Response) -> None:
    cookie_kwargs = {
        "path": getattr(settings, "AUTH_COOKIE_PATH", "/"),
        "domain": getattr(settings, "AUTH_COOKIE_DOMAIN", None),
        "samesite": getattr(settings, "AUTH_COOKIE_SAMESITE", "Lax"),
    }
    response.delete_cookie(getattr(settings, "AUTH_COOKIE_ACCESS_NAME", "evoting_access"), **cookie_kwargs)
    response.delete_cookie(getattr(settings, "AUTH_COOKIE_REFRESH_NAME", "evoting_refresh"), **cookie_kwargs)


class CookieLoginAPIView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [AuthLoginIPRateThrottle, AuthLoginUserRateThrottle]

    def post(self, request, *args, **kwargs):
        serializer = TokenObtainPairSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = serializer.user
        log_public_event(
            request,
            event_type=AuditLog.EventType.USER_LOGIN,
            actor=user,
            object_type="User",
            object_id=user.id,
            status_code=status.HTTP_200_OK,
            metadata={"role": getattr(user, "role", "")},
        )

        response = Response({"detail": "Login successful."}, status=status.HTTP_200_OK)
        _set_auth_cookies(
            response,
            access=serializer.validated_data["access"],
            refresh=serializer.validated_data["refresh"],
        )
        get_token(request)
        return response


class CookieLogoutAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        log_event(
            request,
            event_type=AuditLog.EventType.USER_LOGOUT,
            object_type="User",
            object_id=request.user.id,
            status_code=status.HTTP_200_OK,
        )
        response = Response({"detail": "Session closed."}, status=status.HTTP_200_OK)
        _clear_auth_cookies(response)
        return response
