"""
URL configuration for evoting_backend project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
)
from .auth_views import CookieLoginAPIView, CookieLogoutAPIView

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("api/auth/login/", CookieLoginAPIView.as_view(), name="auth_cookie_login"),
    path("api/auth/logout/", CookieLogoutAPIView.as_view(), name="auth_cookie_logout"),
    path("api/", include("elections.urls")),
    path("api/", include("audit.urls")),
]
