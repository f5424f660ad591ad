from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import override_settings
from rest_framework.test import APITestCase

from audit.models import AuditLog


class CookieAuthFlowTests(APITestCase):
    def setUp(self):
        cache.clear()
        user_model = get_user_model()
        self.user = user_model.objects.create_user(
            username="cookie_auth_user",
            password="pass1234",
            role=user_model.ROLE_ADMIN,
        )

    def _login(self, password="pass1234"):
        return self.client.post(
            "/api/auth/login/",
            {"username": "cookie_auth_user", "password": password},
            format="json",
        )

    def test_cookie_login_sets_auth_cookies_and_is_audited(self):
        login_response = self._login()
        self.assertEqual(login_response.status_code, 200)
        self.assertIn("evoting_access", login_response.cookies)
        self.assertIn("evoting_refresh", login_response.cookies)

        entry = AuditLog.objects.get(event_type=AuditLog.EventType.USER_LOGIN)
        self.assertEqual(entry.actor, self.user)
        self.assertEqual(entry.object_type, "User")
        self.assertEqual(entry.metadata["role"], self.user.role)

    def test_wrong_password_is_rejected_without_audit(self):
        login_response = self._login(password="wrong")
        self.assertEqual(login_response.status_code, 401)
        self.assertFalse(AuditLog.objects.filter(event_type=AuditLog.EventType.USER_LOGIN).exists())

    def test_access_cookie_authenticates_staff_endpoints(self):
        self._login()
        response = self.client.get("/api/audit-logs/")
        # Cookie auth works; ADMIN is not an audit viewer.
        self.assertEqual(response.status_code, 403)

    def test_logout_clears_cookies_and_is_audited(self):
        self._login()
        logout_response = self.client.post("/api/auth/logout/", {}, format="json")
        self.assertEqual(logout_response.status_code, 200)
        self.assertEqual(logout_response.cookies["evoting_access"].value, "")
        self.assertTrue(
            AuditLog.objects.filter(event_type=AuditLog.EventType.USER_LOGOUT, actor=self.user).exists()
        )

    @override_settings(
        AUTH_LOGIN_IP_THROTTLE_RATE="2/min",
        AUTH_LOGIN_USER_THROTTLE_RATE="2/min",
    )
    def test_cookie_login_is_throttled_after_limit(self):
        for _ in range(2):
            self.assertEqual(self._login().status_code, 200)

        self.assertEqual(self._login().status_code, 429)
