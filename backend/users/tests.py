from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from elections.models import Election

from .models import User


class UserModelTests(TestCase):
    def test_blank_emails_do_not_collide(self):
        first = User.objects.create_user(username="first", password="password", role=User.ROLE_ADMIN)
        second = User.objects.create_user(username="second", password="password", role=User.ROLE_APPROVER)
        self.assertIsNone(first.email)
        self.assertIsNone(second.email)


class UserPermissionTests(TestCase):
    def setUp(self):
        self.client = APIClient()

        self.superadmin = User.objects.create_user(
            username="superadmin", password="password", role=User.ROLE_SUPERADMIN
        )
        self.approver = User.objects.create_user(
            username="approver", password="password", role=User.ROLE_APPROVER
        )

    def get_token(self, user):
        response = self.client.post(
            "/api/token/", {"username": user.username, "password": "password"}
        )
        return response.data["access"]

    def test_token_pair_is_issued(self):
        response = self.client.post("/api/token/", {"username": "approver", "password": "password"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("access", response.data)
        self.assertIn("refresh", response.data)

    def test_superadmin_can_list_audit_logs(self):
        token = self.get_token(self.superadmin)
        self.client.credentials(HTTP_AUTHORIZATION="Bearer " + token)
        response = self.client.get("/api/audit-logs/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_approver_cannot_list_audit_logs(self):
        token = self.get_token(self.approver)
        self.client.credentials(HTTP_AUTHORIZATION="Bearer " + token)
        response = self.client.get("/api/audit-logs/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_approver_can_read_election_reports(self):
        election = Election.objects.create(
            title="Board election",
            status=Election.Status.CLOSED,
            start_time=timezone.now() - timedelta(hours=2),
            end_time=timezone.now() - timedelta(hours=1),
        )
        token = self.get_token(self.approver)
        self.client.credentials(HTTP_AUTHORIZATION="Bearer " + token)
        response = self.client.get(f"/api/elections/{election.id}/integrity/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_anonymous_is_rejected(self):
        response = self.client.get("/api/audit-logs/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
