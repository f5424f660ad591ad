from django.contrib.admin.sites import AdminSite
from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase
from rest_framework.test import APITestCase

from .admin import AuditLogAdmin
from .models import AuditLog
from .services import election_events, log_event, log_public_event, record_event


class AuditServiceTests(TestCase):
	def setUp(self):
		self.factory = RequestFactory()
		user_model = get_user_model()
		self.user = user_model.objects.create_user(
			username="audit_user",
			password="pass1234",
			role=user_model.ROLE_SUPERADMIN,
		)

	def test_log_event_skips_anonymous_requests(self):
		request = self.factory.post("/api/anything/")
		self.assertIsNone(log_event(request, event_type=AuditLog.EventType.USER_LOGOUT))
		self.assertFalse(AuditLog.objects.exists())

	def test_log_event_records_actor_and_request_context(self):
		request = self.factory.post("/api/auth/logout/", HTTP_USER_AGENT="pytest-agent", REMOTE_ADDR="10.0.0.5")
		request.user = self.user

		entry = log_event(request, event_type=AuditLog.EventType.USER_LOGOUT, object_type="User", object_id=self.user.id)
		self.assertEqual(entry.actor, self.user)
		self.assertEqual(entry.object_id, str(self.user.id))
		self.assertEqual(entry.path, "/api/auth/logout/")
		self.assertEqual(entry.method, "POST")
		self.assertEqual(entry.ip_address, "10.0.0.5")
		self.assertEqual(entry.user_agent, "pytest-agent")

	def test_log_public_event_prefers_forwarded_client_ip(self):
		request = self.factory.post("/api/ballot/submit/", HTTP_X_FORWARDED_FOR="203.0.113.9, 10.0.0.1")
		entry = log_public_event(request, event_type=AuditLog.EventType.VOTE_CAST, metadata={"vote_count": 2})
		self.assertIsNone(entry.actor)
		self.assertEqual(entry.ip_address, "203.0.113.9")
		self.assertEqual(entry.metadata, {"vote_count": 2})

	def test_record_event_scopes_to_election_without_request(self):
		entry = record_event(event_type=AuditLog.EventType.SYSTEM_BACKUP, election=42)
		self.assertEqual(entry.object_type, "Election")
		self.assertEqual(entry.object_id, "42")
		self.assertEqual(entry.path, "")
		self.assertEqual(list(election_events(42)), [entry])
		self.assertEqual(list(election_events(43)), [])

	def test_record_event_without_election_is_unscoped(self):
		entry = record_event(event_type=AuditLog.EventType.SYSTEM_RESTORE)
		self.assertEqual(entry.object_type, "")
		self.assertEqual(entry.object_id, "")


class AuditLogAdminTests(TestCase):
	def test_admin_is_read_only(self):
		model_admin = AuditLogAdmin(AuditLog, AdminSite())
		request = RequestFactory().get("/admin/audit/auditlog/")
		entry = record_event(event_type=AuditLog.EventType.SYSTEM_BACKUP, election=1)

		self.assertFalse(model_admin.has_add_permission(request))
		self.assertFalse(model_admin.has_change_permission(request, entry))
		self.assertFalse(model_admin.has_delete_permission(request, entry))


class AuditLogAPITests(APITestCase):
	def setUp(self):
		user_model = get_user_model()
		self.viewer = user_model.objects.create_user(
			username="audit_viewer",
			password="pass1234",
			role=user_model.ROLE_ORCHESTRATOR,
		)
		record_event(event_type=AuditLog.EventType.VOTE_CAST, election=1)
		record_event(event_type=AuditLog.EventType.VOTE_UPDATED, election=1)

	def test_list_is_filterable_by_event_type(self):
		self.client.force_authenticate(user=self.viewer)
		response = self.client.get("/api/audit-logs/", {"event_type": AuditLog.EventType.VOTE_UPDATED})
		self.assertEqual(response.status_code, 200)
		self.assertEqual(len(response.data), 1)
		self.assertEqual(response.data[0]["event_type"], "VOTE_UPDATED")
		self.assertEqual(response.data[0]["election_id"], 1)

	def test_api_is_read_only(self):
		self.client.force_authenticate(user=self.viewer)
		response = self.client.post("/api/audit-logs/", {"event_type": "VOTE_CAST"}, format="json")
		self.assertEqual(response.status_code, 405)
