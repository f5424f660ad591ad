from datetime import timedelta
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import OperationalError
from django.test import override_settings
from django.utils import timezone
from rest_framework.test import APITestCase

from audit.models import AuditLog
from elections.exceptions import TallyUnavailable
from elections.models import Election, Vote
from elections.testing import ElectionFixturesMixin


class BallotAPITests(ElectionFixturesMixin, APITestCase):
    def setUp(self):
        cache.clear()
        self.now = timezone.now()
        self.election = self.create_election()
        self.president, (self.alice, self.bob) = self.create_portfolio(
            self.election, "President", ballot_order=1, candidates=["Alice Ward", "Bob Young"]
        )
        self.referendum, (self.amendment,) = self.create_portfolio(
            self.election, "Amendment", ballot_order=2, candidates=["Approve amendment"]
        )
        self.voter_token, self.raw_token = self.create_voter(self.election, "voter-001")

    def _submit(self, votes=None, token=None):
        if votes is None:
            votes = [
                {"portfolio_id": self.president.id, "candidate_id": self.alice.id},
                {"portfolio_id": self.referendum.id, "candidate_id": None},
            ]
        return self.client.post(
            "/api/ballot/submit/",
            {"access_token": token or self.raw_token, "votes": votes},
            format="json",
        )

    def test_load_returns_ordered_ballot(self):
        res = self.client.post("/api/ballot/load/", {"access_token": self.raw_token}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.data["success"])

        data = res.data["data"]
        self.assertEqual(data["election_id"], self.election.id)
        self.assertEqual([p["portfolio_id"] for p in data["positions"]], [self.president.id, self.referendum.id])
        self.assertEqual(
            [c["full_name"] for c in data["positions"][0]["candidates"]],
            ["Alice Ward", "Bob Young"],
        )
        self.assertTrue(data["positions"][1]["is_referendum"])
        self.assertIsNotNone(data["session_expires_at"])

    def test_load_with_unknown_token_is_unauthorized(self):
        res = self.client.post("/api/ballot/load/", {"access_token": "nope"}, format="json")
        self.assertEqual(res.status_code, 401)
        self.assertFalse(res.data["success"])
        self.assertEqual(res.data["error_code"], "INVALID_TOKEN")
        self.assertNotIn("voted_at", res.data)

    def test_load_without_token_is_validation_error(self):
        res = self.client.post("/api/ballot/load/", {}, format="json")
        self.assertEqual(res.status_code, 400)
        self.assertFalse(res.data["success"])
        self.assertEqual(res.data["error_code"], "VALIDATION_ERROR")
        self.assertIn("access_token", res.data["errors"])

    def test_submit_then_resubmit(self):
        res = self._submit()
        self.assertEqual(res.status_code, 201)
        self.assertTrue(res.data["success"])
        self.assertEqual(res.data["data"]["vote_count"], 2)
        self.assertEqual(Vote.objects.filter(election=self.election).count(), 2)

        again = self._submit()
        self.assertEqual(again.status_code, 403)
        self.assertEqual(again.data["error_code"], "ALREADY_VOTED")
        self.assertIsNotNone(again.data["voted_at"])
        self.assertEqual(Vote.objects.filter(election=self.election).count(), 2)

        load = self.client.post("/api/ballot/load/", {"access_token": self.raw_token}, format="json")
        self.assertEqual(load.status_code, 403)
        self.assertEqual(load.data["error_code"], "ALREADY_VOTED")

    def test_submit_records_request_context_in_audit(self):
        self._submit()
        entry = AuditLog.objects.get(event_type=AuditLog.EventType.VOTE_CAST)
        self.assertEqual(entry.path, "/api/ballot/submit/")
        self.assertEqual(entry.method, "POST")
        self.assertIsNone(entry.actor)

    def test_incomplete_ballot(self):
        res = self._submit(votes=[{"portfolio_id": self.president.id, "candidate_id": self.alice.id}])
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.data["error_code"], "INCOMPLETE_BALLOT")

    def test_invalid_selection(self):
        res = self._submit(
            votes=[
                {"portfolio_id": self.president.id, "candidate_id": self.amendment.id},
                {"portfolio_id": self.referendum.id, "candidate_id": None},
            ]
        )
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.data["error_code"], "INVALID_SELECTION")

    def test_election_not_active(self):
        Election.objects.filter(id=self.election.id).update(status=Election.Status.CLOSED)
        res = self._submit()
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.data["error_code"], "ELECTION_NOT_ACTIVE")

    def test_expired_access_token(self):
        self.voter_token.access_sessions.update(expires_at=timezone.now() - timedelta(minutes=1))
        res = self._submit()
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.data["error_code"], "INVALID_TOKEN")

    def test_store_unavailable_is_retryable(self):
        with patch("elections.recording.record_event", side_effect=OperationalError("timeout")):
            res = self._submit()
        self.assertEqual(res.status_code, 503)
        self.assertEqual(res.data["error_code"], "STORE_UNAVAILABLE")
        self.assertTrue(res.data["retryable"])
        self.assertFalse(Vote.objects.exists())

    @override_settings(BALLOT_THROTTLE_RATE="2/min")
    def test_ballot_endpoints_are_throttled(self):
        for _ in range(2):
            res = self.client.post("/api/ballot/load/", {"access_token": self.raw_token}, format="json")
            self.assertEqual(res.status_code, 200)
        res = self.client.post("/api/ballot/load/", {"access_token": self.raw_token}, format="json")
        self.assertEqual(res.status_code, 429)


class ElectionManagementAPITests(ElectionFixturesMixin, APITestCase):
    def setUp(self):
        cache.clear()
        user_model = get_user_model()
        self.staff = user_model.objects.create_user(
            username="election_admin", password="pass1234", role=user_model.ROLE_ADMIN
        )
        self.orchestrator = user_model.objects.create_user(
            username="orchestrator", password="pass1234", role=user_model.ROLE_ORCHESTRATOR
        )
        self.no_role = user_model.objects.create_user(username="no_role", password="pass1234", role="")
        self.election = self.create_election()
        self.create_portfolio(self.election, "Referendum", candidates=["Approve"])
        self.create_voter(self.election, "voter-001")

    def test_report_requires_authentication(self):
        res = self.client.get(f"/api/elections/{self.election.id}/report/")
        self.assertEqual(res.status_code, 401)

    def test_report_requires_election_role(self):
        self.client.force_authenticate(user=self.no_role)
        res = self.client.get(f"/api/elections/{self.election.id}/report/")
        self.assertEqual(res.status_code, 403)

    def test_report_for_staff(self):
        self.client.force_authenticate(user=self.staff)
        res = self.client.get(f"/api/elections/{self.election.id}/report/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["election_id"], self.election.id)
        self.assertEqual(res.data["turnout"]["total_voters"], 1)
        self.assertEqual(res.data["timeline"]["peak_hour"], 12)
        self.assertIn("integrity", res.data)

    def test_report_for_unknown_election(self):
        self.client.force_authenticate(user=self.staff)
        res = self.client.get("/api/elections/999999/report/")
        self.assertEqual(res.status_code, 404)

    def test_report_surfaces_tally_failures(self):
        self.client.force_authenticate(user=self.staff)
        with patch("elections.views_management.build_election_report", side_effect=TallyUnavailable()):
            res = self.client.get(f"/api/elections/{self.election.id}/report/")
        self.assertEqual(res.status_code, 503)
        self.assertEqual(res.data["error_code"], "TALLY_UNAVAILABLE")

    def test_security_events_limit_is_clamped(self):
        self.client.force_authenticate(user=self.staff)
        res = self.client.get(f"/api/elections/{self.election.id}/security-events/", {"limit": 1000})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["limit"], 100)
        self.assertEqual(res.data["results"], [])

    def test_integrity_summary(self):
        self.client.force_authenticate(user=self.staff)
        res = self.client.get(f"/api/elections/{self.election.id}/integrity/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["total_ballots"], 0)
        self.assertEqual(res.data["duplicate_attempts"], 0)
        self.assertIsNotNone(res.data["last_audit_time"])

    def test_audit_log_is_limited_to_audit_viewers(self):
        self.client.force_authenticate(user=self.staff)
        self.assertEqual(self.client.get("/api/audit-logs/").status_code, 403)

        self.client.force_authenticate(user=self.orchestrator)
        self.assertEqual(self.client.get("/api/audit-logs/").status_code, 200)
