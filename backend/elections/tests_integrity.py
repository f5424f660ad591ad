from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase, override_settings

from audit.models import AuditLog
from audit.services import record_event
from elections.exceptions import AlreadyVoted, TallyUnavailable
from elections.integrity import ballot_integrity_summary, clamp_limit, recent_security_events
from elections.recording import submit_ballot
from elections.testing import ElectionFixturesMixin


class SecurityEventTests(ElectionFixturesMixin, TestCase):
    def setUp(self):
        self.election = self.create_election()
        self.other_election = self.create_election(title="Other election")

    def test_only_security_kinds_for_the_election_newest_first(self):
        first = record_event(event_type=AuditLog.EventType.VOTE_CAST, election=self.election)
        record_event(event_type=AuditLog.EventType.SYSTEM_BACKUP, election=self.election)
        login = record_event(event_type=AuditLog.EventType.USER_LOGIN, election=self.election)
        duplicate = record_event(event_type=AuditLog.EventType.VOTE_UPDATED, election=self.election)
        record_event(event_type=AuditLog.EventType.VOTE_CAST, election=self.other_election)

        events = recent_security_events(self.election)
        self.assertEqual([event.id for event in events], [duplicate.id, login.id, first.id])

    def test_limit_is_clamped(self):
        AuditLog.objects.bulk_create(
            [
                AuditLog(
                    event_type=AuditLog.EventType.VOTE_CAST,
                    object_type="Election",
                    object_id=str(self.election.id),
                )
                for _ in range(105)
            ]
        )
        self.assertEqual(len(recent_security_events(self.election, limit=0)), 1)
        self.assertEqual(len(recent_security_events(self.election, limit=500)), 100)
        self.assertEqual(len(recent_security_events(self.election)), 50)

    def test_clamp_limit_handles_garbage(self):
        self.assertEqual(clamp_limit("abc"), 50)
        self.assertEqual(clamp_limit(None), 50)
        self.assertEqual(clamp_limit("7"), 7)
        self.assertEqual(clamp_limit(-3), 1)


class BallotIntegritySummaryTests(ElectionFixturesMixin, TestCase):
    def setUp(self):
        self.election = self.create_election()
        self.portfolio, (self.candidate,) = self.create_portfolio(self.election, "Referendum", candidates=["Approve"])

    def _vote(self, voter_id):
        token, _ = self.create_voter(self.election, voter_id)
        identity = self.identity_for(token)
        submit_ballot(identity, [(self.portfolio.id, self.candidate.id)], now=self.now)
        return identity

    def test_counts_ballots_votes_and_rejected_resubmissions(self):
        identity = self._vote("voter-001")
        self._vote("voter-002")
        for _ in range(2):
            with self.assertRaises(AlreadyVoted):
                submit_ballot(identity, [(self.portfolio.id, None)], now=self.now)

        summary = ballot_integrity_summary(self.election, now=self.now)
        self.assertEqual(summary.total_ballots, 2)
        self.assertEqual(summary.valid_votes, 2)
        self.assertEqual(summary.duplicate_attempts, 2)
        self.assertEqual(len(summary.suspicious_activity), 4)
        self.assertEqual(summary.last_audit_time, self.now)

    def test_suspicious_activity_is_capped_at_ten(self):
        for index in range(12):
            self._vote(f"voter-{index:03d}")
        summary = ballot_integrity_summary(self.election, now=self.now)
        self.assertEqual(len(summary.suspicious_activity), 10)

    def test_last_audit_time_comes_from_latest_checkpoint(self):
        record_event(event_type=AuditLog.EventType.SYSTEM_BACKUP, election=self.election)
        latest = record_event(event_type=AuditLog.EventType.SYSTEM_BACKUP, election=self.election)

        summary = ballot_integrity_summary(self.election, now=self.now)
        self.assertEqual(summary.last_audit_time, latest.created_at)

    @override_settings(ELECTIONS_AUDIT_CHECKPOINT_EVENT="SYSTEM_RESTORE")
    def test_checkpoint_kind_is_configurable(self):
        record_event(event_type=AuditLog.EventType.SYSTEM_BACKUP, election=self.election)
        self.assertEqual(ballot_integrity_summary(self.election, now=self.now).last_audit_time, self.now)

        restore = record_event(event_type=AuditLog.EventType.SYSTEM_RESTORE, election=self.election)
        self.assertEqual(ballot_integrity_summary(self.election, now=self.now).last_audit_time, restore.created_at)

    def test_summary_performs_no_writes(self):
        self._vote("voter-001")
        before = AuditLog.objects.count()
        ballot_integrity_summary(self.election, now=self.now)
        recent_security_events(self.election)
        self.assertEqual(AuditLog.objects.count(), before)

    def test_store_failure_is_explicit(self):
        with patch("elections.integrity.Ballot.objects") as manager:
            manager.filter.side_effect = DatabaseError("connection reset")
            with self.assertRaises(TallyUnavailable):
                ballot_integrity_summary(self.election, now=self.now)
