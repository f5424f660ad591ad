import json
from io import StringIO

from django.core.management import CommandError, call_command
from django.test import TestCase

from audit.models import AuditLog
from elections.models import Election, VoteAccessSession, VoterToken
from elections.recording import submit_ballot
from elections.testing import ElectionFixturesMixin


class ElectionReportCommandTests(ElectionFixturesMixin, TestCase):
    def test_prints_report_as_json(self):
        election = self.create_election()
        portfolio, (candidate,) = self.create_portfolio(election, "Referendum", candidates=["Approve"])
        token, _ = self.create_voter(election, "voter-001")
        VoterToken.objects.create(election=election, voter_id="voter-002")
        submit_ballot(self.identity_for(token), [(portfolio.id, candidate.id)], now=self.now)

        out = StringIO()
        call_command("election_report", str(election.id), stdout=out)
        payload = json.loads(out.getvalue())

        self.assertEqual(payload["election_id"], election.id)
        self.assertEqual(payload["turnout"]["turnout_percentage"], 50.0)
        self.assertEqual(payload["portfolios"][0]["leading_candidate"]["candidate_id"], candidate.id)
        self.assertIn("integrity", payload)

    def test_unknown_election_fails(self):
        with self.assertRaises(CommandError):
            call_command("election_report", "999999", stdout=StringIO())


class AuditCheckpointCommandTests(ElectionFixturesMixin, TestCase):
    def test_appends_checkpoint_event(self):
        election = self.create_election()
        call_command("audit_checkpoint", str(election.id), "--note", "nightly dump", stdout=StringIO())

        entry = AuditLog.objects.get(event_type=AuditLog.EventType.SYSTEM_BACKUP)
        self.assertEqual(entry.object_type, "Election")
        self.assertEqual(entry.object_id, str(election.id))
        self.assertEqual(entry.metadata["note"], "nightly dump")

    def test_unknown_election_fails(self):
        with self.assertRaises(CommandError):
            call_command("audit_checkpoint", "999999", stdout=StringIO())


class SeedElectionDemoCommandTests(TestCase):
    def test_creates_live_election_with_access_tokens(self):
        out = StringIO()
        call_command("seed_election_demo", "--voters", "3", stdout=out)

        election = Election.objects.get()
        self.assertEqual(election.status, Election.Status.LIVE)
        self.assertEqual(election.portfolios.count(), 2)
        self.assertEqual(VoterToken.objects.filter(election=election).count(), 3)
        self.assertEqual(VoteAccessSession.objects.count(), 3)
        self.assertIn("Sample access tokens:", out.getvalue())
