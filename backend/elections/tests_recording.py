import threading
from datetime import timedelta
from unittest.mock import patch

from django.db import OperationalError, connection
from django.test import TestCase, TransactionTestCase

from audit.models import AuditLog
from elections.exceptions import (
    AlreadyVoted,
    BallotStoreUnavailable,
    ElectionNotActive,
    IncompleteBallot,
    InvalidSelection,
)
from elections.fingerprints import fingerprint
from elections.models import Ballot, Election, Vote, VoterToken
from elections.recording import Selection, submit_ballot
from elections.testing import ElectionFixturesMixin


class SubmitBallotTests(ElectionFixturesMixin, TestCase):
    def setUp(self):
        self.election = self.create_election()
        self.president, (self.alice, self.bob) = self.create_portfolio(
            self.election, "President", ballot_order=1, candidates=["Alice Ward", "Bob Young"]
        )
        self.referendum, (self.amendment,) = self.create_portfolio(
            self.election, "Amendment", ballot_order=2, candidates=["Approve amendment"]
        )
        self.voter_token, _ = self.create_voter(self.election, "voter-001")
        self.identity = self.identity_for(self.voter_token)

    def _valid_selections(self):
        return [Selection(self.president.id, self.alice.id), Selection(self.referendum.id, None)]

    def test_records_one_vote_per_portfolio_and_marks_token_used(self):
        recorded = submit_ballot(self.identity, self._valid_selections(), now=self.now)

        self.assertEqual(recorded.election_id, self.election.id)
        self.assertEqual(recorded.vote_count, 2)
        self.assertEqual(recorded.cast_at, self.now)

        ballot = Ballot.objects.get(id=recorded.ballot_id)
        self.assertEqual(ballot.voter_fingerprint, fingerprint("voter-001"))
        votes = Vote.objects.filter(ballot=ballot)
        self.assertEqual(votes.count(), 2)
        self.assertTrue(all(vote.voter_fingerprint == ballot.voter_fingerprint for vote in votes))
        self.assertIsNone(votes.get(portfolio=self.referendum).candidate_id)

        self.voter_token.refresh_from_db()
        self.assertTrue(self.voter_token.used)
        self.assertEqual(self.voter_token.used_at, self.now)

    def test_vote_rows_never_store_the_raw_voter_id(self):
        submit_ballot(self.identity, self._valid_selections(), now=self.now)
        self.assertFalse(Vote.objects.filter(voter_fingerprint="voter-001").exists())
        self.assertFalse(Ballot.objects.filter(voter_fingerprint="voter-001").exists())

    def test_vote_cast_is_audited_against_the_election(self):
        recorded = submit_ballot(self.identity, self._valid_selections(), now=self.now)
        entry = AuditLog.objects.get(event_type=AuditLog.EventType.VOTE_CAST)
        self.assertEqual(entry.object_type, "Election")
        self.assertEqual(entry.object_id, str(self.election.id))
        self.assertEqual(entry.metadata["ballot_id"], recorded.ballot_id)
        self.assertEqual(entry.metadata["fingerprint_prefix"], fingerprint("voter-001")[:8])
        self.assertNotIn("voter-001", str(entry.metadata))

    def test_repeated_submissions_record_exactly_one_ballot(self):
        outcomes = []
        for attempt in range(3):
            try:
                submit_ballot(self.identity, self._valid_selections(), now=self.now + timedelta(seconds=attempt))
                outcomes.append("recorded")
            except AlreadyVoted as exc:
                outcomes.append("already_voted")
                self.assertEqual(exc.voted_at, self.now)

        self.assertEqual(outcomes, ["recorded", "already_voted", "already_voted"])
        self.assertEqual(Ballot.objects.filter(election=self.election).count(), 1)
        self.assertEqual(Vote.objects.filter(election=self.election).count(), 2)

    def test_rejected_resubmission_is_audited_as_vote_updated(self):
        submit_ballot(self.identity, self._valid_selections(), now=self.now)
        with self.assertRaises(AlreadyVoted):
            submit_ballot(self.identity, self._valid_selections(), now=self.now)

        duplicates = AuditLog.objects.filter(event_type=AuditLog.EventType.VOTE_UPDATED)
        self.assertEqual(duplicates.count(), 1)
        self.assertEqual(duplicates.get().object_id, str(self.election.id))

    def test_unique_constraint_rejects_duplicate_when_early_check_is_bypassed(self):
        submit_ballot(self.identity, self._valid_selections(), now=self.now)

        with patch("elections.recording.find_prior_cast_at", return_value=None):
            with self.assertRaises(AlreadyVoted):
                submit_ballot(self.identity, self._valid_selections(), now=self.now + timedelta(seconds=1))

        self.assertEqual(Ballot.objects.filter(election=self.election).count(), 1)
        self.assertEqual(Vote.objects.filter(election=self.election).count(), 2)

    def test_token_already_flipped_is_rejected_without_new_rows(self):
        VoterToken.objects.filter(id=self.voter_token.id).update(used=True, used_at=self.now - timedelta(hours=1))

        with self.assertRaises(AlreadyVoted):
            submit_ballot(self.identity, self._valid_selections(), now=self.now)

        self.assertFalse(Ballot.objects.exists())
        self.assertFalse(Vote.objects.exists())

    def test_store_failure_mid_write_rolls_back_everything(self):
        with patch("elections.recording.record_event", side_effect=OperationalError("connection lost")):
            with self.assertRaises(BallotStoreUnavailable) as ctx:
                submit_ballot(self.identity, self._valid_selections(), now=self.now)

        self.assertTrue(ctx.exception.retryable)
        self.assertFalse(Ballot.objects.exists())
        self.assertFalse(Vote.objects.exists())
        self.voter_token.refresh_from_db()
        self.assertFalse(self.voter_token.used)

    def test_unexpected_failure_mid_write_propagates_and_rolls_back(self):
        with patch("elections.recording.record_event", side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                submit_ballot(self.identity, self._valid_selections(), now=self.now)

        self.assertFalse(Vote.objects.exists())
        self.voter_token.refresh_from_db()
        self.assertFalse(self.voter_token.used)

    def test_prior_vote_is_reported_before_election_state(self):
        submit_ballot(self.identity, self._valid_selections(), now=self.now)
        Election.objects.filter(id=self.election.id).update(status=Election.Status.CLOSED)
        closed_identity = self.identity_for(self.voter_token, election=Election.objects.get(id=self.election.id))

        with self.assertRaises(AlreadyVoted):
            submit_ballot(closed_identity, self._valid_selections(), now=self.now)

    def test_election_state_is_checked_before_ballot_contents(self):
        with self.assertRaises(ElectionNotActive):
            submit_ballot(self.identity, [], now=self.now + timedelta(days=1))


class BallotValidationTests(ElectionFixturesMixin, TestCase):
    def setUp(self):
        self.election = self.create_election()
        self.president, (self.alice, self.bob) = self.create_portfolio(
            self.election, "President", candidates=["Alice Ward", "Bob Young"]
        )
        self.referendum, (self.amendment,) = self.create_portfolio(
            self.election, "Amendment", candidates=["Approve amendment"]
        )
        self.voter_token, _ = self.create_voter(self.election, "voter-001")
        self.identity = self.identity_for(self.voter_token)

        other = self.create_election(title="Other election")
        self.foreign_portfolio, (self.foreign_candidate,) = self.create_portfolio(
            other, "Foreign", candidates=["Someone Else"]
        )

    def _assert_rejected(self, exc_class, selections):
        with self.assertRaises(exc_class):
            submit_ballot(self.identity, selections, now=self.now)
        self.assertFalse(Vote.objects.exists())
        self.voter_token.refresh_from_db()
        self.assertFalse(self.voter_token.used)

    def test_empty_ballot_is_incomplete(self):
        self._assert_rejected(IncompleteBallot, [])

    def test_missing_portfolio_is_incomplete(self):
        self._assert_rejected(IncompleteBallot, [(self.president.id, self.alice.id)])

    def test_duplicate_portfolio_is_invalid(self):
        self._assert_rejected(
            InvalidSelection,
            [(self.president.id, self.alice.id), (self.president.id, self.bob.id), (self.referendum.id, None)],
        )

    def test_portfolio_from_another_election_is_invalid(self):
        self._assert_rejected(
            InvalidSelection,
            [
                (self.president.id, self.alice.id),
                (self.referendum.id, None),
                (self.foreign_portfolio.id, self.foreign_candidate.id),
            ],
        )

    def test_candidate_must_stand_for_the_portfolio(self):
        self._assert_rejected(
            InvalidSelection,
            [(self.president.id, self.amendment.id), (self.referendum.id, None)],
        )

    def test_no_vote_only_allowed_on_referendum(self):
        self._assert_rejected(InvalidSelection, [(self.president.id, None), (self.referendum.id, None)])

    def test_accepts_dict_selections(self):
        recorded = submit_ballot(
            self.identity,
            [
                {"portfolio_id": self.president.id, "candidate_id": self.bob.id},
                {"portfolio_id": self.referendum.id, "candidate_id": self.amendment.id},
            ],
            now=self.now,
        )
        self.assertEqual(recorded.vote_count, 2)

    def test_portfolio_without_candidates_is_not_required(self):
        self.create_portfolio(self.election, "Vacant seat")
        recorded = submit_ballot(
            self.identity,
            [(self.president.id, self.alice.id), (self.referendum.id, None)],
            now=self.now,
        )
        self.assertEqual(recorded.vote_count, 2)


class ConcurrentSubmitTests(ElectionFixturesMixin, TransactionTestCase):
    """Several requests for the same voter racing through submit_ballot."""

    attempts = 4

    def setUp(self):
        self.election = self.create_election()
        self.president, (self.alice, self.bob) = self.create_portfolio(
            self.election, "President", candidates=["Alice Ward", "Bob Young"]
        )
        self.voter_token, _ = self.create_voter(self.election, "voter-001")
        self.identity = self.identity_for(self.voter_token)

    def _race(self):
        barrier = threading.Barrier(self.attempts)
        outcomes = []
        lock = threading.Lock()

        def attempt():
            try:
                barrier.wait()
                try:
                    submit_ballot(self.identity, [Selection(self.president.id, self.alice.id)], now=self.now)
                    outcome = "recorded"
                except AlreadyVoted:
                    outcome = "already_voted"
                except Exception as exc:
                    outcome = f"error:{exc!r}"
                with lock:
                    outcomes.append(outcome)
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt) for _ in range(self.attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)
        return outcomes

    def test_concurrent_submits_record_exactly_one_ballot(self):
        outcomes = self._race()

        self.assertEqual(
            sorted(outcomes),
            ["already_voted"] * (self.attempts - 1) + ["recorded"],
        )
        self.assertEqual(Ballot.objects.filter(election=self.election).count(), 1)
        self.assertEqual(Vote.objects.filter(election=self.election).count(), 1)
        self.assertEqual(
            AuditLog.objects.filter(event_type=AuditLog.EventType.VOTE_CAST).count(),
            1,
        )
        self.assertEqual(
            AuditLog.objects.filter(event_type=AuditLog.EventType.VOTE_UPDATED).count(),
            self.attempts - 1,
        )
        self.voter_token.refresh_from_db()
        self.assertTrue(self.voter_token.used)
