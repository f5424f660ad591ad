import hashlib
from datetime import timedelta

from django.test import TestCase, override_settings

from elections.access import resolve_access_token
from elections.ballots import load_ballot
from elections.exceptions import AlreadyVoted, ElectionNotActive, ElectionNotFound, InvalidToken
from elections.fingerprints import fingerprint
from elections.models import Election
from elections.recording import submit_ballot
from elections.testing import ElectionFixturesMixin


class FingerprintTests(TestCase):
    def test_fingerprint_is_sha256_hex_of_identifier(self):
        self.assertEqual(fingerprint("voter-001"), hashlib.sha256(b"voter-001").hexdigest())

    def test_fingerprint_is_deterministic_and_distinguishes_voters(self):
        self.assertEqual(fingerprint("voter-001"), fingerprint("voter-001"))
        self.assertNotEqual(fingerprint("voter-001"), fingerprint("voter-002"))

    @override_settings(ELECTIONS_FINGERPRINT_PEPPER="pepper")
    def test_pepper_switches_to_keyed_digest(self):
        peppered = fingerprint("voter-001")
        self.assertEqual(len(peppered), 64)
        self.assertNotEqual(peppered, hashlib.sha256(b"voter-001").hexdigest())
        self.assertEqual(peppered, fingerprint("voter-001"))


class AccessTokenResolutionTests(ElectionFixturesMixin, TestCase):
    def setUp(self):
        self.election = self.create_election()
        self.voter_token, self.raw_token = self.create_voter(self.election, "voter-001")

    def test_resolves_session_to_voter_identity(self):
        identity = resolve_access_token(self.raw_token, now=self.now)
        self.assertEqual(identity.voter_id, "voter-001")
        self.assertEqual(identity.election_id, self.election.id)
        self.assertEqual(identity.voter_token, self.voter_token)
        self.assertIsNotNone(identity.session_expires_at)

    def test_blank_unknown_and_expired_tokens_are_rejected(self):
        with self.assertRaises(InvalidToken):
            resolve_access_token("   ", now=self.now)
        with self.assertRaises(InvalidToken):
            resolve_access_token("not-a-real-token", now=self.now)
        with self.assertRaises(InvalidToken):
            resolve_access_token(self.raw_token, now=self.now + timedelta(hours=2))


class BallotAssemblyTests(ElectionFixturesMixin, TestCase):
    def setUp(self):
        self.election = self.create_election()
        self.treasurer, _ = self.create_portfolio(
            self.election, "Treasurer", ballot_order=2, candidates=["Zoe Adams", "Ben Carter"]
        )
        self.president, _ = self.create_portfolio(
            self.election, "President", ballot_order=1, candidates=["Mia Lopez", "Alex Kim", "Alex Kim"]
        )
        self.secretary, _ = self.create_portfolio(self.election, "Secretary", candidates=["Noah Diaz"])
        self.voter_token, _ = self.create_voter(self.election, "voter-001")

    def test_portfolios_follow_ballot_order_with_unset_first(self):
        ballot = load_ballot(self.identity_for(self.voter_token), now=self.now)
        self.assertEqual(
            [position.portfolio_id for position in ballot.positions],
            [self.secretary.id, self.president.id, self.treasurer.id],
        )

    @override_settings(ELECTIONS_UNSET_BALLOT_ORDER=99)
    def test_unset_ballot_order_default_is_configurable(self):
        ballot = load_ballot(self.identity_for(self.voter_token), now=self.now)
        self.assertEqual(ballot.positions[-1].portfolio_id, self.secretary.id)

    def test_candidates_sorted_by_name_then_id(self):
        ballot = load_ballot(self.identity_for(self.voter_token), now=self.now)
        president = next(p for p in ballot.positions if p.portfolio_id == self.president.id)
        names = [candidate.full_name for candidate in president.candidates]
        ids = [candidate.id for candidate in president.candidates]
        self.assertEqual(names, ["Alex Kim", "Alex Kim", "Mia Lopez"])
        self.assertLess(ids[0], ids[1])

    def test_single_candidate_portfolio_is_referendum(self):
        ballot = load_ballot(self.identity_for(self.voter_token), now=self.now)
        flags = {position.portfolio_id: position.is_referendum for position in ballot.positions}
        self.assertTrue(flags[self.secretary.id])
        self.assertFalse(flags[self.president.id])

    def test_load_is_idempotent(self):
        identity = self.identity_for(self.voter_token)
        self.assertEqual(load_ballot(identity, now=self.now), load_ballot(identity, now=self.now))

    def test_empty_voter_id_is_invalid_token(self):
        identity = self.identity_for(self.voter_token)
        blank = identity.__class__(
            voter_token=identity.voter_token,
            voter_id="",
            election=identity.election,
            session_expires_at=identity.session_expires_at,
        )
        with self.assertRaises(InvalidToken):
            load_ballot(blank, now=self.now)

    def test_missing_election_is_not_found(self):
        identity = self.identity_for(self.voter_token)
        Election.objects.filter(id=self.election.id).delete()
        with self.assertRaises(ElectionNotFound):
            load_ballot(identity, now=self.now)

    def test_closed_or_out_of_window_election_is_not_active(self):
        identity = self.identity_for(self.voter_token)
        with self.assertRaises(ElectionNotActive):
            load_ballot(identity, now=self.now + timedelta(days=1))

        Election.objects.filter(id=self.election.id).update(status=Election.Status.CLOSED)
        with self.assertRaises(ElectionNotActive):
            load_ballot(self.identity_for(self.voter_token, election=Election.objects.get(id=self.election.id)), now=self.now)

    def test_voter_who_already_voted_gets_original_cast_time(self):
        identity = self.identity_for(self.voter_token)
        selections = [
            (self.president.id, self.president.candidates.first().id),
            (self.treasurer.id, self.treasurer.candidates.first().id),
            (self.secretary.id, None),
        ]
        recorded = submit_ballot(identity, selections, now=self.now)

        with self.assertRaises(AlreadyVoted) as ctx:
            load_ballot(identity, now=self.now + timedelta(minutes=5))
        self.assertEqual(ctx.exception.voted_at, recorded.cast_at)
