from __future__ import annotations

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone

from .access import VoterIdentity
from .models import Candidate, Election, Portfolio, VoteAccessSession, VoterToken

FIXED_NOW = datetime(2026, 3, 10, 14, 30, tzinfo=dt_timezone.utc)


class ElectionFixturesMixin:
    """Builders shared by the election test modules."""

    now = FIXED_NOW

    def create_election(self, *, status=Election.Status.LIVE, title="Student council 2026", **kwargs):
        defaults = {
            "start_time": self.now - timedelta(hours=6),
            "end_time": self.now + timedelta(hours=6),
        }
        defaults.update(kwargs)
        return Election.objects.create(title=title, status=status, **defaults)

    def create_portfolio(self, election, title, *, candidates=(), ballot_order=None):
        portfolio = Portfolio.objects.create(election=election, title=title, ballot_order=ballot_order)
        created = [Candidate.objects.create(portfolio=portfolio, full_name=name) for name in candidates]
        return portfolio, created

    def create_voter(self, election, voter_id, *, ttl=timedelta(hours=1)):
        voter_token = VoterToken.objects.create(election=election, voter_id=voter_id)
        _, raw_token = VoteAccessSession.issue(voter_token, ttl=ttl, now=self.now)
        return voter_token, raw_token

    def identity_for(self, voter_token, *, election=None):
        return VoterIdentity(
            voter_token=voter_token,
            voter_id=voter_token.voter_id,
            election=election if election is not None else voter_token.election,
            session_expires_at=self.now + timedelta(hours=1),
        )
