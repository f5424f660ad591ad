from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.utils import timezone

from .access import VoterIdentity
from .exceptions import AlreadyVoted, ElectionNotActive, ElectionNotFound, InvalidToken
from .fingerprints import fingerprint
from .models import Ballot as CastBallot
from .models import Election, Portfolio, Vote

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BallotCandidate:
    id: int
    full_name: str
    photo_url: str
    manifesto: str


@dataclass(frozen=True)
class BallotPosition:
    portfolio_id: int
    title: str
    description: str
    ballot_order: Optional[int]
    is_referendum: bool
    candidates: tuple[BallotCandidate, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Ballot:
    election_id: int
    title: str
    description: str
    department: str
    is_general: bool
    start_time: datetime
    end_time: datetime
    positions: tuple[BallotPosition, ...]
    session_expires_at: Optional[datetime]


def unset_ballot_order() -> int:
    return int(getattr(settings, "ELECTIONS_UNSET_BALLOT_ORDER", 0))


def portfolio_sort_key(portfolio: Portfolio, default_order: int):
    order = portfolio.ballot_order if portfolio.ballot_order is not None else default_order
    return (order, portfolio.pk)


def find_prior_cast_at(election_id: int, voter_fingerprint: str) -> Optional[datetime]:
    """Return when this fingerprint already voted in the election, if it did."""
    cast_at = (
        CastBallot.objects.filter(election_id=election_id, voter_fingerprint=voter_fingerprint)
        .values_list("cast_at", flat=True)
        .first()
    )
    if cast_at is not None:
        return cast_at
    return (
        Vote.objects.filter(election_id=election_id, voter_fingerprint=voter_fingerprint)
        .order_by("cast_at")
        .values_list("cast_at", flat=True)
        .first()
    )


def get_identity_election(identity: VoterIdentity) -> Election:
    if not (identity.voter_id or "").strip():
        raise InvalidToken()
    election = None
    if identity.election_id is not None:
        election = Election.objects.filter(pk=identity.election_id).first()
    if election is None:
        raise ElectionNotFound()
    return election


def load_ballot(identity: VoterIdentity, *, now=None) -> Ballot:
    """Assemble the ballot a voter sees; read-only and idempotent."""
    now = now or timezone.now()
    election = get_identity_election(identity)

    voter_fingerprint = fingerprint(identity.voter_id)
    prior_cast_at = find_prior_cast_at(election.pk, voter_fingerprint)
    if prior_cast_at is not None:
        logger.info(
            "ballot.load_already_voted",
            extra={"election_id": election.pk, "fingerprint": voter_fingerprint[:8]},
        )
        raise AlreadyVoted(voted_at=prior_cast_at)

    if not election.is_accepting_votes(now):
        raise ElectionNotActive()

    default_order = unset_ballot_order()
    portfolios = sorted(
        election.portfolios.prefetch_related("candidates"),
        key=lambda portfolio: portfolio_sort_key(portfolio, default_order),
    )

    positions = []
    for portfolio in portfolios:
        candidates = sorted(portfolio.candidates.all(), key=lambda c: (c.full_name, c.pk))
        positions.append(
            BallotPosition(
                portfolio_id=portfolio.pk,
                title=portfolio.title,
                description=portfolio.description,
                ballot_order=portfolio.ballot_order,
                is_referendum=len(candidates) == 1,
                candidates=tuple(
                    BallotCandidate(
                        id=candidate.pk,
                        full_name=candidate.full_name,
                        photo_url=candidate.photo_url,
                        manifesto=candidate.manifesto,
                    )
                    for candidate in candidates
                ),
            )
        )

    return Ballot(
        election_id=election.pk,
        title=election.title,
        description=election.description,
        department=election.department,
        is_general=election.is_general,
        start_time=election.start_time,
        end_time=election.end_time,
        positions=tuple(positions),
        session_expires_at=identity.session_expires_at,
    )
