from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from django.db import IntegrityError, InterfaceError, OperationalError, transaction
from django.utils import timezone

from audit.models import AuditLog
from audit.services import record_event

from .access import VoterIdentity
from .ballots import find_prior_cast_at, get_identity_election
from .exceptions import (
    AlreadyVoted,
    BallotStoreUnavailable,
    ElectionNotActive,
    IncompleteBallot,
    InvalidSelection,
)
from .fingerprints import fingerprint
from .models import Ballot, Election, Vote, VoterToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    portfolio_id: int
    candidate_id: Optional[int] = None


@dataclass(frozen=True)
class RecordedBallot:
    election_id: int
    ballot_id: int
    cast_at: datetime
    vote_count: int


def _as_selection(item) -> Selection:
    if isinstance(item, Selection):
        return item
    if isinstance(item, dict):
        return Selection(portfolio_id=item["portfolio_id"], candidate_id=item.get("candidate_id"))
    portfolio_id, candidate_id = item
    return Selection(portfolio_id=portfolio_id, candidate_id=candidate_id)


def validate_selections(election: Election, selections: Iterable) -> list[Selection]:
    """Check a ballot covers every portfolio with one legal choice each."""
    selections = [_as_selection(item) for item in (selections or [])]
    if not selections:
        raise IncompleteBallot()

    portfolios = {portfolio.pk: portfolio for portfolio in election.portfolios.prefetch_related("candidates")}
    candidates_by_portfolio = {
        portfolio_id: {candidate.pk for candidate in portfolio.candidates.all()}
        for portfolio_id, portfolio in portfolios.items()
    }

    seen: set[int] = set()
    for selection in selections:
        candidate_ids = candidates_by_portfolio.get(selection.portfolio_id)
        if candidate_ids is None:
            raise InvalidSelection(f"Portfolio {selection.portfolio_id} is not part of this election.")
        if selection.portfolio_id in seen:
            raise InvalidSelection(f"Portfolio {selection.portfolio_id} was selected more than once.")
        seen.add(selection.portfolio_id)

        if selection.candidate_id is None:
            if len(candidate_ids) != 1:
                raise InvalidSelection(
                    f"A 'no' vote is only allowed on referendum portfolios (portfolio {selection.portfolio_id})."
                )
        elif selection.candidate_id not in candidate_ids:
            raise InvalidSelection(
                f"Candidate {selection.candidate_id} does not stand for portfolio {selection.portfolio_id}."
            )

    # Candidate-less portfolios cannot be voted on, so they are not required.
    required = {portfolio_id for portfolio_id, candidate_ids in candidates_by_portfolio.items() if candidate_ids}
    if required - seen:
        raise IncompleteBallot()
    return selections


def _write_ballot(
    *,
    election: Election,
    identity: VoterIdentity,
    voter_fingerprint: str,
    selections: list[Selection],
    now: datetime,
    request=None,
) -> RecordedBallot:
    with transaction.atomic():
        voter_token = None
        if identity.voter_token is not None:
            voter_token = VoterToken.objects.select_for_update().filter(pk=identity.voter_token.pk).first()

        # Re-read under the lock; a concurrent winner has committed by now.
        prior_cast_at = find_prior_cast_at(election.pk, voter_fingerprint)
        if prior_cast_at is not None:
            raise AlreadyVoted(voted_at=prior_cast_at)

        try:
            with transaction.atomic():
                ballot = Ballot.objects.create(election=election, voter_fingerprint=voter_fingerprint, cast_at=now)
                Vote.objects.bulk_create(
                    [
                        Vote(
                            election=election,
                            ballot=ballot,
                            portfolio_id=selection.portfolio_id,
                            candidate_id=selection.candidate_id,
                            voter_fingerprint=voter_fingerprint,
                            cast_at=now,
                        )
                        for selection in selections
                    ]
                )
        except IntegrityError as exc:
            raise AlreadyVoted(voted_at=find_prior_cast_at(election.pk, voter_fingerprint)) from exc

        if voter_token is not None:
            flipped = VoterToken.objects.filter(pk=voter_token.pk, used=False).update(used=True, used_at=now)
            if not flipped:
                raise AlreadyVoted(voted_at=voter_token.used_at)

        record_event(
            event_type=AuditLog.EventType.VOTE_CAST,
            election=election,
            request=request,
            status_code=201,
            metadata={
                "ballot_id": ballot.pk,
                "vote_count": len(selections),
                "fingerprint_prefix": voter_fingerprint[:8],
            },
        )

    return RecordedBallot(election_id=election.pk, ballot_id=ballot.pk, cast_at=now, vote_count=len(selections))


def _record_duplicate_attempt(election: Election, voter_fingerprint: str, exc: AlreadyVoted, request=None) -> None:
    logger.warning(
        "ballot.duplicate_rejected",
        extra={"election_id": election.pk, "fingerprint": voter_fingerprint[:8]},
    )
    record_event(
        event_type=AuditLog.EventType.VOTE_UPDATED,
        election=election,
        request=request,
        status_code=exc.status_code,
        metadata={
            "fingerprint_prefix": voter_fingerprint[:8],
            "voted_at": exc.voted_at.isoformat() if exc.voted_at else None,
        },
    )


def submit_ballot(identity: VoterIdentity, selections, *, now=None, request=None) -> RecordedBallot:
    """Record a voter's ballot exactly once.

    Either every vote row, the token flip and the VOTE_CAST audit entry are
    committed together, or none of them are.
    """
    now = now or timezone.now()
    try:
        election = get_identity_election(identity)
        voter_fingerprint = fingerprint(identity.voter_id)

        try:
            prior_cast_at = find_prior_cast_at(election.pk, voter_fingerprint)
            if prior_cast_at is not None:
                raise AlreadyVoted(voted_at=prior_cast_at)
            if not election.is_accepting_votes(now):
                raise ElectionNotActive()
            checked = validate_selections(election, selections)
            recorded = _write_ballot(
                election=election,
                identity=identity,
                voter_fingerprint=voter_fingerprint,
                selections=checked,
                now=now,
                request=request,
            )
        except AlreadyVoted as exc:
            _record_duplicate_attempt(election, voter_fingerprint, exc, request=request)
            raise
    except (OperationalError, InterfaceError) as exc:
        logger.error("ballot.store_unavailable", extra={"error": str(exc)})
        raise BallotStoreUnavailable() from exc

    logger.info(
        "ballot.recorded",
        extra={
            "election_id": recorded.election_id,
            "ballot_id": recorded.ballot_id,
            "vote_count": recorded.vote_count,
            "fingerprint": voter_fingerprint[:8],
        },
    )
    return recorded
