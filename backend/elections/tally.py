from __future__ import annotations

import functools
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from django.db import DatabaseError
from django.db.models import Count, Q
from django.utils import timezone

from .exceptions import TallyUnavailable
from .integrity import BallotIntegritySummary, ballot_integrity_summary
from .models import Candidate, Election, Portfolio, Vote, VoterToken

logger = logging.getLogger(__name__)

DEFAULT_PEAK_HOUR = 12
ACTIVE_VOTERS = "ACTIVE_VOTERS"
PENDING_VOTERS = "PENDING_VOTERS"
ALL_VOTERS_LABEL = "All Voters"

_CENTS = Decimal("0.01")
_UNITS = Decimal("1")


@dataclass(frozen=True)
class TurnoutStats:
    total_voters: int
    total_votes: int
    distinct_voters_who_voted: int
    turnout_percentage: float


@dataclass(frozen=True)
class CandidateStanding:
    candidate_id: int
    full_name: str
    votes: int
    percentage: float


@dataclass(frozen=True)
class PortfolioStanding:
    portfolio_id: int
    title: str
    votes: int
    percentage: float
    abstentions: int
    candidates: tuple[CandidateStanding, ...]
    leading_candidate: Optional[CandidateStanding]


@dataclass(frozen=True)
class HourBucket:
    hour: int
    label: str
    votes: int
    cumulative: int


@dataclass(frozen=True)
class HourlyTimeline:
    buckets: tuple[HourBucket, ...]
    peak_hour: int
    total_votes: int


@dataclass(frozen=True)
class VoterDemographic:
    category: str
    count: int
    percentage: float


@dataclass(frozen=True)
class DepartmentParticipation:
    department: str
    eligible: int
    voted: int
    percentage: float


@dataclass(frozen=True)
class ElectionReport:
    election_id: int
    title: str
    status: str
    generated_at: datetime
    turnout: TurnoutStats
    voting_rate: int
    portfolios: tuple[PortfolioStanding, ...]
    timeline: HourlyTimeline
    demographics: tuple[VoterDemographic, ...]
    departments: tuple[DepartmentParticipation, ...]
    integrity: BallotIntegritySummary


def _tally_read(func):
    """Surface store failures as TallyUnavailable instead of zeroed numbers."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DatabaseError as exc:
            logger.error("tally.unavailable", extra={"operation": func.__name__, "error": str(exc)})
            raise TallyUnavailable() from exc

    return wrapper


def round_percentage(part, whole) -> float:
    """part / whole * 100, half-up to 2 decimals; 0.0 when whole is 0."""
    if not whole:
        return 0.0
    value = Decimal(part) * 100 / Decimal(whole)
    return float(value.quantize(_CENTS, rounding=ROUND_HALF_UP))


def _round_rate(votes: int, hours: float) -> int:
    value = Decimal(votes) / Decimal(str(max(1.0, hours)))
    return int(value.quantize(_UNITS, rounding=ROUND_HALF_UP))


@_tally_read
def compute_turnout(election: Election) -> TurnoutStats:
    total_voters = VoterToken.objects.filter(election=election).count()
    voted = VoterToken.objects.filter(election=election, used=True).count()
    total_votes = Vote.objects.filter(election=election).count()
    return TurnoutStats(
        total_voters=total_voters,
        total_votes=total_votes,
        distinct_voters_who_voted=voted,
        turnout_percentage=round_percentage(voted, total_voters),
    )


def compute_voting_rate(election: Election, total_votes: int, *, now=None) -> int:
    """Votes per hour while live (elapsed hours) or once closed (scheduled hours)."""
    now = now or timezone.now()
    if election.status == Election.Status.LIVE and election.start_time <= now:
        hours = (now - election.start_time).total_seconds() / 3600
        return _round_rate(total_votes, hours)
    if election.status == Election.Status.CLOSED:
        hours = (election.end_time - election.start_time).total_seconds() / 3600
        return _round_rate(total_votes, hours)
    return 0


def _leading(candidates: list[CandidateStanding]) -> Optional[CandidateStanding]:
    leading = None
    for candidate in candidates:
        if leading is None or candidate.votes > leading.votes:
            leading = candidate
    return leading


@_tally_read
def compute_portfolio_standings(election: Election, total_votes: int) -> list[PortfolioStanding]:
    portfolios = (
        Portfolio.objects.filter(election=election)
        .annotate(
            vote_count=Count("votes"),
            abstention_count=Count("votes", filter=Q(votes__candidate__isnull=True)),
        )
        .order_by("id")
    )
    candidate_rows = (
        Candidate.objects.filter(portfolio__election=election)
        .annotate(vote_count=Count("votes"))
        .order_by("portfolio_id", "id")
    )
    candidates_by_portfolio = defaultdict(list)
    for candidate in candidate_rows:
        candidates_by_portfolio[candidate.portfolio_id].append(candidate)

    standings = []
    for portfolio in portfolios:
        candidates = [
            CandidateStanding(
                candidate_id=candidate.pk,
                full_name=candidate.full_name,
                votes=candidate.vote_count,
                percentage=round_percentage(candidate.vote_count, portfolio.vote_count),
            )
            for candidate in candidates_by_portfolio.get(portfolio.pk, [])
        ]
        standings.append(
            PortfolioStanding(
                portfolio_id=portfolio.pk,
                title=portfolio.title,
                votes=portfolio.vote_count,
                percentage=round_percentage(portfolio.vote_count, total_votes),
                abstentions=portfolio.abstention_count,
                candidates=tuple(candidates),
                leading_candidate=_leading(candidates),
            )
        )
    return standings


@_tally_read
def compute_hourly_timeline(election: Election) -> HourlyTimeline:
    counts = [0] * 24
    for cast_at in Vote.objects.filter(election=election).values_list("cast_at", flat=True).iterator():
        counts[timezone.localtime(cast_at).hour] += 1

    buckets = []
    cumulative = 0
    for hour, votes in enumerate(counts):
        cumulative += votes
        if cumulative == 0:
            continue
        buckets.append(HourBucket(hour=hour, label=f"{hour:02d}:00", votes=votes, cumulative=cumulative))

    total = sum(counts)
    peak_hour = counts.index(max(counts)) if total else DEFAULT_PEAK_HOUR
    return HourlyTimeline(buckets=tuple(buckets), peak_hour=peak_hour, total_votes=total)


@_tally_read
def compute_voter_demographics(election: Election) -> list[VoterDemographic]:
    total = VoterToken.objects.filter(election=election).count()
    used = VoterToken.objects.filter(election=election, used=True).count()
    pending = total - used
    return [
        VoterDemographic(category=ACTIVE_VOTERS, count=used, percentage=round_percentage(used, total)),
        VoterDemographic(category=PENDING_VOTERS, count=pending, percentage=round_percentage(pending, total)),
    ]


@_tally_read
def compute_department_participation(election: Election) -> list[DepartmentParticipation]:
    # Tokens carry no department, so the electorate collapses into one row.
    eligible = VoterToken.objects.filter(election=election).count()
    voted = VoterToken.objects.filter(election=election, used=True).count()
    return [
        DepartmentParticipation(
            department=ALL_VOTERS_LABEL,
            eligible=eligible,
            voted=voted,
            percentage=round_percentage(voted, eligible),
        )
    ]


@_tally_read
def build_election_report(election: Election, *, now=None) -> ElectionReport:
    now = now or timezone.now()
    turnout = compute_turnout(election)
    report = ElectionReport(
        election_id=election.pk,
        title=election.title,
        status=election.status,
        generated_at=now,
        turnout=turnout,
        voting_rate=compute_voting_rate(election, turnout.total_votes, now=now),
        portfolios=tuple(compute_portfolio_standings(election, turnout.total_votes)),
        timeline=compute_hourly_timeline(election),
        demographics=tuple(compute_voter_demographics(election)),
        departments=tuple(compute_department_participation(election)),
        integrity=ballot_integrity_summary(election, now=now),
    )
    logger.info(
        "tally.report_built",
        extra={"election_id": election.pk, "total_votes": turnout.total_votes},
    )
    return report
