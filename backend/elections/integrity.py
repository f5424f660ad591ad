from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from audit.models import AuditLog
from audit.services import election_events

from .exceptions import TallyUnavailable
from .models import Ballot, Election, Vote

logger = logging.getLogger(__name__)

SECURITY_EVENT_TYPES = (
    AuditLog.EventType.VOTE_CAST,
    AuditLog.EventType.VOTE_UPDATED,
    AuditLog.EventType.USER_LOGIN,
)
DEFAULT_EVENT_LIMIT = 50
MAX_EVENT_LIMIT = 100
SUSPICIOUS_ACTIVITY_LIMIT = 10


@dataclass(frozen=True)
class SecurityEvent:
    id: int
    event_type: str
    created_at: datetime
    actor_id: Optional[int]
    ip_address: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BallotIntegritySummary:
    total_ballots: int
    valid_votes: int
    duplicate_attempts: int
    suspicious_activity: tuple[SecurityEvent, ...]
    last_audit_time: datetime


def clamp_limit(limit) -> int:
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = DEFAULT_EVENT_LIMIT
    return max(1, min(MAX_EVENT_LIMIT, limit))


def _to_security_event(entry: AuditLog) -> SecurityEvent:
    return SecurityEvent(
        id=entry.pk,
        event_type=entry.event_type,
        created_at=entry.created_at,
        actor_id=entry.actor_id,
        ip_address=entry.ip_address,
        metadata=dict(entry.metadata or {}),
    )


def recent_security_events(election: Election, *, limit: int = DEFAULT_EVENT_LIMIT) -> list[SecurityEvent]:
    """Most recent vote and login events for the election, newest first."""
    try:
        entries = list(
            election_events(election)
            .filter(event_type__in=SECURITY_EVENT_TYPES)
            .order_by("-created_at", "-id")[: clamp_limit(limit)]
        )
    except DatabaseError as exc:
        logger.error("integrity.unavailable", extra={"election_id": election.pk, "error": str(exc)})
        raise TallyUnavailable() from exc
    return [_to_security_event(entry) for entry in entries]


def ballot_integrity_summary(election: Election, *, now=None) -> BallotIntegritySummary:
    now = now or timezone.now()
    checkpoint_event = getattr(settings, "ELECTIONS_AUDIT_CHECKPOINT_EVENT", AuditLog.EventType.SYSTEM_BACKUP)
    try:
        total_ballots = Ballot.objects.filter(election=election).count()
        valid_votes = Vote.objects.filter(election=election).count()
        events = election_events(election)
        duplicate_attempts = events.filter(event_type=AuditLog.EventType.VOTE_UPDATED).count()
        last_checkpoint = (
            events.filter(event_type=checkpoint_event)
            .order_by("-created_at", "-id")
            .values_list("created_at", flat=True)
            .first()
        )
    except DatabaseError as exc:
        logger.error("integrity.unavailable", extra={"election_id": election.pk, "error": str(exc)})
        raise TallyUnavailable() from exc

    return BallotIntegritySummary(
        total_ballots=total_ballots,
        valid_votes=valid_votes,
        duplicate_attempts=duplicate_attempts,
        suspicious_activity=tuple(recent_security_events(election, limit=SUSPICIOUS_ACTIVITY_LIMIT)),
        last_audit_time=last_checkpoint or now,
    )
