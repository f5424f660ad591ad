from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.utils import timezone

from .exceptions import InvalidToken
from .models import Election, VoteAccessSession, VoterToken


@dataclass(frozen=True)
class VoterIdentity:
    """Verified voter resolved from an access token."""

    voter_token: Optional[VoterToken]
    voter_id: str
    election: Optional[Election]
    session_expires_at: Optional[datetime]

    @property
    def election_id(self) -> Optional[int]:
        return self.election.pk if self.election is not None else None


def resolve_access_token(raw_token: str, *, now=None) -> VoterIdentity:
    now = now or timezone.now()
    if not (raw_token or "").strip():
        raise InvalidToken()

    session = (
        VoteAccessSession.objects.select_related("voter_token", "voter_token__election")
        .filter(token_hash=VoteAccessSession.hash_token(raw_token))
        .first()
    )
    if session is None or not session.is_active(now):
        raise InvalidToken()

    voter_token = session.voter_token
    return VoterIdentity(
        voter_token=voter_token,
        voter_id=voter_token.voter_id,
        election=voter_token.election,
        session_expires_at=session.expires_at,
    )
