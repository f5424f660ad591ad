from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import timedelta

from django.db import models
from django.utils import timezone


class Election(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        PENDING_APPROVAL = "PENDING_APPROVAL", "Pending approval"
        APPROVED = "APPROVED", "Approved"
        LIVE = "LIVE", "Live"
        CLOSED = "CLOSED", "Closed"
        ARCHIVED = "ARCHIVED", "Archived"

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT, db_index=True)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    department = models.CharField(max_length=120, blank=True, help_text="Blank for a general election.")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-start_time", "-id"]

    def __str__(self) -> str:
        return self.title

    @property
    def is_general(self) -> bool:
        return not (self.department or "").strip()

    def is_accepting_votes(self, now=None) -> bool:
        now = now or timezone.now()
        if self.status != self.Status.LIVE:
            return False
        return self.start_time <= now <= self.end_time


class Portfolio(models.Model):
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="portfolios")
    title = models.CharField(max_length=160)
    description = models.TextField(blank=True)
    ballot_order = models.IntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.election_id}:{self.title}"


class Candidate(models.Model):
    portfolio = models.ForeignKey(Portfolio, on_delete=models.CASCADE, related_name="candidates")
    full_name = models.CharField(max_length=200)
    photo_url = models.URLField(max_length=500, blank=True)
    manifesto = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.portfolio_id}:{self.full_name}"


class VoterToken(models.Model):
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="voter_tokens")
    voter_id = models.CharField(max_length=160)
    used = models.BooleanField(default=False, db_index=True)
    issued_at = models.DateTimeField(default=timezone.now)
    used_at = models.DateTimeField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["election", "voter_id"], name="uniq_voter_token_election_voter"),
        ]

    def __str__(self) -> str:
        return f"{self.election_id}:token:{self.id}"


class VoteAccessSession(models.Model):
    DEFAULT_TTL = timedelta(minutes=30)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    voter_token = models.ForeignKey(VoterToken, on_delete=models.CASCADE, related_name="access_sessions")
    token_hash = models.CharField(max_length=64, unique=True, db_index=True)
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return str(self.id)

    @classmethod
    def hash_token(cls, raw_token: str) -> str:
        return hashlib.sha256((raw_token or "").strip().encode("utf-8")).hexdigest()

    @classmethod
    def issue(cls, voter_token: VoterToken, *, ttl: timedelta | None = None, now=None) -> tuple["VoteAccessSession", str]:
        """Provision a session and return it with the raw token (only ever returned here)."""
        now = now or timezone.now()
        raw_token = secrets.token_urlsafe(32)
        session = cls.objects.create(
            voter_token=voter_token,
            token_hash=cls.hash_token(raw_token),
            expires_at=now + (ttl or cls.DEFAULT_TTL),
        )
        return session, raw_token

    def is_active(self, now=None) -> bool:
        return (now or timezone.now()) <= self.expires_at


class Ballot(models.Model):
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="ballots")
    voter_fingerprint = models.CharField(max_length=64)
    cast_at = models.DateTimeField()

    class Meta:
        ordering = ["-cast_at", "-id"]
        constraints = [
            models.UniqueConstraint(fields=["election", "voter_fingerprint"], name="uniq_ballot_election_fingerprint"),
        ]

    def __str__(self) -> str:
        return f"ballot:{self.election_id}:{self.voter_fingerprint[:8]}"


class Vote(models.Model):
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="votes")
    ballot = models.ForeignKey(Ballot, on_delete=models.CASCADE, related_name="votes")
    portfolio = models.ForeignKey(Portfolio, on_delete=models.CASCADE, related_name="votes")
    candidate = models.ForeignKey(Candidate, on_delete=models.PROTECT, null=True, blank=True, related_name="votes")
    voter_fingerprint = models.CharField(max_length=64)
    cast_at = models.DateTimeField()

    class Meta:
        ordering = ["-cast_at", "-id"]
        indexes = [
            models.Index(fields=["election", "cast_at"], name="vote_election_cast_idx"),
            models.Index(fields=["election", "portfolio"], name="vote_election_portfolio_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["election", "portfolio", "voter_fingerprint"],
                name="uniq_vote_election_portfolio_fingerprint",
            ),
        ]

    def __str__(self) -> str:
        return f"vote:{self.election_id}:{self.portfolio_id}:{self.voter_fingerprint[:8]}"
