from __future__ import annotations

from django.conf import settings
from rest_framework.throttling import AnonRateThrottle


class BallotRateThrottle(AnonRateThrottle):
    """Per-IP limit on the public ballot endpoints."""

    scope = "ballot"

    def get_rate(self):
        explicit = str(getattr(settings, "BALLOT_THROTTLE_RATE", "") or "").strip()
        if explicit:
            return explicit
        return super().get_rate()
