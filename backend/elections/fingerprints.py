from __future__ import annotations

import hashlib
import hmac

from django.conf import settings


def fingerprint(voter_identifier: str) -> str:
    """One-way, deterministic digest of a voter identifier.

    Plain SHA-256 hex, or HMAC-SHA256 keyed with ELECTIONS_FINGERPRINT_PEPPER
    when one is configured. Callers reject empty identifiers.
    """
    payload = str(voter_identifier).encode("utf-8")
    pepper = getattr(settings, "ELECTIONS_FINGERPRINT_PEPPER", "") or ""
    if pepper:
        return hmac.new(pepper.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hashlib.sha256(payload).hexdigest()
