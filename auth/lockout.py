"""
auth/lockout.py -- Brute-force lockout for share-link passwords and OTP codes.

This is separate from the slowapi per-route limits in api/limiter.py: those
cap request volume, this counts FAILED guesses per caller and locks the
caller out for a fixed period once the runtime `password_attempts` limit is
reached.

Entry shape (JSON in the keyed cache):
    {"count": 3, "first_attempt": 1700000000.0, "last_attempt": ..., "lockout_until": null}

Key:
    ratelimit:{scope}:{slug}:{sha256(identity)[:16]}
where identity is "ip:slug" for passwords and "ip:slug:email" for OTP.
"""

from __future__ import annotations

import hashlib
import math
import time
from dataclasses import dataclass
from typing import Optional

from cache.store import KeyedCache

LOCKOUT_WINDOW_SECONDS = 15 * 60

PASSWORD_SCOPE = "share-verify-failed"
OTP_SCOPE = "otp-verify-failed"


@dataclass
class FailureResult:
    count: int
    locked: bool
    retry_after: int = 0


def lockout_key(scope: str, slug: str, *identity: str) -> str:
    digest = hashlib.sha256(":".join(identity).encode()).hexdigest()[:16]
    return f"ratelimit:{scope}:{slug}:{digest}"


def password_lockout_key(slug: str, ip: str) -> str:
    return lockout_key(PASSWORD_SCOPE, slug, ip, slug)


def otp_lockout_key(slug: str, ip: str, email: str) -> str:
    return lockout_key(OTP_SCOPE, slug, ip, slug, email.strip().lower())


def check_lockout(cache: KeyedCache, key: str, now: Optional[float] = None) -> int:
    """Return the seconds remaining on an active lockout, or 0 when not locked."""
    now = time.time() if now is None else now
    entry = cache.get_json(key)
    if not entry:
        return 0
    until = entry.get("lockout_until")
    if until and until > now:
        return max(1, math.ceil(until - now))
    return 0


def register_failure(cache: KeyedCache, key: str, max_attempts: int, now: Optional[float] = None) -> FailureResult:
    """Count a failed attempt; lock the caller out when max_attempts is reached.

    The counting window restarts when the first recorded failure is older
    than LOCKOUT_WINDOW_SECONDS.
    """
    now = time.time() if now is None else now
    entry = cache.get_json(key) or {}
    if entry and now - entry.get("first_attempt", now) <= LOCKOUT_WINDOW_SECONDS:
        count = int(entry.get("count", 0)) + 1
        first = entry["first_attempt"]
    else:
        count = 1
        first = now

    locked = count >= max_attempts
    cache.set_json(
        key,
        {
            "count": count,
            "first_attempt": first,
            "last_attempt": now,
            "lockout_until": now + LOCKOUT_WINDOW_SECONDS if locked else None,
        },
        ttl=LOCKOUT_WINDOW_SECONDS,
    )
    return FailureResult(count=count, locked=locked, retry_after=LOCKOUT_WINDOW_SECONDS if locked else 0)


def clear_failures(cache: KeyedCache, key: str) -> None:
    cache.delete(key)
