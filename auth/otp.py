"""
auth/otp.py -- One-time codes for passwordless share-link access.

Storage (keyed cache, no PII in key names):
    otp:{project_id}:{sha256(email)[:16]}            {code, email, attempts, created_at}   TTL 10 min
    otp:ratelimit:{project_id}:{sha256(email)[:16]}  {count, first_attempt}                TTL 15 min

Security design:
  [C3] Codes come from `secrets` and are compared with hmac.compare_digest.
  [C4] Codes are single use: a successful verification deletes the key.
  [C5] The stored created_at is checked as well as the key TTL, so a code
       older than OTP_EXPIRY_SECONDS is rejected even if the key survived
       (clock skew, a TTL reset by a wrong guess, a restored snapshot).
  Wrong guesses are counted ON the code; once max_attempts is reached the
  code is burned and the client must request a new one.

All functions accept `now` so expiry can be tested without sleeping.
"""

from __future__ import annotations

import hashlib
import hmac
import math
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from cache.store import KeyedCache

OTP_LENGTH = 6
OTP_EXPIRY_SECONDS = 10 * 60
SEND_WINDOW_SECONDS = 15 * 60


@dataclass
class OtpResult:
    success: bool
    error: Optional[str] = None
    attempts_left: Optional[int] = None


def _email_hash(email: str) -> str:
    return hashlib.sha256(email.strip().lower().encode()).hexdigest()[:16]


def otp_key(project_id: int, email: str) -> str:
    return f"otp:{project_id}:{_email_hash(email)}"


def otp_ratelimit_key(project_id: int, email: str) -> str:
    return f"otp:ratelimit:{project_id}:{_email_hash(email)}"


def generate_code() -> str:
    """A uniformly random OTP_LENGTH-digit code without a leading zero."""
    low = 10 ** (OTP_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


# ---------------------------------------------------------------------------
# Send rate limit
# ---------------------------------------------------------------------------


def check_send_limit(
    cache: KeyedCache, project_id: int, email: str, max_requests: int, now: Optional[float] = None
) -> int:
    """Return seconds to wait before another code may be sent, or 0 if allowed."""
    now = time.time() if now is None else now
    key = otp_ratelimit_key(project_id, email)
    entry = cache.get_json(key)
    if not entry:
        return 0
    first = entry.get("first_attempt", now)
    if now - first > SEND_WINDOW_SECONDS:
        cache.delete(key)
        return 0
    if entry.get("count", 0) >= max_requests:
        return max(1, math.ceil(first + SEND_WINDOW_SECONDS - now))
    return 0


def _count_send(cache: KeyedCache, project_id: int, email: str, now: float) -> None:
    key = otp_ratelimit_key(project_id, email)
    entry = cache.get_json(key)
    if entry and now - entry.get("first_attempt", now) <= SEND_WINDOW_SECONDS:
        payload = {"count": int(entry.get("count", 0)) + 1, "first_attempt": entry["first_attempt"]}
    else:
        payload = {"count": 1, "first_attempt": now}
    cache.set_json(key, payload, ttl=SEND_WINDOW_SECONDS)


# ---------------------------------------------------------------------------
# Issue / verify
# ---------------------------------------------------------------------------


def issue_code(cache: KeyedCache, project_id: int, email: str, now: Optional[float] = None) -> str:
    """Create and store a fresh code for (project, email); replaces any earlier code."""
    now = time.time() if now is None else now
    code = generate_code()
    cache.set_json(
        otp_key(project_id, email),
        {"code": code, "email": email.strip().lower(), "attempts": 0, "created_at": now},
        ttl=OTP_EXPIRY_SECONDS,
    )
    _count_send(cache, project_id, email, now)
    return code


def verify_code(
    cache: KeyedCache,
    project_id: int,
    email: str,
    code: str,
    max_attempts: int,
    now: Optional[float] = None,
) -> OtpResult:
    now = time.time() if now is None else now
    key = otp_key(project_id, email)
    data = cache.get_json(key)
    if not data:
        return OtpResult(False, "Invalid or expired code")

    if now - float(data.get("created_at", 0)) > OTP_EXPIRY_SECONDS:
        cache.delete(key)
        return OtpResult(False, "Invalid or expired code")

    if str(data.get("email", "")).lower() != email.strip().lower():
        return OtpResult(False, "Invalid code")

    attempts = int(data.get("attempts", 0))
    if attempts >= max_attempts:
        cache.delete(key)
        return OtpResult(False, "Too many incorrect attempts. Please request a new code.")

    if not hmac.compare_digest(code.strip().encode(), str(data.get("code", "")).encode()):
        attempts += 1
        left = max_attempts - attempts
        if left <= 0:
            cache.delete(key)
            return OtpResult(False, "Too many incorrect attempts. Please request a new code.")
        data["attempts"] = attempts
        if not cache.replace_json(key, data):
            return OtpResult(False, "Invalid or expired code")
        return OtpResult(False, "Incorrect code", attempts_left=left)

    cache.delete(key)
    return OtpResult(True)
