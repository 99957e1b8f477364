"""
auth/revocation.py -- Token blacklist in the keyed cache.

Two granularities:
  blacklist:token:{sha256(token)}  -- one token, kept until it would have
                                      expired anyway (logout, refresh rotation)
  blacklist:user:{user_id}         -- timestamp; every token of that user
                                      issued before it is revoked (password
                                      change, deactivation)

Only the SHA-256 of a token is stored, never the token itself.
"""

from __future__ import annotations

import hashlib
import logging
import time

from cache.store import KeyedCache

logger = logging.getLogger("reviewdesk.auth.revocation")

# A user-level revocation must outlive the longest token it can cover.
_USER_REVOCATION_TTL = 7 * 24 * 60 * 60


def _token_key(token: str) -> str:
    return f"blacklist:token:{hashlib.sha256(token.encode()).hexdigest()}"


def revoke_token(cache: KeyedCache, token: str, ttl: int) -> None:
    """Blacklist one token for ttl seconds (its remaining lifetime)."""
    if ttl <= 0:
        return
    cache.set(_token_key(token), "1", ttl)


def is_token_revoked(cache: KeyedCache, token: str) -> bool:
    return cache.exists(_token_key(token))


def revoke_user_tokens(cache: KeyedCache, user_id: int) -> None:
    """Revoke every token issued to user_id up to now."""
    cache.set(f"blacklist:user:{user_id}", repr(time.time()), _USER_REVOCATION_TTL)
    logger.info("Revoked all tokens for user_id=%s", user_id)


def is_user_revoked(cache: KeyedCache, user_id: int, issued_at: float) -> bool:
    raw = cache.get(f"blacklist:user:{user_id}")
    if raw is None:
        return False
    try:
        return float(issued_at) < float(raw)
    except (TypeError, ValueError):
        return False


def is_payload_revoked(cache: KeyedCache, token: str, payload: dict) -> bool:
    """True when either the token itself or its user has been revoked."""
    if is_token_revoked(cache, token):
        return True
    user_id = payload.get("user_id")
    if user_id is None:
        return False
    return is_user_revoked(cache, user_id, payload.get("iat", 0))
