"""
auth/content_tokens.py -- Per-file content tokens bound to a viewing session.

A player never receives a storage path. It asks POST /share/{slug}/video-token
for a token and streams GET /api/v1/content/{token}. Tokens are random
(128 bits, urlsafe) and live only in the keyed cache:

    video_access:{token}                          {video_id, project_id, quality, session_id, ip_address, created_at}
    video_token_cache:{session}:{video}:{quality} token

Both keys expire after the runtime client session timeout. The second key
makes repeated requests from one session reuse one token instead of minting
thousands.

Session binding: the session presenting a token must be the one it was
issued to. Admin sessions ("admin:{user_id}") may use any token.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Optional

from auth.events import record_security_event
from auth.store import UserStore
from cache.store import KeyedCache

logger = logging.getLogger("reviewdesk.auth.content")

QUALITIES = ("720p", "1080p", "original")

_REQUIRED_FIELDS = ("video_id", "project_id", "session_id", "quality")


def _cache_key(session_id: str, video_id: int, quality: str) -> str:
    return f"video_token_cache:{session_id}:{video_id}:{quality}"


def _access_key(token: str) -> str:
    return f"video_access:{token}"


def is_admin_session(session_id: Optional[str]) -> bool:
    return bool(session_id) and session_id.startswith("admin:")


def generate_content_token(
    cache: KeyedCache,
    video_id: int,
    project_id: int,
    quality: str,
    session_id: str,
    ip_address: str,
    ttl: int,
) -> str:
    """Return a content token for (session, video, quality), reusing a live one."""
    cached = cache.get(_cache_key(session_id, video_id, quality))
    if cached and cache.exists(_access_key(cached)):
        return cached

    token = secrets.token_urlsafe(16)
    cache.set_json(
        _access_key(token),
        {
            "video_id": video_id,
            "project_id": project_id,
            "quality": quality,
            "session_id": session_id,
            "ip_address": ip_address,
            "created_at": time.time(),
        },
        ttl=ttl,
    )
    cache.set(_cache_key(session_id, video_id, quality), token, ttl)
    return token


def verify_content_token(
    cache: KeyedCache,
    token: str,
    session_id: Optional[str],
    user_store: Optional[UserStore] = None,
    ip_address: Optional[str] = None,
) -> Optional[dict]:
    """Return the token data when the token is live and bound to session_id.

    A session mismatch is recorded as a TOKEN_SESSION_MISMATCH security event
    when user_store is given.
    """
    data = cache.get_json(_access_key(token))
    if not isinstance(data, dict) or any(data.get(f) is None for f in _REQUIRED_FIELDS):
        return None

    if is_admin_session(session_id):
        return data

    if data["session_id"] != session_id:
        logger.warning("Content token presented by a different session (token=%s...)", token[:8])
        if user_store is not None:
            record_security_event(
                user_store,
                "TOKEN_SESSION_MISMATCH",
                "WARNING",
                project_id=data["project_id"],
                video_id=data["video_id"],
                session_id=session_id,
                ip_address=ip_address,
                details={"expected_session": data["session_id"]},
            )
        return None
    return data


def revoke_project_content_tokens(cache: KeyedCache, project_id: int) -> int:
    """Delete every content token (and its reuse pointer) issued for a project."""
    revoked = 0
    for key in list(cache.scan("video_access:*")):
        data = cache.get_json(key)
        if not isinstance(data, dict) or data.get("project_id") != project_id:
            continue
        token = key.split(":", 1)[1]
        cache.delete(key, _cache_key(data["session_id"], data["video_id"], data["quality"]))
        revoked += 1
        logger.debug("Revoked content token %s... for project %s", token[:8], project_id)
    if revoked:
        logger.info("Revoked %d content token(s) for project %s", revoked, project_id)
    return revoked
