"""
auth/share_sessions.py -- Server-side record of live share sessions.

A share token is a signed JWT, so on its own it stays valid until it expires.
Every token is therefore paired with a cache key that must still exist when
the token is presented:

    share_session:{project_id}:{session_id}     "1"   (TTL = client session timeout)

Deleting a project's keys ends every client session of that project at once.
The project routes do this whenever the share password, auth mode, guest
settings or status change, and when the project is deleted [H4].
"""

from __future__ import annotations

import logging

from auth.models import ShareContext
from auth.tokens import create_share_token, new_session_id
from cache.store import KeyedCache

logger = logging.getLogger("reviewdesk.auth.share")


def _session_key(project_id: int, session_id: str) -> str:
    return f"share_session:{project_id}:{session_id}"


def open_share_session(
    cache: KeyedCache,
    share_id: str,
    project_id: int,
    permissions: list[str],
    guest: bool,
    ttl: int,
) -> str:
    """Record a new session for the project and return its share token."""
    session_id = new_session_id()
    cache.set(_session_key(project_id, session_id), "1", ttl)
    return create_share_token(share_id, project_id, permissions, guest, ttl, session_id=session_id)


def is_share_session_live(cache: KeyedCache, context: ShareContext) -> bool:
    return cache.exists(_session_key(context.project_id, context.session_id))


def revoke_project_share_sessions(cache: KeyedCache, project_id: int) -> int:
    """End every share session of a project. Returns the number revoked."""
    keys = list(cache.scan(f"share_session:{project_id}:*"))
    if keys:
        cache.delete(*keys)
        logger.info("Revoked %d share session(s) for project %s", len(keys), project_id)
    return len(keys)
