"""
auth/events.py -- Security event recording.

Every event is logged through the "reviewdesk.security" logger. When the
runtime setting track_security_logs is on, it is also persisted as a
security_events row so admins can review it at GET /security/events.

Event types in use:
  PASSWORD_FAILED, PASSWORD_LOCKOUT, OTP_SENT, UNAUTHORIZED_OTP_REQUEST,
  OTP_RATE_LIMIT_HIT, OTP_VERIFICATION_FAILED, OTP_LOCKOUT,
  TOKEN_SESSION_MISMATCH, GUEST_ACCESS
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from auth.models import SecurityEvent
from auth.store import UserStore

logger = logging.getLogger("reviewdesk.security")

_LEVELS = {"INFO": logging.INFO, "WARNING": logging.WARNING, "CRITICAL": logging.CRITICAL}


def record_security_event(
    store: UserStore,
    event_type: str,
    severity: str = "INFO",
    *,
    project_id: Optional[int] = None,
    video_id: Optional[int] = None,
    session_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    referer: Optional[str] = None,
    details: Optional[dict] = None,
    was_blocked: bool = False,
) -> None:
    """Log a security event and persist it when tracking is enabled.

    A failing audit write is logged and does not fail the request that
    triggered it.
    """
    logger.log(
        _LEVELS.get(severity, logging.INFO),
        "%s project=%s ip=%s blocked=%s details=%s",
        event_type,
        project_id,
        ip_address,
        was_blocked,
        details,
    )
    try:
        if not store.get_security_settings().track_security_logs:
            return
        store.add_security_event(
            SecurityEvent(
                type=event_type,
                severity=severity,
                project_id=project_id,
                video_id=video_id,
                session_id=session_id,
                ip_address=ip_address,
                referer=referer,
                details=details,
                was_blocked=was_blocked,
            )
        )
    except SQLAlchemyError:
        logger.exception("Failed to persist security event %s", event_type)
