"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in review/models.py and sales/models.py -- dataclasses own domain shape;
stores, dependencies and routes do the work.

Two kinds of identity exist side by side:
  User          -- an internal account (admin or staff) holding an admin JWT.
  ShareContext  -- a client holding a share token for exactly one project.
ProjectAccess is the verdict verify_project_access() returns for a request.

Layer rule: no imports from api/, review/, sales/, notify/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """An internal account.

    Login accepts either email or username. Only role "admin" may use the
    admin API; "staff" accounts exist so they can be promoted later without
    re-inviting.
    """

    email: str
    role: str  # "admin" | "staff"
    id: int | None = None
    username: str | None = None
    name: str = ""
    hashed_password: str | None = None
    is_active: bool = True
    created_at: str | None = None
    last_login: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.username or self.email


@dataclass
class ShareContext:
    """Decoded claims of a share token.

    session_id identifies one client viewing session. Content tokens are bound
    to it, so a token copied into another browser does not play.
    """

    share_id: str  # project slug the token was issued for
    project_id: int
    session_id: str
    permissions: list[str] = field(default_factory=list)
    guest: bool = False

    def can(self, permission: str) -> bool:
        return permission in self.permissions


@dataclass
class ProjectAccess:
    """Outcome of verify_project_access().

    When authorized is False, status_code and error describe the refusal and
    auth_mode tells the client which login form to show.
    """

    authorized: bool
    is_admin: bool = False
    is_authenticated: bool = False
    is_guest: bool = False
    session_id: str | None = None
    share: ShareContext | None = None
    user: User | None = None
    status_code: int = 200
    error: str | None = None
    auth_mode: str | None = None


@dataclass
class SecuritySettings:
    """Runtime security knobs, stored as a single database row.

    session_timeout_* bounds the lifetime of share tokens and content tokens.
    """

    password_attempts: int = 5
    session_timeout_value: int = 15
    session_timeout_unit: str = "MINUTES"  # "MINUTES" | "HOURS" | "DAYS" | "WEEKS"
    ip_rate_limit: int = 300
    session_rate_limit: int = 120
    track_security_logs: bool = True
    updated_at: str | None = None

    @property
    def session_timeout_seconds(self) -> int:
        unit_seconds = {"MINUTES": 60, "HOURS": 3600, "DAYS": 86400, "WEEKS": 604800}
        if self.session_timeout_unit not in unit_seconds:
            return 15 * 60
        return max(60, self.session_timeout_value * unit_seconds[self.session_timeout_unit])


@dataclass
class SecurityEvent:
    """A persisted security-relevant occurrence (failed password, lockout, ...)."""

    type: str
    severity: str = "INFO"  # "INFO" | "WARNING" | "CRITICAL"
    id: int | None = None
    project_id: int | None = None
    video_id: int | None = None
    session_id: str | None = None
    ip_address: str | None = None
    referer: str | None = None
    details: dict | None = None
    was_blocked: bool = False
    created_at: str | None = None
