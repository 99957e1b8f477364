"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as review/store.py).
UserStore is the repository; _row_to_user / _row_to_event are the mappers.
Route and dependency code never touches SQL directly.

Tables:
  users              -- internal accounts.
  security_settings  -- single-row runtime knobs (id = 1). The row is seeded
                        on startup so get_security_settings() never misses.
  security_events    -- append-only audit trail written by auth/events.py.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email is stored lower-cased; lookups lower-case their input, so login is
  case-insensitive on email and case-sensitive on username.
"""

from __future__ import annotations

import json
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from auth.models import SecurityEvent, SecuritySettings, User
from core.config import get_settings
from core.db import make_engine, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(100), unique=True),  # optional login alias
    Column("name", String(255), nullable=False, server_default=""),
    Column("hashed_password", Text),
    Column("role", String(30), nullable=False, server_default="staff"),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_security_settings = Table(
    "security_settings",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("password_attempts", Integer, nullable=False, server_default="5"),
    Column("session_timeout_value", Integer, nullable=False, server_default="15"),
    Column("session_timeout_unit", String(10), nullable=False, server_default="MINUTES"),
    Column("ip_rate_limit", Integer, nullable=False, server_default="300"),
    Column("session_rate_limit", Integer, nullable=False, server_default="120"),
    Column("track_security_logs", Boolean, nullable=False, server_default="1"),
    Column("updated_at", String(32)),
    CheckConstraint("id = 1", name="ck_security_settings_single_row"),
)

_security_events = Table(
    "security_events",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("type", String(50), nullable=False),
    Column("severity", String(10), nullable=False, server_default="INFO"),
    Column("project_id", Integer),
    Column("video_id", Integer),
    Column("session_id", String(100)),
    Column("ip_address", String(64)),
    Column("referer", Text),
    Column("details", Text),  # JSON
    Column("was_blocked", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_SECURITY_SETTINGS_KEYS = {
    "password_attempts",
    "session_timeout_value",
    "session_timeout_unit",
    "ip_rate_limit",
    "session_rate_limit",
    "track_security_logs",
}

_USER_FIELDS = {"email", "username", "name", "hashed_password", "role", "is_active"}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for users, security settings and security events.

    Usage:
        store = UserStore()
        store.create_user(User(email="ed@example.com", role="admin", hashed_password=hash_password("secret")))
        user = store.get_by_login("ed@example.com")
        store.close()
    """

    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)
        self._ensure_security_settings()

    def _ensure_security_settings(self) -> None:
        """Seed the single security_settings row if it is missing. Idempotent."""
        with self.engine.connect() as conn:
            exists = conn.execute(select(_security_settings.c.id).where(_security_settings.c.id == 1)).first()
            if exists is None:
                conn.execute(_security_settings.insert().values(id=1, updated_at=now_iso()))
                conn.commit()

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one user record exists. Used by POST /setup."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email or username already
        exists. Callers (POST /setup, POST /users) translate that into 409 [M1].
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email.strip().lower(),
                    username=user.username or None,
                    name=user.name,
                    hashed_password=user.hashed_password,
                    role=user.role,
                    is_active=user.is_active,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_login(self, identifier: str) -> User | None:
        """Look up a user by email (case-insensitive) or, failing that, by exact username."""
        identifier = identifier.strip()
        if "@" in identifier:
            user = self.get_by_email(identifier)
            if user is not None:
                return user
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == identifier)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: email, username, name, hashed_password, role, is_active.
        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if "email" in fields:
            fields["email"] = fields["email"].strip().lower()
        if not fields:
            return self.get_by_id(user_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def count_active_admins(self) -> int:
        """Return the number of active admin users.

        Used by PATCH/DELETE /users/{id} to keep at least one admin [M4].
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_users)
                .where((_users.c.role == "admin") & (_users.c.is_active.is_(True)))
            ).scalar()
        return result or 0

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user. Callers check the last-admin invariant first."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Security settings
    # ------------------------------------------------------------------

    def get_security_settings(self) -> SecuritySettings:
        with self.engine.connect() as conn:
            row = conn.execute(_security_settings.select().where(_security_settings.c.id == 1)).fetchone()
        if row is None:
            # Should never happen; _ensure_security_settings() seeds this row.
            return SecuritySettings()
        return SecuritySettings(
            password_attempts=row.password_attempts,
            session_timeout_value=row.session_timeout_value,
            session_timeout_unit=row.session_timeout_unit,
            ip_rate_limit=row.ip_rate_limit,
            session_rate_limit=row.session_rate_limit,
            track_security_logs=bool(row.track_security_logs),
            updated_at=row.updated_at,
        )

    def update_security_settings(self, **kwargs) -> SecuritySettings:
        """Update one or more security settings and return the new values.

        Only keys in _SECURITY_SETTINGS_KEYS are accepted. Unknown keys raise
        ValueError rather than being silently ignored.
        """
        unknown = set(kwargs) - _SECURITY_SETTINGS_KEYS
        if unknown:
            raise ValueError(f"Unknown security settings keys: {unknown!r}")
        if kwargs:
            with self.engine.connect() as conn:
                conn.execute(
                    _security_settings.update()
                    .where(_security_settings.c.id == 1)
                    .values(updated_at=now_iso(), **kwargs)
                )
                conn.commit()
        return self.get_security_settings()

    # ------------------------------------------------------------------
    # Security events
    # ------------------------------------------------------------------

    def add_security_event(self, event: SecurityEvent) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _security_events.insert().values(
                    type=event.type,
                    severity=event.severity,
                    project_id=event.project_id,
                    video_id=event.video_id,
                    session_id=event.session_id,
                    ip_address=event.ip_address,
                    referer=event.referer,
                    details=json.dumps(event.details) if event.details is not None else None,
                    was_blocked=event.was_blocked,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_security_events(
        self,
        project_id: Optional[int] = None,
        event_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[SecurityEvent]:
        """Newest first, optionally filtered by project and event type."""
        stmt = _security_events.select()
        if project_id is not None:
            stmt = stmt.where(_security_events.c.project_id == project_id)
        if event_type:
            stmt = stmt.where(_security_events.c.type == event_type)
        stmt = stmt.order_by(_security_events.c.created_at.desc(), _security_events.c.id.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_event(r) for r in rows]

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        name=row.name or "",
        hashed_password=row.hashed_password,
        role=row.role,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _row_to_event(row) -> SecurityEvent:
    return SecurityEvent(
        id=row.id,
        type=row.type,
        severity=row.severity,
        project_id=row.project_id,
        video_id=row.video_id,
        session_id=row.session_id,
        ip_address=row.ip_address,
        referer=row.referer,
        details=json.loads(row.details) if row.details else None,
        was_blocked=bool(row.was_blocked),
        created_at=row.created_at,
    )
