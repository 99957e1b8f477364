"""
auth/tokens.py -- JWT, password hashing and cookie utilities.

Security design decisions:
  JWT: python-jose with HS256, signed with SECRET_KEY. Three token types share
       the signing key and are told apart by the "type" claim:
         access  -- admin session, 15 minutes by default
         refresh -- admin session renewal, 3 days by default, rotated on use
         share   -- client session for ONE project, lifetime bounded by the
                    runtime client session timeout
       Every decode_* function checks the type claim, so a share token can
       never be replayed as an admin token or the other way around [C2].
       Verification returns None on any failure -- the route layer turns that
       into a 401.

  iat / jti: iat is a float timestamp so per-user revocation
       ("every token issued before now") is exact. jti makes two tokens
       issued in the same instant distinct, which refresh rotation needs.

  Passwords: bcrypt used directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an account exists [C1]. Share passwords use the same helpers.

  SECRET_KEY: sourced from core.config.get_settings(), validated there [M6].

Layer rule: no imports from api/, review/, sales/, or cache/. Import from
core/ is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import ShareContext
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("reviewdesk.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
SHARE_COOKIE = "share_token"

# Password / OTP verification grants the full client permission set; guests
# may only watch.
CLIENT_PERMISSIONS = ["view", "comment", "download"]
GUEST_PERMISSIONS = ["view"]

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    255 characters (Pydantic max_length).
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database.
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than later ones.
_DUMMY_HASH: str = hash_password("reviewdesk_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def _encode(claims: dict, ttl: int) -> str:
    now = time.time()
    payload = {**claims, "iat": now, "exp": int(now + ttl), "jti": secrets.token_hex(8)}
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def _decode(token: str, expected_type: str) -> dict | None:
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != expected_type:
        return None
    return payload


def create_access_token(user: User, expire_seconds: int = 0) -> str:
    """Encode a signed admin access JWT.

    expire_seconds of 0 (default) uses Settings.access_token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    claims = {"sub": user.email, "user_id": user.id, "role": user.role, "type": "access"}
    return _encode(claims, duration)


def create_refresh_token(user: User, expire_seconds: int = 0) -> str:
    duration = expire_seconds if expire_seconds > 0 else _settings.refresh_token_expire_seconds
    return _encode({"sub": user.email, "user_id": user.id, "type": "refresh"}, duration)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify an admin access JWT. Returns the payload dict or None."""
    payload = _decode(token, "access")
    if payload is None or "user_id" not in payload or "role" not in payload:
        return None
    return payload


def decode_refresh_token(token: str) -> dict | None:
    payload = _decode(token, "refresh")
    if payload is None or "user_id" not in payload:
        return None
    return payload


def token_remaining_seconds(payload: dict) -> int:
    """Seconds until the decoded token expires (0 when already expired)."""
    return max(0, int(payload.get("exp", 0) - time.time()))


# ---------------------------------------------------------------------------
# Share tokens
# ---------------------------------------------------------------------------


def new_session_id() -> str:
    """A random 128-bit hex session identifier."""
    return secrets.token_hex(16)


def create_share_token(
    share_id: str,
    project_id: int,
    permissions: list[str],
    guest: bool,
    ttl: int,
    session_id: str | None = None,
) -> str:
    """Encode a share token scoped to one project.

    share_id is the project slug the client authenticated against.
    """
    claims = {
        "type": "share",
        "share_id": share_id,
        "project_id": project_id,
        "permissions": list(permissions),
        "guest": guest,
        "session_id": session_id or new_session_id(),
    }
    return _encode(claims, ttl)


def decode_share_token(token: str) -> ShareContext | None:
    """Return the ShareContext carried by a share token, or None on any failure."""
    payload = _decode(token, "share")
    if payload is None:
        return None
    try:
        return ShareContext(
            share_id=str(payload["share_id"]),
            project_id=int(payload["project_id"]),
            session_id=str(payload["session_id"]),
            permissions=list(payload.get("permissions") or []),
            guest=bool(payload.get("guest", False)),
        )
    except (KeyError, TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, identifier: str, password: str) -> User | None:
    """Authenticate an email-or-username login with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown identifier: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_login(identifier)
    if user is None or user.hashed_password is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def _set_cookie(response, name: str, token: str, max_age: int) -> None:
    """httponly: JS cannot read it. samesite=lax: no cross-site POSTs.
    secure: HTTPS only when SECURE_COOKIES=true.
    """
    response.set_cookie(
        name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=max_age,
    )


def set_auth_cookies(response, access_token: str, refresh_token: str) -> None:
    """Write the admin token pair as httpOnly cookies with matching lifetimes."""
    _set_cookie(response, ACCESS_COOKIE, access_token, _settings.access_token_expire_seconds)
    _set_cookie(response, REFRESH_COOKIE, refresh_token, _settings.refresh_token_expire_seconds)


def clear_auth_cookies(response) -> None:
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)


def set_share_cookie(response, token: str, max_age: int) -> None:
    _set_cookie(response, SHARE_COOKIE, token, max_age)
