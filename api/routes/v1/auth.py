"""
api/routes/v1/auth.py -- Admin authentication, user management and security settings.

Routes:
  POST   /api/v1/auth/login           -- email-or-username login; sets token cookies
  POST   /api/v1/auth/refresh         -- rotate the refresh token, issue a new pair
  POST   /api/v1/auth/logout          -- revoke both tokens, clear cookies
  GET    /api/v1/auth/me              -- current user info (requires auth)
  POST   /api/v1/setup                -- create the first admin (only while no users exist)
  GET    /api/v1/users                -- list users (admin only)
  POST   /api/v1/users                -- create user (admin only)
  PATCH  /api/v1/users/{id}           -- role / active flag / name / password (admin only)
  DELETE /api/v1/users/{id}           -- delete user (admin only)
  GET    /api/v1/settings/security    -- runtime security settings (admin only)
  PATCH  /api/v1/settings/security    -- update them (admin only)
  GET    /api/v1/security/events      -- audit trail, newest first (admin only)

Security:
  [H2] POST /login is rate-limited per IP (Settings.login_rate_limit).
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M4] PATCH/DELETE /users/{id} block self-deactivation, self-deletion and
       removing the last active admin.
  [M5] Cache-Control: no-store on every response that carries tokens.
  [C3] Password change and deactivation revoke every token the user holds.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    SecuritySettingsPatch,
    SetupRequest,
    UserCreate,
    UserPatch,
    UserResponse,
)
from api.routes.v1.common import fail
from auth.dependencies import _bearer, get_current_user, require_admin
from auth.models import User
from auth.revocation import is_payload_revoked, revoke_token, revoke_user_tokens
from auth.store import UserStore
from auth.tokens import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    authenticate_user,
    clear_auth_cookies,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    hash_password,
    set_auth_cookies,
    token_remaining_seconds,
)
from core.config import get_settings

# Auth policy:
# - POST /auth/login, /auth/refresh, /auth/logout: public (credentials in body or cookie)
# - POST /setup: public, but refuses once any user exists
# - GET  /auth/me: requires auth (get_current_user)
# - everything else here: requires admin (require_admin)
router = APIRouter()

_settings = get_settings()


def _token_response(user: User, status_code: int = 200) -> JSONResponse:
    access = create_access_token(user)
    refresh = create_refresh_token(user)
    resp = JSONResponse(
        status_code=status_code,
        content=LoginResponse(
            access_token=access,
            refresh_token=refresh,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.access_token_expire_seconds,
            user=UserResponse.from_user(user),
        ).model_dump(),
    )
    set_auth_cookies(resp, access, refresh)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email-or-username and password.

    Returns the same generic error for an unknown account, a wrong password
    and an inactive account so none of them can be told apart.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.identifier, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid credentials."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    user_store.update_last_login(user.id)
    return _token_response(user_store.get_by_id(user.id) or user)


@router.post("/auth/refresh", response_model=LoginResponse)
def refresh(request: Request, body: Optional[RefreshRequest] = None) -> JSONResponse:
    """Exchange a refresh token for a new access/refresh pair.

    The presented refresh token is revoked before the new pair is issued, so
    a replayed token fails with 401.
    """
    state = request.app.state
    token = (body.refresh_token if body else None) or request.cookies.get(REFRESH_COOKIE)
    payload = decode_refresh_token(token) if token else None
    if payload is None or is_payload_revoked(state.cache, token, payload):
        fail(401, "invalid_refresh_token", "Refresh token is invalid or expired.")

    user = state.user_store.get_by_id(payload["user_id"])
    if user is None or not user.is_active:
        fail(401, "invalid_refresh_token", "Refresh token is invalid or expired.")

    revoke_token(state.cache, token, token_remaining_seconds(payload))
    return _token_response(user)


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Revoke the presented access and refresh tokens and clear the cookies."""
    cache = request.app.state.cache
    access = request.cookies.get(ACCESS_COOKIE) or _bearer(request)
    if access:
        payload = decode_access_token(access)
        if payload is not None:
            revoke_token(cache, access, token_remaining_seconds(payload))
    refresh_token = request.cookies.get(REFRESH_COOKIE)
    if refresh_token:
        payload = decode_refresh_token(refresh_token)
        if payload is not None:
            revoke_token(cache, refresh_token, token_remaining_seconds(payload))

    resp = JSONResponse(content={"message": "Logged out."})
    clear_auth_cookies(resp)
    return resp


@router.post("/setup", response_model=LoginResponse, status_code=201)
def setup(request: Request, body: SetupRequest) -> JSONResponse:
    """Create the first admin account and log it in.

    The has_users() check and the unique email constraint together close the
    race where two setup requests arrive at once [M1].
    """
    user_store: UserStore = request.app.state.user_store
    if user_store.has_users():
        fail(409, "setup_complete", "Setup has already been completed.")
    try:
        uid = user_store.create_user(
            User(
                email=body.email,
                username=body.username,
                name=body.name,
                role="admin",
                hashed_password=hash_password(body.password),
            )
        )
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "setup_complete", "message": "Setup has already been completed."},
        ) from exc
    return _token_response(user_store.get_by_id(uid), status_code=201)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return identity information for the currently authenticated user."""
    return UserResponse.from_user(current_user)


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, current_user: User = Depends(require_admin)) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in request.app.state.user_store.list_users()]


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    user_store: UserStore = request.app.state.user_store
    try:
        uid = user_store.create_user(
            User(
                email=body.email,
                username=body.username,
                name=body.name,
                role=body.role.value,
                hashed_password=hash_password(body.password),
            )
        )
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that email or username already exists."},
        ) from exc
    return _user_to_response(user_store.get_by_id(uid))


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Update a user. [M4] guards apply to deactivation and demotion alike."""
    state = request.app.state
    user_store: UserStore = state.user_store

    target = user_store.get_by_id(user_id)
    if target is None:
        fail(404, "not_found", "User not found.")

    changes = body.model_dump(exclude_unset=True)
    updates: dict = {}
    removes_admin = (changes.get("is_active") is False) or (
        changes.get("role") is not None and changes["role"] != "admin"
    )
    if changes.get("is_active") is False and target.id == current_user.id:
        fail(400, "self_deactivation", "You cannot deactivate your own account.")
    if removes_admin and target.role == "admin" and target.is_active and user_store.count_active_admins() <= 1:
        fail(400, "last_admin", "Cannot remove the last active admin account.")

    if changes.get("name") is not None:
        updates["name"] = changes["name"]
    if changes.get("role") is not None:
        updates["role"] = body.role.value
    if changes.get("is_active") is not None:
        updates["is_active"] = changes["is_active"]
    if changes.get("password"):
        updates["hashed_password"] = hash_password(changes["password"])

    if not updates:
        fail(400, "no_changes", "No fields to update.")

    user_store.update_user(user_id, **updates)
    if "hashed_password" in updates or updates.get("is_active") is False:
        revoke_user_tokens(state.cache, user_id)  # [C3]
    return _user_to_response(user_store.get_by_id(user_id))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: int, current_user: User = Depends(require_admin)) -> Response:
    state = request.app.state
    user_store: UserStore = state.user_store
    target = user_store.get_by_id(user_id)
    if target is None:
        fail(404, "not_found", "User not found.")
    if target.id == current_user.id:
        fail(400, "self_deletion", "You cannot delete your own account.")
    if target.role == "admin" and target.is_active and user_store.count_active_admins() <= 1:
        fail(400, "last_admin", "Cannot remove the last active admin account.")
    user_store.delete_user(user_id)
    revoke_user_tokens(state.cache, user_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Security settings and audit trail (admin only)
# ---------------------------------------------------------------------------


@router.get("/settings/security")
def get_security_settings(request: Request, current_user: User = Depends(require_admin)) -> dict:
    settings = request.app.state.user_store.get_security_settings()
    return {**asdict(settings), "session_timeout_seconds": settings.session_timeout_seconds}


@router.patch("/settings/security")
def update_security_settings(
    request: Request,
    body: SecuritySettingsPatch,
    current_user: User = Depends(require_admin),
) -> dict:
    changes = body.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    settings = request.app.state.user_store.update_security_settings(**changes)
    return {**asdict(settings), "session_timeout_seconds": settings.session_timeout_seconds}


@router.get("/security/events")
def list_security_events(
    request: Request,
    project_id: Optional[int] = Query(default=None),
    type: Optional[str] = Query(default=None, max_length=64),
    limit: int = Query(default=100, ge=1, le=1000),
    current_user: User = Depends(require_admin),
) -> list[dict]:
    events = request.app.state.user_store.list_security_events(project_id=project_id, event_type=type, limit=limit)
    return [asdict(e) for e in events]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user_to_response(user: User | None) -> UserResponse:
    if user is None:
        fail(500, "internal_error", "User not found after write.")
    return UserResponse.from_user(user)
