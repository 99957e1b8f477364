"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two independent identities can be present on a request:

  Internal user (admin JWT)
    1. JWT cookie ("access_token") -- set by POST /auth/login.
    2. Authorization: Bearer <token> header -- API clients.
    Both must carry type="access", must not be revoked, and must belong to an
    active user.

  Share client (share token)
    1. Authorization: Bearer <token> header -- the share page keeps the token
       in memory and sends it explicitly.
    2. "share_token" cookie -- set by the share verify routes.
    The token must carry type="share" and its session must still be live in
    the keyed cache (auth/share_sessions.py).

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_user() and raises HTTP 403 if not admin.
verify_project_access() combines both identities into one verdict for a
project-scoped route; require_project_access() raises on a refusal.

Layer rule: auth/dependencies.py may import from fastapi (for
HTTPException/Request) because it is part of the dependency injection system.
It reads stores from request.app.state and never imports from api/.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

from auth.models import ProjectAccess, ShareContext, User
from auth.revocation import is_payload_revoked
from auth.share_sessions import is_share_session_live
from auth.tokens import ACCESS_COOKIE, SHARE_COOKIE, decode_access_token, decode_share_token

if TYPE_CHECKING:
    from review.models import Project


def _bearer(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request as an internal user.

    Returns the authenticated User on success, None on any failure.
    Never raises -- callers that need a hard 401 should use get_current_user().
    """
    state = request.app.state
    for token in (request.cookies.get(ACCESS_COOKIE), _bearer(request)):
        if not token:
            continue
        payload = decode_access_token(token)
        if payload is None or is_payload_revoked(state.cache, token, payload):
            continue
        user = state.user_store.get_by_id(payload["user_id"])
        if user and user.is_active:
            return user
    return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def require_admin(request: Request) -> User:
    """Require admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    user = get_current_user(request)
    if user.role != "admin":
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return user


def get_share_context(request: Request) -> ShareContext | None:
    """Return the share context presented with the request, or None.

    The Bearer header wins over the cookie so a page holding tokens for two
    projects can pick the right one.
    """
    cache = request.app.state.cache
    for token in (_bearer(request), request.cookies.get(SHARE_COOKIE)):
        if not token:
            continue
        context = decode_share_token(token)
        if context is not None and is_share_session_live(cache, context):
            return context
    return None


# ---------------------------------------------------------------------------
# Dual access
# ---------------------------------------------------------------------------


def verify_project_access(request: Request, project: Project) -> ProjectAccess:
    """Decide whether the caller may read a project.

    Order matters:
      1. an admin JWT always wins (admins can see closed projects)
      2. a CLOSED project is refused to every client
      3. auth_mode NONE is open and counts as authenticated, except for guest
         tokens; a presented share token still supplies the session
      4. otherwise a share token for THIS project is required
    """
    user = try_get_current_user(request)
    if user is not None and user.role == "admin":
        return ProjectAccess(
            authorized=True,
            is_admin=True,
            is_authenticated=True,
            session_id=f"admin:{user.id}",
            user=user,
        )

    if project.status == "CLOSED":
        return ProjectAccess(authorized=False, status_code=403, error="Project is closed")

    share = get_share_context(request)
    if share is not None and share.project_id != project.id:
        foreign = share
        share = None
    else:
        foreign = None

    if project.auth_mode == "NONE":
        return ProjectAccess(
            authorized=True,
            is_authenticated=not (share and share.guest),
            is_guest=bool(share and share.guest),
            session_id=share.session_id if share else None,
            share=share,
        )

    if share is None and foreign is None:
        return ProjectAccess(
            authorized=False,
            status_code=401,
            error="Authentication required",
            auth_mode=project.auth_mode,
        )

    if share is None:
        return ProjectAccess(authorized=False, status_code=401, error="Access denied", auth_mode=project.auth_mode)

    return ProjectAccess(
        authorized=True,
        is_authenticated=not share.guest,
        is_guest=share.guest,
        session_id=share.session_id,
        share=share,
    )


def require_project_access(request: Request, project: Project) -> ProjectAccess:
    """verify_project_access() that raises HTTPException on refusal."""
    access = verify_project_access(request, project)
    if not access.authorized:
        code = "forbidden" if access.status_code == 403 else "unauthorized"
        detail: dict = {"code": code, "message": access.error}
        if access.auth_mode:
            detail["auth_mode"] = access.auth_mode
        raise HTTPException(status_code=access.status_code, detail=detail)
    return access
