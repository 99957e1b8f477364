"""
api/routes/v1/share.py -- Public share-link endpoints used by client viewers.

Routes (all under /api/v1/share/{slug}):
  GET  ""              -- project, playable videos and comments for the viewer
  POST /verify         -- share password -> share token
  POST /send-otp       -- e-mail a one-time code to a project recipient
  POST /verify-otp     -- one-time code -> share token
  POST /guest          -- view-only guest token (guest mode projects)
  POST /video-token    -- content token for one video at one quality
  GET  /comments       -- comments visible to the viewer
  POST /comments       -- client comment (comment permission)
  POST /approve        -- client approval of a video (comment permission)

Security:
  [H1] Brute force: per-(slug, ip) lockout for passwords and per-(slug, ip,
       email) lockout for codes, checked BEFORE any credential is looked at.
       A locked caller gets 429 with Retry-After.
  [H5] Enumeration: send-otp answers unknown e-mails with the same message
       as known ones, after a random 150-500 ms delay.
  [M5] Cache-Control: no-store on every response carrying a share token.
  Failed passwords, failed codes, lockouts and unknown OTP requests are
  recorded as security events.

auth_mode NONE: a viewer without a token is handed a client session on
GET, so comments and content tokens work the same way as for
authenticated links.

Every share token issued here is recorded in auth/share_sessions.py and
stops working once the project's access rules change [H4].
"""

from __future__ import annotations

import logging
import secrets
import smtplib
import time
from collections import OrderedDict
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ApproveRequest,
    CommentCreate,
    SendOtpRequest,
    ShareVerifyRequest,
    VerifyOtpRequest,
    VideoResponse,
    VideoTokenRequest,
)
from api.routes.v1.comments import post_comment, visible_comments
from api.routes.v1.common import approve_as, client_session_ttl, fail, get_project_by_slug_or_404
from auth.content_tokens import generate_content_token
from auth.dependencies import client_ip, require_project_access, verify_project_access
from auth.events import record_security_event
from auth.lockout import (
    check_lockout,
    clear_failures,
    otp_lockout_key,
    password_lockout_key,
    register_failure,
)
from auth.models import ProjectAccess
from auth.otp import OTP_EXPIRY_SECONDS, check_send_limit, issue_code, verify_code
from auth.share_sessions import open_share_session
from auth.tokens import (
    CLIENT_PERMISSIONS,
    GUEST_PERMISSIONS,
    set_share_cookie,
    verify_password,
)
from review.models import Project, Video
from review.store import ReviewStore

logger = logging.getLogger("reviewdesk.api.share")

# Auth policy: every route is public; access is decided per project by
# verify_project_access() and the credential checks below.
router = APIRouter()

OTP_GENERIC_MESSAGE = "If your email is registered for this project, you will receive a verification code shortly"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _locked_out(retry_after: int, message: str = "Too many failed attempts. Please try again later.") -> HTTPException:
    return HTTPException(
        status_code=429,
        detail={"code": "locked_out", "message": message},
        headers={"Retry-After": str(retry_after)},
    )


def _issue_share_session(request: Request, project: Project, guest: bool) -> JSONResponse:
    """Mint a share token for the project and return it in the body and the cookie."""
    ttl = client_session_ttl(request)
    permissions = GUEST_PERMISSIONS if guest else CLIENT_PERMISSIONS
    token = open_share_session(request.app.state.cache, project.slug, project.id, permissions, guest, ttl)
    resp = JSONResponse(content={"success": True, "share_token": token, "expires_in": ttl, "guest": guest})
    set_share_cookie(resp, token, ttl)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _viewer_videos(store: ReviewStore, project: Project, access: ProjectAccess) -> list[Video]:
    """READY videos, newest version first. Guests may be limited to the latest version per name."""
    videos = store.list_videos(project.id, status="READY")
    if access.is_guest and project.guest_latest_only:
        seen: set[str] = set()
        latest = []
        for v in videos:
            if v.name not in seen:
                seen.add(v.name)
                latest.append(v)
        videos = latest
    return videos


def _require_access(request: Request, project: Project) -> ProjectAccess:
    """require_project_access() plus the guest flag the login form needs."""
    access = verify_project_access(request, project)
    if not access.authorized:
        detail: dict = {"code": "unauthorized" if access.status_code == 401 else "forbidden", "message": access.error}
        if access.auth_mode:
            detail["auth_mode"] = access.auth_mode
            detail["guest_mode"] = project.guest_mode
            detail["title"] = project.title
        raise HTTPException(status_code=access.status_code, detail=detail)
    return access


# ---------------------------------------------------------------------------
# Viewer
# ---------------------------------------------------------------------------


@router.get("/share/{slug}")
def get_share(request: Request, slug: str) -> JSONResponse:
    state = request.app.state
    store: ReviewStore = state.review
    project = get_project_by_slug_or_404(request, slug)
    access = _require_access(request, project)

    share_token: Optional[str] = None
    ttl = client_session_ttl(request)
    if project.auth_mode == "NONE" and not access.is_admin and access.share is None:
        share_token = open_share_session(state.cache, project.slug, project.id, CLIENT_PERMISSIONS, False, ttl)
        access = ProjectAccess(authorized=True, is_authenticated=True)

    videos = _viewer_videos(store, project, access)
    by_name: "OrderedDict[str, list[dict]]" = OrderedDict()
    rendered = []
    for v in videos:
        data = VideoResponse.from_video(v).model_dump()
        rendered.append(data)
        by_name.setdefault(v.name, []).append(data)

    body = {
        "id": project.id,
        "slug": project.slug,
        "title": project.title,
        "description": project.description,
        "client_name": project.client_name,
        "status": project.status,
        "auth_mode": project.auth_mode,
        "guest_mode": project.guest_mode,
        "guest_latest_only": project.guest_latest_only,
        "hide_feedback": project.hide_feedback,
        "allow_asset_download": project.allow_asset_download,
        "restrict_comments_to_latest_version": project.restrict_comments_to_latest_version,
        "preview_resolution": project.preview_resolution,
        "smtp_configured": state.mailer.is_configured(),
        "is_admin": access.is_admin,
        "is_guest": access.is_guest,
        "videos": rendered,
        "videos_by_name": by_name,
        "comments": visible_comments(request, project, access, None),
    }
    if share_token:
        body["share_token"] = share_token
    resp = JSONResponse(content=body)
    if share_token:
        set_share_cookie(resp, share_token, ttl)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Password
# ---------------------------------------------------------------------------


@limiter.limit("10/minute")
@router.post("/share/{slug}/verify")
def verify_share_password(request: Request, slug: str, body: ShareVerifyRequest) -> JSONResponse:
    """Exchange the share password for a share token.

    Order: lockout (429) -> body (400) -> project (403) -> mode (403) ->
    password (403). Unknown projects and wrong passwords share one message.
    """
    state = request.app.state
    ip = client_ip(request)
    key = password_lockout_key(slug, ip)

    wait = check_lockout(state.cache, key)
    if wait:
        raise _locked_out(wait)  # [H1]

    if not body.password:
        fail(400, "password_required", "Password is required.")

    project = state.review.get_project_by_slug(slug)
    if project is None:
        fail(403, "forbidden", "Access denied")
    if project.auth_mode == "OTP":
        fail(403, "forbidden", "Password authentication is not enabled for this project.")

    if project.share_password_hash and not verify_password(body.password, project.share_password_hash):
        settings = state.user_store.get_security_settings()
        result = register_failure(state.cache, key, settings.password_attempts)
        record_security_event(
            state.user_store,
            "PASSWORD_FAILED",
            "WARNING",
            project_id=project.id,
            ip_address=ip,
            referer=request.headers.get("referer"),
            details={"attempt": result.count, "max_attempts": settings.password_attempts},
        )
        if result.locked:
            record_security_event(
                state.user_store,
                "PASSWORD_LOCKOUT",
                "CRITICAL",
                project_id=project.id,
                ip_address=ip,
                details={"attempts": result.count, "lockout_seconds": result.retry_after},
                was_blocked=True,
            )
            raise _locked_out(result.retry_after)
        fail(403, "forbidden", "Access denied")

    clear_failures(state.cache, key)
    return _issue_share_session(request, project, guest=False)


# ---------------------------------------------------------------------------
# One-time codes
# ---------------------------------------------------------------------------


@limiter.limit("5/minute")
@router.post("/share/{slug}/send-otp")
def send_otp(request: Request, slug: str, body: SendOtpRequest) -> dict:
    """E-mail a code to a project recipient.

    Known and unknown addresses get the same answer [H5]; only recipients
    actually receive a code.
    """
    state = request.app.state
    if not state.mailer.is_configured():
        fail(503, "smtp_unavailable", "Email is not configured on this server.")

    project = get_project_by_slug_or_404(request, slug)
    if project.auth_mode not in ("OTP", "BOTH"):
        fail(403, "forbidden", "OTP authentication is not enabled for this project.")
    if project.status == "CLOSED":
        fail(403, "forbidden", "Project is closed")

    email = body.email.lower()
    settings = state.user_store.get_security_settings()
    wait = check_send_limit(state.cache, project.id, email, settings.password_attempts)
    if wait:
        record_security_event(
            state.user_store,
            "OTP_RATE_LIMIT_HIT",
            "WARNING",
            project_id=project.id,
            ip_address=client_ip(request),
            was_blocked=True,
        )
        raise _locked_out(wait, "Too many code requests. Please try again later.")

    recipient = state.review.get_recipient_by_email(project.id, email)
    if recipient is None:
        time.sleep((150 + secrets.randbelow(351)) / 1000)  # [H5]
        record_security_event(
            state.user_store,
            "UNAUTHORIZED_OTP_REQUEST",
            "WARNING",
            project_id=project.id,
            ip_address=client_ip(request),
            details={"email": email},
        )
        return {"success": True, "message": OTP_GENERIC_MESSAGE}

    code = issue_code(state.cache, project.id, email)
    try:
        state.mailer.send_otp(email, project.title, code, OTP_EXPIRY_SECONDS // 60)
    except (smtplib.SMTPException, OSError) as exc:
        logger.exception("Failed to send OTP for project %s", project.id)
        raise HTTPException(
            status_code=502,
            detail={"code": "email_failed", "message": "Failed to send verification code."},
        ) from exc
    record_security_event(state.user_store, "OTP_SENT", "INFO", project_id=project.id, ip_address=client_ip(request))
    return {"success": True, "message": OTP_GENERIC_MESSAGE}


@limiter.limit("10/minute")
@router.post("/share/{slug}/verify-otp")
def verify_otp(request: Request, slug: str, body: VerifyOtpRequest) -> JSONResponse:
    state = request.app.state
    code = body.code.strip()
    if not code.isdigit() or len(code) > 10:
        fail(400, "invalid_code", "Code must be numeric.")

    project = get_project_by_slug_or_404(request, slug)
    if project.auth_mode not in ("OTP", "BOTH"):
        fail(403, "forbidden", "OTP authentication is not enabled for this project.")

    email = body.email.lower()
    ip = client_ip(request)
    key = otp_lockout_key(slug, ip, email)
    wait = check_lockout(state.cache, key)
    if wait:
        raise _locked_out(wait)  # [H1]

    if state.review.get_recipient_by_email(project.id, email) is None:
        fail(403, "forbidden", "Invalid or expired code")

    settings = state.user_store.get_security_settings()
    result = verify_code(state.cache, project.id, email, code, settings.password_attempts)
    if not result.success:
        failure = register_failure(state.cache, key, settings.password_attempts)
        record_security_event(
            state.user_store,
            "OTP_VERIFICATION_FAILED",
            "WARNING",
            project_id=project.id,
            ip_address=ip,
            details={"reason": result.error, "attempt": failure.count},
        )
        if failure.locked:
            record_security_event(
                state.user_store,
                "OTP_LOCKOUT",
                "CRITICAL",
                project_id=project.id,
                ip_address=ip,
                details={"attempts": failure.count},
                was_blocked=True,
            )
            raise _locked_out(failure.retry_after)
        fail(403, "forbidden", "Invalid or expired code")

    clear_failures(state.cache, key)
    return _issue_share_session(request, project, guest=False)


# ---------------------------------------------------------------------------
# Guest entry
# ---------------------------------------------------------------------------


@limiter.limit("20/minute")
@router.post("/share/{slug}/guest")
def guest_entry(request: Request, slug: str) -> JSONResponse:
    """Issue a view-only guest session with a fresh session id."""
    project = get_project_by_slug_or_404(request, slug)
    if not project.guest_mode:
        fail(403, "forbidden", "Guest access is not enabled for this project.")
    if project.status == "CLOSED":
        fail(403, "forbidden", "Project is closed")
    record_security_event(
        request.app.state.user_store, "GUEST_ACCESS", "INFO", project_id=project.id, ip_address=client_ip(request)
    )
    return _issue_share_session(request, project, guest=True)


# ---------------------------------------------------------------------------
# Content tokens
# ---------------------------------------------------------------------------


@router.post("/share/{slug}/video-token")
def video_token(request: Request, slug: str, body: VideoTokenRequest) -> dict:
    state = request.app.state
    project = get_project_by_slug_or_404(request, slug)
    access = require_project_access(request, project)
    if not access.session_id:
        fail(401, "unauthorized", "Authentication required", auth_mode=project.auth_mode)

    video = state.review.get_video(body.video_id)
    if video is None or video.project_id != project.id:
        fail(404, "not_found", "Video not found.")
    if body.quality.value == "original" and not video.approved and not access.is_admin:
        fail(403, "forbidden", "Original files are only available for approved videos.")
    if access.is_guest and project.guest_latest_only:
        latest = state.review.latest_version(project.id, video.name, status="READY")
        if latest is None or latest.id != video.id:
            fail(403, "forbidden", "Guests can only watch the latest version.")

    token = generate_content_token(
        state.cache,
        video.id,
        project.id,
        body.quality.value,
        access.session_id,
        client_ip(request),
        client_session_ttl(request),
    )
    return {"token": token, "url": f"/api/v1/content/{token}"}


# ---------------------------------------------------------------------------
# Client comments and approval
# ---------------------------------------------------------------------------


@router.get("/share/{slug}/comments")
def share_comments(request: Request, slug: str, video_id: Optional[int] = Query(default=None)) -> list[dict]:
    project = get_project_by_slug_or_404(request, slug)
    access = require_project_access(request, project)
    return visible_comments(request, project, access, video_id)


@limiter.limit("10/minute")
@router.post("/share/{slug}/comments", status_code=201)
def share_create_comment(request: Request, slug: str, body: CommentCreate) -> dict:
    project = get_project_by_slug_or_404(request, slug)
    access = require_project_access(request, project)
    return post_comment(request, project, access, body)


@router.post("/share/{slug}/approve")
def share_approve(request: Request, slug: str, body: ApproveRequest) -> dict:
    project = get_project_by_slug_or_404(request, slug)
    access = require_project_access(request, project)
    return approve_as(request, project, access, body.video_id)
