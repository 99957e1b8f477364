"""
api/routes/v1/projects.py -- Project, recipient and approval REST endpoints.

Routes:
  POST   /api/v1/projects                              -- create project (admin)
  GET    /api/v1/projects                              -- list, ?status= filter (admin)
  GET    /api/v1/projects/{id}                         -- detail with videos, recipients, key dates (admin)
  PATCH  /api/v1/projects/{id}                         -- update settings (admin)
  DELETE /api/v1/projects/{id}                         -- delete with everything below it (admin)
  PUT    /api/v1/projects/{id}/password                -- set or clear the share password (admin)
  POST   /api/v1/projects/{id}/approve                 -- approve a video (admin or client with comment permission)
  POST   /api/v1/projects/{id}/unapprove               -- clear approvals (admin)
  GET    /api/v1/projects/{id}/recipients              -- list recipients (admin)
  POST   /api/v1/projects/{id}/recipients              -- add recipient (admin)
  PATCH  /api/v1/projects/{id}/recipients/{rid}        -- update recipient (admin)
  DELETE /api/v1/projects/{id}/recipients/{rid}        -- remove recipient (admin)

Security:
  [H4] Changing the share password, the auth mode, the guest settings or
       the status ends every share session and revokes every content token
       of the project. Clients must authenticate again under the new rules.
  The share password hash never appears in a response (ProjectResponse).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import (
    ApproveRequest,
    KeyDateResponse,
    PasswordUpdate,
    ProjectCreate,
    ProjectPatch,
    ProjectResponse,
    ProjectStatusEnum,
    RecipientCreate,
    RecipientPatch,
    RecipientResponse,
    UnapproveRequest,
    VideoResponse,
)
from api.routes.v1.common import MAX_RECIPIENTS_PER_PROJECT, approve_as, fail, get_project_or_404
from auth.content_tokens import revoke_project_content_tokens
from auth.dependencies import require_admin, require_project_access
from auth.models import User
from auth.share_sessions import revoke_project_share_sessions
from auth.tokens import hash_password
from core.db import now_iso
from review.approval import unapprove_for_project
from review.models import Project, Recipient
from review.store import ReviewStore

logger = logging.getLogger("reviewdesk.api.projects")

# Auth policy: every route requires admin, except POST /approve which also
# accepts a client share session for the same project.
router = APIRouter()

_ACCESS_FIELDS = {"auth_mode", "guest_mode", "guest_latest_only", "status"}

# Text columns are NOT NULL; an explicit null clears them to "".
_CLEARABLE_FIELDS = {"description", "client_name", "client_email", "company_name"}


def _end_client_sessions(cache, project_id: int) -> None:
    """[H4] Log every client out of the project and kill their content tokens."""
    revoke_project_share_sessions(cache, project_id)
    revoke_project_content_tokens(cache, project_id)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@router.post("/projects", response_model=ProjectResponse, status_code=201)
def create_project(
    request: Request,
    body: ProjectCreate,
    current_user: User = Depends(require_admin),
) -> ProjectResponse:
    store: ReviewStore = request.app.state.review
    if body.auth_mode is not None:
        auth_mode = body.auth_mode.value
    else:
        auth_mode = "PASSWORD" if body.share_password else "NONE"

    project = Project(
        title=body.title,
        slug=body.slug or store.unique_slug(body.title),
        description=body.description,
        client_name=body.client_name,
        client_email=body.client_email,
        company_name=body.company_name,
        share_password_hash=hash_password(body.share_password) if body.share_password else None,
        auth_mode=auth_mode,
        guest_mode=body.guest_mode,
        guest_latest_only=body.guest_latest_only,
        status=body.status.value,
        restrict_comments_to_latest_version=body.restrict_comments_to_latest_version,
        hide_feedback=body.hide_feedback,
        allow_asset_download=body.allow_asset_download,
        auto_approve=body.auto_approve,
        preview_resolution=body.preview_resolution.value,
        created_by=current_user.id,
    )
    try:
        project_id = store.create_project(project)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A project with that slug already exists."},
        ) from exc
    logger.info("Project %s created by user %s", project_id, current_user.id)
    return ProjectResponse.from_project(store.get_project(project_id))


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(
    request: Request,
    status: Optional[ProjectStatusEnum] = Query(default=None),
    current_user: User = Depends(require_admin),
) -> list[ProjectResponse]:
    projects = request.app.state.review.list_projects(status=status.value if status else None)
    return [ProjectResponse.from_project(p) for p in projects]


@router.get("/projects/{project_id}")
def get_project(request: Request, project_id: int, current_user: User = Depends(require_admin)) -> dict:
    store: ReviewStore = request.app.state.review
    project = get_project_or_404(request, project_id)
    return {
        **ProjectResponse.from_project(project).model_dump(),
        "videos": [VideoResponse.from_video(v).model_dump() for v in store.list_videos(project_id)],
        "recipients": [RecipientResponse.from_recipient(r).model_dump() for r in store.list_recipients(project_id)],
        "key_dates": [
            KeyDateResponse.from_key_date(k).model_dump() for k in store.list_key_dates(project_id=project_id)
        ],
    }


@router.patch("/projects/{project_id}", response_model=ProjectResponse)
def update_project(
    request: Request,
    project_id: int,
    body: ProjectPatch,
    current_user: User = Depends(require_admin),
) -> ProjectResponse:
    state = request.app.state
    project = get_project_or_404(request, project_id)
    changes = body.model_dump(exclude_unset=True, mode="json")
    for field in _CLEARABLE_FIELDS:
        if field in changes and changes[field] is None:
            changes[field] = ""
    # Other columns have no empty value; an explicit null leaves them unchanged.
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        fail(400, "no_changes", "No fields to update.")

    new_status = changes.get("status")
    if new_status == "APPROVED" and project.status != "APPROVED":
        changes["approved_at"] = now_iso()
    elif new_status is not None and new_status != "APPROVED" and project.status == "APPROVED":
        changes["approved_at"] = None
        changes["approved_video_id"] = None
    state.review.update_project(project_id, **changes)

    if any(f in changes and changes[f] != getattr(project, f) for f in _ACCESS_FIELDS):
        _end_client_sessions(state.cache, project_id)
    return ProjectResponse.from_project(state.review.get_project(project_id))


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(request: Request, project_id: int, current_user: User = Depends(require_admin)) -> Response:
    state = request.app.state
    get_project_or_404(request, project_id)
    state.review.delete_project(project_id)
    _end_client_sessions(state.cache, project_id)
    logger.info("Project %s deleted by user %s", project_id, current_user.id)
    return Response(status_code=204)


@router.put("/projects/{project_id}/password", response_model=ProjectResponse)
def set_share_password(
    request: Request,
    project_id: int,
    body: PasswordUpdate,
    current_user: User = Depends(require_admin),
) -> ProjectResponse:
    """Set the share password, or clear it with {"password": null}."""
    state = request.app.state
    get_project_or_404(request, project_id)
    hashed = hash_password(body.password) if body.password else None
    state.review.update_project(project_id, share_password_hash=hashed)
    _end_client_sessions(state.cache, project_id)
    return ProjectResponse.from_project(state.review.get_project(project_id))


# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/approve")
def approve(request: Request, project_id: int, body: ApproveRequest) -> dict:
    """Approve a video version. Admins, or clients holding the comment permission."""
    project = get_project_or_404(request, project_id)
    access = require_project_access(request, project)
    return approve_as(request, project, access, body.video_id)


@router.post("/projects/{project_id}/unapprove")
def unapprove(
    request: Request,
    project_id: int,
    body: Optional[UnapproveRequest] = None,
    current_user: User = Depends(require_admin),
) -> dict:
    project = get_project_or_404(request, project_id)
    try:
        return unapprove_for_project(request.app.state.review, project, body.video_id if body else None)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": str(exc)}) from exc


# ---------------------------------------------------------------------------
# Recipients
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/recipients", response_model=list[RecipientResponse])
def list_recipients(
    request: Request, project_id: int, current_user: User = Depends(require_admin)
) -> list[RecipientResponse]:
    get_project_or_404(request, project_id)
    return [RecipientResponse.from_recipient(r) for r in request.app.state.review.list_recipients(project_id)]


@router.post("/projects/{project_id}/recipients", response_model=RecipientResponse, status_code=201)
def add_recipient(
    request: Request,
    project_id: int,
    body: RecipientCreate,
    current_user: User = Depends(require_admin),
) -> RecipientResponse:
    store: ReviewStore = request.app.state.review
    get_project_or_404(request, project_id)
    if store.count_recipients(project_id) >= MAX_RECIPIENTS_PER_PROJECT:
        fail(400, "recipient_limit", f"A project can have at most {MAX_RECIPIENTS_PER_PROJECT} recipients.")
    try:
        rid = store.add_recipient(
            Recipient(
                project_id=project_id,
                email=body.email,
                name=body.name,
                is_primary=body.is_primary,
                receive_notifications=body.receive_notifications,
            )
        )
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "That e-mail is already a recipient of this project."},
        ) from exc
    return RecipientResponse.from_recipient(store.get_recipient(rid))


@router.patch("/projects/{project_id}/recipients/{recipient_id}", response_model=RecipientResponse)
def update_recipient(
    request: Request,
    project_id: int,
    recipient_id: int,
    body: RecipientPatch,
    current_user: User = Depends(require_admin),
) -> RecipientResponse:
    store: ReviewStore = request.app.state.review
    recipient = store.get_recipient(recipient_id)
    if recipient is None or recipient.project_id != project_id:
        fail(404, "not_found", "Recipient not found.")
    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    try:
        store.update_recipient(recipient_id, **changes)
    except ValueError as exc:
        fail(400, "last_recipient", str(exc))
    return RecipientResponse.from_recipient(store.get_recipient(recipient_id))


@router.delete("/projects/{project_id}/recipients/{recipient_id}", status_code=204)
def delete_recipient(
    request: Request,
    project_id: int,
    recipient_id: int,
    current_user: User = Depends(require_admin),
) -> Response:
    store: ReviewStore = request.app.state.review
    recipient = store.get_recipient(recipient_id)
    if recipient is None or recipient.project_id != project_id:
        fail(404, "not_found", "Recipient not found.")
    store.delete_recipient(recipient_id)
    return Response(status_code=204)
