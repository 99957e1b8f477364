"""
api/routes/v1/common.py -- Helpers shared by the v1 route modules.

Lookups that 404, the structured HTTPException builder, the client session
lifetime and comment creation, which the admin and the share routes both
perform with the same rules.
"""

from __future__ import annotations

from typing import NoReturn

from fastapi import HTTPException, Request

from api.models import CommentCreate
from auth.models import ProjectAccess
from review.approval import approve_video_for_project
from review.models import Comment, Project, Video
from review.store import ReviewStore
from review.timecode import is_valid_timecode

MAX_COMMENTS_PER_VERSION = 100
MAX_RECIPIENTS_PER_PROJECT = 30


def fail(status_code: int, code: str, message: str, **extra) -> NoReturn:
    """Raise an HTTPException whose detail becomes the {"error": ...} envelope."""
    raise HTTPException(status_code=status_code, detail={"code": code, "message": message, **extra})


def get_project_or_404(request: Request, project_id: int) -> Project:
    project = request.app.state.review.get_project(project_id)
    if project is None:
        fail(404, "not_found", "Project not found.")
    return project


def get_project_by_slug_or_404(request: Request, slug: str) -> Project:
    project = request.app.state.review.get_project_by_slug(slug)
    if project is None:
        fail(404, "not_found", "Project not found.")
    return project


def get_video_or_404(request: Request, video_id: int) -> Video:
    video = request.app.state.review.get_video(video_id)
    if video is None:
        fail(404, "not_found", "Video not found.")
    return video


def client_session_ttl(request: Request) -> int:
    """Lifetime of share tokens and content tokens, from the runtime security settings."""
    return request.app.state.user_store.get_security_settings().session_timeout_seconds


def create_comment_for(request: Request, project: Project, access: ProjectAccess, body: CommentCreate) -> Comment:
    """Validate and store a comment on behalf of an admin or a share client.

    is_internal is derived from the caller. Clients cannot comment on older
    versions when restrict_comments_to_latest_version is on.
    """
    store: ReviewStore = request.app.state.review

    if body.timecode is not None and not is_valid_timecode(body.timecode):
        fail(400, "invalid_timecode", "Timecode must be in HH:MM:SS:FF format.")

    video_version = None
    if body.video_id is not None:
        video = store.get_video(body.video_id)
        if video is None or video.project_id != project.id:
            fail(404, "not_found", "Video not found.")
        if not access.is_admin and project.restrict_comments_to_latest_version:
            latest = store.latest_version(project.id, video.name)
            if latest is not None and latest.id != video.id:
                fail(403, "forbidden", "Comments are only allowed on the latest version.")
        if store.count_comments_for_version(video.id) >= MAX_COMMENTS_PER_VERSION:
            fail(429, "comment_limit", "Maximum number of comments reached for this version.")
        video_version = video.version

    if body.parent_id is not None:
        parent = store.get_comment(body.parent_id)
        if parent is None or parent.project_id != project.id:
            fail(400, "invalid_parent", "Reply target not found in this project.")

    if access.is_admin:
        user = access.user
        author_name = body.author_name or user.display_name
        author_email = user.email
        user_id = user.id
    else:
        author_name = body.author_name or project.client_name or None
        author_email = body.author_email
        user_id = None

    comment_id = store.create_comment(
        Comment(
            project_id=project.id,
            content=body.content,
            video_id=body.video_id,
            video_version=video_version,
            timecode=body.timecode,
            parent_id=body.parent_id,
            author_name=author_name,
            author_email=author_email,
            is_internal=access.is_admin,
            user_id=user_id,
        )
    )
    return store.get_comment(comment_id)


def approve_as(request: Request, project: Project, access: ProjectAccess, video_id: int) -> dict:
    """Approve a video for an admin, or for a client holding the comment permission."""
    if not access.is_admin and (access.is_guest or access.share is None or not access.share.can("comment")):
        fail(403, "forbidden", "Approval is not allowed for this session.")
    try:
        return approve_video_for_project(request.app.state.review, project, video_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": str(exc)}) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"code": "invalid_state", "message": str(exc)}) from exc
