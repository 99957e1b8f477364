"""
api/routes/v1/comments.py -- Project comment endpoints with dual access.

Routes:
  GET    /api/v1/projects/{id}/comments   -- threaded comments, ?video_id= filter
  POST   /api/v1/projects/{id}/comments   -- add a comment or a reply
  DELETE /api/v1/comments/{id}            -- delete a comment and its replies (admin)

Both GET and POST accept an admin JWT or a share token for the project
(verify_project_access). Responses are sanitized per viewer:
admins see real author data, clients see names only, guests see roles only.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.limiter import limiter
from api.models import CommentCreate
from api.routes.v1.common import create_comment_for, fail, get_project_or_404
from auth.dependencies import require_admin, require_project_access
from auth.models import ProjectAccess, User
from review.models import Project
from review.sanitize import sanitize_comment, sanitize_comments

# Auth policy:
# - GET/POST /projects/{id}/comments: admin, or share session for that project
# - DELETE /comments/{id}: admin
router = APIRouter()


def visible_comments(request: Request, project: Project, access: ProjectAccess, video_id: Optional[int]) -> list:
    """Comments the caller may read. Feedback is hidden from guests always and from clients when hide_feedback."""
    if not access.is_admin and (access.is_guest or project.hide_feedback):
        return []
    comments = request.app.state.review.list_comments(project.id, video_id=video_id)
    return sanitize_comments(comments, access.is_admin, access.is_authenticated, project.client_name or None)


def post_comment(request: Request, project: Project, access: ProjectAccess, body: CommentCreate) -> dict:
    """Create a comment for an admin, or for a client holding the comment permission."""
    if not access.is_admin:
        if access.is_guest or access.share is None or not access.share.can("comment"):
            fail(403, "forbidden", "Commenting is not allowed for this session.")
    comment = create_comment_for(request, project, access, body)
    return sanitize_comment(comment, access.is_admin, access.is_authenticated, project.client_name or None)


@router.get("/projects/{project_id}/comments")
def list_comments(
    request: Request,
    project_id: int,
    video_id: Optional[int] = Query(default=None),
) -> list[dict]:
    project = get_project_or_404(request, project_id)
    access = require_project_access(request, project)
    return visible_comments(request, project, access, video_id)


@limiter.limit("10/minute")
@router.post("/projects/{project_id}/comments", status_code=201)
def create_comment(request: Request, project_id: int, body: CommentCreate) -> dict:
    project = get_project_or_404(request, project_id)
    access = require_project_access(request, project)
    return post_comment(request, project, access, body)


@router.delete("/comments/{comment_id}", status_code=204)
def delete_comment(request: Request, comment_id: int, current_user: User = Depends(require_admin)) -> Response:
    if not request.app.state.review.delete_comment(comment_id):
        fail(404, "not_found", "Comment not found.")
    return Response(status_code=204)
