"""
review/sanitize.py -- Viewer-dependent redaction of comment author data.

Policy: clients never see e-mail addresses or user ids, not even their own.
  admin              -> real author_name, author_email, user_id
  authenticated      -> author_name; falls back to "Admin" for internal
                        comments and to the project's client name (then
                        "Client") for client comments
  guest / anonymous  -> "Admin" or "Client" only

Replies are redacted with the same rules, recursively.
"""

from __future__ import annotations

from typing import Any, Optional

from review.models import Comment


def sanitize_comment(
    comment: Comment,
    is_admin: bool,
    is_authenticated: bool,
    client_name: Optional[str] = None,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": comment.id,
        "project_id": comment.project_id,
        "video_id": comment.video_id,
        "video_version": comment.video_version,
        "timecode": comment.timecode,
        "content": comment.content,
        "is_internal": comment.is_internal,
        "parent_id": comment.parent_id,
        "created_at": comment.created_at,
    }
    if is_admin:
        data["author_name"] = comment.author_name
        data["author_email"] = comment.author_email
        data["user_id"] = comment.user_id
    elif is_authenticated:
        if comment.is_internal:
            data["author_name"] = comment.author_name or "Admin"
        else:
            data["author_name"] = comment.author_name or client_name or "Client"
    else:
        data["author_name"] = "Admin" if comment.is_internal else "Client"

    data["replies"] = [sanitize_comment(r, is_admin, is_authenticated, client_name) for r in comment.replies]
    return data


def sanitize_comments(
    comments: list[Comment],
    is_admin: bool,
    is_authenticated: bool,
    client_name: Optional[str] = None,
) -> list[dict[str, Any]]:
    return [sanitize_comment(c, is_admin, is_authenticated, client_name) for c in comments]
