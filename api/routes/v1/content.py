"""
api/routes/v1/content.py -- Video streaming and download by content token.

Routes:
  GET /api/v1/content/{token}             -- stream the file bound to the token
  GET /api/v1/content/{token}?download=1  -- same file as an attachment

A content token is only honoured for the session it was issued to: the
caller must present the same share token (or any admin JWT) that was used
to mint it through POST /share/{slug}/video-token.

Security:
  [H2] The stored path is resolved under settings.storage_root and refused
       when it escapes that directory.
  [H4] Tokens revoked when a project's access rules change stop working
       immediately because they are gone from the cache.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import FileResponse

from api.routes.v1.common import fail
from auth.content_tokens import verify_content_token
from auth.dependencies import client_ip, get_share_context, try_get_current_user
from core.config import get_settings
from review.files import resolve_storage_path
from review.models import Video

logger = logging.getLogger("reviewdesk.api.content")

# Auth policy: a content token plus the session that minted it (share token
# or admin JWT).
router = APIRouter()

_MEDIA_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".avi": "video/x-msvideo",
}


def _path_for_quality(video: Video, quality: str) -> str | None:
    """Stored path for the requested quality. Previews fall back to the other preview."""
    if quality == "original":
        return video.original_storage_path or None
    if quality == "1080p":
        return video.preview_1080_path or video.preview_720_path
    return video.preview_720_path or video.preview_1080_path


@router.get("/content/{token}")
def stream_content(request: Request, token: str, download: bool = Query(default=False)) -> FileResponse:
    state = request.app.state

    user = try_get_current_user(request)
    if user is not None and user.role == "admin":
        session_id = f"admin:{user.id}"
    else:
        share = get_share_context(request)
        session_id = share.session_id if share else None
    if not session_id:
        fail(401, "unauthorized", "Authentication required.")

    data = verify_content_token(state.cache, token, session_id, state.user_store, client_ip(request))
    if data is None:
        fail(403, "forbidden", "Invalid or expired content token.")

    video = state.review.get_video(data["video_id"])
    if video is None or video.project_id != data["project_id"]:
        fail(404, "not_found", "Video not found.")

    path = resolve_storage_path(get_settings().storage_root, _path_for_quality(video, data["quality"]))
    if path is None or not path.is_file():
        fail(404, "not_found", "File not available.")

    media_type = _MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream")
    if download:
        logger.info("Download of video %s (%s) by session %s", video.id, data["quality"], session_id[:14])
        filename = video.original_file_name if data["quality"] == "original" else path.name
        return FileResponse(path, media_type=media_type, filename=filename)
    return FileResponse(path, media_type=media_type)
