"""
api/routes/v1/videos.py -- Video version and video asset REST endpoints.

Routes:
  POST   /api/v1/projects/{id}/videos             -- register a new version (admin)
  GET    /api/v1/projects/{id}/videos             -- list versions, ?status= filter (admin)
  GET    /api/v1/videos/{id}                      -- detail (admin)
  PATCH  /api/v1/videos/{id}                      -- processing metadata, paths, rename (admin)
  DELETE /api/v1/videos/{id}                      -- delete with its assets and comments (admin)
  GET    /api/v1/videos/{id}/assets               -- list assets (admin, or client when downloadable)
  POST   /api/v1/videos/{id}/assets               -- register an asset (admin)
  DELETE /api/v1/videos/{id}/assets/{asset_id}    -- delete an asset (admin)

Files are registered by metadata. Transcoding workers fill in preview and
thumbnail paths through PATCH and flip the status to READY.

Security:
  [H2] Asset names are sanitized and suspicious names rejected before any
       storage path is derived from them (review/files.py).
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.models import AssetCreate, AssetResponse, VideoCreate, VideoPatch, VideoResponse, VideoStatusEnum
from api.routes.v1.common import fail, get_project_or_404, get_video_or_404
from auth.dependencies import require_admin, require_project_access
from auth.models import User
from review.files import is_suspicious_filename, is_video_filename, sanitize_filename, validate_asset_file
from review.models import Video, VideoAsset
from review.store import ReviewStore

logger = logging.getLogger("reviewdesk.api.videos")

# Auth policy: admin only, except GET /videos/{id}/assets which a client may
# call when the project allows asset downloads and the version is approved.
router = APIRouter()


# ---------------------------------------------------------------------------
# Videos
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/videos", response_model=VideoResponse, status_code=201)
def create_video(
    request: Request,
    project_id: int,
    body: VideoCreate,
    current_user: User = Depends(require_admin),
) -> VideoResponse:
    """Register a new version of a named video. version = highest for that name + 1."""
    store: ReviewStore = request.app.state.review
    get_project_or_404(request, project_id)
    if is_suspicious_filename(body.original_file_name) or not is_video_filename(body.original_file_name):
        fail(400, "invalid_file", "File must be a video (.mp4, .mov, .avi, .webm, .mkv).")

    version = store.next_version(project_id, body.name)
    safe_name = sanitize_filename(body.original_file_name)
    video_id = store.create_video(
        Video(
            project_id=project_id,
            name=body.name,
            version=version,
            version_label=body.version_label or f"v{version}",
            original_file_name=safe_name,
            original_file_size=body.original_file_size,
            original_storage_path=f"projects/{project_id}/videos/{secrets.token_hex(8)}_{safe_name}",
        )
    )
    logger.info("Video %s (%s v%d) registered on project %s", video_id, body.name, version, project_id)
    return VideoResponse.from_video(store.get_video(video_id))


@router.get("/projects/{project_id}/videos", response_model=list[VideoResponse])
def list_videos(
    request: Request,
    project_id: int,
    status: Optional[VideoStatusEnum] = Query(default=None),
    current_user: User = Depends(require_admin),
) -> list[VideoResponse]:
    get_project_or_404(request, project_id)
    videos = request.app.state.review.list_videos(project_id, status=status.value if status else None)
    return [VideoResponse.from_video(v) for v in videos]


@router.get("/videos/{video_id}", response_model=VideoResponse)
def get_video(request: Request, video_id: int, current_user: User = Depends(require_admin)) -> VideoResponse:
    return VideoResponse.from_video(get_video_or_404(request, video_id))


@router.patch("/videos/{video_id}", response_model=VideoResponse)
def update_video(
    request: Request,
    video_id: int,
    body: VideoPatch,
    current_user: User = Depends(require_admin),
) -> VideoResponse:
    store: ReviewStore = request.app.state.review
    get_video_or_404(request, video_id)
    changes = body.model_dump(exclude_unset=True, mode="json")
    for required in ("name", "version_label", "status"):
        if changes.get(required, "") is None:
            changes.pop(required)
    if not changes:
        fail(400, "no_changes", "No fields to update.")
    store.update_video(video_id, **changes)
    return VideoResponse.from_video(store.get_video(video_id))


@router.delete("/videos/{video_id}", status_code=204)
def delete_video(request: Request, video_id: int, current_user: User = Depends(require_admin)) -> Response:
    get_video_or_404(request, video_id)
    request.app.state.review.delete_video(video_id)
    logger.info("Video %s deleted by user %s", video_id, current_user.id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


@router.get("/videos/{video_id}/assets", response_model=list[AssetResponse])
def list_assets(request: Request, video_id: int) -> list[AssetResponse]:
    store: ReviewStore = request.app.state.review
    video = get_video_or_404(request, video_id)
    project = get_project_or_404(request, video.project_id)
    access = require_project_access(request, project)
    if not access.is_admin:
        downloadable = project.allow_asset_download and video.approved
        if not downloadable or (access.share is not None and not access.share.can("download")) or access.is_guest:
            fail(403, "forbidden", "Assets are not available for download.")
    return [AssetResponse.from_asset(a) for a in store.list_assets(video_id)]


@router.post("/videos/{video_id}/assets", response_model=AssetResponse, status_code=201)
def create_asset(
    request: Request,
    video_id: int,
    body: AssetCreate,
    current_user: User = Depends(require_admin),
) -> AssetResponse:
    store: ReviewStore = request.app.state.review
    video = get_video_or_404(request, video_id)
    try:
        safe_name, category = validate_asset_file(body.file_name, body.file_type, body.category)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"code": "invalid_file", "message": str(exc)}) from exc

    asset_id = store.create_asset(
        VideoAsset(
            video_id=video_id,
            file_name=safe_name,
            file_size=body.file_size,
            file_type=body.file_type,
            storage_path=f"projects/{video.project_id}/assets/{video_id}/{secrets.token_hex(8)}_{safe_name}",
            category=category,
            uploaded_by=current_user.id,
            uploaded_by_name=current_user.display_name,
        )
    )
    return AssetResponse.from_asset(store.get_asset(asset_id))


@router.delete("/videos/{video_id}/assets/{asset_id}", status_code=204)
def delete_asset(
    request: Request,
    video_id: int,
    asset_id: int,
    current_user: User = Depends(require_admin),
) -> Response:
    if not request.app.state.review.delete_asset(asset_id, video_id):
        fail(404, "not_found", "Asset not found.")
    return Response(status_code=204)
