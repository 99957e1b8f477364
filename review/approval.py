"""
review/approval.py -- Video approval and the project auto-approve cascade.

Both the admin route and the client share route approve through
approve_video_for_project(), so the cascade is identical for either caller.

Errors are plain exceptions that routes translate:
  LookupError -- the video does not exist or belongs to another project (404)
  ValueError  -- the request is not allowed in the current state (400)
"""

from __future__ import annotations

import logging
from typing import Optional

from core.db import now_iso
from review.models import Project
from review.store import ReviewStore

logger = logging.getLogger("reviewdesk.review")


def approve_video_for_project(store: ReviewStore, project: Project, video_id: int) -> dict:
    """Approve one version; approve the project too once every video name is approved."""
    if project.status == "APPROVED":
        raise ValueError("Project is already approved")
    video = store.get_video(video_id)
    if video is None or video.project_id != project.id:
        raise LookupError("Video not found")

    store.approve_video(video_id)
    project_approved = False
    if project.auto_approve and store.all_names_approved(project.id):
        store.update_project(project.id, status="APPROVED", approved_at=now_iso(), approved_video_id=video_id)
        project_approved = True
        logger.info("Project %s auto-approved after video %s", project.id, video_id)
    return {"video_id": video_id, "approved": True, "project_approved": project_approved}


def unapprove_for_project(store: ReviewStore, project: Project, video_id: Optional[int] = None) -> dict:
    """Clear one video's approval, or every approval when video_id is None.

    An APPROVED project falls back to IN_REVIEW.
    """
    if video_id is not None:
        video = store.get_video(video_id)
        if video is None or video.project_id != project.id:
            raise LookupError("Video not found")
        store.unapprove_video(video_id)
        cleared = 1
    else:
        cleared = store.unapprove_all(project.id)

    if project.status == "APPROVED":
        store.update_project(project.id, status="IN_REVIEW", approved_at=None, approved_video_id=None)
    return {"unapproved": cleared, "status": "IN_REVIEW" if project.status == "APPROVED" else project.status}
