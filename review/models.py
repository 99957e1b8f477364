"""
review/models.py -- Domain dataclasses for projects, videos and feedback.

These are pure data containers with zero logic. Versioning, approval
cascades and cascade deletes live in review/store.py; comment redaction for
client viewers lives in review/sanitize.py.

id is None on every entity before the record is written to the database.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Project:
    """A client deliverable with its share link and review policy.

    slug is the public share-link identifier (/share/{slug}). The share
    password is only ever stored as a bcrypt hash.

    auth_mode decides how clients authenticate on the share link:
      PASSWORD -- share password only
      OTP      -- e-mailed one-time code (recipients only)
      BOTH     -- either of the above
      NONE     -- open link, no authentication
    guest_mode additionally allows a view-only guest entry.
    """

    title: str
    slug: str
    id: Optional[int] = None
    description: str = ""
    client_name: str = ""
    client_email: str = ""
    company_name: str = ""
    share_password_hash: Optional[str] = None
    auth_mode: str = "PASSWORD"
    guest_mode: bool = False
    guest_latest_only: bool = True
    status: str = "IN_REVIEW"
    approved_at: Optional[str] = None
    approved_video_id: Optional[int] = None
    restrict_comments_to_latest_version: bool = False
    hide_feedback: bool = False
    allow_asset_download: bool = True
    auto_approve: bool = True
    preview_resolution: str = "720p"  # "720p" | "1080p"
    created_by: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def has_password(self) -> bool:
        return bool(self.share_password_hash)


@dataclass
class Video:
    """One uploaded version of a named video.

    Versions are grouped by name: "Main Edit" v1, v2, v3 ... Approval is per
    version, and at most one version per name is approved at a time.
    """

    project_id: int
    name: str
    version: int
    version_label: str
    original_file_name: str
    original_file_size: int
    id: Optional[int] = None
    original_storage_path: str = ""
    preview_720_path: Optional[str] = None
    preview_1080_path: Optional[str] = None
    thumbnail_path: Optional[str] = None
    duration: float = 0.0
    width: int = 0
    height: int = 0
    fps: Optional[float] = None
    status: str = "UPLOADING"  # "UPLOADING" | "PROCESSING" | "READY" | "ERROR"
    processing_error: Optional[str] = None
    approved: bool = False
    approved_at: Optional[str] = None
    created_at: str = ""


@dataclass
class VideoAsset:
    """A supporting file attached to a video version (stills, stems, project files)."""

    video_id: int
    file_name: str
    file_size: int
    file_type: str
    storage_path: str
    category: str  # "image" | "audio" | "project" | "document" | "other"
    id: Optional[int] = None
    uploaded_by: Optional[int] = None
    uploaded_by_name: str = ""
    created_at: str = ""


@dataclass
class Comment:
    """Timestamped feedback on a project or one of its video versions.

    replies is filled by ReviewStore.list_comments() when threading; it is
    never persisted.
    """

    project_id: int
    content: str
    id: Optional[int] = None
    video_id: Optional[int] = None
    video_version: Optional[int] = None
    timecode: Optional[str] = None  # HH:MM:SS:FF
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    is_internal: bool = False  # written by an internal user
    user_id: Optional[int] = None
    parent_id: Optional[int] = None
    created_at: str = ""
    replies: list["Comment"] = field(default_factory=list)


@dataclass
class Recipient:
    """A client address allowed to receive OTP codes and notifications."""

    project_id: int
    email: str
    id: Optional[int] = None
    name: str = ""
    is_primary: bool = False
    receive_notifications: bool = True
    created_at: str = ""


@dataclass
class KeyDate:
    """A scheduled milestone on a project (shoot day, delivery, ...).

    start_time / finish_time are HH:MM and always None for all-day entries.
    """

    project_id: int
    type: str  # "PRE_PRODUCTION" | "SHOOTING" | "DUE_DATE" | "OTHER"
    date: str  # YYYY-MM-DD
    id: Optional[int] = None
    all_day: bool = True
    start_time: Optional[str] = None
    finish_time: Optional[str] = None
    notes: str = ""
    reminder_at: Optional[str] = None
    created_at: str = ""
