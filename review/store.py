"""
review/store.py -- SQLAlchemy Core persistence for projects, videos and feedback.

Pattern: Repository + Data Mapper. ReviewStore is the repository; the
_row_to_* functions translate rows into the dataclasses in review/models.py.
Route handlers never touch SQL directly.

Invariants owned here:
  - Versions are numbered per (project, video name): next = max + 1.
  - At most one approved version per video name. approve_video() clears the
    other versions of the same name in the same transaction.
  - Deleting a project removes its videos, assets, comments, recipients and
    key dates; deleting a video removes its assets and comments; deleting a
    comment removes its replies. Cascades are declared on the foreign keys
    AND issued explicitly, so backends without FK enforcement behave the same.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import re
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.engine import Engine

from core.config import get_settings
from core.db import make_engine, now_iso
from review.models import Comment, KeyDate, Project, Recipient, Video, VideoAsset
from review.status import project_status_priority

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_projects = Table(
    "projects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("slug", String(120), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
    Column("client_name", String(255), nullable=False, server_default=""),
    Column("client_email", String(255), nullable=False, server_default=""),
    Column("company_name", String(255), nullable=False, server_default=""),
    Column("share_password_hash", Text),  # bcrypt; NULL = no password
    Column("auth_mode", String(10), nullable=False, server_default="PASSWORD"),
    Column("guest_mode", Boolean, nullable=False, server_default="0"),
    Column("guest_latest_only", Boolean, nullable=False, server_default="1"),
    Column("status", String(20), nullable=False, server_default="IN_REVIEW"),
    Column("approved_at", String(32)),
    Column("approved_video_id", Integer),
    Column("restrict_comments_to_latest_version", Boolean, nullable=False, server_default="0"),
    Column("hide_feedback", Boolean, nullable=False, server_default="0"),
    Column("allow_asset_download", Boolean, nullable=False, server_default="1"),
    Column("auto_approve", Boolean, nullable=False, server_default="1"),
    Column("preview_resolution", String(10), nullable=False, server_default="720p"),
    Column("created_by", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_videos = Table(
    "videos",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("version", Integer, nullable=False),
    Column("version_label", String(100), nullable=False),
    Column("original_file_name", String(255), nullable=False),
    Column("original_file_size", Integer, nullable=False),
    Column("original_storage_path", Text, nullable=False, server_default=""),
    Column("preview_720_path", Text),
    Column("preview_1080_path", Text),
    Column("thumbnail_path", Text),
    Column("duration", Float, nullable=False, server_default="0"),
    Column("width", Integer, nullable=False, server_default="0"),
    Column("height", Integer, nullable=False, server_default="0"),
    Column("fps", Float),
    Column("status", String(20), nullable=False, server_default="UPLOADING"),
    Column("processing_error", Text),
    Column("approved", Boolean, nullable=False, server_default="0"),
    Column("approved_at", String(32)),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("project_id", "name", "version", name="uq_video_version"),
)

_video_assets = Table(
    "video_assets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("video_id", Integer, ForeignKey("videos.id", ondelete="CASCADE"), nullable=False),
    Column("file_name", String(255), nullable=False),
    Column("file_size", Integer, nullable=False),
    Column("file_type", String(255), nullable=False),
    Column("storage_path", Text, nullable=False),
    Column("category", String(20), nullable=False, server_default="other"),
    Column("uploaded_by", Integer),
    Column("uploaded_by_name", String(255), nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
)

_comments = Table(
    "comments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("video_id", Integer, ForeignKey("videos.id", ondelete="CASCADE")),
    Column("video_version", Integer),
    Column("timecode", String(11)),  # HH:MM:SS:FF
    Column("content", Text, nullable=False),
    Column("author_name", String(255)),
    Column("author_email", String(255)),
    Column("is_internal", Boolean, nullable=False, server_default="0"),
    Column("user_id", Integer),
    Column("parent_id", Integer, ForeignKey("comments.id", ondelete="CASCADE")),
    Column("created_at", String(32), nullable=False),
)

_recipients = Table(
    "recipients",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("email", String(255), nullable=False),
    Column("name", String(255), nullable=False, server_default=""),
    Column("is_primary", Boolean, nullable=False, server_default="0"),
    Column("receive_notifications", Boolean, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("project_id", "email", name="uq_project_recipient"),
)

_key_dates = Table(
    "key_dates",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("type", String(20), nullable=False),
    Column("date", String(10), nullable=False),  # YYYY-MM-DD
    Column("all_day", Boolean, nullable=False, server_default="1"),
    Column("start_time", String(5)),  # HH:MM
    Column("finish_time", String(5)),
    Column("notes", Text, nullable=False, server_default=""),
    Column("reminder_at", String(32)),
    Column("created_at", String(32), nullable=False),
)

_PROJECT_FIELDS = {
    "title",
    "slug",
    "description",
    "client_name",
    "client_email",
    "company_name",
    "share_password_hash",
    "auth_mode",
    "guest_mode",
    "guest_latest_only",
    "status",
    "approved_at",
    "approved_video_id",
    "restrict_comments_to_latest_version",
    "hide_feedback",
    "allow_asset_download",
    "auto_approve",
    "preview_resolution",
}

_VIDEO_FIELDS = {
    "name",
    "version_label",
    "original_storage_path",
    "preview_720_path",
    "preview_1080_path",
    "thumbnail_path",
    "duration",
    "width",
    "height",
    "fps",
    "status",
    "processing_error",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def slugify(title: str) -> str:
    """Lowercase, hyphen-separated slug; "project" when nothing usable remains."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug[:80] or "project"


def _check_fields(fields: dict, allowed: set[str]) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown fields: {sorted(unknown)!r}")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ReviewStore:
    """Repository for projects and everything hanging off them.

    Usage:
        store = ReviewStore()                                  # settings.database_url
        store = ReviewStore("sqlite:///:memory:")
        pid = store.create_project(Project(title="Launch", slug=store.unique_slug("Launch")))
        vid = store.create_video(Video(project_id=pid, name="Main", version=1, ...))
        store.close()
    """

    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def unique_slug(self, title: str) -> str:
        """Return slugify(title), suffixed -2, -3, ... until unused."""
        base = slugify(title)
        candidate = base
        n = 1
        with self.engine.connect() as conn:
            while conn.execute(select(_projects.c.id).where(_projects.c.slug == candidate)).first() is not None:
                n += 1
                candidate = f"{base}-{n}"
        return candidate

    def create_project(self, project: Project) -> int:
        """Insert a project. Raises IntegrityError if the slug is taken."""
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _projects.insert().values(
                    title=project.title,
                    slug=project.slug,
                    description=project.description,
                    client_name=project.client_name,
                    client_email=project.client_email,
                    company_name=project.company_name,
                    share_password_hash=project.share_password_hash,
                    auth_mode=project.auth_mode,
                    guest_mode=project.guest_mode,
                    guest_latest_only=project.guest_latest_only,
                    status=project.status,
                    restrict_comments_to_latest_version=project.restrict_comments_to_latest_version,
                    hide_feedback=project.hide_feedback,
                    allow_asset_download=project.allow_asset_download,
                    auto_approve=project.auto_approve,
                    preview_resolution=project.preview_resolution,
                    created_by=project.created_by,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_project(self, project_id: int) -> Optional[Project]:
        with self.engine.connect() as conn:
            row = conn.execute(_projects.select().where(_projects.c.id == project_id)).fetchone()
        return _row_to_project(row) if row is not None else None

    def get_project_by_slug(self, slug: str) -> Optional[Project]:
        with self.engine.connect() as conn:
            row = conn.execute(_projects.select().where(_projects.c.slug == slug)).fetchone()
        return _row_to_project(row) if row is not None else None

    def list_projects(self, status: Optional[str] = None) -> list[Project]:
        """Projects sorted by status priority, newest first within a status."""
        stmt = _projects.select()
        if status:
            stmt = stmt.where(_projects.c.status == status)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_projects.c.created_at.desc(), _projects.c.id.desc())).fetchall()
        projects = [_row_to_project(r) for r in rows]
        # Stable sort keeps the newest-first order inside each status bucket.
        projects.sort(key=lambda p: project_status_priority(p.status))
        return projects

    def update_project(self, project_id: int, **fields) -> bool:
        """Update mutable project columns. Unknown field names raise ValueError."""
        _check_fields(fields, _PROJECT_FIELDS)
        if not fields:
            return self.get_project(project_id) is not None
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_projects.update().where(_projects.c.id == project_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_project(self, project_id: int) -> bool:
        with self.engine.connect() as conn:
            video_ids = select(_videos.c.id).where(_videos.c.project_id == project_id)
            conn.execute(_video_assets.delete().where(_video_assets.c.video_id.in_(video_ids)))
            conn.execute(_comments.delete().where(_comments.c.project_id == project_id))
            conn.execute(_videos.delete().where(_videos.c.project_id == project_id))
            conn.execute(_recipients.delete().where(_recipients.c.project_id == project_id))
            conn.execute(_key_dates.delete().where(_key_dates.c.project_id == project_id))
            result = conn.execute(_projects.delete().where(_projects.c.id == project_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------

    def next_version(self, project_id: int, name: str) -> int:
        """Return the next version number for a video name within a project."""
        with self.engine.connect() as conn:
            current = conn.execute(
                select(func.max(_videos.c.version)).where(
                    (_videos.c.project_id == project_id) & (_videos.c.name == name)
                )
            ).scalar()
        return (current or 0) + 1

    def create_video(self, video: Video) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _videos.insert().values(
                    project_id=video.project_id,
                    name=video.name,
                    version=video.version,
                    version_label=video.version_label,
                    original_file_name=video.original_file_name,
                    original_file_size=video.original_file_size,
                    original_storage_path=video.original_storage_path,
                    preview_720_path=video.preview_720_path,
                    preview_1080_path=video.preview_1080_path,
                    thumbnail_path=video.thumbnail_path,
                    duration=video.duration,
                    width=video.width,
                    height=video.height,
                    fps=video.fps,
                    status=video.status,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_video(self, video_id: int) -> Optional[Video]:
        with self.engine.connect() as conn:
            row = conn.execute(_videos.select().where(_videos.c.id == video_id)).fetchone()
        return _row_to_video(row) if row is not None else None

    def list_videos(self, project_id: int, status: Optional[str] = None) -> list[Video]:
        """Videos of a project ordered by name, newest version first."""
        stmt = _videos.select().where(_videos.c.project_id == project_id)
        if status:
            stmt = stmt.where(_videos.c.status == status)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_videos.c.name, _videos.c.version.desc())).fetchall()
        return [_row_to_video(r) for r in rows]

    def latest_version(self, project_id: int, name: str, status: Optional[str] = None) -> Optional[Video]:
        stmt = _videos.select().where((_videos.c.project_id == project_id) & (_videos.c.name == name))
        if status:
            stmt = stmt.where(_videos.c.status == status)
        with self.engine.connect() as conn:
            row = conn.execute(stmt.order_by(_videos.c.version.desc()).limit(1)).fetchone()
        return _row_to_video(row) if row is not None else None

    def update_video(self, video_id: int, **fields) -> bool:
        _check_fields(fields, _VIDEO_FIELDS)
        if not fields:
            return self.get_video(video_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(_videos.update().where(_videos.c.id == video_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_video(self, video_id: int) -> bool:
        """Delete a video together with its assets and comments."""
        with self.engine.connect() as conn:
            conn.execute(_video_assets.delete().where(_video_assets.c.video_id == video_id))
            conn.execute(_comments.delete().where(_comments.c.video_id == video_id))
            result = conn.execute(_videos.delete().where(_videos.c.id == video_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def approve_video(self, video_id: int) -> bool:
        """Approve one version and unapprove every other version of the same name."""
        video = self.get_video(video_id)
        if video is None:
            return False
        now = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _videos.update()
                .where(
                    (_videos.c.project_id == video.project_id)
                    & (_videos.c.name == video.name)
                    & (_videos.c.id != video_id)
                )
                .values(approved=False, approved_at=None)
            )
            conn.execute(_videos.update().where(_videos.c.id == video_id).values(approved=True, approved_at=now))
            conn.commit()
        return True

    def unapprove_video(self, video_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _videos.update().where(_videos.c.id == video_id).values(approved=False, approved_at=None)
            )
            conn.commit()
        return result.rowcount > 0

    def unapprove_all(self, project_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _videos.update()
                .where((_videos.c.project_id == project_id) & (_videos.c.approved.is_(True)))
                .values(approved=False, approved_at=None)
            )
            conn.commit()
        return result.rowcount

    def all_names_approved(self, project_id: int) -> bool:
        """True when every distinct video name has an approved version.

        A project without videos is never "all approved".
        """
        with self.engine.connect() as conn:
            names = {
                r[0]
                for r in conn.execute(select(_videos.c.name).where(_videos.c.project_id == project_id).distinct())
            }
            approved = {
                r[0]
                for r in conn.execute(
                    select(_videos.c.name)
                    .where((_videos.c.project_id == project_id) & (_videos.c.approved.is_(True)))
                    .distinct()
                )
            }
        return bool(names) and names <= approved

    # ------------------------------------------------------------------
    # Video assets
    # ------------------------------------------------------------------

    def create_asset(self, asset: VideoAsset) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _video_assets.insert().values(
                    video_id=asset.video_id,
                    file_name=asset.file_name,
                    file_size=asset.file_size,
                    file_type=asset.file_type,
                    storage_path=asset.storage_path,
                    category=asset.category,
                    uploaded_by=asset.uploaded_by,
                    uploaded_by_name=asset.uploaded_by_name,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_asset(self, asset_id: int) -> Optional[VideoAsset]:
        with self.engine.connect() as conn:
            row = conn.execute(_video_assets.select().where(_video_assets.c.id == asset_id)).fetchone()
        return _row_to_asset(row) if row is not None else None

    def list_assets(self, video_id: int) -> list[VideoAsset]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _video_assets.select()
                .where(_video_assets.c.video_id == video_id)
                .order_by(_video_assets.c.created_at.desc(), _video_assets.c.id.desc())
            ).fetchall()
        return [_row_to_asset(r) for r in rows]

    def delete_asset(self, asset_id: int, video_id: int) -> bool:
        """Delete an asset; video_id must match so one video cannot delete another's files."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _video_assets.delete().where((_video_assets.c.id == asset_id) & (_video_assets.c.video_id == video_id))
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def create_comment(self, comment: Comment) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _comments.insert().values(
                    project_id=comment.project_id,
                    video_id=comment.video_id,
                    video_version=comment.video_version,
                    timecode=comment.timecode,
                    content=comment.content,
                    author_name=comment.author_name,
                    author_email=comment.author_email,
                    is_internal=comment.is_internal,
                    user_id=comment.user_id,
                    parent_id=comment.parent_id,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_comment(self, comment_id: int) -> Optional[Comment]:
        with self.engine.connect() as conn:
            row = conn.execute(_comments.select().where(_comments.c.id == comment_id)).fetchone()
        return _row_to_comment(row) if row is not None else None

    def list_comments(self, project_id: int, video_id: Optional[int] = None) -> list[Comment]:
        """Return top-level comments (oldest first) with replies nested under them."""
        stmt = _comments.select().where(_comments.c.project_id == project_id)
        if video_id is not None:
            stmt = stmt.where(_comments.c.video_id == video_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_comments.c.created_at, _comments.c.id)).fetchall()
        by_id = {r.id: _row_to_comment(r) for r in rows}
        roots: list[Comment] = []
        for comment in by_id.values():
            parent = by_id.get(comment.parent_id) if comment.parent_id is not None else None
            if parent is not None:
                parent.replies.append(comment)
            else:
                roots.append(comment)
        return roots

    def count_comments_for_version(self, video_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_comments).where(_comments.c.video_id == video_id)
            ).scalar()
        return result or 0

    def delete_comment(self, comment_id: int) -> bool:
        """Delete a comment and its whole reply subtree."""
        with self.engine.connect() as conn:
            pending = [comment_id]
            doomed: list[int] = []
            while pending:
                doomed.extend(pending)
                pending = [
                    r[0] for r in conn.execute(select(_comments.c.id).where(_comments.c.parent_id.in_(pending)))
                ]
            # Children first so the self-referencing FK is never violated.
            for cid in reversed(doomed):
                result = conn.execute(_comments.delete().where(_comments.c.id == cid))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Recipients
    # ------------------------------------------------------------------

    def add_recipient(self, recipient: Recipient) -> int:
        """Insert a recipient. The first recipient of a project becomes primary.

        Raises IntegrityError if the e-mail is already a recipient.
        """
        with self.engine.connect() as conn:
            existing = conn.execute(
                select(func.count()).select_from(_recipients).where(_recipients.c.project_id == recipient.project_id)
            ).scalar()
            is_primary = recipient.is_primary or not existing
            if is_primary and existing:
                conn.execute(
                    _recipients.update()
                    .where(_recipients.c.project_id == recipient.project_id)
                    .values(is_primary=False)
                )
            result = conn.execute(
                _recipients.insert().values(
                    project_id=recipient.project_id,
                    email=recipient.email.strip().lower(),
                    name=recipient.name,
                    is_primary=is_primary,
                    receive_notifications=recipient.receive_notifications,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_recipient(self, recipient_id: int) -> Optional[Recipient]:
        with self.engine.connect() as conn:
            row = conn.execute(_recipients.select().where(_recipients.c.id == recipient_id)).fetchone()
        return _row_to_recipient(row) if row is not None else None

    def get_recipient_by_email(self, project_id: int, email: str) -> Optional[Recipient]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _recipients.select().where(
                    (_recipients.c.project_id == project_id) & (_recipients.c.email == email.strip().lower())
                )
            ).fetchone()
        return _row_to_recipient(row) if row is not None else None

    def list_recipients(self, project_id: int) -> list[Recipient]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _recipients.select()
                .where(_recipients.c.project_id == project_id)
                .order_by(_recipients.c.is_primary.desc(), _recipients.c.id)
            ).fetchall()
        return [_row_to_recipient(r) for r in rows]

    def count_recipients(self, project_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_recipients).where(_recipients.c.project_id == project_id)
            ).scalar()
        return result or 0

    def update_recipient(self, recipient_id: int, **fields) -> bool:
        """Update name / is_primary / receive_notifications.

        Promoting a recipient to primary demotes the previous primary. Demoting
        the primary hands the role to the oldest other recipient; the only
        recipient of a project cannot be demoted (ValueError).
        """
        _check_fields(fields, {"name", "is_primary", "receive_notifications"})
        current = self.get_recipient(recipient_id)
        if current is None:
            return False
        if not fields:
            return True
        with self.engine.connect() as conn:
            if fields.get("is_primary"):
                conn.execute(
                    _recipients.update().where(_recipients.c.project_id == current.project_id).values(is_primary=False)
                )
            elif "is_primary" in fields and current.is_primary:
                successor = conn.execute(
                    select(_recipients.c.id)
                    .where((_recipients.c.project_id == current.project_id) & (_recipients.c.id != recipient_id))
                    .order_by(_recipients.c.id)
                    .limit(1)
                ).scalar()
                if successor is None:
                    raise ValueError("A project's only recipient must stay primary")
                conn.execute(_recipients.update().where(_recipients.c.id == successor).values(is_primary=True))
            conn.execute(_recipients.update().where(_recipients.c.id == recipient_id).values(**fields))
            conn.commit()
        return True

    def delete_recipient(self, recipient_id: int) -> bool:
        """Delete a recipient; if it was primary, the oldest remaining one takes over."""
        current = self.get_recipient(recipient_id)
        if current is None:
            return False
        with self.engine.connect() as conn:
            conn.execute(_recipients.delete().where(_recipients.c.id == recipient_id))
            if current.is_primary:
                successor = conn.execute(
                    select(_recipients.c.id)
                    .where(_recipients.c.project_id == current.project_id)
                    .order_by(_recipients.c.id)
                    .limit(1)
                ).scalar()
                if successor is not None:
                    conn.execute(_recipients.update().where(_recipients.c.id == successor).values(is_primary=True))
            conn.commit()
        return True

    # ------------------------------------------------------------------
    # Key dates
    # ------------------------------------------------------------------

    def create_key_date(self, key_date: KeyDate) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _key_dates.insert().values(
                    project_id=key_date.project_id,
                    type=key_date.type,
                    date=key_date.date,
                    all_day=key_date.all_day,
                    start_time=key_date.start_time,
                    finish_time=key_date.finish_time,
                    notes=key_date.notes,
                    reminder_at=key_date.reminder_at,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_key_date(self, key_date_id: int) -> Optional[KeyDate]:
        with self.engine.connect() as conn:
            row = conn.execute(_key_dates.select().where(_key_dates.c.id == key_date_id)).fetchone()
        return _row_to_key_date(row) if row is not None else None

    def list_key_dates(
        self,
        project_id: Optional[int] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> list[KeyDate]:
        """Key dates in chronological order, optionally scoped to a project and an inclusive date range.

        YYYY-MM-DD strings compare correctly as text, so the range filter
        runs in SQL without date parsing.
        """
        stmt = _key_dates.select()
        if project_id is not None:
            stmt = stmt.where(_key_dates.c.project_id == project_id)
        if start:
            stmt = stmt.where(_key_dates.c.date >= start)
        if end:
            stmt = stmt.where(_key_dates.c.date <= end)
        with self.engine.connect() as conn:
            rows = conn.execute(
                stmt.order_by(_key_dates.c.date, _key_dates.c.start_time, _key_dates.c.id)
            ).fetchall()
        return [_row_to_key_date(r) for r in rows]

    def update_key_date(self, key_date_id: int, **fields) -> bool:
        _check_fields(fields, {"type", "date", "all_day", "start_time", "finish_time", "notes", "reminder_at"})
        if not fields:
            return self.get_key_date(key_date_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(_key_dates.update().where(_key_dates.c.id == key_date_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_key_date(self, key_date_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_key_dates.delete().where(_key_dates.c.id == key_date_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_project(row) -> Project:
    return Project(
        id=row.id,
        title=row.title,
        slug=row.slug,
        description=row.description or "",
        client_name=row.client_name or "",
        client_email=row.client_email or "",
        company_name=row.company_name or "",
        share_password_hash=row.share_password_hash,
        auth_mode=row.auth_mode,
        guest_mode=bool(row.guest_mode),
        guest_latest_only=bool(row.guest_latest_only),
        status=row.status,
        approved_at=row.approved_at,
        approved_video_id=row.approved_video_id,
        restrict_comments_to_latest_version=bool(row.restrict_comments_to_latest_version),
        hide_feedback=bool(row.hide_feedback),
        allow_asset_download=bool(row.allow_asset_download),
        auto_approve=bool(row.auto_approve),
        preview_resolution=row.preview_resolution,
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_video(row) -> Video:
    return Video(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        version=row.version,
        version_label=row.version_label,
        original_file_name=row.original_file_name,
        original_file_size=row.original_file_size,
        original_storage_path=row.original_storage_path or "",
        preview_720_path=row.preview_720_path,
        preview_1080_path=row.preview_1080_path,
        thumbnail_path=row.thumbnail_path,
        duration=row.duration or 0.0,
        width=row.width or 0,
        height=row.height or 0,
        fps=row.fps,
        status=row.status,
        processing_error=row.processing_error,
        approved=bool(row.approved),
        approved_at=row.approved_at,
        created_at=row.created_at,
    )


def _row_to_asset(row) -> VideoAsset:
    return VideoAsset(
        id=row.id,
        video_id=row.video_id,
        file_name=row.file_name,
        file_size=row.file_size,
        file_type=row.file_type,
        storage_path=row.storage_path,
        category=row.category,
        uploaded_by=row.uploaded_by,
        uploaded_by_name=row.uploaded_by_name or "",
        created_at=row.created_at,
    )


def _row_to_comment(row) -> Comment:
    return Comment(
        id=row.id,
        project_id=row.project_id,
        video_id=row.video_id,
        video_version=row.video_version,
        timecode=row.timecode,
        content=row.content,
        author_name=row.author_name,
        author_email=row.author_email,
        is_internal=bool(row.is_internal),
        user_id=row.user_id,
        parent_id=row.parent_id,
        created_at=row.created_at,
    )


def _row_to_recipient(row) -> Recipient:
    return Recipient(
        id=row.id,
        project_id=row.project_id,
        email=row.email,
        name=row.name or "",
        is_primary=bool(row.is_primary),
        receive_notifications=bool(row.receive_notifications),
        created_at=row.created_at,
    )


def _row_to_key_date(row) -> KeyDate:
    return KeyDate(
        id=row.id,
        project_id=row.project_id,
        type=row.type,
        date=row.date,
        all_day=bool(row.all_day),
        start_time=row.start_time,
        finish_time=row.finish_time,
        notes=row.notes or "",
        reminder_at=row.reminder_at,
        created_at=row.created_at,
    )
