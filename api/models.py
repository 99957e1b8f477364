"""
API request and response models for ReviewDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in review/models.py,
sales/models.py and auth/models.py, which own the internal domain
representation. Route handlers map between the two.

Separation of concerns: domain dataclasses = storage truth; api/ models = API contract.

PATCH bodies are applied with model_dump(exclude_unset=True) so "field not
sent" and "field set to null" stay distinguishable.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import User
from review.models import KeyDate, Project, Recipient, Video, VideoAsset
from review.status import project_status_label

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


def _real_date(v: Optional[str]) -> Optional[str]:
    """Reject dates that match DATE_PATTERN but do not exist (2024-02-30)."""
    if v is not None:
        datetime.strptime(v, "%Y-%m-%d")
    return v


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    staff = "staff"


class AuthModeEnum(str, Enum):
    PASSWORD = "PASSWORD"
    OTP = "OTP"
    BOTH = "BOTH"
    NONE = "NONE"


class ProjectStatusEnum(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    REVIEWED = "REVIEWED"
    ON_HOLD = "ON_HOLD"
    SHARE_ONLY = "SHARE_ONLY"
    APPROVED = "APPROVED"
    CLOSED = "CLOSED"


class VideoStatusEnum(str, Enum):
    UPLOADING = "UPLOADING"
    PROCESSING = "PROCESSING"
    READY = "READY"
    ERROR = "ERROR"


class QualityEnum(str, Enum):
    p720 = "720p"
    p1080 = "1080p"
    original = "original"


class KeyDateTypeEnum(str, Enum):
    PRE_PRODUCTION = "PRE_PRODUCTION"
    SHOOTING = "SHOOTING"
    DUE_DATE = "DUE_DATE"
    OTHER = "OTHER"


class TimeoutUnitEnum(str, Enum):
    MINUTES = "MINUTES"
    HOURS = "HOURS"
    DAYS = "DAYS"
    WEEKS = "WEEKS"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth and users
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. identifier is an e-mail or a username."""

    model_config = ConfigDict(str_strip_whitespace=True)

    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    """Optional body for POST /auth/refresh; the refresh_token cookie is used when absent."""

    refresh_token: Optional[str] = None


class SetupRequest(BaseModel):
    """Request body for POST /api/v1/setup (first admin account)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=255)
    name: str = Field(default="", max_length=255)
    username: Optional[str] = Field(default=None, min_length=3, max_length=64)


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=255)
    name: str = Field(default="", max_length=255)
    username: Optional[str] = Field(default=None, min_length=3, max_length=64)
    role: RoleEnum = RoleEnum.staff

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{id}. All fields optional."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)
    role: Optional[RoleEnum] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=8, max_length=255)


class UserResponse(BaseModel):
    """Public view of a user account. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    username: Optional[str]
    name: str
    role: str
    is_active: bool
    created_at: str
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            name=user.name,
            role=user.role,
            is_active=user.is_active,
            created_at=user.created_at or "",
            last_login=user.last_login,
        )


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class SecuritySettingsPatch(BaseModel):
    """Request body for PATCH /api/v1/settings/security."""

    password_attempts: Optional[int] = Field(default=None, ge=1, le=100)
    session_timeout_value: Optional[int] = Field(default=None, ge=1, le=10000)
    session_timeout_unit: Optional[TimeoutUnitEnum] = None
    ip_rate_limit: Optional[int] = Field(default=None, ge=1, le=100000)
    session_rate_limit: Optional[int] = Field(default=None, ge=1, le=100000)
    track_security_logs: Optional[bool] = None


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    """Request body for POST /api/v1/projects.

    auth_mode defaults to PASSWORD when a share password is given and to NONE
    otherwise; the route applies that rule when auth_mode is omitted.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=80, pattern=SLUG_PATTERN)
    description: str = Field(default="", max_length=5000)
    client_name: str = Field(default="", max_length=255)
    client_email: str = Field(default="", max_length=255)
    company_name: str = Field(default="", max_length=255)
    share_password: Optional[str] = Field(default=None, min_length=1, max_length=255)
    auth_mode: Optional[AuthModeEnum] = None
    guest_mode: bool = False
    guest_latest_only: bool = True
    status: ProjectStatusEnum = ProjectStatusEnum.IN_REVIEW
    restrict_comments_to_latest_version: bool = False
    hide_feedback: bool = False
    allow_asset_download: bool = True
    auto_approve: bool = True
    preview_resolution: QualityEnum = QualityEnum.p720

    @field_validator("preview_resolution")
    @classmethod
    def preview_only(cls, v: QualityEnum) -> QualityEnum:
        if v == QualityEnum.original:
            raise ValueError("preview_resolution must be 720p or 1080p")
        return v


class ProjectPatch(BaseModel):
    """Request body for PATCH /api/v1/projects/{id}. All fields optional."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    client_name: Optional[str] = Field(default=None, max_length=255)
    client_email: Optional[str] = Field(default=None, max_length=255)
    company_name: Optional[str] = Field(default=None, max_length=255)
    auth_mode: Optional[AuthModeEnum] = None
    guest_mode: Optional[bool] = None
    guest_latest_only: Optional[bool] = None
    status: Optional[ProjectStatusEnum] = None
    restrict_comments_to_latest_version: Optional[bool] = None
    hide_feedback: Optional[bool] = None
    allow_asset_download: Optional[bool] = None
    auto_approve: Optional[bool] = None
    preview_resolution: Optional[QualityEnum] = None

    @field_validator("preview_resolution")
    @classmethod
    def preview_only(cls, v: Optional[QualityEnum]) -> Optional[QualityEnum]:
        if v == QualityEnum.original:
            raise ValueError("preview_resolution must be 720p or 1080p")
        return v


class PasswordUpdate(BaseModel):
    """Request body for PUT /projects/{id}/password. null clears the password."""

    password: Optional[str] = Field(default=None, min_length=1, max_length=255)


class ApproveRequest(BaseModel):
    video_id: int


class UnapproveRequest(BaseModel):
    video_id: Optional[int] = None


class ProjectResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    slug: str
    description: str
    client_name: str
    client_email: str
    company_name: str
    has_password: bool
    auth_mode: str
    guest_mode: bool
    guest_latest_only: bool
    status: str
    status_label: str
    approved_at: Optional[str]
    approved_video_id: Optional[int]
    restrict_comments_to_latest_version: bool
    hide_feedback: bool
    allow_asset_download: bool
    auto_approve: bool
    preview_resolution: str
    created_by: Optional[int]
    created_at: str
    updated_at: str

    @classmethod
    def from_project(cls, project: Project) -> "ProjectResponse":
        """Factory Method: the share password hash never leaves the server."""
        return cls(
            id=project.id,
            title=project.title,
            slug=project.slug,
            description=project.description,
            client_name=project.client_name,
            client_email=project.client_email,
            company_name=project.company_name,
            has_password=project.has_password,
            auth_mode=project.auth_mode,
            guest_mode=project.guest_mode,
            guest_latest_only=project.guest_latest_only,
            status=project.status,
            status_label=project_status_label(project.status),
            approved_at=project.approved_at,
            approved_video_id=project.approved_video_id,
            restrict_comments_to_latest_version=project.restrict_comments_to_latest_version,
            hide_feedback=project.hide_feedback,
            allow_asset_download=project.allow_asset_download,
            auto_approve=project.auto_approve,
            preview_resolution=project.preview_resolution,
            created_by=project.created_by,
            created_at=project.created_at,
            updated_at=project.updated_at,
        )


# ---------------------------------------------------------------------------
# Videos and assets
# ---------------------------------------------------------------------------


class VideoCreate(BaseModel):
    """Request body for POST /api/v1/projects/{id}/videos."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    original_file_name: str = Field(min_length=1, max_length=255)
    original_file_size: int = Field(ge=0)
    version_label: Optional[str] = Field(default=None, max_length=50)


class VideoPatch(BaseModel):
    """Processing metadata and renames for PATCH /api/v1/videos/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    version_label: Optional[str] = Field(default=None, max_length=50)
    status: Optional[VideoStatusEnum] = None
    processing_error: Optional[str] = Field(default=None, max_length=2000)
    original_storage_path: Optional[str] = Field(default=None, max_length=1024)
    preview_720_path: Optional[str] = Field(default=None, max_length=1024)
    preview_1080_path: Optional[str] = Field(default=None, max_length=1024)
    thumbnail_path: Optional[str] = Field(default=None, max_length=1024)
    duration: Optional[float] = Field(default=None, ge=0)
    width: Optional[int] = Field(default=None, ge=0)
    height: Optional[int] = Field(default=None, ge=0)
    fps: Optional[float] = Field(default=None, gt=0, le=240)


class VideoResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int
    name: str
    version: int
    version_label: str
    original_file_name: str
    original_file_size: int
    duration: float
    width: int
    height: int
    fps: Optional[float]
    status: str
    approved: bool
    approved_at: Optional[str]
    has_thumbnail: bool
    created_at: str

    @classmethod
    def from_video(cls, video: Video) -> "VideoResponse":
        """Storage paths stay server-side; files are reached through content tokens."""
        return cls(
            id=video.id,
            project_id=video.project_id,
            name=video.name,
            version=video.version,
            version_label=video.version_label,
            original_file_name=video.original_file_name,
            original_file_size=video.original_file_size,
            duration=video.duration,
            width=video.width,
            height=video.height,
            fps=video.fps,
            status=video.status,
            approved=video.approved,
            approved_at=video.approved_at,
            has_thumbnail=bool(video.thumbnail_path),
            created_at=video.created_at,
        )


class AssetCreate(BaseModel):
    """Request body for POST /api/v1/videos/{id}/assets."""

    model_config = ConfigDict(str_strip_whitespace=True)

    file_name: str = Field(min_length=1, max_length=255)
    file_size: int = Field(ge=0)
    file_type: str = Field(default="application/octet-stream", max_length=255)
    category: Optional[str] = Field(default=None, max_length=20)


class AssetResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    video_id: int
    file_name: str
    file_size: int
    file_type: str
    category: str
    uploaded_by_name: str
    created_at: str

    @classmethod
    def from_asset(cls, asset: VideoAsset) -> "AssetResponse":
        return cls(
            id=asset.id,
            video_id=asset.video_id,
            file_name=asset.file_name,
            file_size=asset.file_size,
            file_type=asset.file_type,
            category=asset.category,
            uploaded_by_name=asset.uploaded_by_name,
            created_at=asset.created_at,
        )


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


class CommentCreate(BaseModel):
    """Request body for POST /projects/{id}/comments and /share/{slug}/comments.

    There is deliberately no is_internal field: it is derived from the caller.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    content: str = Field(min_length=1, max_length=10000)
    video_id: Optional[int] = None
    timecode: Optional[str] = Field(default=None, max_length=20)
    parent_id: Optional[int] = None
    author_name: Optional[str] = Field(default=None, max_length=255)
    author_email: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Recipients
# ---------------------------------------------------------------------------


class RecipientCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    name: str = Field(default="", max_length=255)
    is_primary: bool = False
    receive_notifications: bool = True


class RecipientPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)
    is_primary: Optional[bool] = None
    receive_notifications: Optional[bool] = None


class RecipientResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int
    email: str
    name: str
    is_primary: bool
    receive_notifications: bool
    created_at: str

    @classmethod
    def from_recipient(cls, r: Recipient) -> "RecipientResponse":
        return cls(
            id=r.id,
            project_id=r.project_id,
            email=r.email,
            name=r.name,
            is_primary=r.is_primary,
            receive_notifications=r.receive_notifications,
            created_at=r.created_at,
        )


# ---------------------------------------------------------------------------
# Key dates
# ---------------------------------------------------------------------------


class KeyDateCreate(BaseModel):
    """A key date as stored. Also used to re-validate the merged result of a PATCH."""

    model_config = ConfigDict(str_strip_whitespace=True)

    type: KeyDateTypeEnum
    date: str = Field(pattern=DATE_PATTERN)
    all_day: bool = True
    start_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    finish_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    notes: str = Field(default="", max_length=500)
    reminder_at: Optional[str] = None

    @field_validator("date")
    @classmethod
    def real_date(cls, v: str) -> str:
        datetime.strptime(v, "%Y-%m-%d")
        return v

    @field_validator("reminder_at")
    @classmethod
    def iso_datetime(cls, v: Optional[str]) -> Optional[str]:
        if v in (None, ""):
            return None
        datetime.fromisoformat(v.replace("Z", "+00:00"))
        return v

    @model_validator(mode="after")
    def check_times(self) -> "KeyDateCreate":
        if self.all_day:
            self.start_time = None
            self.finish_time = None
        elif self.start_time and self.finish_time and self.finish_time < self.start_time:
            raise ValueError("finish_time must not be before start_time")
        return self


class KeyDatePatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    type: Optional[KeyDateTypeEnum] = None
    date: Optional[str] = None
    all_day: Optional[bool] = None
    start_time: Optional[str] = None
    finish_time: Optional[str] = None
    notes: Optional[str] = None
    reminder_at: Optional[str] = None


class KeyDateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int
    type: str
    date: str
    all_day: bool
    start_time: Optional[str]
    finish_time: Optional[str]
    notes: str
    reminder_at: Optional[str]
    created_at: str

    @classmethod
    def from_key_date(cls, k: KeyDate) -> "KeyDateResponse":
        return cls(
            id=k.id,
            project_id=k.project_id,
            type=k.type,
            date=k.date,
            all_day=k.all_day,
            start_time=k.start_time,
            finish_time=k.finish_time,
            notes=k.notes,
            reminder_at=k.reminder_at,
            created_at=k.created_at,
        )


# ---------------------------------------------------------------------------
# Share link
# ---------------------------------------------------------------------------


class ShareVerifyRequest(BaseModel):
    """Body for POST /share/{slug}/verify. A missing password is a 400, checked after lockout."""

    password: Optional[str] = Field(default=None, max_length=255)


class SendOtpRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)


class VerifyOtpRequest(BaseModel):
    """The code format is checked in the route so a bad code is a 400, not a 422."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    code: str = Field(max_length=64)


class VideoTokenRequest(BaseModel):
    video_id: int
    quality: QualityEnum = QualityEnum.p720


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


class LineItemIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(min_length=1, max_length=1000)
    details: str = Field(default="", max_length=5000)
    quantity: float = Field(default=1.0, ge=0)
    unit_price_cents: int = 0
    tax_rate_percent: Optional[float] = Field(default=None, ge=0, le=100)
    tax_rate_name: Optional[str] = Field(default=None, max_length=50)


class QuoteCreate(BaseModel):
    """Request body for POST /sales/quotes. quote_number is assigned when omitted."""

    model_config = ConfigDict(str_strip_whitespace=True)

    client_name: str = Field(min_length=1, max_length=255)
    quote_number: Optional[str] = Field(default=None, min_length=1, max_length=30)
    project_id: Optional[int] = None
    issue_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    valid_until: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    notes: str = Field(default="", max_length=5000)
    terms: Optional[str] = Field(default=None, max_length=5000)
    items: list[LineItemIn] = Field(default_factory=list, max_length=200)

    @field_validator("issue_date", "valid_until")
    @classmethod
    def real_dates(cls, v: Optional[str]) -> Optional[str]:
        return _real_date(v)


class QuotePatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    client_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    project_id: Optional[int] = None
    issue_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    valid_until: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    notes: Optional[str] = Field(default=None, max_length=5000)
    terms: Optional[str] = Field(default=None, max_length=5000)
    items: Optional[list[LineItemIn]] = Field(default=None, max_length=200)
    status: Optional[str] = Field(default=None, pattern=r"^(OPEN|SENT|CLOSED)$")

    @field_validator("issue_date", "valid_until")
    @classmethod
    def real_dates(cls, v: Optional[str]) -> Optional[str]:
        return _real_date(v)


class InvoiceCreate(BaseModel):
    """Request body for POST /sales/invoices. invoice_number is assigned when omitted."""

    model_config = ConfigDict(str_strip_whitespace=True)

    client_name: str = Field(min_length=1, max_length=255)
    invoice_number: Optional[str] = Field(default=None, min_length=1, max_length=30)
    project_id: Optional[int] = None
    issue_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    due_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    notes: str = Field(default="", max_length=5000)
    terms: Optional[str] = Field(default=None, max_length=5000)
    items: list[LineItemIn] = Field(default_factory=list, max_length=200)

    @field_validator("issue_date", "due_date")
    @classmethod
    def real_dates(cls, v: Optional[str]) -> Optional[str]:
        return _real_date(v)


class InvoicePatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    client_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    project_id: Optional[int] = None
    issue_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    due_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    notes: Optional[str] = Field(default=None, max_length=5000)
    terms: Optional[str] = Field(default=None, max_length=5000)
    items: Optional[list[LineItemIn]] = Field(default=None, max_length=200)
    status: Optional[str] = Field(default=None, pattern=r"^(OPEN|SENT)$")

    @field_validator("issue_date", "due_date")
    @classmethod
    def real_dates(cls, v: Optional[str]) -> Optional[str]:
        return _real_date(v)


class PaymentCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    payment_date: str = Field(pattern=DATE_PATTERN)
    amount_cents: int = Field(gt=0)
    method: str = Field(default="", max_length=50)
    reference: str = Field(default="", max_length=500)
    client_name: Optional[str] = Field(default=None, max_length=255)
    invoice_id: Optional[int] = None
    exclude_from_invoice_balance: bool = False

    @field_validator("payment_date")
    @classmethod
    def real_date(cls, v: str) -> str:
        return _real_date(v)


class SendDocumentRequest(BaseModel):
    """Request body for POST /sales/quotes/{id}/send and /sales/invoices/{id}/send.

    With no recipients the document is only marked as sent.
    """

    to_emails: list[str] = Field(default_factory=list, max_length=25)
    notes: Optional[str] = Field(default=None, max_length=5000)

    @field_validator("to_emails")
    @classmethod
    def valid_emails(cls, v: list[str]) -> list[str]:
        cleaned: list[str] = []
        for email in v:
            email = email.strip().lower()
            if len(email) > 320 or not re.match(EMAIL_PATTERN, email):
                raise ValueError(f"Invalid email address: {email!r}")
            if email not in cleaned:
                cleaned.append(email)
        return cleaned


class SalesSettingsPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    business_name: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = Field(default=None, max_length=1000)
    abn: Optional[str] = Field(default=None, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    website: Optional[str] = Field(default=None, max_length=255)
    currency: Optional[str] = Field(default=None, pattern=r"^[A-Z]{3}$")
    fiscal_year_start_month: Optional[int] = Field(default=None, ge=1, le=12)
    tax_rate_name: Optional[str] = Field(default=None, max_length=50)
    tax_rate_percent: Optional[float] = Field(default=None, ge=0, le=100)
    default_quote_valid_days: Optional[int] = Field(default=None, ge=0, le=3650)
    default_invoice_due_days: Optional[int] = Field(default=None, ge=0, le=3650)
    default_terms: Optional[str] = Field(default=None, max_length=5000)
    payment_details: Optional[str] = Field(default=None, max_length=5000)
