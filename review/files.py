"""
review/files.py -- File-name hygiene and type checks for uploaded videos and assets.

Security design:
  [H2] Client-supplied file names are never used as storage paths as-is.
       sanitize_filename() strips directory components, control characters
       and traversal sequences, then maps everything outside [A-Za-z0-9._-]
       to "_".
  [H3] is_suspicious_filename() runs on the ORIGINAL name, before
       sanitisation, so "evil.php/..mp4" style tricks are still caught.

Asset categories pair an extension list with a MIME list. An upload is
accepted only when both match the same category.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

VIDEO_EXTENSIONS: tuple[str, ...] = (".mp4", ".mov", ".avi", ".webm", ".mkv")

ALLOWED_ASSET_TYPES: dict[str, dict[str, tuple[str, ...]]] = {
    "image": {
        "extensions": (".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tiff", ".svg"),
        "mime_types": (
            "image/jpeg",
            "image/png",
            "image/gif",
            "image/webp",
            "image/bmp",
            "image/tiff",
            "image/svg+xml",
        ),
    },
    "audio": {
        "extensions": (".mp3", ".wav", ".aac", ".flac", ".ogg", ".m4a", ".wma"),
        "mime_types": (
            "audio/mpeg",
            "audio/wav",
            "audio/x-wav",
            "audio/aac",
            "audio/flac",
            "audio/ogg",
            "audio/mp4",
            "audio/x-ms-wma",
        ),
    },
    "project": {
        "extensions": (".prproj", ".aep", ".fcp", ".davinci", ".zip", ".rar", ".7z"),
        "mime_types": (
            "application/octet-stream",
            "application/zip",
            "application/x-rar-compressed",
            "application/x-7z-compressed",
        ),
    },
    "document": {
        "extensions": (".pdf", ".doc", ".docx", ".txt", ".rtf"),
        "mime_types": (
            "application/pdf",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "text/plain",
            "application/rtf",
        ),
    },
    "other": {
        "extensions": (".zip", ".rar", ".7z", ".tar", ".gz"),
        "mime_types": (
            "application/zip",
            "application/x-rar-compressed",
            "application/x-7z-compressed",
            "application/x-tar",
            "application/gzip",
        ),
    },
}

_SUSPICIOUS_EXTENSIONS = (
    "exe", "sh", "bat", "cmd", "com", "scr", "pif", "app", "deb",
    "rpm", "dmg", "pkg", "php", "asp", "jsp", "js", "vbs", "ws", "wsf",
)  # fmt: skip

_SUSPICIOUS_RE = re.compile(
    r"\.(?:" + "|".join(_SUSPICIOUS_EXTENSIONS) + r")$|\.\.|^\.ht|^\.env",
    re.IGNORECASE,
)

_MAX_NAME = 255


def _extension(filename: str) -> str:
    """Lower-cased extension including the dot; "" when there is none."""
    return os.path.splitext(filename)[1].lower()


def sanitize_filename(filename: Optional[str]) -> str:
    """Return a storage-safe version of a client-supplied file name [H2].

    Falls back to "upload.bin" when nothing usable remains.
    """
    if not filename:
        return "upload.bin"
    safe = re.split(r"[/\\:]+", filename)[-1] or "upload"
    safe = re.sub(r"[\x00-\x1f\x7f]", "", safe)
    safe = re.sub(r"^[.\s]+|[.\s]+$", "", safe)
    safe = safe.replace("..", "")
    if len(safe) > _MAX_NAME:
        stem, ext = os.path.splitext(safe)
        safe = stem[: _MAX_NAME - len(ext)] + ext
    if not safe or safe in {".", ".."}:
        safe = "upload.bin"
    return re.sub(r"[^a-zA-Z0-9._-]", "_", safe)


def is_suspicious_filename(filename: str) -> bool:
    """True for executable/script extensions, traversal sequences and dotfiles [H3]."""
    return bool(_SUSPICIOUS_RE.search(filename or ""))


def is_video_filename(filename: str) -> bool:
    return _extension(filename) in VIDEO_EXTENSIONS


def validate_asset_file(filename: str, mime_type: str, category: Optional[str] = None) -> tuple[str, str]:
    """Validate an asset upload and return (sanitized_name, category).

    With an explicit category, both the extension and the MIME type must be
    allowed for it. Without one, the first category accepting both wins.

    Raises ValueError with a client-safe message on rejection.
    """
    if is_suspicious_filename(filename):
        raise ValueError("Filename contains suspicious patterns")
    safe = sanitize_filename(filename)
    ext = _extension(safe)
    mime = (mime_type or "").lower()

    if category:
        rules = ALLOWED_ASSET_TYPES.get(category)
        if rules is None:
            raise ValueError(f"Unknown asset category: {category}")
        if ext not in rules["extensions"]:
            raise ValueError(f"Invalid file type for {category}. Allowed: {', '.join(rules['extensions'])}")
        if mime not in rules["mime_types"]:
            raise ValueError(f"Invalid MIME type for {category}. Allowed: {', '.join(rules['mime_types'])}")
        return safe, category

    for name, rules in ALLOWED_ASSET_TYPES.items():
        if ext in rules["extensions"] and mime in rules["mime_types"]:
            return safe, name
    raise ValueError(
        f"Unsupported file type: {ext or '(none)'}. Please upload images, audio, documents, or project files."
    )


def resolve_storage_path(storage_root: str, relative: Optional[str]) -> Optional[Path]:
    """Map a stored relative path onto storage_root; None if it escapes the root [H2]."""
    if not relative:
        return None
    root = Path(storage_root).resolve()
    candidate = (root / relative).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    return candidate
