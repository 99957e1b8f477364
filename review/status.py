"""
review/status.py -- Project lifecycle statuses, display labels and sort order.

The tuple order is the sort priority used by the project list: work that
still needs attention first, finished and closed projects last.
"""

from __future__ import annotations

PROJECT_STATUSES: tuple[str, ...] = (
    "NOT_STARTED",
    "IN_PROGRESS",
    "IN_REVIEW",
    "REVIEWED",
    "ON_HOLD",
    "SHARE_ONLY",
    "APPROVED",
    "CLOSED",
)

_LABELS: dict[str, str] = {
    "NOT_STARTED": "Not Started",
    "IN_PROGRESS": "In Progress",
    "IN_REVIEW": "In Review",
    "REVIEWED": "Reviewed",
    "ON_HOLD": "On Hold",
    "SHARE_ONLY": "Share Only",
    "APPROVED": "Approved",
    "CLOSED": "Closed",
}

_PRIORITY: dict[str, int] = {status: i for i, status in enumerate(PROJECT_STATUSES)}


def project_status_label(status: str) -> str:
    """Human label for a status; unknown values fall back to spaced words."""
    return _LABELS.get(status, status.replace("_", " "))


def project_status_priority(status: str) -> int:
    """Sort key for a status. Unknown statuses sort after every known one."""
    return _PRIORITY.get(status, len(PROJECT_STATUSES))
