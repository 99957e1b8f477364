"""
review/timecode.py -- SMPTE-style HH:MM:SS:FF helpers for comment timestamps.

Comments are pinned to a frame, not a float, so the player and the comment
list agree on where a note lands even across fps rounding. All functions
default to 24 fps, the most common delivery rate.
"""

from __future__ import annotations

import re

_TIMECODE_RE = re.compile(r"^\d{2}:\d{2}:\d{2}:\d{2}$")

# Frames are validated against a generous ceiling rather than the video's
# real fps, which is not always known when a comment is written.
_MAX_FRAMES = 120


def timecode_to_seconds(timecode: str, fps: float = 24) -> float:
    """Convert HH:MM:SS:FF to seconds. Raises ValueError for other shapes."""
    parts = timecode.split(":")
    if len(parts) != 4:
        raise ValueError(f"Invalid timecode format: {timecode}. Expected HH:MM:SS:FF")
    hours, minutes, seconds, frames = (_to_int(p) for p in parts)
    return hours * 3600 + minutes * 60 + seconds + frames / fps


def seconds_to_timecode(seconds: float, fps: float = 24) -> str:
    """Convert seconds to HH:MM:SS:FF.

    Negative or non-finite input yields 00:00:00:00. The frame field is
    clamped to fps-1 because rounding can otherwise produce "24" at 24 fps.
    """
    if seconds != seconds or seconds in (float("inf"), float("-inf")) or seconds < 0:
        return "00:00:00:00"

    total_frames = round(seconds * fps)
    rounded_fps = round(fps)
    total_seconds = int(total_frames // fps)
    frames = total_frames - total_seconds * rounded_fps
    if frames < 0:
        frames = 0
    elif frames >= rounded_fps:
        frames = rounded_fps - 1

    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    secs = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}:{int(frames):02d}"


def is_valid_timecode(timecode: str) -> bool:
    if not isinstance(timecode, str) or not _TIMECODE_RE.match(timecode):
        return False
    _hours, minutes, seconds, frames = (int(p) for p in timecode.split(":"))
    return minutes < 60 and seconds < 60 and frames < _MAX_FRAMES


def parse_timecode_input(value: str, fps: float = 24) -> str:
    """Normalize user input (SS, MM:SS, HH:MM:SS or HH:MM:SS:FF) to HH:MM:SS:FF."""
    parts = value.strip().split(":")
    if len(parts) == 4:
        result = ":".join(p.zfill(2) for p in parts)
    elif len(parts) == 3:
        result = ":".join(p.zfill(2) for p in parts) + ":00"
    elif len(parts) == 2:
        result = "00:" + ":".join(p.zfill(2) for p in parts) + ":00"
    elif len(parts) == 1:
        return seconds_to_timecode(_to_int(parts[0]), fps)
    else:
        raise ValueError(f"Invalid timecode input: {value}")
    if not is_valid_timecode(result):
        raise ValueError(f"Invalid timecode input: {value}")
    return result


def _to_int(part: str) -> int:
    try:
        return int(part)
    except ValueError:
        return 0
