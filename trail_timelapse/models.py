"""Data models used across the trail timelapse system."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple


def parse_iso_datetime(value: str) -> datetime:
    """
    Parse ISO-like datetime strings, accepting a trailing 'Z' for UTC.

    Naive values are assumed to be UTC so that every timestamp compares.
    """
    text = value.strip()
    if not text:
        raise ValueError("Datetime value is empty")

    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO datetime: {value}") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class StoreObject:
    """Metadata for one object held in a remote container."""

    id: str
    name: str
    mime_type: str
    created_time: Optional[datetime]

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")


@dataclass(frozen=True)
class Frame:
    """A source photo downloaded to scratch space for encoding."""

    object_id: str
    name: str
    mime_type: str
    captured_at: datetime
    local_path: Path

    def sort_key(self) -> Tuple[datetime, str]:
        return (self.captured_at, self.object_id)


@dataclass(frozen=True)
class Animation:
    """A finalized, encoded animation."""

    width: int
    height: int
    frame_delay_ms: int
    quality: int
    frame_count: int
    local_path: Optional[Path] = None
    remote_object_id: Optional[str] = None
    source_paths: Tuple[Path, ...] = field(default=(), repr=False)


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of an on-demand generation; the caller owns every path listed."""

    local_path: Path
    frame_count: int
    scratch_paths: Tuple[Path, ...]


class RegenerationState(enum.Enum):
    IDLE = "idle"
    LOCKED = "locked"
    FETCHING = "fetching"
    ENCODING = "encoding"
    PUBLISHING = "publishing"


class RegenerationOutcome(enum.Enum):
    PUBLISHED = "published"
    SKIPPED_BUSY = "skipped_busy"
    SKIPPED_EMPTY = "skipped_empty"
    FAILED = "failed"

    @property
    def published(self) -> bool:
        return self is RegenerationOutcome.PUBLISHED


__all__ = [
    "Animation",
    "Frame",
    "GenerationResult",
    "RegenerationOutcome",
    "RegenerationState",
    "StoreObject",
    "parse_iso_datetime",
]
