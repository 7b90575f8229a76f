"""Naming and selection of cached animation objects in a trail container."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .models import StoreObject

CACHE_ENTRY_PREFIX = "timelapse_cache_"
CACHE_ENTRY_SUFFIX = ".gif"
CACHE_MIME_TYPE = "image/gif"

# Upload names end in a _YYYY-MM-DD_HH-MM-SS stamp and can never match this.
_CACHE_ENTRY_NAME = re.compile(
    rf"{re.escape(CACHE_ENTRY_PREFIX)}\d{{8}}T\d{{6}}Z_[0-9a-f]{{6}}{re.escape(CACHE_ENTRY_SUFFIX)}"
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def is_cache_entry_name(name: str) -> bool:
    return _CACHE_ENTRY_NAME.fullmatch(name) is not None


def new_cache_entry_name(now: Optional[datetime] = None) -> str:
    """Build a unique cache-entry name such as ``timelapse_cache_20250101T120000Z_1a2b3c.gif``."""
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    return f"{CACHE_ENTRY_PREFIX}{stamp}_{uuid.uuid4().hex[:6]}{CACHE_ENTRY_SUFFIX}"


def cache_entries(objects: Iterable[StoreObject]) -> List[StoreObject]:
    """Return the cache entries among ``objects``, newest first."""
    entries = [obj for obj in objects if is_cache_entry_name(obj.name)]
    entries.sort(key=lambda obj: (obj.created_time or _EPOCH, obj.id), reverse=True)
    return entries


__all__ = [
    "CACHE_ENTRY_PREFIX",
    "CACHE_ENTRY_SUFFIX",
    "CACHE_MIME_TYPE",
    "cache_entries",
    "is_cache_entry_name",
    "new_cache_entry_name",
]
