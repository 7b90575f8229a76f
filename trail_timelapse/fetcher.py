"""Resolve, download and order the source frames of one or more trails."""

from __future__ import annotations

import logging
import mimetypes
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Sequence

from .cache import is_cache_entry_name
from .cleanup import cleanup
from .errors import NoFramesFoundError, StoreOperationError
from .models import Frame, StoreObject
from .store import ObjectStore, sanitize_name

_UNKNOWN_CAPTURE = datetime(1970, 1, 1, tzinfo=timezone.utc)


def select_frame_objects(
    objects: Iterable[StoreObject],
    exclude_cached_artifact: bool = True,
) -> List[StoreObject]:
    """Keep image objects, dropping cached animations when requested."""
    return [
        obj
        for obj in objects
        if obj.is_image and not (exclude_cached_artifact and is_cache_entry_name(obj.name))
    ]


def sort_frames(frames: Iterable[Frame]) -> List[Frame]:
    """Order frames by capture time; ties fall back to the object id."""
    return sorted(frames, key=Frame.sort_key)


class FrameFetcher:
    """Download trail images into scratch space as ordered frames."""

    def __init__(
        self,
        store: ObjectStore,
        scratch_dir: Path,
        *,
        logger: logging.Logger,
    ) -> None:
        self.store = store
        self.scratch_dir = Path(scratch_dir)
        self.logger = logger

    def _scratch_path(
        self,
        organization_id: str,
        trail_id: str,
        obj: StoreObject,
        token: str,
    ) -> Path:
        extension = Path(obj.name).suffix or mimetypes.guess_extension(obj.mime_type) or ""
        stem = "_".join(
            (sanitize_name(organization_id), sanitize_name(trail_id), sanitize_name(obj.id), token)
        )
        return self.scratch_dir / f"{stem}{extension}"

    def list_frame_objects(
        self,
        organization_id: str,
        trail_id: str,
        exclude_cached_artifact: bool = True,
    ) -> List[StoreObject]:
        container_id = self.store.trail_container(organization_id, trail_id)
        return select_frame_objects(self.store.list_objects(container_id), exclude_cached_artifact)

    def fetch_frames(
        self,
        organization_id: str,
        trail_ids: Sequence[str],
        exclude_cached_artifact: bool = True,
    ) -> List[Frame]:
        """Download every image of ``trail_ids`` and return them oldest first.

        Individual listing or download failures are logged and skipped. Raises
        ``NoFramesFoundError`` when nothing could be downloaded; the caller owns
        the returned scratch files.
        """
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        token = uuid.uuid4().hex[:8]
        frames: List[Frame] = []

        self.logger.info(
            "Downloading frames from %s trails for organization '%s'",
            len(trail_ids),
            organization_id,
        )

        for trail_id in trail_ids:
            try:
                objects = self.list_frame_objects(organization_id, trail_id, exclude_cached_artifact)
            except StoreOperationError as exc:
                self.logger.warning(
                    "Unable to list trail '%s' (%s); skipping: %s",
                    trail_id,
                    organization_id,
                    exc,
                )
                continue

            if not objects:
                self.logger.info("No images found in trail '%s' (%s)", trail_id, organization_id)
                continue

            self.logger.info(
                "Downloading %s images from trail '%s' (%s)",
                len(objects),
                trail_id,
                organization_id,
            )
            for obj in objects:
                destination = self._scratch_path(organization_id, trail_id, obj, token)
                try:
                    local_path = self.store.download_object(obj.id, destination)
                except Exception as exc:
                    self.logger.warning(
                        "Dropping frame %s (%s) from trail '%s': %s",
                        obj.id,
                        obj.name,
                        trail_id,
                        exc,
                    )
                    cleanup((), destination, logger=self.logger)
                    continue
                if obj.created_time is None:
                    self.logger.warning(
                        "Frame %s (%s) has no creation time; ordering it first",
                        obj.id,
                        obj.name,
                    )
                frames.append(
                    Frame(
                        object_id=obj.id,
                        name=obj.name,
                        mime_type=obj.mime_type,
                        captured_at=obj.created_time or _UNKNOWN_CAPTURE,
                        local_path=Path(local_path),
                    )
                )

        if not frames:
            raise NoFramesFoundError(
                f"No images found in trails {', '.join(trail_ids) or '(none)'} "
                f"of organization '{organization_id}'"
            )

        return sort_frames(frames)


__all__ = ["FrameFetcher", "select_frame_objects", "sort_frames"]
