"""Read-side cache lookup: serve a trail's published animation or build one ad hoc."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional

from .cache import cache_entries
from .cleanup import cleanup
from .errors import StoreOperationError
from .fetcher import FrameFetcher
from .models import StoreObject
from .rendering import AnimationEncoder
from .store import ObjectStore, sanitize_name


class CacheLookup:
    """Serve a trail's published animation, or build a throwaway one on a miss."""

    def __init__(
        self,
        store: ObjectStore,
        fetcher: FrameFetcher,
        encoder: AnimationEncoder,
        scratch_dir: Path,
        *,
        logger: logging.Logger,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.encoder = encoder
        self.scratch_dir = Path(scratch_dir)
        self.logger = logger

    def find_cached(self, organization_id: str, trail_id: str) -> Optional[StoreObject]:
        container_id = self.store.trail_container(organization_id, trail_id)
        entries = cache_entries(self.store.list_objects(container_id))
        if len(entries) > 1:
            self.logger.warning(
                "Trail '%s' (%s) has %s cache entries; serving newest %s",
                trail_id,
                organization_id,
                len(entries),
                entries[0].id,
            )
        return entries[0] if entries else None

    def _scratch_output(self, organization_id: str, trail_id: str, label: str) -> Path:
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        safe = f"{sanitize_name(organization_id)}_{sanitize_name(trail_id)}"
        return self.scratch_dir / f"{safe}_{label}_{uuid.uuid4().hex[:12]}.gif"

    def get_or_generate(self, organization_id: str, trail_id: str) -> Path:
        """Return a local animation path for one trail; the caller owns the file."""
        try:
            cached = self.find_cached(organization_id, trail_id)
        except StoreOperationError as exc:
            self.logger.warning(
                "Cache lookup failed for trail '%s' (%s); generating instead: %s",
                trail_id,
                organization_id,
                exc,
            )
            cached = None

        if cached is not None:
            destination = self._scratch_output(organization_id, trail_id, "cached")
            self.logger.info(
                "Serving cached timelapse %s for trail '%s' (%s)",
                cached.id,
                trail_id,
                organization_id,
            )
            try:
                return self.store.download_object(cached.id, destination)
            except StoreOperationError as exc:
                cleanup((), destination, logger=self.logger)
                self.logger.warning(
                    "Cached timelapse %s for trail '%s' (%s) could not be downloaded; "
                    "generating instead: %s",
                    cached.id,
                    trail_id,
                    organization_id,
                    exc,
                )
        else:
            self.logger.info(
                "No cached timelapse for trail '%s' (%s); generating a fresh one",
                trail_id,
                organization_id,
            )

        return self._generate(organization_id, trail_id)

    def _generate(self, organization_id: str, trail_id: str) -> Path:
        frames = self.fetcher.fetch_frames(organization_id, [trail_id])
        output_path = self._scratch_output(organization_id, trail_id, "timelapse")
        try:
            self.encoder.encode(frames, output_path)
        except Exception:
            cleanup([frame.local_path for frame in frames], output_path, logger=self.logger)
            raise
        cleanup([frame.local_path for frame in frames], None, logger=self.logger)
        return output_path


__all__ = ["CacheLookup"]
