"""
Trail timelapse service.

Builds looping GIF timelapses from trail photos kept in a remote object
store, republishes a trail's cached timelapse whenever a photo is uploaded,
and serves cached or freshly built timelapses on request.
"""

from __future__ import annotations

import logging
import mimetypes
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from trail_timelapse import scheduler as scheduler_module
from trail_timelapse.cleanup import cleanup, sweep_stale_scratch
from trail_timelapse.config import Settings, load_config
from trail_timelapse.coordinator import RegenerationCoordinator
from trail_timelapse.fetcher import FrameFetcher
from trail_timelapse.lookup import CacheLookup
from trail_timelapse.models import (
    GenerationResult,
    RegenerationOutcome,
    StoreObject,
    parse_iso_datetime,
)
from trail_timelapse.rendering import AnimationEncoder
from trail_timelapse.store import DriveObjectStore, ObjectStore, sanitize_name


def upload_filename(trail_id: str, captured_at: datetime, extension: str) -> str:
    """Name an uploaded photo ``<trail>_<YYYY-MM-DD>_<HH-MM-SS><ext>``."""
    return (
        f"{sanitize_name(trail_id)}_{captured_at.strftime('%Y-%m-%d')}"
        f"_{captured_at.strftime('%H-%M-%S')}{extension}"
    )


class TimelapseService:
    """Facade wiring the fetcher, encoder, coordinator and cache lookup together."""

    def __init__(
        self,
        store: ObjectStore,
        settings: Settings,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.logger = logger or logging.getLogger("trail_timelapse")
        self.scratch_dir = Path(settings.scratch_dir)

        self.fetcher = FrameFetcher(store, self.scratch_dir, logger=self.logger)
        self.encoder = AnimationEncoder(
            logger=self.logger,
            max_width=settings.max_width,
            frame_delay_ms=settings.frame_delay_ms,
            quality=settings.quality,
        )
        self.coordinator = RegenerationCoordinator(
            store,
            self.fetcher,
            self.encoder,
            self.scratch_dir,
            logger=self.logger,
            purge_poll_attempts=settings.purge_poll_attempts,
            purge_poll_interval=settings.purge_poll_interval,
        )
        self.lookup = CacheLookup(
            store,
            self.fetcher,
            self.encoder,
            self.scratch_dir,
            logger=self.logger,
        )

        self._background: List[threading.Thread] = []
        self._background_lock = threading.Lock()
        self._scheduler: Any = None

    @classmethod
    def from_config(
        cls,
        config_path: Union[str, Path] = "config.json",
        *,
        env: Optional[Mapping[str, str]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "TimelapseService":
        settings = load_config(config_path, env)
        store = DriveObjectStore(settings, logger=logger)
        return cls(store, settings, logger=logger)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        if self._scheduler is None:
            self._scheduler = scheduler_module.start_background(self)

    def shutdown(self, timeout: float = 30.0) -> None:
        """Stop the janitor and give in-flight regenerations ``timeout`` seconds to finish."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        with self._background_lock:
            pending = [thread for thread in self._background if thread.is_alive()]
        for thread in pending:
            thread.join(timeout)
            if thread.is_alive():
                self.logger.warning("Regeneration thread %s still running at shutdown", thread.name)

    # ------------------------------------------------------------------
    # Regeneration (write side)
    # ------------------------------------------------------------------

    def regenerate(self, organization_id: str, trail_id: str) -> RegenerationOutcome:
        return self.coordinator.regenerate(organization_id, trail_id)

    def regenerate_and_store(self, organization_id: str, trail_id: str) -> bool:
        """Rebuild and publish the trail's cached timelapse; never raises."""
        return self.coordinator.regenerate_and_store(organization_id, trail_id)

    def _run_detached(self, organization_id: str, trail_id: str) -> None:
        try:
            outcome = self.coordinator.regenerate(organization_id, trail_id)
        except Exception as exc:  # pragma: no cover - regenerate() already contains failures
            self.logger.exception(
                "Background timelapse regeneration error for '%s' (%s): %s",
                trail_id,
                organization_id,
                exc,
            )
            return
        if outcome.published:
            self.logger.info("Background timelapse regeneration completed for '%s'", trail_id)
        else:
            self.logger.info(
                "Background timelapse regeneration for '%s' ended with %s",
                trail_id,
                outcome.value,
            )

    def schedule_regeneration(self, organization_id: str, trail_id: str) -> threading.Thread:
        """Regenerate on a detached daemon thread; the caller never waits on it."""
        thread = threading.Thread(
            target=self._run_detached,
            args=(organization_id, trail_id),
            name=f"regen-{organization_id}-{trail_id}-{uuid.uuid4().hex[:8]}",
            daemon=True,
        )
        with self._background_lock:
            self._background = [t for t in self._background if t.is_alive()]
            self._background.append(thread)
        thread.start()
        return thread

    def record_upload(
        self,
        organization_id: str,
        trail_id: str,
        local_path: Union[str, Path],
        captured_at: Union[str, datetime],
        mime_type: Optional[str] = None,
    ) -> StoreObject:
        """Store an uploaded photo and trigger a background regeneration.

        Raises ``StoreOperationError`` if the photo itself cannot be stored;
        regeneration problems only show up in the logs.
        """
        source = Path(local_path)
        timestamp = parse_iso_datetime(captured_at) if isinstance(captured_at, str) else captured_at
        resolved_mime = mime_type or mimetypes.guess_type(source.name)[0] or "application/octet-stream"
        name = upload_filename(trail_id, timestamp, source.suffix.lower())

        container_id = self.store.trail_container(organization_id, trail_id)
        stored = self.store.upload_object(container_id, source, name, resolved_mime)
        self.logger.info("Upload successful: %s (ID: %s)", stored.name, stored.id)
        cleanup((source,), None, logger=self.logger)

        self.logger.info("Triggering timelapse regeneration for trail '%s'", trail_id)
        self.schedule_regeneration(organization_id, trail_id)
        return stored

    # ------------------------------------------------------------------
    # Generation (read side)
    # ------------------------------------------------------------------

    def resolve_trails(self, organization_id: str, trail_ids: Optional[Sequence[str]]) -> List[str]:
        if trail_ids:
            return list(trail_ids)
        trails = self.store.list_trails(organization_id)
        self.logger.info("Using all %s trails of organization '%s'", len(trails), organization_id)
        return trails

    def generate_time_lapse(
        self,
        organization_id: str,
        trail_ids: Optional[Sequence[str]] = None,
    ) -> GenerationResult:
        """Build a throwaway timelapse over one or more trails.

        Empty ``trail_ids`` means every trail in the organization. The result
        is never published; the caller cleans it up with ``cleanup``.
        """
        trails = self.resolve_trails(organization_id, trail_ids)
        self.logger.info(
            "Generating timelapse for '%s' trails: %s",
            organization_id,
            ", ".join(trails) or "none",
        )
        frames = self.fetcher.fetch_frames(organization_id, trails, exclude_cached_artifact=True)
        scratch_paths = tuple(frame.local_path for frame in frames)
        output_path = self.scratch_dir / (
            f"{sanitize_name(organization_id)}_timelapse_{uuid.uuid4().hex[:12]}.gif"
        )
        try:
            animation = self.encoder.encode(frames, output_path)
        except Exception:
            self.cleanup(scratch_paths, output_path)
            raise
        return GenerationResult(
            local_path=output_path,
            frame_count=animation.frame_count,
            scratch_paths=scratch_paths,
        )

    def get_cached_or_generate(self, organization_id: str, trail_id: str) -> Path:
        return self.lookup.get_or_generate(organization_id, trail_id)

    # ------------------------------------------------------------------
    # Scratch space
    # ------------------------------------------------------------------

    def cleanup(
        self,
        scratch_paths: Optional[Iterable[Optional[Union[str, Path]]]],
        output_path: Optional[Union[str, Path]],
    ) -> int:
        return cleanup(scratch_paths, output_path, logger=self.logger)

    def sweep_scratch(self) -> int:
        max_age = self.settings.scratch_max_age_minutes * 60
        try:
            return sweep_stale_scratch(self.scratch_dir, max_age, logger=self.logger)
        except OSError as exc:
            self.logger.error("Scratch sweep of %s failed: %s", self.scratch_dir, exc)
            return 0


__all__ = ["TimelapseService", "upload_filename"]
