"""Upload-triggered timelapse regeneration with a per-trail in-process lock."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .cache import CACHE_MIME_TYPE, cache_entries, new_cache_entry_name
from .cleanup import cleanup
from .errors import LockContentionSkip, StoreOperationError
from .fetcher import FrameFetcher, select_frame_objects
from .models import Frame, RegenerationOutcome, RegenerationState
from .rendering import AnimationEncoder
from .store import ObjectStore, sanitize_name

LockKey = Tuple[str, str]


class RegenerationCoordinator:
    """Rebuild and republish a trail's cached timelapse, one run per trail at a time.

    The lock table only covers this process. Two server instances regenerating
    the same trail concurrently can still both publish.
    """

    def __init__(
        self,
        store: ObjectStore,
        fetcher: FrameFetcher,
        encoder: AnimationEncoder,
        scratch_dir: Path,
        *,
        logger: logging.Logger,
        purge_poll_attempts: int = 5,
        purge_poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.encoder = encoder
        self.scratch_dir = Path(scratch_dir)
        self.logger = logger
        self.purge_poll_attempts = max(1, purge_poll_attempts)
        self.purge_poll_interval = purge_poll_interval
        self._sleep = sleep
        self._locks: Dict[LockKey, RegenerationState] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Lock table
    # ------------------------------------------------------------------

    @contextmanager
    def _hold(self, key: LockKey) -> Iterator[None]:
        with self._locks_guard:
            if key in self._locks:
                raise LockContentionSkip(*key)
            self._locks[key] = RegenerationState.LOCKED
        try:
            yield
        finally:
            with self._locks_guard:
                self._locks.pop(key, None)

    def _enter(self, key: LockKey, state: RegenerationState) -> None:
        with self._locks_guard:
            if key in self._locks:
                self._locks[key] = state
        self.logger.debug("Regeneration %s/%s -> %s", key[0], key[1], state.value)

    def state(self, organization_id: str, trail_id: str) -> RegenerationState:
        with self._locks_guard:
            return self._locks.get((organization_id, trail_id), RegenerationState.IDLE)

    def active_keys(self) -> List[LockKey]:
        with self._locks_guard:
            return list(self._locks)

    # ------------------------------------------------------------------
    # Regeneration
    # ------------------------------------------------------------------

    def regenerate(self, organization_id: str, trail_id: str) -> RegenerationOutcome:
        """Run one regeneration; never raises."""
        key = (organization_id, trail_id)
        try:
            with self._hold(key):
                return self._regenerate_locked(key)
        except LockContentionSkip:
            self.logger.info(
                "Timelapse regeneration already in progress for trail '%s' (%s); skipping",
                trail_id,
                organization_id,
            )
            return RegenerationOutcome.SKIPPED_BUSY

    def regenerate_and_store(self, organization_id: str, trail_id: str) -> bool:
        return self.regenerate(organization_id, trail_id).published

    def _regenerate_locked(self, key: LockKey) -> RegenerationOutcome:
        organization_id, trail_id = key
        frames: List[Frame] = []
        output_path: Optional[Path] = None

        try:
            container_id = self.store.trail_container(organization_id, trail_id)
            if not select_frame_objects(self.store.list_objects(container_id)):
                self.logger.info(
                    "No images in trail '%s' (%s); keeping existing timelapse",
                    trail_id,
                    organization_id,
                )
                return RegenerationOutcome.SKIPPED_EMPTY

            self._enter(key, RegenerationState.FETCHING)
            frames = self.fetcher.fetch_frames(organization_id, [trail_id], exclude_cached_artifact=True)

            self._enter(key, RegenerationState.ENCODING)
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
            output_path = self.scratch_dir / (
                f"{sanitize_name(organization_id)}_{sanitize_name(trail_id)}"
                f"_regen_{uuid.uuid4().hex[:12]}.gif"
            )
            animation = self.encoder.encode(frames, output_path)

            self._enter(key, RegenerationState.PUBLISHING)
            self._purge_cache_entries(container_id, trail_id)
            published = self.store.upload_object(
                container_id,
                output_path,
                new_cache_entry_name(),
                CACHE_MIME_TYPE,
            )
            self.logger.info(
                "Published timelapse %s for trail '%s' (%s) with %s frames",
                published.id,
                trail_id,
                organization_id,
                animation.frame_count,
            )
            return RegenerationOutcome.PUBLISHED
        except Exception as exc:
            self.logger.warning(
                "Timelapse regeneration failed for trail '%s' (%s): %s",
                trail_id,
                organization_id,
                exc,
                exc_info=True,
            )
            return RegenerationOutcome.FAILED
        finally:
            cleanup([frame.local_path for frame in frames], output_path, logger=self.logger)

    def _purge_cache_entries(self, container_id: str, trail_id: str) -> None:
        """Delete every cache entry in the container and wait until none is listed."""
        stale = cache_entries(self.store.list_objects(container_id))
        if not stale:
            return

        self.logger.info("Deleting %s cached timelapse(s) for trail '%s'", len(stale), trail_id)
        deleted_ids = set()
        for entry in stale:
            try:
                self.store.delete_object(entry.id)
            except StoreOperationError as exc:
                if not exc.not_found:
                    raise
                self.logger.info("Cached timelapse %s was already deleted", entry.id)
            deleted_ids.add(entry.id)

        for attempt in range(1, self.purge_poll_attempts + 1):
            listed = {obj.id for obj in self.store.list_objects(container_id)}
            if not listed & deleted_ids:
                return
            if attempt < self.purge_poll_attempts:
                self._sleep(self.purge_poll_interval)

        self.logger.warning(
            "Deleted timelapse(s) for trail '%s' still listed after %s checks; publishing anyway",
            trail_id,
            self.purge_poll_attempts,
        )


__all__ = ["RegenerationCoordinator"]
