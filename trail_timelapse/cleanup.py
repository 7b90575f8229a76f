"""Scratch-space janitor for downloaded frames and encoded outputs."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Iterable, Optional, Union

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _remove(path: Path, logger: logging.Logger) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.error("Error deleting scratch file '%s': %s", path, exc)
        return False
    return True


def cleanup(
    scratch_paths: Optional[Iterable[Optional[PathLike]]],
    output_path: Optional[PathLike],
    *,
    logger: Optional[logging.Logger] = None,
) -> int:
    """Delete scratch frames and an output file; safe to call repeatedly.

    ``None`` entries and paths that no longer exist are ignored. Returns the
    number of files actually removed.
    """
    log = logger or LOGGER
    removed = 0
    for candidate in scratch_paths or ():
        if candidate is None:
            continue
        if _remove(Path(candidate), log):
            removed += 1
    if output_path is not None and _remove(Path(output_path), log):
        removed += 1
    if removed:
        log.debug("Removed %s scratch files", removed)
    return removed


def sweep_stale_scratch(
    scratch_dir: PathLike,
    max_age_seconds: float,
    *,
    now: Optional[float] = None,
    logger: Optional[logging.Logger] = None,
) -> int:
    """Remove files in ``scratch_dir`` last modified more than ``max_age_seconds`` ago.

    Catches files orphaned by a process that died mid-generation.
    """
    log = logger or LOGGER
    root = Path(scratch_dir)
    if not root.is_dir():
        return 0

    cutoff = (time.time() if now is None else now) - max_age_seconds
    removed = 0
    for entry in root.iterdir():
        if not entry.is_file():
            continue
        try:
            modified = entry.stat().st_mtime
        except FileNotFoundError:
            continue
        if modified < cutoff and _remove(entry, log):
            removed += 1

    if removed:
        log.info("Swept %s stale scratch files from %s", removed, root)
    return removed


__all__ = ["cleanup", "sweep_stale_scratch"]
