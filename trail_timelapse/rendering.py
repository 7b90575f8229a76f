"""Animated GIF encoding for trail timelapses."""

from __future__ import annotations

import logging
import os
import uuid
from contextlib import suppress
from pathlib import Path
from time import perf_counter
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image

from .errors import EmptyInputError, EncodingError
from .models import Animation, Frame

PROGRESS_EVERY = 10


def palette_size_for_quality(quality: int) -> int:
    """Map the 1 (best) .. 20 (smallest) quality scale onto a GIF palette size."""
    return max(16, 256 - (quality - 1) * 12)


class AnimationEncoder:
    """Encode ordered frames into a looping GIF with a locked aspect ratio."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        max_width: int,
        frame_delay_ms: int,
        quality: int,
    ) -> None:
        self.logger = logger
        self.max_width = max(1, max_width)
        self.frame_delay_ms = frame_delay_ms
        self.quality = quality
        self.palette_colors = palette_size_for_quality(quality)

    # ------------------------------------------------------------------
    # Frame preparation
    # ------------------------------------------------------------------

    def output_size(self, source_width: int, source_height: int) -> Tuple[int, int]:
        """Return ``(width, height)`` for a first frame of the given size."""
        width = min(source_width, self.max_width)
        height = max(1, int(source_height * width / source_width + 0.5))
        return width, height

    @staticmethod
    def _read_bgr(path: Path) -> np.ndarray:
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None:
            raise ValueError(f"unreadable image {path}")
        return image

    def _to_palette_image(self, bgr: np.ndarray, size: Tuple[int, int]) -> Image.Image:
        height, width = bgr.shape[:2]
        if (width, height) != size:
            shrinking = width > size[0] or height > size[1]
            interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR
            bgr = cv2.resize(bgr, size, interpolation=interpolation)
        rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
        return Image.fromarray(rgb).quantize(
            colors=self.palette_colors,
            method=Image.Quantize.MEDIANCUT,
            dither=Image.Dither.FLOYDSTEINBERG,
        )

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def encode(self, frames: Sequence[Frame], output_path: Path) -> Animation:
        """Encode ``frames`` in the given order into ``output_path``.

        Unreadable frames are logged and skipped. The call returns only once
        the GIF has been flushed to disk and moved into place.
        """
        if not frames:
            raise EmptyInputError("No frames provided for timelapse creation")

        output_path = Path(output_path)
        total = len(frames)
        size: Optional[Tuple[int, int]] = None
        images: List[Image.Image] = []
        encoded_paths: List[Path] = []
        started = perf_counter()

        self.logger.info("Creating timelapse GIF from %s frames", total)

        for index, frame in enumerate(frames, start=1):
            try:
                bgr = self._read_bgr(frame.local_path)
                if size is None:
                    size = self.output_size(bgr.shape[1], bgr.shape[0])
                    self.logger.info("GIF dimensions: %sx%s", size[0], size[1])
                images.append(self._to_palette_image(bgr, size))
                encoded_paths.append(frame.local_path)
            except (ValueError, cv2.error) as exc:
                self.logger.warning(
                    "Skipping frame %s (%s): %s",
                    frame.object_id,
                    frame.local_path,
                    exc,
                )
            if index % PROGRESS_EVERY == 0 or index == total:
                self.logger.info("Added %s/%s frames to GIF", index, total)

        if not images or size is None:
            raise EncodingError(f"None of the {total} frames could be decoded")

        frame_count = self._write_gif(images, output_path)
        if frame_count < len(images):
            self.logger.info(
                "%s identical consecutive frames were merged into their predecessors",
                len(images) - frame_count,
            )

        self.logger.info(
            "Timelapse GIF created at %s (%s frames, %.1fs)",
            output_path,
            frame_count,
            perf_counter() - started,
        )
        return Animation(
            width=size[0],
            height=size[1],
            frame_delay_ms=self.frame_delay_ms,
            quality=self.quality,
            frame_count=frame_count,
            local_path=output_path,
            source_paths=tuple(encoded_paths),
        )

    def _write_gif(self, images: Sequence[Image.Image], output_path: Path) -> int:
        """Write the GIF atomically and return the number of frames it holds.

        Pillow folds a frame identical to the previous one into it, extending
        the earlier frame's duration, so the count can be below ``len(images)``.
        """
        temp_output = output_path.with_name(f".tmp_{uuid.uuid4().hex}_{output_path.name}")
        first, rest = images[0], list(images[1:])
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with temp_output.open("wb") as handle:
                first.save(
                    handle,
                    format="GIF",
                    save_all=True,
                    append_images=rest,
                    duration=self.frame_delay_ms,
                    loop=0,
                    disposal=2,
                )
                handle.flush()
                os.fsync(handle.fileno())
            temp_output.replace(output_path)
            with Image.open(output_path) as written:
                return written.n_frames
        except (OSError, ValueError) as exc:
            with suppress(OSError):
                temp_output.unlink(missing_ok=True)
            raise EncodingError(f"Failed to write GIF to {output_path}: {exc}") from exc


__all__ = ["AnimationEncoder", "palette_size_for_quality"]
