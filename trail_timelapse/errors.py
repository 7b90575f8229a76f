"""Exception taxonomy for timelapse generation and caching."""

from __future__ import annotations

from typing import Optional


class TimelapseError(RuntimeError):
    """Base class for failures of a whole timelapse operation."""


class NoFramesFoundError(TimelapseError):
    """Raised when no usable source image could be downloaded."""


class EmptyInputError(TimelapseError):
    """Raised when the encoder is handed an empty frame list."""


class EncodingError(TimelapseError):
    """Raised when the animation cannot be written or no frame survives decoding."""


class StoreOperationError(TimelapseError):
    """Raised when an object store call (list/download/upload/delete) fails."""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.status_code = status_code

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class LockContentionSkip(Exception):
    """Another regeneration already holds the lock for this trail."""

    def __init__(self, organization_id: str, trail_id: str) -> None:
        super().__init__(f"regeneration already running for {organization_id}/{trail_id}")
        self.organization_id = organization_id
        self.trail_id = trail_id


__all__ = [
    "EmptyInputError",
    "EncodingError",
    "LockContentionSkip",
    "NoFramesFoundError",
    "StoreOperationError",
    "TimelapseError",
]
