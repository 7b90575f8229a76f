"""
Chronological GIF timelapses of trail photos kept in a remote object store.
"""

from .app import TimelapseService
from .config import Settings, load_config
from .errors import (
    EmptyInputError,
    EncodingError,
    LockContentionSkip,
    NoFramesFoundError,
    StoreOperationError,
    TimelapseError,
)
from .models import Animation, Frame, GenerationResult, RegenerationOutcome, RegenerationState, StoreObject
from .store import DriveObjectStore, ObjectStore

__all__ = [
    "Animation",
    "DriveObjectStore",
    "EmptyInputError",
    "EncodingError",
    "Frame",
    "GenerationResult",
    "LockContentionSkip",
    "NoFramesFoundError",
    "ObjectStore",
    "RegenerationOutcome",
    "RegenerationState",
    "Settings",
    "StoreObject",
    "StoreOperationError",
    "TimelapseError",
    "TimelapseService",
    "load_config",
]
