"""Configuration dataclasses and loading helpers for the trail timelapse system."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

MIN_QUALITY = 1
MAX_QUALITY = 20


def _parse_bool(value: Any, default: bool) -> bool:
    """Parse truthy/falsy values from multiple input types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return value != 0
    return default


def _parse_positive_int(value: Any, default: int) -> int:
    """Parse a positive integer with fallback to default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _parse_float(value: Any, default: float) -> float:
    """Parse a non-negative floating point number with fallback to default."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def _parse_quality(value: Any, default: int = 10) -> int:
    """Parse the GIF quality level and clamp it to the supported range."""
    parsed = _parse_positive_int(value, default)
    return max(MIN_QUALITY, min(MAX_QUALITY, parsed))


@dataclass(frozen=True)
class OrganizationConfig:
    """An organization and the remote folder that holds its trails."""

    slug: str
    name: str
    folder_id: str
    active: bool = True


@dataclass(frozen=True)
class Settings:
    """Top-level configuration for timelapse generation and caching."""

    scratch_dir: Path = Path("temp")
    max_width: int = 800
    frame_delay_ms: int = 500
    quality: int = 10
    purge_poll_attempts: int = 5
    purge_poll_interval: float = 1.0
    scratch_max_age_minutes: int = 60
    sweep_interval_minutes: int = 15
    http_timeout: int = 30
    drive_access_token: Optional[str] = field(default=None, repr=False)
    organizations: Dict[str, OrganizationConfig] = field(default_factory=dict)

    def organization(self, slug: str) -> Optional[OrganizationConfig]:
        return self.organizations.get(slug.lower())


def _parse_organizations(raw: Any) -> Dict[str, OrganizationConfig]:
    if not isinstance(raw, Mapping):
        return {}
    parsed: Dict[str, OrganizationConfig] = {}
    for slug, value in raw.items():
        if not isinstance(value, Mapping):
            continue
        folder_id = str(value.get("folder_id") or value.get("driveFolderId") or "").strip()
        if not folder_id:
            continue
        key = str(slug).strip().lower()
        parsed[key] = OrganizationConfig(
            slug=key,
            name=str(value.get("name") or key),
            folder_id=folder_id,
            active=_parse_bool(value.get("active"), True),
        )
    return parsed


def _parse_organization_pairs(raw: Optional[str]) -> Dict[str, OrganizationConfig]:
    """Parse ``slug=folderId,slug=folderId`` environment values."""
    parsed: Dict[str, OrganizationConfig] = {}
    for pair in (raw or "").split(","):
        slug, sep, folder_id = pair.partition("=")
        slug = slug.strip().lower()
        folder_id = folder_id.strip()
        if not sep or not slug or not folder_id:
            continue
        parsed[slug] = OrganizationConfig(slug=slug, name=slug, folder_id=folder_id)
    return parsed


def _parse_settings(data: Mapping[str, Any], env: Mapping[str, str]) -> Settings:
    default = Settings()
    return Settings(
        scratch_dir=Path(data.get("scratch_dir") or default.scratch_dir),
        max_width=_parse_positive_int(data.get("max_width"), default.max_width),
        frame_delay_ms=_parse_positive_int(data.get("frame_delay_ms"), default.frame_delay_ms),
        quality=_parse_quality(data.get("quality"), default.quality),
        purge_poll_attempts=_parse_positive_int(
            data.get("purge_poll_attempts"),
            default.purge_poll_attempts,
        ),
        purge_poll_interval=_parse_float(
            data.get("purge_poll_interval"),
            default.purge_poll_interval,
        ),
        scratch_max_age_minutes=_parse_positive_int(
            data.get("scratch_max_age_minutes"),
            default.scratch_max_age_minutes,
        ),
        sweep_interval_minutes=_parse_positive_int(
            data.get("sweep_interval_minutes"),
            default.sweep_interval_minutes,
        ),
        http_timeout=_parse_positive_int(data.get("http_timeout"), default.http_timeout),
        # Tokens stay out of config files when the environment provides one.
        drive_access_token=env.get("DRIVE_ACCESS_TOKEN") or data.get("drive_access_token"),
        organizations=_parse_organizations(data.get("organizations", {})),
    )


def _load_env_settings(env: Mapping[str, str]) -> Settings:
    """Fallback configuration derived from environment variables."""
    data = {
        "scratch_dir": env.get("TEMP_DIR"),
        "max_width": env.get("TIMELAPSE_MAX_WIDTH"),
        "frame_delay_ms": env.get("TIMELAPSE_FRAME_DELAY_MS"),
        "quality": env.get("TIMELAPSE_GIF_QUALITY"),
        "purge_poll_attempts": env.get("CACHE_PURGE_POLL_ATTEMPTS"),
        "purge_poll_interval": env.get("CACHE_PURGE_POLL_INTERVAL"),
        "scratch_max_age_minutes": env.get("SCRATCH_MAX_AGE_MINUTES"),
        "sweep_interval_minutes": env.get("SCRATCH_SWEEP_INTERVAL_MINUTES"),
        "http_timeout": env.get("DRIVE_HTTP_TIMEOUT"),
    }
    settings = _parse_settings(data, env)
    return replace(
        settings,
        organizations=_parse_organization_pairs(env.get("ORGANIZATION_FOLDERS")),
    )


def load_config(config_path: Path | str, env: Mapping[str, str] | None = None) -> Settings:
    """Load configuration from a JSON file or environment defaults."""
    source_env = os.environ if env is None else env
    path = Path(config_path)

    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, Mapping):
            data = {}
        return _parse_settings(data, source_env)

    return _load_env_settings(source_env)


__all__ = [
    "OrganizationConfig",
    "Settings",
    "load_config",
    "_parse_bool",
    "_parse_float",
    "_parse_positive_int",
    "_parse_quality",
]
