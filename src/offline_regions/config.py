"""
Static configuration for offline region downloads.

Values are read once at start-up, either from defaults or from OFFLINE_*
environment variables (the CLI loads a .env file first).
"""

import os
from dataclasses import dataclass
from typing import Optional

# Conservative limit below the tile store's 750 tile pack cap
DEFAULT_MAX_REGIONS = 100
# 2 GB is enough for ~40-60 event regions
DEFAULT_DISK_QUOTA_MB = 2048
DEFAULT_RADIUS_KM = 2.0
MIN_ZOOM = 0
MAX_ZOOM = 16
DEFAULT_CONNECTIVITY_URL = "https://www.gstatic.com/generate_204"

MB_TO_BYTES = 1024 * 1024


@dataclass(frozen=True)
class Quota:
    """Upper bounds on what gets cached offline."""
    max_regions: int = DEFAULT_MAX_REGIONS
    max_disk_bytes: int = DEFAULT_DISK_QUOTA_MB * MB_TO_BYTES

    def __post_init__(self):
        if self.max_regions < 0:
            raise ValueError(f"max_regions must be >= 0, got {self.max_regions}")
        if self.max_disk_bytes <= 0:
            raise ValueError(
                f"max_disk_bytes must be positive, got {self.max_disk_bytes}"
            )


@dataclass(frozen=True)
class OfflineConfig:
    max_regions: int = DEFAULT_MAX_REGIONS
    max_disk_mb: int = DEFAULT_DISK_QUOTA_MB
    radius_km: float = DEFAULT_RADIUS_KM
    min_zoom: int = MIN_ZOOM
    max_zoom: int = MAX_ZOOM
    download_timeout: Optional[float] = None  # seconds, None waits forever
    connectivity_url: str = DEFAULT_CONNECTIVITY_URL

    def __post_init__(self):
        if self.max_disk_mb <= 0:
            raise ValueError(f"Disk quota must be positive, got {self.max_disk_mb} MB")
        if self.radius_km < 0:
            raise ValueError(f"radius_km must be >= 0, got {self.radius_km}")
        if not 0 <= self.min_zoom <= self.max_zoom:
            raise ValueError(
                f"invalid zoom range [{self.min_zoom}, {self.max_zoom}]"
            )
        if self.download_timeout is not None and self.download_timeout <= 0:
            raise ValueError(
                f"download_timeout must be positive, got {self.download_timeout}"
            )

    @property
    def quota(self) -> Quota:
        return Quota(
            max_regions=self.max_regions,
            max_disk_bytes=self.max_disk_mb * MB_TO_BYTES,
        )

    @classmethod
    def from_env(cls, environ=None) -> "OfflineConfig":
        """
        Build a config from OFFLINE_* environment variables.

        Recognised: OFFLINE_MAX_REGIONS, OFFLINE_MAX_DISK_MB, OFFLINE_RADIUS_KM,
        OFFLINE_MIN_ZOOM, OFFLINE_MAX_ZOOM, OFFLINE_DOWNLOAD_TIMEOUT,
        OFFLINE_CONNECTIVITY_URL. Missing variables keep their defaults.
        """
        env = os.environ if environ is None else environ

        def read(name, parse, default):
            raw = env.get(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return parse(raw.strip())
            except ValueError as e:
                raise ValueError(f"Invalid value for {name}: {raw!r}") from e

        return cls(
            max_regions=read("OFFLINE_MAX_REGIONS", int, DEFAULT_MAX_REGIONS),
            max_disk_mb=read("OFFLINE_MAX_DISK_MB", int, DEFAULT_DISK_QUOTA_MB),
            radius_km=read("OFFLINE_RADIUS_KM", float, DEFAULT_RADIUS_KM),
            min_zoom=read("OFFLINE_MIN_ZOOM", int, MIN_ZOOM),
            max_zoom=read("OFFLINE_MAX_ZOOM", int, MAX_ZOOM),
            download_timeout=read("OFFLINE_DOWNLOAD_TIMEOUT", float, None),
            connectivity_url=read(
                "OFFLINE_CONNECTIVITY_URL", str, DEFAULT_CONNECTIVITY_URL
            ),
        )
