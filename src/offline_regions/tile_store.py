"""
Tile store collaborator interface.

The tile store fetches and persists map tiles for a region; its storage,
eviction and transport are opaque here. Loading a new region implicitly
invalidates any in-flight load the caller does not manage explicitly, which
is why every request goes through DownloadCoordinator.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .config import DEFAULT_DISK_QUOTA_MB, MB_TO_BYTES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionLoadRequest:
    """What the tile store is asked to fetch."""
    polygon: list[tuple[float, float]]  # closed (lon, lat) ring
    min_zoom: int
    max_zoom: int
    quota_bytes: int


@dataclass(frozen=True)
class RegionLoadProgress:
    completed_resource_count: int
    required_resource_count: int

    @property
    def ratio(self) -> Optional[float]:
        """Completed fraction in [0, 1], None while the total is unknown."""
        if self.required_resource_count <= 0:
            return None
        ratio = self.completed_resource_count / self.required_resource_count
        return max(0.0, min(1.0, ratio))


class Cancelable(Protocol):
    def cancel(self) -> None:
        ...


# on_complete receives None on success, the failure otherwise
StoreProgressCallback = Callable[[RegionLoadProgress], None]
StoreCompletionCallback = Callable[[Optional[Exception]], None]


class TileStore(Protocol):
    def load_region(
        self,
        region_id: str,
        request: RegionLoadRequest,
        on_progress: StoreProgressCallback,
        on_complete: StoreCompletionCallback,
    ) -> Cancelable:
        """
        Start loading a region. Callbacks may be invoked from any thread.
        """
        ...

    def set_disk_quota(self, quota_bytes: int) -> None:
        ...


class TileStoreManager:
    """
    Applies the disk quota to a tile store.

    When approaching the quota the tile store evicts tile packs by itself;
    nothing here enforces the limit.
    """

    def __init__(self, tile_store: TileStore, disk_quota_mb: int = DEFAULT_DISK_QUOTA_MB):
        if disk_quota_mb <= 0:
            raise ValueError(f"Disk quota must be positive, got {disk_quota_mb} MB")
        self.tile_store = tile_store
        self.disk_quota_mb = disk_quota_mb

    @property
    def disk_quota_bytes(self) -> int:
        return self.disk_quota_mb * MB_TO_BYTES

    def initialize(self):
        """Push the configured quota to the tile store."""
        self.tile_store.set_disk_quota(self.disk_quota_bytes)
        logger.info(f"tile store disk quota set to {self.disk_quota_mb} MB")
