"""Proactive offline map-region downloads for saved and joined events."""

from .bounds import (
    CoordinateBounds,
    GeoPoint,
    calculate_bounds_for_radius,
    calculate_viewport_bounds,
)
from .config import OfflineConfig, Quota
from .connectivity import (
    ConnectivityState,
    HttpConnectivityService,
    ManualConnectivityService,
    NetworkType,
)
from .coordinator import DownloadCoordinator, DownloadState
from .errors import (
    ConnectivityError,
    DownloadCancelledError,
    DownloadFailedError,
    DownloadTimeoutError,
    OfflineRegionError,
)
from .events import PointOfInterest, SourceTag, merge_events
from .orchestrator import DownloadListener, EventBasedDownloadOrchestrator
from .streams import Observable
from .tile_store import (
    RegionLoadProgress,
    RegionLoadRequest,
    TileStore,
    TileStoreManager,
)

__all__ = [
    "ConnectivityError",
    "ConnectivityState",
    "CoordinateBounds",
    "DownloadCancelledError",
    "DownloadCoordinator",
    "DownloadFailedError",
    "DownloadListener",
    "DownloadState",
    "DownloadTimeoutError",
    "EventBasedDownloadOrchestrator",
    "GeoPoint",
    "HttpConnectivityService",
    "ManualConnectivityService",
    "NetworkType",
    "Observable",
    "OfflineConfig",
    "OfflineRegionError",
    "PointOfInterest",
    "Quota",
    "RegionLoadProgress",
    "RegionLoadRequest",
    "SourceTag",
    "TileStore",
    "TileStoreManager",
    "calculate_bounds_for_radius",
    "calculate_viewport_bounds",
    "merge_events",
]
