"""
Download coordinator.

Serializes region loads against the tile store: at most one download is in
flight at any time, and starting a new one first retires the previous one.
"""

import asyncio
import logging
import threading
from enum import Enum
from typing import Callable, Optional

from .bounds import CoordinateBounds
from .config import DEFAULT_DISK_QUOTA_MB, MAX_ZOOM, MB_TO_BYTES, MIN_ZOOM, OfflineConfig
from .connectivity import ConnectivityService
from .errors import ConnectivityError, DownloadCancelledError, DownloadFailedError
from .tile_store import Cancelable, RegionLoadProgress, RegionLoadRequest, TileStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
CompletionCallback = Callable[[bool, Optional[Exception]], None]


class DownloadState(Enum):
    IDLE = "idle"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _noop_progress(ratio: float):
    pass


def _noop_complete(success: bool, error: Optional[Exception]):
    pass


class _ActiveDownload:
    """One request's handle plus the callbacks it reports to."""

    def __init__(
        self,
        region_id: str,
        loop: asyncio.AbstractEventLoop,
        on_progress: ProgressCallback,
        on_complete: CompletionCallback,
    ):
        self.region_id = region_id
        self.loop = loop
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.handle: Optional[Cancelable] = None
        self.finished = False
        self.cancelled = False


class DownloadCoordinator:
    """
    Owns the single active tile store download.

    The handle slot is only ever touched under the lock; callers go through
    download_region() and cancel_active_download(). Tile store callbacks may
    arrive on any thread. The outcome is recorded as soon as the store reports
    it, then on_progress/on_complete are handed back to the event loop the
    download was started from, so they always run on that loop.
    """

    @classmethod
    def from_config(
        cls,
        tile_store: TileStore,
        connectivity: ConnectivityService,
        config: OfflineConfig,
    ) -> "DownloadCoordinator":
        return cls(
            tile_store,
            connectivity,
            quota_bytes=config.quota.max_disk_bytes,
            min_zoom=config.min_zoom,
            max_zoom=config.max_zoom,
        )

    def __init__(
        self,
        tile_store: TileStore,
        connectivity: ConnectivityService,
        quota_bytes: int = DEFAULT_DISK_QUOTA_MB * MB_TO_BYTES,
        min_zoom: int = MIN_ZOOM,
        max_zoom: int = MAX_ZOOM,
    ):
        self.tile_store = tile_store
        self.connectivity = connectivity
        self.quota_bytes = quota_bytes
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom

        self._lock = threading.Lock()
        self._active: Optional[_ActiveDownload] = None
        self._last_outcome: Optional[DownloadState] = None

    @property
    def state(self) -> DownloadState:
        with self._lock:
            return DownloadState.IDLE if self._active is None else DownloadState.DOWNLOADING

    @property
    def last_outcome(self) -> Optional[DownloadState]:
        """Terminal state of the most recent download, None before the first."""
        return self._last_outcome

    async def download_region(
        self,
        bounds: CoordinateBounds,
        on_progress: ProgressCallback = _noop_progress,
        on_complete: CompletionCallback = _noop_complete,
    ):
        """
        Download tiles for the given bounds.

        Only starts if the device is online. Any download already in flight is
        cancelled first. Returns once the request is submitted; the outcome is
        reported exactly once through on_complete(success, error).

        Args:
            bounds: Region to download
            on_progress: Called with the completed ratio (0.0 to 1.0)
            on_complete: Called with (True, None) or (False, error)
        """
        region_id = bounds.region_id

        try:
            online = await self.connectivity.is_online()
        except Exception:
            logger.exception("Failed to check connectivity")
            on_complete(False, ConnectivityError("Connectivity check failed", region_id))
            return

        if not online:
            logger.debug(f"Device offline, skipping download of {region_id}")
            on_complete(False, ConnectivityError("Device is offline", region_id))
            return

        # Retire the previous download before the tile store silently drops it
        self.cancel_active_download()

        loop = asyncio.get_running_loop()
        active = _ActiveDownload(region_id, loop, on_progress, on_complete)
        with self._lock:
            self._active = active

        request = RegionLoadRequest(
            polygon=bounds.to_polygon(),
            min_zoom=self.min_zoom,
            max_zoom=self.max_zoom,
            quota_bytes=self.quota_bytes,
        )

        try:
            handle = self.tile_store.load_region(
                region_id,
                request,
                lambda progress: self._on_store_progress(active, progress),
                lambda error: self._on_store_complete(active, error),
            )
        except Exception as ex:
            logger.exception(f"Failed to start region download {region_id}")
            if self._finish(active, DownloadState.FAILED):
                on_complete(False, DownloadFailedError(f"Failed to start download: {ex}", region_id))
            return

        with self._lock:
            active.handle = handle
            # Cancelled from another thread while the request was being submitted
            cancel_now = active.cancelled
        if cancel_now:
            handle.cancel()
            return

        logger.debug(f"Started download for region: {region_id}")

    def cancel_active_download(self):
        """Cancel the in-flight download, if any. Safe to call at any time."""
        with self._lock:
            active = self._active
            if active is None:
                return
            self._active = None
            active.finished = True
            active.cancelled = True
            self._last_outcome = DownloadState.CANCELLED
            handle = active.handle

        if handle is not None:
            try:
                handle.cancel()
            except Exception:
                logger.exception(f"Tile store failed to cancel {active.region_id}")

        logger.debug(f"Active download cancelled: {active.region_id}")
        self._dispatch(
            active,
            active.on_complete,
            False,
            DownloadCancelledError("Download cancelled", active.region_id),
        )

    def _finish(self, active: _ActiveDownload, outcome: DownloadState) -> bool:
        """Mark a download finished. Returns False if it already was."""
        with self._lock:
            if active.finished:
                return False
            active.finished = True
            if self._active is active:
                self._active = None
            self._last_outcome = outcome
            return True

    def _dispatch(self, active: _ActiveDownload, callback, *args):
        try:
            active.loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # Event loop already closed, nobody is waiting for the result
            logger.debug(f"Dropping callback for {active.region_id}: event loop closed")

    # Both store callbacks run on whatever thread the tile store reports from

    def _on_store_progress(self, active: _ActiveDownload, progress: RegionLoadProgress):
        if active.finished:
            return
        ratio = progress.ratio
        if ratio is not None:
            self._dispatch(active, active.on_progress, ratio)

    def _on_store_complete(self, active: _ActiveDownload, error: Optional[Exception]):
        if error is None:
            if self._finish(active, DownloadState.COMPLETED):
                logger.debug(f"Region download completed: {active.region_id}")
                self._dispatch(active, active.on_complete, True, None)
            return

        if self._finish(active, DownloadState.FAILED):
            logger.error(f"Region download failed: {active.region_id}: {error}")
            if not isinstance(error, DownloadFailedError):
                wrapped = DownloadFailedError(str(error) or error.__class__.__name__, active.region_id)
                wrapped.__cause__ = error
                error = wrapped
            self._dispatch(active, active.on_complete, False, error)
