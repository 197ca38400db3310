"""
Event-based orchestrator for offline region downloads.

Watches the user's saved and joined events and proactively downloads the map
region around each one while online, one region at a time.
"""

import asyncio
import logging
from typing import Iterable, Optional, Sequence

from ..bounds import CoordinateBounds, calculate_bounds_for_radius
from ..config import DEFAULT_MAX_REGIONS, DEFAULT_RADIUS_KM, OfflineConfig
from ..connectivity import ConnectivityService
from ..coordinator import DownloadCoordinator
from ..errors import DownloadCancelledError, DownloadFailedError, DownloadTimeoutError
from ..events import PointOfInterest, merge_events
from ..streams import Observable, combine_latest
from ..tile_store import TileStore
from .listeners import DownloadListener, ListenerGroup
from .registry import DownloadedRegistry

# Configure logger for this module
logger = logging.getLogger(__name__)

__all__ = [
    "DownloadListener",
    "DownloadedRegistry",
    "EventBasedDownloadOrchestrator",
]


class _LatestSnapshot:
    """
    Single-slot mailbox between the event subscription and the download worker.

    Snapshots arriving while the worker is busy replace each other; the worker
    only ever sees the newest one.
    """

    def __init__(self):
        self._events: Optional[list[PointOfInterest]] = None
        self._ready = asyncio.Event()

    def put(self, events: list[PointOfInterest]):
        if self._events is not None:
            logger.debug("Replacing unprocessed event snapshot with a newer one")
        self._events = events
        self._ready.set()

    async def take(self) -> list[PointOfInterest]:
        await self._ready.wait()
        self._ready.clear()
        events, self._events = self._events, None
        return events or []


class EventBasedDownloadOrchestrator:
    """
    Downloads map regions around saved and joined events.

    Regions are requested sequentially: the tile store drops an in-flight
    load when a new one starts, so the next event is only submitted after the
    previous one reported completion. Successfully downloaded event ids are
    remembered for the session and skipped afterwards; failed ones are retried
    on the next event list update.

    A new event list arriving mid-batch does not interrupt the batch. It is
    evaluated (after a fresh connectivity check) once the batch finishes, and
    if several arrive meanwhile only the latest one is kept.
    """

    def __init__(
        self,
        coordinator: DownloadCoordinator,
        connectivity: ConnectivityService,
        radius_km: float = DEFAULT_RADIUS_KM,
        max_regions: int = DEFAULT_MAX_REGIONS,
        download_timeout: Optional[float] = None,
        listeners: Iterable[DownloadListener] = (),
    ):
        """
        Args:
            coordinator: Coordinator owning the single tile store download
            connectivity: Service answering whether the device is online
            radius_km: Radius downloaded around each event
            max_regions: Maximum number of events considered per update
            download_timeout: Seconds to wait for a region before giving up
                on it (None waits as long as the tile store takes)
            listeners: Receivers of per-event start/progress/complete
        """
        if radius_km < 0:
            raise ValueError(f"radius_km must be >= 0, got {radius_km}")
        if max_regions < 0:
            raise ValueError(f"max_regions must be >= 0, got {max_regions}")

        self.coordinator = coordinator
        self.connectivity = connectivity
        self.radius_km = radius_km
        self.max_regions = max_regions
        self.download_timeout = download_timeout
        self.listeners = ListenerGroup(listeners)

        self._registry = DownloadedRegistry()
        self._batch_lock = asyncio.Lock()
        self._observer_task: Optional[asyncio.Task] = None
        self._user_id: Optional[str] = None

    @classmethod
    def from_config(
        cls,
        tile_store: TileStore,
        connectivity: ConnectivityService,
        config: OfflineConfig,
        listeners: Iterable[DownloadListener] = (),
    ) -> "EventBasedDownloadOrchestrator":
        """Build an orchestrator and its coordinator from one config."""
        coordinator = DownloadCoordinator.from_config(tile_store, connectivity, config)
        return cls(
            coordinator,
            connectivity,
            radius_km=config.radius_km,
            max_regions=config.max_regions,
            download_timeout=config.download_timeout,
            listeners=listeners,
        )

    @property
    def downloaded_count(self) -> int:
        """Number of event regions downloaded this session."""
        return len(self._registry)

    @property
    def downloaded_event_ids(self) -> frozenset[str]:
        return self._registry.ids

    @property
    def is_observing(self) -> bool:
        return self._observer_task is not None and not self._observer_task.done()

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    # --- Observation ---

    def observe_events(
        self,
        user_id: str,
        saved_events: Observable[list[PointOfInterest]],
        joined_events: Observable[list[PointOfInterest]],
    ):
        """
        Start observing a user's saved and joined events.

        Must be called from a running event loop. Any previous observation is
        cancelled; switching to a different user also forgets which regions
        were downloaded.
        """
        if self._observer_task is not None:
            self._observer_task.cancel()
            self._observer_task = None
            self.coordinator.cancel_active_download()

        if self._user_id is not None and user_id != self._user_id:
            logger.info(f"User changed from {self._user_id} to {user_id}, resetting downloaded regions")
            self._registry.clear()
        self._user_id = user_id
        self.listeners.session_started(user_id)

        loop = asyncio.get_running_loop()
        self._observer_task = loop.create_task(
            self._observe(user_id, saved_events, joined_events)
        )
        logger.info(f"Observing saved and joined events for user {user_id}")

    async def stop_observing(self):
        """Stop observing events and cancel the active download. Idempotent."""
        task, self._observer_task = self._observer_task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self.coordinator.cancel_active_download()
        logger.info("Stopped observing events")

    def clear_downloaded_event_ids(self):
        """
        Forget every downloaded region.

        All currently known events will be downloaded again on the next update.
        """
        self._registry.clear()
        logger.info("Cleared downloaded event IDs")

    async def _observe(self, user_id, saved_events, joined_events):
        snapshots = _LatestSnapshot()
        collector = asyncio.create_task(
            self._collect_snapshots(saved_events, joined_events, snapshots)
        )
        worker = asyncio.create_task(self._process_snapshots(snapshots))
        try:
            done, _ = await asyncio.wait(
                {collector, worker}, return_when=asyncio.FIRST_EXCEPTION
            )
            for task in done:
                task.result()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Event observation for user {user_id} stopped")
        finally:
            collector.cancel()
            worker.cancel()
            await asyncio.gather(collector, worker, return_exceptions=True)

    async def _collect_snapshots(self, saved_events, joined_events, snapshots):
        async for saved, joined in combine_latest(saved_events, joined_events):
            # Remove duplicates (an event may be both saved and joined)
            unique_events = merge_events(saved, joined)
            logger.debug(f"Events updated: {len(unique_events)} unique events to process")
            snapshots.put(unique_events)

    async def _process_snapshots(self, snapshots: _LatestSnapshot):
        while True:
            events = await snapshots.take()
            if not await self._is_online():
                logger.info("Device offline, skipping region downloads")
                continue
            await self._download_sequentially(events)

    # --- Downloads ---

    async def download_regions_for_events(self, events: Sequence[PointOfInterest]):
        """
        Download regions for the given events, one at a time.

        Useful for one-time downloads without ongoing observation. Nothing is
        requested while offline.
        """
        if not await self._is_online():
            logger.info("Device offline, skipping region downloads")
            return
        await self._download_sequentially(list(events))

    async def _is_online(self) -> bool:
        try:
            return await self.connectivity.is_online()
        except Exception:
            logger.exception("Failed to check connectivity")
            return False

    async def _download_sequentially(self, events: list[PointOfInterest]):
        # Limit to max_regions to respect the tile store's pack limit
        events_to_download = events[: self.max_regions]
        if len(events) > self.max_regions:
            logger.warning(
                f"Event count ({len(events)}) exceeds max regions ({self.max_regions}). "
                f"Only downloading first {self.max_regions} events."
            )

        async with self._batch_lock:
            for poi in events_to_download:
                if poi.id in self._registry:
                    logger.debug(f"Event {poi.id} already downloaded, skipping")
                    continue

                bounds = calculate_bounds_for_radius(poi.location, self.radius_km)
                logger.info(
                    f"Downloading region for event: {poi.display_name} "
                    f"({poi.location.latitude}, {poi.location.longitude})"
                )
                self.listeners.download_started(poi, bounds)

                error = await self._download_region_and_wait(poi, bounds)
                self.listeners.download_completed(poi, error)

                if error is None:
                    self._registry.add(poi.id)
                    logger.info(f"Successfully downloaded region for event: {poi.display_name}")
                elif isinstance(error, DownloadCancelledError):
                    logger.debug(f"Download for event {poi.id} cancelled, stopping batch")
                    return
                else:
                    logger.error(f"Failed to download region for event {poi.display_name}: {error}")

    async def _download_region_and_wait(
        self, poi: PointOfInterest, bounds: CoordinateBounds
    ) -> Optional[Exception]:
        """Request one region and wait for its completion. Returns the error, if any."""
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future = loop.create_future()

        def on_progress(ratio: float):
            logger.debug(f"Event {poi.id} download progress: {int(ratio * 100)}%")
            self.listeners.download_progress(poi, ratio)

        def on_complete(success: bool, error: Optional[Exception]):
            if outcome.done():
                return
            if success:
                outcome.set_result(None)
            else:
                outcome.set_result(
                    error or DownloadFailedError("Download failed", bounds.region_id)
                )

        await self.coordinator.download_region(bounds, on_progress, on_complete)

        if self.download_timeout is None:
            return await outcome

        try:
            return await asyncio.wait_for(outcome, self.download_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Region for event {poi.id} not done after {self.download_timeout}s, cancelling"
            )
            self.coordinator.cancel_active_download()
            return DownloadTimeoutError(
                f"No completion after {self.download_timeout}s", bounds.region_id
            )
