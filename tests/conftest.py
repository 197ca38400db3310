"""Shared fakes for coordinator and orchestrator tests."""

import asyncio
from typing import Optional

import pytest

from offline_regions.bounds import GeoPoint
from offline_regions.connectivity import ManualConnectivityService
from offline_regions.coordinator import DownloadCoordinator
from offline_regions.events import PointOfInterest, SourceTag
from offline_regions.tile_store import RegionLoadProgress


class FakeHandle:
    def __init__(self, store, region_id, request, on_progress, on_complete):
        self.store = store
        self.region_id = region_id
        self.request = request
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.cancelled = False
        self.finished = False

    def cancel(self):
        self.cancelled = True
        self.store.live.discard(self)

    def progress(self, completed: int, required: int):
        self.on_progress(RegionLoadProgress(completed, required))

    def complete(self, error: Optional[Exception] = None):
        self.finished = True
        self.store.live.discard(self)
        self.on_complete(error)


class FakeTileStore:
    """
    Records load requests and tracks how many are live at once.

    With auto_complete, each load finishes during load_region() using the next
    entry of `outcomes` (None = success); otherwise tests finish handles by hand.
    """

    def __init__(self, auto_complete: bool = False, outcomes=()):
        self.auto_complete = auto_complete
        self.outcomes = list(outcomes)
        self.handles: list[FakeHandle] = []
        self.live: set[FakeHandle] = set()
        self.max_concurrent = 0
        self.disk_quota = None

    @property
    def region_ids(self) -> list[str]:
        return [h.region_id for h in self.handles]

    def load_region(self, region_id, request, on_progress, on_complete):
        handle = FakeHandle(self, region_id, request, on_progress, on_complete)
        self.handles.append(handle)
        self.live.add(handle)
        self.max_concurrent = max(self.max_concurrent, len(self.live))
        if self.auto_complete:
            handle.progress(1, 2)
            handle.complete(self.outcomes.pop(0) if self.outcomes else None)
        return handle

    def set_disk_quota(self, quota_bytes):
        self.disk_quota = quota_bytes


def make_poi(event_id: str, lat: float = 46.5, lon: float = 6.5,
             source: SourceTag = SourceTag.SAVED) -> PointOfInterest:
    return PointOfInterest(
        id=event_id,
        location=GeoPoint(latitude=lat, longitude=lon),
        source=source,
        title=f"Event {event_id}",
    )


async def settle(rounds: int = 100):
    """Let queued callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def connectivity():
    return ManualConnectivityService(online=True)


@pytest.fixture
def tile_store():
    return FakeTileStore(auto_complete=True)


@pytest.fixture
def manual_tile_store():
    return FakeTileStore(auto_complete=False)


@pytest.fixture
def coordinator(tile_store, connectivity):
    return DownloadCoordinator(tile_store, connectivity)
