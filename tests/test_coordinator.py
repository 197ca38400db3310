"""Tests for the single-download coordinator."""

import asyncio
import threading

import pytest

from offline_regions.bounds import GeoPoint, calculate_bounds_for_radius
from offline_regions.config import MB_TO_BYTES, OfflineConfig
from offline_regions.connectivity import ManualConnectivityService
from offline_regions.coordinator import DownloadCoordinator, DownloadState
from offline_regions.errors import (
    ConnectivityError,
    DownloadCancelledError,
    DownloadFailedError,
)

from conftest import FakeTileStore, settle

BOUNDS = calculate_bounds_for_radius(GeoPoint(46.5, 6.5), 2.0)
OTHER_BOUNDS = calculate_bounds_for_radius(GeoPoint(48.85, 2.35), 2.0)


class Recorder:
    def __init__(self):
        self.progress = []
        self.results = []

    def on_progress(self, ratio):
        self.progress.append(ratio)

    def on_complete(self, success, error):
        self.results.append((success, error))


class TestDownloadRegion:
    @pytest.mark.asyncio
    async def test_successful_download(self, coordinator, tile_store):
        rec = Recorder()

        await coordinator.download_region(BOUNDS, rec.on_progress, rec.on_complete)
        await settle()

        assert rec.results == [(True, None)]
        assert rec.progress == [0.5]
        assert coordinator.state is DownloadState.IDLE
        assert coordinator.last_outcome is DownloadState.COMPLETED

    @pytest.mark.asyncio
    async def test_request_shape(self, coordinator, tile_store):
        await coordinator.download_region(BOUNDS)

        request = tile_store.handles[0].request
        assert request.polygon == BOUNDS.to_polygon()
        assert (request.min_zoom, request.max_zoom) == (0, 16)
        assert request.quota_bytes == 2048 * MB_TO_BYTES
        assert tile_store.handles[0].region_id == BOUNDS.region_id

    @pytest.mark.asyncio
    async def test_offline_reports_connectivity_error(self, tile_store):
        coordinator = DownloadCoordinator(tile_store, ManualConnectivityService(online=False))
        rec = Recorder()

        await coordinator.download_region(BOUNDS, rec.on_progress, rec.on_complete)

        assert len(rec.results) == 1
        success, error = rec.results[0]
        assert not success
        assert isinstance(error, ConnectivityError)
        assert tile_store.handles == []
        assert coordinator.state is DownloadState.IDLE

    @pytest.mark.asyncio
    async def test_connectivity_check_raising_is_reported(self, tile_store):
        class BrokenConnectivity:
            async def is_online(self):
                raise OSError("no network stack")

        coordinator = DownloadCoordinator(tile_store, BrokenConnectivity())
        rec = Recorder()

        await coordinator.download_region(BOUNDS, rec.on_progress, rec.on_complete)

        assert isinstance(rec.results[0][1], ConnectivityError)
        assert tile_store.handles == []

    @pytest.mark.asyncio
    async def test_store_failure_is_reported(self, connectivity):
        store = FakeTileStore(auto_complete=True, outcomes=[IOError("disk full")])
        coordinator = DownloadCoordinator(store, connectivity)
        rec = Recorder()

        await coordinator.download_region(BOUNDS, rec.on_progress, rec.on_complete)
        await settle()

        success, error = rec.results[0]
        assert not success
        assert isinstance(error, DownloadFailedError)
        assert "disk full" in str(error)
        assert coordinator.last_outcome is DownloadState.FAILED

    @pytest.mark.asyncio
    async def test_store_raising_on_submit_is_reported(self, connectivity):
        class ExplodingStore:
            def load_region(self, *args):
                raise RuntimeError("store closed")

        coordinator = DownloadCoordinator(ExplodingStore(), connectivity)
        rec = Recorder()

        await coordinator.download_region(BOUNDS, rec.on_progress, rec.on_complete)

        assert isinstance(rec.results[0][1], DownloadFailedError)
        assert coordinator.state is DownloadState.IDLE

    @pytest.mark.asyncio
    async def test_progress_ignored_while_total_unknown(self, manual_tile_store, connectivity):
        coordinator = DownloadCoordinator(manual_tile_store, connectivity)
        rec = Recorder()

        await coordinator.download_region(BOUNDS, rec.on_progress, rec.on_complete)
        handle = manual_tile_store.handles[0]
        handle.progress(0, 0)
        handle.progress(3, 4)
        await settle()

        assert rec.progress == [0.75]
        assert coordinator.state is DownloadState.DOWNLOADING


class TestSingleActiveDownload:
    @pytest.mark.asyncio
    async def test_new_download_cancels_previous(self, manual_tile_store, connectivity):
        coordinator = DownloadCoordinator(manual_tile_store, connectivity)
        first, second = Recorder(), Recorder()

        await coordinator.download_region(BOUNDS, first.on_progress, first.on_complete)
        await coordinator.download_region(OTHER_BOUNDS, second.on_progress, second.on_complete)
        await settle()

        old, new = manual_tile_store.handles
        assert old.cancelled
        assert not new.cancelled
        assert manual_tile_store.max_concurrent == 1
        assert len(first.results) == 1
        assert isinstance(first.results[0][1], DownloadCancelledError)
        assert second.results == []

    @pytest.mark.asyncio
    async def test_stale_callbacks_are_ignored(self, manual_tile_store, connectivity):
        coordinator = DownloadCoordinator(manual_tile_store, connectivity)
        first, second = Recorder(), Recorder()

        await coordinator.download_region(BOUNDS, first.on_progress, first.on_complete)
        await coordinator.download_region(OTHER_BOUNDS, second.on_progress, second.on_complete)
        old, new = manual_tile_store.handles

        # The superseded load still reports in; nobody should hear about it
        old.progress(1, 1)
        old.complete(None)
        await settle()

        assert len(first.results) == 1
        assert first.progress == []
        assert coordinator.state is DownloadState.DOWNLOADING

        new.complete(None)
        await settle()
        assert second.results == [(True, None)]
        assert coordinator.state is DownloadState.IDLE


    @pytest.mark.asyncio
    async def test_completed_download_is_not_reported_cancelled(self, coordinator, tile_store):
        first, second = Recorder(), Recorder()

        # The first load completes inside load_region(), before the loop runs its callback
        await coordinator.download_region(BOUNDS, first.on_progress, first.on_complete)
        await coordinator.download_region(OTHER_BOUNDS, second.on_progress, second.on_complete)
        await settle()

        assert first.results == [(True, None)]
        assert first.progress == [0.5]
        assert second.results == [(True, None)]
        assert not any(h.cancelled for h in tile_store.handles)
        assert coordinator.last_outcome is DownloadState.COMPLETED

    @pytest.mark.asyncio
    async def test_callbacks_from_worker_thread_run_on_loop(self, manual_tile_store, connectivity):
        coordinator = DownloadCoordinator(manual_tile_store, connectivity)
        loop = asyncio.get_running_loop()
        seen = []

        def on_complete(success, error):
            seen.append((success, error, asyncio.get_running_loop() is loop))

        await coordinator.download_region(BOUNDS, on_complete=on_complete)
        handle = manual_tile_store.handles[0]
        worker = threading.Thread(target=handle.complete)
        worker.start()
        worker.join()

        # Outcome is recorded on the store thread, delivery waits for the loop
        assert coordinator.state is DownloadState.IDLE
        assert seen == []
        await settle()
        assert seen == [(True, None, True)]


class TestFromConfig:
    @pytest.mark.asyncio
    async def test_request_uses_configured_quota_and_zoom(self, tile_store, connectivity):
        config = OfflineConfig(max_disk_mb=10, min_zoom=3, max_zoom=5)
        coordinator = DownloadCoordinator.from_config(tile_store, connectivity, config)

        await coordinator.download_region(BOUNDS)

        request = tile_store.handles[0].request
        assert request.quota_bytes == 10 * MB_TO_BYTES
        assert (request.min_zoom, request.max_zoom) == (3, 5)


class TestCancelActiveDownload:
    @pytest.mark.asyncio
    async def test_cancel(self, manual_tile_store, connectivity):
        coordinator = DownloadCoordinator(manual_tile_store, connectivity)
        rec = Recorder()

        await coordinator.download_region(BOUNDS, rec.on_progress, rec.on_complete)
        coordinator.cancel_active_download()
        await settle()

        assert manual_tile_store.handles[0].cancelled
        assert coordinator.state is DownloadState.IDLE
        assert coordinator.last_outcome is DownloadState.CANCELLED
        assert len(rec.results) == 1
        assert isinstance(rec.results[0][1], DownloadCancelledError)

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, manual_tile_store, connectivity):
        coordinator = DownloadCoordinator(manual_tile_store, connectivity)
        rec = Recorder()

        coordinator.cancel_active_download()
        await coordinator.download_region(BOUNDS, rec.on_progress, rec.on_complete)
        coordinator.cancel_active_download()
        coordinator.cancel_active_download()
        await settle()

        assert len(rec.results) == 1
        assert coordinator.state is DownloadState.IDLE

    @pytest.mark.asyncio
    async def test_completion_after_cancel_is_ignored(self, manual_tile_store, connectivity):
        coordinator = DownloadCoordinator(manual_tile_store, connectivity)
        rec = Recorder()

        await coordinator.download_region(BOUNDS, rec.on_progress, rec.on_complete)
        coordinator.cancel_active_download()
        manual_tile_store.handles[0].complete(None)
        await settle()

        assert len(rec.results) == 1
        assert coordinator.last_outcome is DownloadState.CANCELLED
