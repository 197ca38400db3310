"""Tests for connectivity services with mocked HTTP responses."""

import httpx
import pytest
import respx

from offline_regions.connectivity import (
    ConnectivityState,
    HttpConnectivityService,
    ManualConnectivityService,
    NetworkType,
)

PROBE_URL = "https://probe.example.com/generate_204"


class TestManualConnectivity:
    @pytest.mark.asyncio
    async def test_toggle(self):
        service = ManualConnectivityService(online=True, network_type=NetworkType.WIFI)
        assert await service.is_online()
        assert service.states().value == ConnectivityState(True, NetworkType.WIFI)

        service.set_online(False)
        assert not await service.is_online()
        assert service.states().value == ConnectivityState(False, None)

    def test_offline_has_no_network_type(self):
        service = ManualConnectivityService(online=False, network_type=NetworkType.WIFI)
        assert service.states().value.network_type is None


class TestHttpConnectivity:
    """Tests for HttpConnectivityService."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_online_on_204(self):
        respx.get(PROBE_URL).mock(return_value=httpx.Response(204))

        async with httpx.AsyncClient() as client:
            service = HttpConnectivityService(client, url=PROBE_URL)
            assert await service.is_online()
            assert service.states().value.is_connected

    @respx.mock
    @pytest.mark.asyncio
    async def test_offline_on_server_error(self):
        respx.get(PROBE_URL).mock(return_value=httpx.Response(503))

        async with httpx.AsyncClient() as client:
            service = HttpConnectivityService(client, url=PROBE_URL)
            assert not await service.is_online()

    @respx.mock
    @pytest.mark.asyncio
    async def test_offline_on_network_error(self):
        respx.get(PROBE_URL).mock(side_effect=httpx.ConnectError("unreachable"))

        async with httpx.AsyncClient() as client:
            service = HttpConnectivityService(client, url=PROBE_URL)
            assert not await service.is_online()
            assert service.states().value == ConnectivityState(False, None)

    @respx.mock
    @pytest.mark.asyncio
    async def test_state_follows_last_probe(self):
        route = respx.get(PROBE_URL)
        route.side_effect = [httpx.Response(204), httpx.ConnectError("gone")]

        async with httpx.AsyncClient() as client:
            service = HttpConnectivityService(client, url=PROBE_URL)
            assert await service.is_online()
            assert not await service.is_online()
            assert not service.states().value.is_connected
