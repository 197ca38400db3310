"""
Connectivity services.

The orchestrator only ever asks "are we online right now?"; the observable of
state changes is there for UI consumers. Two implementations are provided:
a manually driven one (tests, host applications that already track the
network) and an HTTP probe built on httpx.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import httpx

from .config import DEFAULT_CONNECTIVITY_URL
from .streams import Observable

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    WIFI = "wifi"
    CELLULAR = "cellular"
    ETHERNET = "ethernet"
    OTHER = "other"


@dataclass(frozen=True)
class ConnectivityState:
    """Connectivity of the device; network_type is None when disconnected."""
    is_connected: bool
    network_type: Optional[NetworkType] = None


class ConnectivityService(Protocol):
    async def is_online(self) -> bool:
        ...

    def states(self) -> Observable[ConnectivityState]:
        ...


class ManualConnectivityService:
    """Connectivity set explicitly by the owner."""

    def __init__(self, online: bool = True, network_type: Optional[NetworkType] = None):
        if online and network_type is None:
            network_type = NetworkType.OTHER
        self._states = Observable(
            ConnectivityState(online, network_type if online else None),
            distinct_until_changed=True,
        )

    async def is_online(self) -> bool:
        return self._states.value.is_connected

    def states(self) -> Observable[ConnectivityState]:
        return self._states

    def set_online(self, online: bool, network_type: Optional[NetworkType] = None):
        if online and network_type is None:
            network_type = NetworkType.OTHER
        self._states.emit(ConnectivityState(online, network_type if online else None))


class HttpConnectivityService:
    """
    Probe connectivity with a lightweight HTTP request.

    Any 2xx response counts as online; network errors and other statuses count
    as offline. The last probe result is published on states().
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str = DEFAULT_CONNECTIVITY_URL,
        timeout: float = 5.0,
    ):
        self.client = client
        self.url = url
        self.timeout = timeout
        self._states = Observable(
            ConnectivityState(is_connected=False), distinct_until_changed=True
        )

    async def is_online(self) -> bool:
        try:
            response = await self.client.get(self.url, timeout=self.timeout)
            online = response.is_success
            if not online:
                logger.info(f"connectivity probe {self.url} returned {response.status_code}")
        except httpx.HTTPError as ex:
            logger.info(f"connectivity probe {self.url} failed: {ex.__class__.__name__}")
            online = False

        self._states.emit(
            ConnectivityState(online, NetworkType.OTHER if online else None)
        )
        return online

    def states(self) -> Observable[ConnectivityState]:
        return self._states
