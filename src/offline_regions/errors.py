"""Errors reported by the download coordinator and orchestrator."""

from typing import Optional


class OfflineRegionError(Exception):
    """Base error for offline region downloads."""

    def __init__(self, message: str, region_id: Optional[str] = None):
        self.region_id = region_id
        super().__init__(message)

    def __str__(self):
        message = super().__str__()
        if self.region_id:
            return f"{message} (region: {self.region_id})"
        return message


class ConnectivityError(OfflineRegionError):
    """Device was offline when the download was requested."""

    pass


class DownloadFailedError(OfflineRegionError):
    """The tile store reported a failure (network, storage full, ...)."""

    pass


class DownloadTimeoutError(DownloadFailedError):
    """The tile store did not finish within the configured timeout."""

    pass


class DownloadCancelledError(OfflineRegionError):
    """The download was cancelled or superseded by a newer one."""

    pass
