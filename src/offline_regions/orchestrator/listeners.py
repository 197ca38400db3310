import logging
from typing import Iterable, Optional

from ..bounds import CoordinateBounds
from ..events import PointOfInterest

logger = logging.getLogger(__name__)


class DownloadListener:
    """
    Receives per-event download notifications.

    Subclass and override what you need; the defaults do nothing.
    """

    def on_session_start(self, user_id: str):
        pass

    def on_download_start(self, poi: PointOfInterest, bounds: CoordinateBounds):
        pass

    def on_download_progress(self, poi: PointOfInterest, ratio: float):
        pass

    def on_download_complete(self, poi: PointOfInterest, error: Optional[Exception]):
        """error is None when the region was downloaded."""
        pass


class ListenerGroup:
    """Fans notifications out; a failing listener never breaks the download loop."""

    def __init__(self, listeners: Iterable[DownloadListener] = ()):
        self.listeners = list(listeners)

    def _call(self, method: str, *args):
        for listener in self.listeners:
            try:
                getattr(listener, method)(*args)
            except Exception:
                logger.exception(f"listener {listener!r} failed in {method}")

    def session_started(self, user_id: str):
        self._call("on_session_start", user_id)

    def download_started(self, poi: PointOfInterest, bounds: CoordinateBounds):
        self._call("on_download_start", poi, bounds)

    def download_progress(self, poi: PointOfInterest, ratio: float):
        self._call("on_download_progress", poi, ratio)

    def download_completed(self, poi: PointOfInterest, error: Optional[Exception]):
        self._call("on_download_complete", poi, error)
