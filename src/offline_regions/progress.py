"""
Terminal progress display for event region downloads.

One tqdm bar per event while its region downloads, closed with a one-line
summary once it completes or fails.
"""

from typing import Optional

from tqdm import tqdm

from .bounds import CoordinateBounds
from .errors import DownloadCancelledError
from .events import PointOfInterest
from .orchestrator.listeners import DownloadListener


class TqdmProgressListener(DownloadListener):
    def __init__(self, leave: bool = False):
        self.leave = leave
        self._bars: dict[str, tqdm] = {}

    def on_download_start(self, poi: PointOfInterest, bounds: CoordinateBounds):
        self._close(poi.id)
        self._bars[poi.id] = tqdm(
            total=100,
            desc=f"Map for {poi.display_name}",
            unit="%",
            leave=self.leave,
        )

    def on_download_progress(self, poi: PointOfInterest, ratio: float):
        bar = self._bars.get(poi.id)
        if bar is None:
            return
        bar.n = int(ratio * 100)
        bar.refresh()

    def on_download_complete(self, poi: PointOfInterest, error: Optional[Exception]):
        self._close(poi.id)
        if error is None:
            tqdm.write(f"Offline map ready for {poi.display_name}")
        elif not isinstance(error, DownloadCancelledError):
            tqdm.write(f"Download failed for {poi.display_name}: {error}")

    def _close(self, event_id: str):
        bar = self._bars.pop(event_id, None)
        if bar is not None:
            bar.close()

    def close(self):
        for event_id in list(self._bars):
            self._close(event_id)
