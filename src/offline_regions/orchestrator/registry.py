class DownloadedRegistry:
    """
    Ids of points of interest whose region was downloaded this session.

    Only grows until clear() is called (logout, manual refresh, cache wipe).
    """

    def __init__(self):
        self._ids: set[str] = set()

    def add(self, event_id: str):
        self._ids.add(event_id)

    def clear(self):
        self._ids.clear()

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self._ids)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)
