"""
Points of interest fed to the orchestrator.

Saved and joined events come from the event source as full snapshot lists;
the orchestrator only reads their id and location.
"""

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from .bounds import GeoPoint


class SourceTag(Enum):
    SAVED = "saved"
    JOINED = "joined"


@dataclass(frozen=True)
class PointOfInterest:
    """An event the user saved or joined."""
    id: str
    location: GeoPoint
    source: SourceTag
    title: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.title or self.id

    @classmethod
    def from_dict(cls, data: dict, source: SourceTag) -> "PointOfInterest":
        """
        Build from a JSON-like dict with at least 'id', 'latitude' and
        'longitude' keys (a nested 'location' object is also accepted).
        """
        location = data.get("location", data)
        return cls(
            id=str(data["id"]),
            location=GeoPoint(
                latitude=float(location["latitude"]),
                longitude=float(location["longitude"]),
            ),
            source=source,
            title=data.get("title"),
        )


def merge_events(*sources: Iterable[PointOfInterest]) -> list[PointOfInterest]:
    """
    Concatenate event lists and drop duplicate ids.

    An event may be both saved and joined; the first occurrence wins and
    source order is preserved.
    """
    seen = set()
    unique_events = []
    for events in sources:
        for event in events:
            if event.id not in seen:
                seen.add(event.id)
                unique_events.append(event)
    return unique_events


def load_events_file(path: Path, source: SourceTag) -> list[PointOfInterest]:
    """Read a JSON array of events from disk."""
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of events")
    return [PointOfInterest.from_dict(item, source) for item in data]
