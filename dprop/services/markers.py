"""Map marker index — listings with coordinates, kept in step with the view."""

from __future__ import annotations

from dataclasses import dataclass

from catalog.kernel.types import ChangeEvent, ListingRecord, ViewModel


@dataclass(frozen=True)
class Marker:
    id: str
    lat: float
    lng: float
    status: str
    title: str


class MarkerIndex:
    """
    Secondary index for the map widget.

    A listing has a marker iff it is in the view and has both coordinates.
    The widget itself is outside this package; it reads `markers()`.
    """

    def __init__(self) -> None:
        self._markers: dict[str, Marker] = {}

    def upsert(self, record: ListingRecord) -> None:
        loc = record.location
        if not loc.has_coordinates:
            self._markers.pop(record.id, None)
            return
        self._markers[record.id] = Marker(
            id=record.id,
            lat=loc.lat,
            lng=loc.lng,
            status=record.status,
            title=record.title,
        )

    def remove(self, record_id: str) -> None:
        self._markers.pop(record_id, None)

    def apply(self, event: ChangeEvent, view: ViewModel) -> None:
        """Follow one folded event: purge on removal, refresh otherwise."""
        record = view.get(event.id)
        if event.action == "removed" or record is None:
            self.remove(event.id)
        else:
            self.upsert(record)

    def sync(self, view: ViewModel) -> None:
        """Rebuild from scratch."""
        self._markers.clear()
        for record in view.entries:
            self.upsert(record)

    def clear(self) -> None:
        self._markers.clear()

    def get(self, record_id: str) -> Marker | None:
        return self._markers.get(record_id)

    def markers(self) -> list[Marker]:
        return list(self._markers.values())

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._markers

    def __len__(self) -> int:
        return len(self._markers)
