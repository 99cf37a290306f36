"""
Catalog Kernel — Event and Record Construction

Factory functions for well-formed listings and change events.
Used by the in-memory store to emit notifications, and by tests to build
fixtures concisely.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from catalog.kernel.types import (
    DEFAULT_STATUS,
    ChangeEvent,
    ListingRecord,
    Location,
    Price,
)

_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


def make_record(
    seq: int,
    *,
    owner: str = "0xowner",
    title: str | None = None,
    operation: str = "sale",
    property_type: str = "apartment",
    amount: float = 100_000,
    currency: str = "EUR",
    city: str = "Paris",
    country: str = "France",
    lat: float | None = None,
    lng: float | None = None,
    status: str = DEFAULT_STATUS,
    collaborators: dict[str, str] | None = None,
    created_at: datetime | None = None,
    record_id: str | None = None,
) -> ListingRecord:
    """
    Build a complete ListingRecord from minimal inputs.

    seq is required: it determines the id and, unless given, created_at
    (one minute per seq, so a higher seq is a newer listing).
    """
    return ListingRecord(
        id=record_id or f"r{seq}",
        title=title or f"Listing {seq}",
        operation=operation,
        property_type=property_type,
        price=Price(amount=amount, currency=currency),
        location=Location(country=country, city=city, lat=lat, lng=lng),
        owner=owner,
        created_at=created_at or _EPOCH + timedelta(minutes=seq),
        status=status,
        collaborators=dict(collaborators or {}),
    )


def initial(record: ListingRecord) -> ChangeEvent:
    return ChangeEvent(id=record.id, action="initial", value=record)


def added(record: ListingRecord) -> ChangeEvent:
    return ChangeEvent(id=record.id, action="added", value=record)


def updated(record: ListingRecord) -> ChangeEvent:
    return ChangeEvent(id=record.id, action="updated", value=record)


def removed(record_id: str) -> ChangeEvent:
    return ChangeEvent(id=record_id, action="removed", value=None)
