"""
Catalog Kernel — Shared Types

Data classes used across query, cursor, reconciler and permissions.
These are the contracts that bind the kernel together; the client layer
(dprop) builds on them but the kernel never imports from it.

Key points:
- ListingRecord is the typed listing payload replicated by the store
- `created_at` and `owner` are write-once (IMMUTABLE_FIELDS)
- ChangeEvent is what a live query emits per record id
- OrderingKey is `(value, id)` so ties on the ordering field are broken by id
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

OPERATIONS: set[str] = {"rent", "sale"}

PROPERTY_TYPES: set[str] = {
    "apartment",
    "house",
    "office",
    "land",
    "commercial",
    "room",
}

CURRENCIES: set[str] = {"USD", "EUR", "GBP"}

STATUSES: set[str] = {"available", "reserved", "sold"}
DEFAULT_STATUS = "available"

# Change actions a live query may emit
ACTIONS: set[str] = {"initial", "added", "updated", "removed"}

# ACL levels a collaborator entry may carry
ACCESS_LEVELS: set[str] = {"read", "write"}
WRITE_LEVEL = "write"

# Fields that are set once on publish and never change afterwards
IMMUTABLE_FIELDS: frozenset[str] = frozenset({"created_at", "owner"})

# Fields an edit form may overlay onto an existing record
EDITABLE_FIELDS: frozenset[str] = frozenset(
    {"title", "operation", "property_type", "price", "location", "image_ref"}
)

# Capabilities (advisory, derived locally)
CAP_NONE = "none"
CAP_READ = "read"
CAP_WRITE_OWNER = "write-owner"
CAP_WRITE_COLLABORATOR = "write-collaborator"

CAPABILITIES: set[str] = {CAP_NONE, CAP_READ, CAP_WRITE_OWNER, CAP_WRITE_COLLABORATOR}

# Orderable fields and directions
ORDER_FIELDS: set[str] = {"created_at", "price", "title"}
DIRECTIONS: set[str] = {"desc", "asc"}

OrderingKey = tuple[Any, str]


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Price:
    amount: float
    currency: str = "USD"

    def to_dict(self) -> dict[str, Any]:
        return {"amount": self.amount, "currency": self.currency}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Price:
        return cls(amount=d.get("amount", 0), currency=d.get("currency", "USD"))


@dataclass(frozen=True)
class Location:
    country: str = ""
    city: str = ""
    zone: str = ""
    address: str = ""
    lat: float | None = None
    lng: float | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "country": self.country,
            "city": self.city,
            "zone": self.zone,
            "address": self.address,
            "lat": self.lat,
            "lng": self.lng,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Location:
        return cls(
            country=d.get("country", ""),
            city=d.get("city", ""),
            zone=d.get("zone", ""),
            address=d.get("address", ""),
            lat=d.get("lat"),
            lng=d.get("lng"),
        )


@dataclass(frozen=True)
class ListingRecord:
    """
    One real-estate listing as replicated by the store.

    Frozen: every change produces a new value via dataclasses.replace(),
    which is what lets the reconciler keep old views untouched.
    """

    id: str
    title: str
    operation: str
    property_type: str
    price: Price
    location: Location
    owner: str
    created_at: datetime
    image_ref: str = ""
    status: str = DEFAULT_STATUS
    collaborators: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "operation": self.operation,
            "property_type": self.property_type,
            "price": self.price.to_dict(),
            "location": self.location.to_dict(),
            "image_ref": self.image_ref,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "owner": self.owner,
            "collaborators": dict(self.collaborators),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any], *, id: str | None = None) -> ListingRecord:
        created_at = d["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return cls(
            id=id if id is not None else d["id"],
            title=d.get("title", ""),
            operation=d.get("operation", "sale"),
            property_type=d.get("property_type", "apartment"),
            price=Price.from_dict(d.get("price") or {}),
            location=Location.from_dict(d.get("location") or {}),
            image_ref=d.get("image_ref", ""),
            status=d.get("status", DEFAULT_STATUS),
            created_at=created_at,
            owner=d["owner"],
            collaborators=dict(d.get("collaborators") or {}),
        )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChangeEvent:
    """
    One notification from a live query.
    `value` is None for removals (hard delete or tombstone alike).
    """

    id: str
    action: str
    value: ListingRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action,
            "value": self.value.to_dict() if self.value is not None else None,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ChangeEvent:
        value = d.get("value")
        return cls(
            id=d["id"],
            action=d["action"],
            value=ListingRecord.from_dict(value, id=d["id"]) if value else None,
        )


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PriceRange:
    """Inclusive bounds; either side may be absent."""

    minimum: float | None = None
    maximum: float | None = None

    def contains(self, amount: float) -> bool:
        if self.minimum is not None and amount < self.minimum:
            return False
        if self.maximum is not None and amount > self.maximum:
            return False
        return True


@dataclass(frozen=True)
class Predicate:
    operation: str | None = None
    property_type: str | None = None
    city: str | None = None
    price: PriceRange | None = None


@dataclass(frozen=True)
class Ordering:
    field: str = "created_at"
    direction: str = "desc"


@dataclass(frozen=True)
class QuerySpec:
    """
    Canonical, hashable description of one listing query.
    Two specs compare equal iff they select and order the same records.
    """

    predicate: Predicate = field(default_factory=Predicate)
    ordering: Ordering = field(default_factory=Ordering)
    page_limit: int = 12

    def to_store_query(self) -> dict[str, Any]:
        """
        Store-side query document. Only populated predicates appear;
        absent filters are omitted rather than sent as match-all sentinels.
        """
        query: dict[str, Any] = {}
        p = self.predicate
        if p.operation is not None:
            query["operation"] = p.operation
        if p.property_type is not None:
            query["property_type"] = p.property_type
        if p.city is not None:
            query["city"] = {"$regex": p.city, "$options": "i"}
        if p.price is not None:
            bounds: dict[str, float] = {}
            if p.price.minimum is not None:
                bounds["$gte"] = p.price.minimum
            if p.price.maximum is not None:
                bounds["$lte"] = p.price.maximum
            query["price"] = bounds
        return {
            "query": query,
            "order": {"field": self.ordering.field, "direction": self.ordering.direction},
            "limit": self.page_limit,
        }


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ViewModel:
    """
    The ordered, deduplicated set of listings currently visible for one query.

    boundary  — ordering key of the last record paged in (None before any full page)
    exhausted — True once a short page showed there is nothing older to load
    """

    spec: QuerySpec = field(default_factory=QuerySpec)
    entries: tuple[ListingRecord, ...] = ()
    boundary: OrderingKey | None = None
    exhausted: bool = False

    def ids(self) -> list[str]:
        return [r.id for r in self.entries]

    def get(self, record_id: str) -> ListingRecord | None:
        for r in self.entries:
            if r.id == record_id:
                return r
        return None

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class ReconcileResult:
    """
    Result of folding one change event into a view.
    The reconciler never raises; it always returns one of these.
    """

    view: ViewModel
    applied: bool
    reason: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_utc() -> datetime:
    """Current UTC time, timezone aware."""
    return datetime.now(UTC)
