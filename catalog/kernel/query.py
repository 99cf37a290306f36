"""
Catalog Kernel — Query Building and Matching

Turns filter criteria into a canonical QuerySpec, evaluates the predicate
against a record locally, and defines the ordering used by cursor and
reconciler.

Ordering keys are `(value, id)`. Under "desc" a larger key comes first
(newest listing on top); under "asc" a smaller key does.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any

from catalog.kernel.types import (
    DIRECTIONS,
    OPERATIONS,
    ORDER_FIELDS,
    PROPERTY_TYPES,
    ListingRecord,
    Ordering,
    OrderingKey,
    Predicate,
    PriceRange,
    QuerySpec,
)

# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


def build_query(
    operation: str | None = None,
    property_type: str | None = None,
    city: str | None = None,
    price_min: float | None = None,
    price_max: float | None = None,
    *,
    order_field: str = "created_at",
    direction: str = "desc",
    page_limit: int = 12,
) -> QuerySpec:
    """
    Build a QuerySpec from optional filter values.

    Blank strings count as absent. Absent filters are left out of the
    predicate entirely so the store can keep using its indexes.

    Raises ValueError if a populated value is structurally invalid.
    """
    city = city.strip() if city else None
    price = None
    if price_min is not None or price_max is not None:
        price = PriceRange(minimum=price_min, maximum=price_max)

    spec = QuerySpec(
        predicate=Predicate(
            operation=operation or None,
            property_type=property_type or None,
            city=city or None,
            price=price,
        ),
        ordering=Ordering(field=order_field, direction=direction),
        page_limit=page_limit,
    )

    errors = validate_query(spec)
    if errors:
        raise ValueError("; ".join(errors))
    return spec


def validate_query(spec: QuerySpec) -> list[str]:
    """
    Structural checks on a QuerySpec.
    Returns a list of error strings. Empty list = valid.
    """
    errors: list[str] = []
    p = spec.predicate

    if p.operation is not None and p.operation not in OPERATIONS:
        errors.append(f"Unknown operation: {p.operation}")
    if p.property_type is not None and p.property_type not in PROPERTY_TYPES:
        errors.append(f"Unknown property type: {p.property_type}")
    if p.price is not None:
        lo, hi = p.price.minimum, p.price.maximum
        if lo is not None and lo < 0:
            errors.append("Minimum price must not be negative")
        if lo is not None and hi is not None and lo > hi:
            errors.append("Minimum price is above maximum price")

    if spec.ordering.field not in ORDER_FIELDS:
        errors.append(f"Cannot order by: {spec.ordering.field}")
    if spec.ordering.direction not in DIRECTIONS:
        errors.append(f"Unknown direction: {spec.ordering.direction}")
    if spec.page_limit < 1:
        errors.append("page_limit must be at least 1")

    return errors


def with_page_limit(spec: QuerySpec, page_limit: int) -> QuerySpec:
    """Same predicate and ordering, different page size."""
    return QuerySpec(predicate=spec.predicate, ordering=spec.ordering, page_limit=page_limit)


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


@lru_cache(maxsize=128)
def city_pattern(text: str) -> re.Pattern[str]:
    """
    Case-insensitive pattern for a city filter.
    Text that does not compile as a regular expression is matched literally.
    """
    try:
        return re.compile(text, re.IGNORECASE)
    except re.error:
        return re.compile(re.escape(text), re.IGNORECASE)


def matches(spec: QuerySpec, record: ListingRecord) -> bool:
    """True if the record satisfies every populated predicate of the spec."""
    p = spec.predicate
    if p.operation is not None and record.operation != p.operation:
        return False
    if p.property_type is not None and record.property_type != p.property_type:
        return False
    if p.city is not None and not city_pattern(p.city).search(record.location.city):
        return False
    if p.price is not None and not p.price.contains(record.price.amount):
        return False
    return True


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def _field_value(record: ListingRecord, name: str) -> Any:
    if name == "created_at":
        return record.created_at
    if name == "price":
        return record.price.amount
    if name == "title":
        return record.title.casefold()
    raise ValueError(f"Cannot order by: {name}")


def ordering_key(record: ListingRecord, ordering: Ordering) -> OrderingKey:
    """The record's position under the ordering, with id as tie-break."""
    return (_field_value(record, ordering.field), record.id)


def comes_before(a: OrderingKey, b: OrderingKey, ordering: Ordering) -> bool:
    """True if key `a` is listed strictly before key `b`."""
    if ordering.direction == "desc":
        return a > b
    return a < b


def sort_records(records: list[ListingRecord], ordering: Ordering) -> list[ListingRecord]:
    """Records in listing order."""
    return sorted(
        records,
        key=lambda r: ordering_key(r, ordering),
        reverse=ordering.direction == "desc",
    )
