"""
Catalog Kernel — Pagination Cursor

Tracks the boundary of the currently loaded window for one QuerySpec.

position  — ordering key of the last record of the last full page, or None
exhausted — a short page came back, nothing older is left to load

The position only ever moves "older" (further along the ordering). A page
whose last key is not strictly past the current position is treated as the
end of the data, so records at or before the boundary are never re-fetched.
"""

from __future__ import annotations

from catalog.kernel.query import comes_before, ordering_key
from catalog.kernel.types import ListingRecord, OrderingKey, QuerySpec


class CursorMismatch(Exception):
    """A cursor built for one QuerySpec was used with another."""
    pass


class Cursor:
    """Pagination boundary for one query. Owned by a single session."""

    def __init__(self, spec: QuerySpec) -> None:
        self.spec = spec
        self.position: OrderingKey | None = None
        self.exhausted = False

    @property
    def page_size(self) -> int:
        return self.spec.page_limit

    @property
    def has_more(self) -> bool:
        return not self.exhausted

    def reset(self, spec: QuerySpec | None = None) -> None:
        """Forget the boundary. Passing a spec rebinds the cursor to it."""
        if spec is not None:
            self.spec = spec
        self.position = None
        self.exhausted = False

    def bind(self, spec: QuerySpec) -> None:
        """Check that this cursor belongs to `spec`; partial reuse is an error."""
        if spec != self.spec:
            raise CursorMismatch("cursor belongs to a different query; reset it first")

    def advance(self, page: list[ListingRecord]) -> bool:
        """
        Move the boundary to the last record of a page just loaded.
        Returns True if another page may exist.
        """
        if len(page) < self.page_size:
            self.exhausted = True
            return False

        key = ordering_key(page[-1], self.spec.ordering)
        if self.position is not None and not comes_before(self.position, key, self.spec.ordering):
            self.exhausted = True
            return False

        self.position = key
        return True

    def __repr__(self) -> str:  # pragma: no cover
        return f"Cursor(position={self.position!r}, exhausted={self.exhausted})"
