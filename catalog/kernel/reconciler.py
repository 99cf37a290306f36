"""
Catalog Kernel — Reconciler

Pure function: (view, change event) → ReconcileResult

Folds live-query notifications into an ordered, deduplicated ViewModel.
Every action is idempotent per record id: replaying an event leaves the
view exactly as applying it once did. No ordering is assumed across ids.

  initial  — page results; appended at the tail if the id is new. A page is
             a snapshot, so an id already in view keeps the value the
             change stream gave it
  added    — new record; inserted at its ordered position if it falls inside
             the loaded window, suppressed if it is older than the boundary.
             An id already in view with a different value is replaced in
             place, as `updated` would; the same value is a duplicate
  updated  — replaced in place (never re-sorted); an unseen record that now
             matches the predicate is handled as `added`
  removed  — dropped if present, no-op otherwise
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable

from catalog.kernel.cursor import Cursor
from catalog.kernel.query import comes_before, matches, ordering_key
from catalog.kernel.types import (
    ChangeEvent,
    ListingRecord,
    QuerySpec,
    ReconcileResult,
    ViewModel,
)

# ---------------------------------------------------------------------------
# View structure
# ---------------------------------------------------------------------------


def empty_view(spec: QuerySpec) -> ViewModel:
    """The view for a query before any page or event has arrived."""
    return ViewModel(spec=spec)


def with_window(view: ViewModel, cursor: Cursor) -> ViewModel:
    """Copy the cursor's boundary into the view (after a page was advanced)."""
    return replace(view, boundary=cursor.position, exhausted=cursor.exhausted)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _reject(view: ViewModel, reason: str) -> ReconcileResult:
    return ReconcileResult(view=view, applied=False, reason=reason)


def _ok(view: ViewModel) -> ReconcileResult:
    return ReconcileResult(view=view, applied=True)


def _index_of(view: ViewModel, record_id: str) -> int | None:
    for i, r in enumerate(view.entries):
        if r.id == record_id:
            return i
    return None


def _in_window(view: ViewModel, record: ListingRecord) -> bool:
    """True if the record sorts strictly before the loaded boundary."""
    if view.exhausted or view.boundary is None:
        return True
    key = ordering_key(record, view.spec.ordering)
    return comes_before(key, view.boundary, view.spec.ordering)


def _replace_at(view: ViewModel, index: int, record: ListingRecord) -> ReconcileResult:
    entries = list(view.entries)
    entries[index] = record
    return _ok(replace(view, entries=tuple(entries)))


def _insert_ordered(view: ViewModel, record: ListingRecord) -> ViewModel:
    ordering = view.spec.ordering
    key = ordering_key(record, ordering)
    entries = list(view.entries)
    position = len(entries)
    for i, existing in enumerate(entries):
        if comes_before(key, ordering_key(existing, ordering), ordering):
            position = i
            break
    entries.insert(position, record)
    return replace(view, entries=tuple(entries))


def _check_value(view: ViewModel, event: ChangeEvent) -> ReconcileResult | None:
    if event.value is None:
        return _reject(view, f"MISSING_VALUE: '{event.action}' for '{event.id}' carries no record")
    if event.value.id != event.id:
        return _reject(view, f"ID_MISMATCH: event '{event.id}' carries record '{event.value.id}'")
    return None


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _handle_initial(view: ViewModel, event: ChangeEvent) -> ReconcileResult:
    bad = _check_value(view, event)
    if bad is not None:
        return bad
    if _index_of(view, event.id) is not None:
        return _reject(view, f"DUPLICATE: '{event.id}' is already in view")
    return _ok(replace(view, entries=view.entries + (event.value,)))


def _handle_added(view: ViewModel, event: ChangeEvent) -> ReconcileResult:
    bad = _check_value(view, event)
    if bad is not None:
        return bad
    index = _index_of(view, event.id)
    if index is not None:
        if view.entries[index] == event.value:
            return _reject(view, f"DUPLICATE: '{event.id}' is already in view")
        return _replace_at(view, index, event.value)
    if not _in_window(view, event.value):
        return _reject(view, f"OUT_OF_WINDOW: '{event.id}' is past the loaded page boundary")
    return _ok(_insert_ordered(view, event.value))


def _handle_updated(view: ViewModel, event: ChangeEvent) -> ReconcileResult:
    bad = _check_value(view, event)
    if bad is not None:
        return bad

    index = _index_of(view, event.id)
    if index is None:
        if not matches(view.spec, event.value):
            return _reject(view, f"NO_MATCH: '{event.id}' does not match the active filters")
        return _handle_added(view, event)

    return _replace_at(view, index, event.value)


def _handle_removed(view: ViewModel, event: ChangeEvent) -> ReconcileResult:
    index = _index_of(view, event.id)
    if index is None:
        return _reject(view, f"NOT_FOUND: '{event.id}' is not in view")
    entries = view.entries[:index] + view.entries[index + 1 :]
    return _ok(replace(view, entries=entries))


_HANDLERS: dict[str, Callable[[ViewModel, ChangeEvent], ReconcileResult]] = {
    "initial": _handle_initial,
    "added": _handle_added,
    "updated": _handle_updated,
    "removed": _handle_removed,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def reduce(view: ViewModel, event: ChangeEvent) -> ReconcileResult:
    """
    Apply one change event to a view.
    Returns ReconcileResult with the new view + applied flag.

    Pure function. The input view is never modified.
    """
    handler = _HANDLERS.get(event.action)
    if handler is None:
        return _reject(view, f"UNKNOWN_ACTION: {event.action}")
    return handler(view, event)


def reduce_all(view: ViewModel, events: list[ChangeEvent]) -> ViewModel:
    """
    Apply a sequence of events to a view.
    Rejections are skipped. Returns the final view.
    """
    for event in events:
        view = reduce(view, event).view
    return view


def intake_page(view: ViewModel, records: list[ListingRecord]) -> ViewModel:
    """Append one page of query results, skipping ids already in view."""
    return reduce_all(view, [ChangeEvent(id=r.id, action="initial", value=r) for r in records])


def replay(spec: QuerySpec, events: list[ChangeEvent]) -> ViewModel:
    """Rebuild a view from scratch by reducing over all events."""
    return reduce_all(empty_view(spec), events)
