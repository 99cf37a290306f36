"""
Catalog Kernel — the pure listing-view engine.

Five components:
  query        — filter criteria → canonical QuerySpec, local matching, ordering
  cursor       — pagination boundary that only moves older
  reconciler   — (view, change event) → view  (pure, idempotent per id)
  permissions  — (identity, record) → advisory capability
  events       — record / change-event factories

No IO happens here. The dprop package wires these to a record store.
"""

from catalog.kernel.cursor import Cursor, CursorMismatch
from catalog.kernel.permissions import can_edit, can_share, resolve_capability
from catalog.kernel.query import build_query, matches, ordering_key, validate_query
from catalog.kernel.reconciler import empty_view, intake_page, reduce, reduce_all, replay, with_window

__all__ = [
    "build_query",
    "validate_query",
    "matches",
    "ordering_key",
    "Cursor",
    "CursorMismatch",
    "empty_view",
    "reduce",
    "reduce_all",
    "replay",
    "intake_page",
    "with_window",
    "resolve_capability",
    "can_edit",
    "can_share",
]
