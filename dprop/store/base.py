"""
Record store interface.

The store replicates listings between peers, verifies signatures and
enforces ACLs. None of that happens here: this module only fixes the
surface the client consumes. Implement it against the real gateway
(HttpRecordStore) or in memory for tests (MemoryStore).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

from catalog.kernel.types import ChangeEvent, ListingRecord, OrderingKey, QuerySpec

logger = logging.getLogger(__name__)

IdentityListener = Callable[[str | None], None]


@dataclass
class SubscriptionHandle:
    """
    What `subscribe` hands back.

    initial_results — one page of matching records at the cursor, in order
    change_stream   — events for every record matching the predicate,
                      whichever page it sits on; ends or raises on fault
    cancel          — stop delivery; calling it twice is harmless
    """

    initial_results: list[ListingRecord]
    change_stream: AsyncIterator[ChangeEvent]
    cancel: Callable[[], None]


class RecordStore:
    """
    Abstract store interface.

    Write methods raise dprop.errors.PermissionDenied when the ACL check at
    the store fails, and dprop.errors.ValidationError for malformed records.
    """

    def __init__(self, identity: str | None = None) -> None:
        self._identity = identity
        self._identity_listeners: list[IdentityListener] = []

    async def get(self, record_id: str) -> ListingRecord | None:
        """Fetch one listing. Returns None if it does not exist (or was tombstoned)."""
        raise NotImplementedError

    async def subscribe(self, spec: QuerySpec, position: OrderingKey | None) -> SubscriptionHandle:
        """Open a live query for `spec`, first page starting after `position`."""
        raise NotImplementedError

    async def fetch_page(self, spec: QuerySpec, position: OrderingKey | None) -> list[ListingRecord]:
        """One page of matching records after `position`, without a live query."""
        raise NotImplementedError

    async def write(self, record: ListingRecord, record_id: str | None = None) -> str:
        """Create (record_id omitted) or replace a listing. Returns its id."""
        raise NotImplementedError

    async def grant(self, record_id: str, identity: str, level: str) -> None:
        """Grant `identity` an ACL `level` on a listing."""
        raise NotImplementedError

    async def revoke(self, record_id: str, identity: str) -> None:
        """Remove whatever ACL entry `identity` holds on a listing."""
        raise NotImplementedError

    # -- identity --

    def current_identity(self) -> str | None:
        return self._identity

    def on_identity_change(self, listener: IdentityListener) -> Callable[[], None]:
        """Register for sign-in / sign-out. Returns a function that unregisters."""
        self._identity_listeners.append(listener)

        def unregister() -> None:
            if listener in self._identity_listeners:
                self._identity_listeners.remove(listener)

        return unregister

    def set_identity(self, identity: str | None) -> None:
        """Called by the identity subsystem after login or logout."""
        if identity == self._identity:
            return
        self._identity = identity
        logger.info("store: identity changed to %s", identity[:8] if identity else None)
        for listener in list(self._identity_listeners):
            listener(identity)
