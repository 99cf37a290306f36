"""
In-memory record store.

Behaves like the replicated store as far as the client can tell: enforces
ownership and ACLs on writes, and pushes change events to every open live
query whose predicate the record matches (or stops matching). Used by tests
and local demos.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import replace

from catalog.kernel import events
from catalog.kernel.query import comes_before, matches, ordering_key, sort_records
from catalog.kernel.types import (
    ACCESS_LEVELS,
    STATUSES,
    WRITE_LEVEL,
    ChangeEvent,
    ListingRecord,
    OrderingKey,
    QuerySpec,
)
from dprop.errors import NotFound, PermissionDenied, SubscriptionFailure, ValidationError
from dprop.store.base import RecordStore, SubscriptionHandle

logger = logging.getLogger(__name__)

_CLOSED = object()


class _LiveQuery:
    """One open subscription: a predicate and a queue of pending events."""

    def __init__(self, spec: QuerySpec) -> None:
        self.spec = spec
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, item: object) -> None:
        if not self.closed:
            self.queue.put_nowait(item)

    async def stream(self) -> AsyncIterator[ChangeEvent]:
        while True:
            item = await self.queue.get()
            if item is _CLOSED:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


class MemoryStore(RecordStore):
    """In-memory store for testing."""

    def __init__(self, identity: str | None = None) -> None:
        super().__init__(identity)
        self.records: dict[str, ListingRecord] = {}
        self.acls: dict[str, dict[str, str]] = {}
        self.writes: list[tuple[ListingRecord, str | None]] = []
        self.fail_writes: list[BaseException] = []
        self.subscribe_count = 0
        self.fetch_count = 0
        self._live: list[_LiveQuery] = []

    # -- reads --

    async def get(self, record_id: str) -> ListingRecord | None:
        return self.records.get(record_id)

    async def subscribe(self, spec: QuerySpec, position: OrderingKey | None) -> SubscriptionHandle:
        self.subscribe_count += 1
        page = self._page(spec, position)

        live = _LiveQuery(spec)
        self._live.append(live)

        def cancel() -> None:
            if live.closed:
                return
            live.push(_CLOSED)
            live.closed = True
            if live in self._live:
                self._live.remove(live)

        return SubscriptionHandle(
            initial_results=page,
            change_stream=live.stream(),
            cancel=cancel,
        )

    async def fetch_page(self, spec: QuerySpec, position: OrderingKey | None) -> list[ListingRecord]:
        self.fetch_count += 1
        return self._page(spec, position)

    @property
    def open_subscriptions(self) -> int:
        return len(self._live)

    # -- writes --

    async def write(self, record: ListingRecord, record_id: str | None = None) -> str:
        self.writes.append((record, record_id))
        if self.fail_writes:
            raise self.fail_writes.pop(0)

        identity = self._require_identity()
        if record.status not in STATUSES:
            raise ValidationError(f"Unknown status: {record.status}", {"status": "unknown status"})

        if record_id is None:
            if record.owner != identity:
                raise PermissionDenied("A listing can only be published under your own identity")
            record_id = uuid.uuid4().hex[:12]
            stored = replace(record, id=record_id)
            before = None
        else:
            before = self.records.get(record_id)
            if before is None:
                raise NotFound(record_id)
            if not self._can_write(identity, before):
                raise PermissionDenied(f"{identity} may not write {record_id}")
            stored = replace(record, id=record_id)

        self.records[record_id] = stored
        self._emit(before, stored)
        return record_id

    async def grant(self, record_id: str, identity: str, level: str) -> None:
        if level not in ACCESS_LEVELS:
            raise ValidationError(f"Unknown access level: {level}", {"level": "unknown level"})
        record = self._require_owned(record_id)
        self.acls.setdefault(record.id, {})[identity] = level

    async def revoke(self, record_id: str, identity: str) -> None:
        record = self._require_owned(record_id)
        self.acls.get(record.id, {}).pop(identity, None)

    async def delete(self, record_id: str) -> None:
        """Tombstone a listing (owner only). Not part of the client surface."""
        record = self._require_owned(record_id)
        del self.records[record.id]
        self.acls.pop(record.id, None)
        for live in list(self._live):
            if matches(live.spec, record):
                live.push(events.removed(record.id))

    # -- test hooks --

    def seed(self, *records: ListingRecord) -> None:
        """Insert records directly, bypassing ACLs and without emitting events."""
        for record in records:
            self.records[record.id] = record

    def emit(self, event: ChangeEvent) -> None:
        """Push a raw event to every open live query."""
        for live in list(self._live):
            live.push(event)

    def break_streams(self, reason: str = "replication fault") -> None:
        """Make every open change stream raise on its next read."""
        for live in list(self._live):
            live.push(SubscriptionFailure(reason))

    # -- internals --

    def _page(self, spec: QuerySpec, position: OrderingKey | None) -> list[ListingRecord]:
        ordered = sort_records([r for r in self.records.values() if matches(spec, r)], spec.ordering)
        if position is not None:
            ordered = [r for r in ordered if comes_before(position, ordering_key(r, spec.ordering), spec.ordering)]
        return ordered[: spec.page_limit]

    def _require_identity(self) -> str:
        if self._identity is None:
            raise PermissionDenied("Not signed in")
        return self._identity

    def _require_owned(self, record_id: str) -> ListingRecord:
        identity = self._require_identity()
        record = self.records.get(record_id)
        if record is None:
            raise NotFound(record_id)
        if record.owner != identity:
            raise PermissionDenied(f"Only the owner can change access to {record_id}")
        return record

    def _can_write(self, identity: str, record: ListingRecord) -> bool:
        if identity == record.owner:
            return True
        return self.acls.get(record.id, {}).get(identity) == WRITE_LEVEL

    def _emit(self, before: ListingRecord | None, after: ListingRecord) -> None:
        for live in list(self._live):
            was_match = before is not None and matches(live.spec, before)
            is_match = matches(live.spec, after)
            if is_match:
                live.push(events.updated(after) if before is not None else events.added(after))
            elif was_match:
                live.push(events.removed(after.id))
        logger.debug("memory: wrote %s (%d live queries)", after.id, len(self._live))
