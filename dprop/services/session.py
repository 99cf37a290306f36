"""
Listing session — the controller for one live, filterable listing view.

Owns everything that used to be ambient page state: the active QuerySpec,
its cursor, the live subscription and its generation, the view model, the
map markers and the event queue. Construct one per view; `start()` and
`close()` bound its lifetime (or use it as an async context manager).

Flow:
  set_filters → cancel old subscription → reset cursor/view → open new one
  load_more   → fetch the next page at the cursor; the live query stays open
  change events → queue → reconciler → on_view_change(rows)
  submit_* → mutation coordinator → store → (change event comes back)

All view state is touched only from the event loop, one queue item at a
time, so nothing here needs a lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import pydantic

from catalog.kernel.cursor import Cursor
from catalog.kernel.permissions import resolve_capability
from catalog.kernel.reconciler import empty_view, intake_page, reduce, with_window
from catalog.kernel.types import ChangeEvent, ListingRecord, QuerySpec, ViewModel
from dprop.config import settings
from dprop.errors import ListingError, PartialShareFailure, SubscriptionFailure, ValidationError
from dprop.models.filters import SearchFilters
from dprop.models.listing import GrantRequest, ListingEdit, ListingForm, StatusChange
from dprop.services.markers import MarkerIndex
from dprop.services.mutations import MutationCoordinator
from dprop.services.subscription import LiveSubscription
from dprop.store.base import RecordStore

logger = logging.getLogger(__name__)

# Session states reported to on_status
IDLE = "idle"
LOADING = "loading"
LIVE = "live"
DEGRADED = "degraded"
CLOSED = "closed"


@dataclass(frozen=True)
class ViewRow:
    """One listing as handed to the renderer, with the viewer's capability."""

    record: ListingRecord
    capability: str


ViewListener = Callable[[list[ViewRow]], None]
StatusListener = Callable[[str], None]
Filters = SearchFilters | QuerySpec | Mapping[str, Any] | None


class ListingSession:
    """Live, paginated, filtered listing view over a record store."""

    def __init__(
        self,
        store: RecordStore,
        *,
        filters: Filters = None,
        page_size: int | None = None,
        on_view_change: ViewListener | None = None,
        on_status: StatusListener | None = None,
        resubscribe: bool | None = None,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
    ):
        self.store = store
        self.page_size = page_size or settings.PAGE_SIZE
        self.resubscribe = settings.RESUBSCRIBE if resubscribe is None else resubscribe
        self.max_attempts = settings.RESUBSCRIBE_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.retry_delay = settings.RESUBSCRIBE_DELAY if retry_delay is None else retry_delay

        self.spec = self._to_spec(filters)
        self.cursor = Cursor(self.spec)
        self.view: ViewModel = empty_view(self.spec)
        self.markers = MarkerIndex()
        self.mutations = MutationCoordinator(store)

        self.state = IDLE
        self.last_error: SubscriptionFailure | None = None
        self.generation = 0

        self._active: int | None = None
        self._subscription: LiveSubscription | None = None
        self._queue: asyncio.Queue[tuple[int, ChangeEvent | SubscriptionFailure]] | None = None
        self._consumer: asyncio.Task | None = None
        self._retry: asyncio.Task | None = None
        self._failures = 0
        self._paging = False
        self._unregister_identity: Callable[[], None] | None = None
        self._view_listeners: list[ViewListener] = [on_view_change] if on_view_change else []
        self._status_listeners: list[StatusListener] = [on_status] if on_status else []

    # -- lifecycle --

    async def start(self) -> None:
        """Start consuming and open the first page for the current filters."""
        if self.state != IDLE:
            raise RuntimeError(f"session already {self.state}")
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume())
        self._unregister_identity = self.store.on_identity_change(self._on_identity_change)
        await self._restart()

    async def close(self) -> None:
        """Cancel the subscription and stop the consumer. Idempotent."""
        if self.state == CLOSED:
            return
        self._cancel_active()
        for task in (self._retry, self._consumer):
            if task is None or task.done() or task is asyncio.current_task():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._unregister_identity is not None:
            self._unregister_identity()
            self._unregister_identity = None
        self._set_state(CLOSED)

    async def __aenter__(self) -> ListingSession:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # -- listeners --

    def on_view_change(self, listener: ViewListener) -> None:
        self._view_listeners.append(listener)

    def on_status(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    # -- read side --

    @property
    def rows(self) -> list[ViewRow]:
        identity = self.store.current_identity()
        return [ViewRow(record=r, capability=resolve_capability(identity, r)) for r in self.view.entries]

    @property
    def results_count(self) -> int:
        return len(self.view)

    @property
    def has_more(self) -> bool:
        return self.cursor.has_more

    def capability_of(self, record_id: str) -> str | None:
        record = self.view.get(record_id)
        if record is None:
            return None
        return resolve_capability(self.store.current_identity(), record)

    # -- query control --

    async def set_filters(self, filters: Filters) -> None:
        """
        Apply new filters: reset the cursor and view, cancel the active
        subscription and open a new one. Invalid filters raise
        ValidationError before anything is torn down.
        """
        self._require_running()
        self.spec = self._to_spec(filters)
        logger.info("session: filters changed, reopening (gen=%d)", self.generation)
        await self._restart()

    async def load_more(self) -> bool:
        """
        Fetch the next page past the cursor and fold it into the view.

        The live query stays open while the page is in flight; its change
        stream already covers every record the predicate matches, so rows on
        screen keep updating. Returns whether more pages remain. A no-op once
        the cursor is exhausted or while the view is not live. Store errors
        from the page fetch propagate and leave the view as it was.
        """
        self._require_running()
        if not self.cursor.has_more or self.state != LIVE:
            return False
        if self._paging:
            return True

        generation = self._active
        self._paging = True
        try:
            page = await self.store.fetch_page(self.spec, self.cursor.position)
        finally:
            self._paging = False

        if self._active != generation:
            logger.debug("session: page for gen=%s arrived after a reopen, dropped", generation)
            return self.cursor.has_more

        self._intake(page)
        self._emit_view()
        return self.cursor.has_more

    # -- mutations --

    async def submit_status_change(self, record_id: str, status: str) -> None:
        change = _validate(StatusChange, {"status": status})
        await self.mutations.change_status(record_id, change.status)

    async def submit_edit(self, record_id: str, fields: Mapping[str, Any]) -> None:
        """Overlay only the fields the caller sent; everything else is kept."""
        edit = _validate(ListingEdit, fields)
        await self.mutations.edit_fields(record_id, edit.to_fields())

    async def submit_publish(self, fields: Mapping[str, Any]) -> str:
        form = _validate(ListingForm, fields)
        return await self.mutations.publish(form.to_fields(), self.store.current_identity())

    async def submit_grant(self, record_id: str, grantee: str, level: str = "write") -> None:
        request = _validate(GrantRequest, {"grantee": grantee, "level": level})
        await self.mutations.grant_access(record_id, request.grantee, request.level)

    async def submit_revoke(self, record_id: str, grantee: str) -> None:
        request = _validate(GrantRequest, {"grantee": grantee})
        await self.mutations.revoke_access(record_id, request.grantee)

    async def retry_share(self, failure: PartialShareFailure) -> None:
        """Re-run only the collaborators-map update of a partially failed share."""
        await self.mutations.sync_collaborator(failure.record_id, failure.grantee, failure.level)

    # -- internals: subscription --

    def _to_spec(self, filters: Filters) -> QuerySpec:
        if isinstance(filters, QuerySpec):
            return filters
        if filters is None:
            filters = SearchFilters()
        elif not isinstance(filters, SearchFilters):
            filters = _validate(SearchFilters, filters)
        try:
            return filters.to_query(self.page_size)
        except ValueError as e:
            raise ValidationError(str(e)) from e

    def _require_running(self) -> None:
        if self.state in (IDLE, CLOSED):
            raise RuntimeError(f"session is {self.state}")

    def _cancel_active(self) -> None:
        self._active = None
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    async def _restart(self) -> None:
        """Fresh cursor and empty view for the current spec, then open."""
        self._cancel_active()
        if self._retry is not None and not self._retry.done() and self._retry is not asyncio.current_task():
            self._retry.cancel()
        self.cursor.reset(self.spec)
        self.view = empty_view(self.spec)
        self.markers.clear()
        self._emit_view()
        await self._open()

    async def _open(self) -> None:
        self.cursor.bind(self.spec)
        self.generation += 1
        generation = self.generation
        subscription = LiveSubscription(self.store, self.spec, self.cursor.position, generation, self._enqueue)
        self._subscription = subscription
        self._active = generation
        self._set_state(LOADING)

        try:
            page = await subscription.open()
        except ListingError as e:
            if self._active == generation:
                self._on_failure(SubscriptionFailure(f"could not open live query: {e}"))
            return

        if self._active != generation or not subscription.active:
            logger.debug("session: gen=%d superseded while opening", generation)
            return

        self._intake(page)
        self._failures = 0
        self._set_state(LIVE)
        self._emit_view()

    def _intake(self, page: list[ListingRecord]) -> None:
        self.view = intake_page(self.view, page)
        self.cursor.advance(page)
        self.view = with_window(self.view, self.cursor)
        self.markers.sync(self.view)

    def _enqueue(self, generation: int, item: ChangeEvent | SubscriptionFailure) -> None:
        if self._queue is not None:
            self._queue.put_nowait((generation, item))

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            generation, item = await self._queue.get()
            try:
                if generation != self._active:
                    logger.debug("session: dropped stale item from gen=%d", generation)
                    continue
                if isinstance(item, SubscriptionFailure):
                    self._on_failure(item)
                    continue
                try:
                    self._fold(item)
                except Exception as e:
                    # handled like a broken stream
                    logger.exception("session: failed to fold %s %s", item.action, item.id)
                    self._on_failure(SubscriptionFailure(f"could not apply {item.action} for {item.id}: {e}"))
            finally:
                self._queue.task_done()

    def _fold(self, event: ChangeEvent) -> None:
        result = reduce(self.view, event)
        if not result.applied:
            logger.debug("session: %s %s not applied: %s", event.action, event.id, result.reason)
            return
        self.view = result.view
        self.markers.apply(event, self.view)
        self._emit_view()

    def _on_failure(self, failure: SubscriptionFailure) -> None:
        self.last_error = failure
        self._cancel_active()
        self._set_state(DEGRADED)
        logger.warning("session: live view degraded: %s", failure)

        if not self.resubscribe or self._failures >= self.max_attempts:
            logger.warning("session: not resubscribing (attempts=%d)", self._failures)
            return
        self._failures += 1
        self._retry = asyncio.create_task(self._resubscribe_later(self._failures))

    async def _resubscribe_later(self, attempt: int) -> None:
        await asyncio.sleep(self.retry_delay * attempt)
        if self.state != DEGRADED:
            return
        logger.info("session: resubscribing, attempt %d of %d", attempt, self.max_attempts)
        await self._restart()

    # -- internals: notifications --

    def _on_identity_change(self, identity: str | None) -> None:
        # Capabilities depend on the identity; the records do not.
        self._emit_view()

    def _emit_view(self) -> None:
        if not self._view_listeners:
            return
        rows = self.rows
        for listener in list(self._view_listeners):
            try:
                listener(rows)
            except Exception:
                logger.exception("session: view listener failed")

    def _set_state(self, state: str) -> None:
        if state == self.state:
            return
        self.state = state
        for listener in list(self._status_listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("session: status listener failed")


def _validate(model: type[pydantic.BaseModel], data: Mapping[str, Any]) -> Any:
    try:
        return model.model_validate(dict(data))
    except pydantic.ValidationError as e:
        raise ValidationError.from_pydantic(e) from e
