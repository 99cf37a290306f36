"""
Live subscription — one QuerySpec bound to the store's live query.

Lifecycle: closed → opening → active → closed. A subscription is never
reused; a new query or page means cancel-then-reopen with a new generation.

Events are forwarded to a sink as (generation, item) where item is a
ChangeEvent or a SubscriptionFailure. The sink owner compares the
generation with the one it considers active and drops anything stale.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable

from catalog.kernel.types import ChangeEvent, ListingRecord, OrderingKey, QuerySpec
from dprop.errors import SubscriptionFailure
from dprop.store.base import RecordStore, SubscriptionHandle

logger = logging.getLogger(__name__)

CLOSED = "closed"
OPENING = "opening"
ACTIVE = "active"

Sink = Callable[[int, ChangeEvent | SubscriptionFailure], None]


class LiveSubscription:
    """A generation-tagged live query. Owned by exactly one session."""

    def __init__(
        self,
        store: RecordStore,
        spec: QuerySpec,
        position: OrderingKey | None,
        generation: int,
        sink: Sink,
    ) -> None:
        self.store = store
        self.spec = spec
        self.position = position
        self.generation = generation
        self.state = CLOSED
        self._sink = sink
        self._handle: SubscriptionHandle | None = None
        self._pump: asyncio.Task | None = None
        self._cancelled = False

    @property
    def active(self) -> bool:
        return self.state == ACTIVE

    async def open(self) -> list[ListingRecord]:
        """
        Subscribe and start forwarding changes.
        Returns the initial page (empty if cancelled while opening).
        """
        if self.state != CLOSED or self._cancelled:
            raise RuntimeError(f"subscription gen={self.generation} cannot be reopened")

        self.state = OPENING
        try:
            handle = await self.store.subscribe(self.spec, self.position)
        except BaseException:
            self.state = CLOSED
            raise

        if self._cancelled:
            # cancel() ran while we were waiting on the store
            handle.cancel()
            return []

        self._handle = handle
        self.state = ACTIVE
        self._pump = asyncio.create_task(self._forward(handle.change_stream))
        logger.info(
            "subscription: gen=%d active, %d initial results",
            self.generation,
            len(handle.initial_results),
        )
        return list(handle.initial_results)

    async def _forward(self, stream: AsyncIterator[ChangeEvent]) -> None:
        try:
            async for event in stream:
                if self.state != ACTIVE:
                    return
                self._sink(self.generation, event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self.state == ACTIVE:
                logger.warning("subscription: gen=%d stream failed: %s", self.generation, e)
                failure = e if isinstance(e, SubscriptionFailure) else SubscriptionFailure(str(e))
                self._sink(self.generation, failure)
            return

        if self.state == ACTIVE:
            logger.warning("subscription: gen=%d stream ended unexpectedly", self.generation)
            self._sink(self.generation, SubscriptionFailure("live query ended"))

    def cancel(self) -> None:
        """
        Stop delivery. Synchronous and idempotent: once this returns no
        further events are forwarded for this generation.
        """
        if self._cancelled:
            return
        self._cancelled = True
        was = self.state
        self.state = CLOSED

        if self._handle is not None:
            self._handle.cancel()
        if self._pump is not None and not self._pump.done():
            self._pump.cancel()

        if was != CLOSED:
            logger.info("subscription: gen=%d cancelled (was %s)", self.generation, was)
