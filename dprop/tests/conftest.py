"""
Pytest configuration and fixtures for dprop tests.

Sessions run against MemoryStore. Events travel store → pump task →
session queue → consumer task, so assertions about the view wait with
`eventually` instead of sleeping a fixed amount.
"""

from __future__ import annotations

import asyncio
import os

import pytest
import pytest_asyncio

# Set test environment variables before importing config
os.environ.setdefault("DPROP_PAGE_SIZE", "3")
os.environ.setdefault("DPROP_RESUBSCRIBE_DELAY", "0")
os.environ.setdefault("DPROP_ENVIRONMENT", "test")

from catalog.kernel.events import make_record  # noqa: E402
from dprop.services.session import ListingSession  # noqa: E402
from dprop.store.memory import MemoryStore  # noqa: E402

OWNER = "0xa11ce"
FRIEND = "0xb0b"


async def _eventually(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within %.1fs" % timeout)
        await asyncio.sleep(0.005)


@pytest.fixture
def eventually():
    """Await until `predicate()` is true, failing after `timeout` seconds."""
    return _eventually


async def _settle(session, rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)
    await session._queue.join()


@pytest.fixture
def settle():
    """Let pending store events reach the session and wait until all are folded."""
    return _settle


@pytest.fixture
def store():
    """
    Store signed in as OWNER with five Paris listings and two in Lyon.
    Paris r5..r1 (r5 newest), Lyon l11 and l12.
    """
    s = MemoryStore(identity=OWNER)
    s.seed(*[make_record(seq, owner=OWNER) for seq in range(1, 6)])
    s.seed(
        make_record(11, owner=OWNER, city="Lyon", record_id="l11", lat=45.76, lng=4.83),
        make_record(12, owner=FRIEND, city="Lyon", record_id="l12"),
    )
    return s


@pytest_asyncio.fixture
async def session(store):
    """A started session over `store`, Paris filter, pages of 3."""
    s = ListingSession(store, filters={"city": "Paris"}, page_size=3, retry_delay=0)
    await s.start()
    yield s
    await s.close()
