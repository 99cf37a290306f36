"""
Catalog kernel test configuration.

Kernel tests are pure and synchronous: no store, no event loop. Shared
fixtures build small, ordered listing sets with make_record().
"""

import pytest

from catalog.kernel.events import make_record
from catalog.kernel.types import QuerySpec


@pytest.fixture
def spec():
    """Default query: no predicate, newest first, pages of 3."""
    return QuerySpec(page_limit=3)


@pytest.fixture
def listings():
    """Six listings, r6 newest, r1 oldest."""
    return [make_record(seq) for seq in range(6, 0, -1)]
