"""
Catalog Query -- Building, Matching, Ordering

Covers:
  - build_query omits absent filters and treats blanks as absent
  - invalid values raise ValueError
  - QuerySpec equality and hashing
  - to_store_query shape
  - local predicate evaluation (city regex, literal fallback, inclusive price)
  - ordering keys and sort order
"""

import pytest

from catalog.kernel.events import make_record
from catalog.kernel.query import (
    build_query,
    city_pattern,
    comes_before,
    matches,
    ordering_key,
    sort_records,
    validate_query,
    with_page_limit,
)
from catalog.kernel.types import Ordering, Predicate, PriceRange, QuerySpec

# ============================================================================
# 1. Building
# ============================================================================


class TestBuildQuery:
    def test_no_filters(self):
        spec = build_query()
        assert spec.predicate == Predicate()
        assert spec.ordering == Ordering(field="created_at", direction="desc")

    def test_blank_strings_are_absent(self):
        assert build_query(operation="", property_type="", city="   ") == build_query()

    def test_city_is_trimmed(self):
        assert build_query(city="  Paris ").predicate.city == "Paris"

    def test_only_min_price(self):
        spec = build_query(price_min=100)
        assert spec.predicate.price == PriceRange(minimum=100, maximum=None)

    def test_unknown_operation(self):
        with pytest.raises(ValueError, match="operation"):
            build_query(operation="lease")

    def test_unknown_property_type(self):
        with pytest.raises(ValueError, match="property type"):
            build_query(property_type="castle")

    def test_inverted_price_range(self):
        with pytest.raises(ValueError, match="above maximum"):
            build_query(price_min=500, price_max=100)

    def test_negative_price(self):
        with pytest.raises(ValueError):
            build_query(price_min=-1)

    def test_bad_ordering_field(self):
        with pytest.raises(ValueError, match="order by"):
            build_query(order_field="zone")

    def test_bad_page_limit(self):
        with pytest.raises(ValueError):
            build_query(page_limit=0)

    def test_validate_collects_every_error(self):
        spec = QuerySpec(
            predicate=Predicate(operation="lease", property_type="castle"),
            ordering=Ordering(direction="sideways"),
        )
        assert len(validate_query(spec)) == 3

    def test_with_page_limit(self):
        spec = build_query(city="Paris", page_limit=12)
        smaller = with_page_limit(spec, 3)
        assert smaller.page_limit == 3
        assert smaller.predicate == spec.predicate


# ============================================================================
# 2. Equality
# ============================================================================


class TestEquality:
    def test_same_filters_equal(self):
        assert build_query(city="Paris", price_max=10) == build_query(city="Paris", price_max=10)

    def test_different_filters_differ(self):
        assert build_query(city="Paris") != build_query(city="Lyon")

    def test_page_limit_is_part_of_identity(self):
        assert build_query(page_limit=3) != build_query(page_limit=12)

    def test_hashable(self):
        specs = {build_query(city="Paris"), build_query(city="Paris"), build_query()}
        assert len(specs) == 2


# ============================================================================
# 3. Store query document
# ============================================================================


class TestStoreQuery:
    def test_absent_filters_omitted(self):
        doc = build_query().to_store_query()
        assert doc["query"] == {}
        assert doc["order"] == {"field": "created_at", "direction": "desc"}
        assert doc["limit"] == 12

    def test_city_becomes_case_insensitive_regex(self):
        doc = build_query(city="Paris").to_store_query()
        assert doc["query"] == {"city": {"$regex": "Paris", "$options": "i"}}

    def test_price_bounds(self):
        doc = build_query(price_min=100, price_max=200).to_store_query()
        assert doc["query"]["price"] == {"$gte": 100, "$lte": 200}

    def test_only_max_price(self):
        doc = build_query(price_max=200).to_store_query()
        assert doc["query"]["price"] == {"$lte": 200}

    def test_all_filters(self):
        doc = build_query(
            operation="rent", property_type="house", city="Lyon", price_min=1
        ).to_store_query()
        assert set(doc["query"]) == {"operation", "property_type", "city", "price"}


# ============================================================================
# 4. Matching
# ============================================================================


class TestMatches:
    def test_empty_predicate_matches_everything(self):
        assert matches(build_query(), make_record(1))

    def test_operation(self):
        spec = build_query(operation="rent")
        assert matches(spec, make_record(1, operation="rent"))
        assert not matches(spec, make_record(1, operation="sale"))

    def test_property_type(self):
        spec = build_query(property_type="house")
        assert not matches(spec, make_record(1, property_type="apartment"))

    def test_city_case_insensitive_substring(self):
        spec = build_query(city="par")
        assert matches(spec, make_record(1, city="Paris"))
        assert not matches(spec, make_record(1, city="Lyon"))

    def test_city_regex(self):
        spec = build_query(city="^(lyon|nice)$")
        assert matches(spec, make_record(1, city="Nice"))
        assert not matches(spec, make_record(1, city="Venice"))

    def test_invalid_regex_matched_literally(self):
        spec = build_query(city="Paris (")
        assert matches(spec, make_record(1, city="paris (centre)"))
        assert not matches(spec, make_record(1, city="Paris"))

    def test_city_pattern_fallback(self):
        assert city_pattern("[").pattern == r"\["

    def test_price_bounds_inclusive(self):
        spec = build_query(price_min=100, price_max=200)
        assert matches(spec, make_record(1, amount=100))
        assert matches(spec, make_record(1, amount=200))
        assert not matches(spec, make_record(1, amount=99.99))
        assert not matches(spec, make_record(1, amount=200.01))


# ============================================================================
# 5. Ordering
# ============================================================================


class TestOrdering:
    def test_key_is_value_then_id(self):
        r = make_record(3, amount=50)
        assert ordering_key(r, Ordering(field="price")) == (50, "r3")

    def test_title_key_is_casefolded(self):
        r = make_record(1, title="Loft")
        assert ordering_key(r, Ordering(field="title"))[0] == "loft"

    def test_desc_larger_first(self):
        desc = Ordering(direction="desc")
        assert comes_before((2, "a"), (1, "a"), desc)
        assert not comes_before((1, "a"), (2, "a"), desc)

    def test_asc_smaller_first(self):
        asc = Ordering(direction="asc")
        assert comes_before((1, "a"), (2, "a"), asc)

    def test_equal_keys_neither_before(self):
        o = Ordering()
        assert not comes_before((1, "a"), (1, "a"), o)

    def test_tie_broken_by_id(self):
        o = Ordering(field="price", direction="asc")
        a, b = make_record(1, amount=10), make_record(2, amount=10)
        assert [r.id for r in sort_records([b, a], o)] == ["r1", "r2"]

    def test_sort_newest_first(self, listings):
        shuffled = listings[::2] + listings[1::2]
        assert [r.id for r in sort_records(shuffled, Ordering())] == [
            "r6", "r5", "r4", "r3", "r2", "r1"
        ]
