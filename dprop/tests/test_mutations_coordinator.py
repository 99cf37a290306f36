"""
MutationCoordinator -- writes against MemoryStore.

Covers:
  - status change rewrites the full record with only status changed
  - immutable fields survive forged edits
  - partial price/location edits merge onto the stored values
  - publish defaults and failures
  - two-step grant, partial failure and retry
  - revoke mirrors grant
  - records vanishing mid-flight raise NotFound
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime

import pytest

from catalog.kernel.events import make_record
from catalog.kernel.types import Location, Price
from dprop.errors import NotFound, PartialShareFailure, PermissionDenied, StoreError, ValidationError
from dprop.services.mutations import MutationCoordinator, apply_overlay, freeze_immutable

OWNER = "0xa11ce"
FRIEND = "0xb0b"
STRANGER = "0xcafe"

FORGED = datetime(2030, 1, 1, tzinfo=UTC)


@pytest.fixture
def coordinator(store):
    return MutationCoordinator(store)


# ============================================================================
# 1. Overlay helpers
# ============================================================================


class TestOverlay:
    def test_freeze_restores_immutables(self):
        before = make_record(1, owner=OWNER)
        forged = replace(before, owner=STRANGER, created_at=FORGED, title="x")

        after = freeze_immutable(before, forged)
        assert after.owner == OWNER
        assert after.created_at == before.created_at
        assert after.title == "x"

    def test_overlay_ignores_non_editable(self, caplog):
        before = make_record(1, owner=OWNER)
        with caplog.at_level(logging.WARNING):
            after = apply_overlay(
                before,
                {"title": "Renamed", "owner": STRANGER, "created_at": FORGED, "status": "sold"},
            )

        assert after == replace(before, title="Renamed")
        assert "created_at, owner, status" in caplog.text

    def test_overlay_merges_nested(self):
        before = make_record(1)
        after = apply_overlay(
            before,
            {"price": {"amount": 5, "currency": "GBP"}, "location": {"city": "Bath", "lat": 51.38, "lng": -2.36}},
        )
        assert after.price == Price(amount=5, currency="GBP")
        assert after.location == replace(before.location, city="Bath", lat=51.38, lng=-2.36)
        assert after.location.country == "France"

    def test_overlay_partial_price_keeps_currency(self):
        before = make_record(1, currency="EUR", amount=900)
        after = apply_overlay(before, {"price": {"amount": 5}})
        assert after.price == Price(amount=5, currency="EUR")

    def test_overlay_whole_values_replace(self):
        before = make_record(1, lat=48.8, lng=2.3)
        after = apply_overlay(before, {"location": Location(city="Bath")})
        assert after.location == Location(city="Bath")

    def test_overlay_unknown_nested_part(self):
        with pytest.raises(ValidationError):
            apply_overlay(make_record(1), {"price": {"value": 5}})


# ============================================================================
# 2. Status and edits
# ============================================================================


class TestStatus:
    @pytest.mark.asyncio
    async def test_only_status_changes(self, coordinator, store):
        before = store.records["r4"]
        await coordinator.change_status("r4", "reserved")
        assert store.records["r4"] == replace(before, status="reserved")

    @pytest.mark.asyncio
    async def test_unknown_status(self, coordinator, store):
        with pytest.raises(ValidationError):
            await coordinator.change_status("r4", "gone")
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_missing_record(self, coordinator):
        with pytest.raises(NotFound) as exc:
            await coordinator.change_status("nope", "sold")
        assert exc.value.record_id == "nope"
        assert "no longer available" in str(exc.value)

    @pytest.mark.asyncio
    async def test_write_collaborator(self, coordinator, store):
        await coordinator.grant_access("r4", FRIEND)
        store.set_identity(FRIEND)
        await coordinator.change_status("r4", "sold")
        assert store.records["r4"].status == "sold"

    @pytest.mark.asyncio
    async def test_read_collaborator_denied(self, coordinator, store):
        await coordinator.grant_access("r4", FRIEND, "read")
        store.set_identity(FRIEND)
        with pytest.raises(PermissionDenied):
            await coordinator.change_status("r4", "sold")


class TestEdit:
    @pytest.mark.asyncio
    async def test_forged_immutables_ignored(self, coordinator, store):
        before = store.records["r3"]
        await coordinator.edit_fields("r3", {"title": "New", "owner": STRANGER, "created_at": FORGED})

        after = store.records["r3"]
        assert after.title == "New"
        assert after.owner == before.owner
        assert after.created_at == before.created_at

    @pytest.mark.asyncio
    async def test_edit_deleted_record(self, coordinator, store):
        await store.delete("r3")
        with pytest.raises(NotFound):
            await coordinator.edit_fields("r3", {"title": "New"})


# ============================================================================
# 3. Publish
# ============================================================================


class TestPublish:
    FIELDS = {
        "title": "Cottage",
        "operation": "sale",
        "property_type": "house",
        "price": Price(amount=250_000, currency="GBP"),
        "location": Location(country="UK", city="York"),
    }

    @pytest.mark.asyncio
    async def test_defaults(self, coordinator, store):
        record_id = await coordinator.publish(self.FIELDS, OWNER)

        record = store.records[record_id]
        assert record.id == record_id
        assert record.owner == OWNER
        assert record.status == "available"
        assert record.collaborators == {}
        assert record.image_ref == ""
        assert (datetime.now(UTC) - record.created_at).total_seconds() < 60

    @pytest.mark.asyncio
    async def test_signed_out(self, coordinator, store):
        with pytest.raises(PermissionDenied):
            await coordinator.publish(self.FIELDS, None)
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_missing_fields(self, coordinator):
        with pytest.raises(ValidationError) as exc:
            await coordinator.publish({"title": "Cottage"}, OWNER)
        assert set(exc.value.field_errors) == {"operation", "property_type", "price", "location"}

    @pytest.mark.asyncio
    async def test_identity_mismatch_rejected_by_store(self, coordinator):
        with pytest.raises(PermissionDenied):
            await coordinator.publish(self.FIELDS, STRANGER)


# ============================================================================
# 4. Sharing
# ============================================================================


class TestGrant:
    @pytest.mark.asyncio
    async def test_both_steps(self, coordinator, store):
        await coordinator.grant_access("r5", FRIEND)
        assert store.acls["r5"] == {FRIEND: "write"}
        assert store.records["r5"].collaborators == {FRIEND: "write"}

    @pytest.mark.asyncio
    async def test_partial_failure_then_retry(self, coordinator, store):
        store.fail_writes.append(StoreError("disk full"))

        with pytest.raises(PartialShareFailure) as exc:
            await coordinator.grant_access("r5", FRIEND)

        failure = exc.value
        assert (failure.record_id, failure.grantee, failure.level) == ("r5", FRIEND, "write")
        assert isinstance(failure.cause, StoreError)
        # the ACL is in place, the listing does not show it yet
        assert store.acls["r5"] == {FRIEND: "write"}
        assert store.records["r5"].collaborators == {}

        await coordinator.sync_collaborator(failure.record_id, failure.grantee, failure.level)
        assert store.records["r5"].collaborators == {FRIEND: "write"}

    @pytest.mark.asyncio
    async def test_acl_step_denied(self, coordinator, store):
        store.set_identity(FRIEND)
        with pytest.raises(PermissionDenied):
            await coordinator.grant_access("r5", STRANGER)
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_regrant_is_noop_write(self, coordinator, store):
        await coordinator.grant_access("r5", FRIEND)
        writes = len(store.writes)
        await coordinator.grant_access("r5", FRIEND)
        assert len(store.writes) == writes

    @pytest.mark.asyncio
    async def test_change_level(self, coordinator, store):
        await coordinator.grant_access("r5", FRIEND)
        await coordinator.grant_access("r5", FRIEND, "read")
        assert store.records["r5"].collaborators == {FRIEND: "read"}


class TestRevoke:
    @pytest.mark.asyncio
    async def test_both_steps(self, coordinator, store):
        await coordinator.grant_access("r5", FRIEND)
        await coordinator.revoke_access("r5", FRIEND)
        assert store.acls["r5"] == {}
        assert store.records["r5"].collaborators == {}

    @pytest.mark.asyncio
    async def test_partial_failure(self, coordinator, store):
        await coordinator.grant_access("r5", FRIEND)
        store.fail_writes.append(StoreError("timeout"))

        with pytest.raises(PartialShareFailure) as exc:
            await coordinator.revoke_access("r5", FRIEND)
        assert exc.value.level is None
        assert store.records["r5"].collaborators == {FRIEND: "write"}

        await coordinator.sync_collaborator("r5", FRIEND, None)
        assert store.records["r5"].collaborators == {}

    @pytest.mark.asyncio
    async def test_unknown_grantee(self, coordinator, store):
        writes = len(store.writes)
        await coordinator.revoke_access("r5", STRANGER)
        assert len(store.writes) == writes
