"""
Mutation coordinator — every write the client sends to the store.

Writes are fire-and-forget from the view's perspective: success means the
store accepted the write, and the resulting state comes back through the
live subscription as a change event. Nothing here touches the view model.

created_at and owner are write-once. That rule is enforced once, in
`freeze_immutable`, and every update path goes through it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from catalog.kernel.types import (
    DEFAULT_STATUS,
    EDITABLE_FIELDS,
    IMMUTABLE_FIELDS,
    STATUSES,
    WRITE_LEVEL,
    ListingRecord,
    Location,
    Price,
    now_utc,
)
from dprop.errors import ListingError, NotFound, PartialShareFailure, PermissionDenied, ValidationError
from dprop.store.base import RecordStore

logger = logging.getLogger(__name__)

_REQUIRED_ON_PUBLISH = ("title", "operation", "property_type", "price", "location")


# ---------------------------------------------------------------------------
# Record overlay
# ---------------------------------------------------------------------------


def freeze_immutable(before: ListingRecord, after: ListingRecord) -> ListingRecord:
    """Return `after` with every immutable field restored from `before`."""
    return replace(after, **{name: getattr(before, name) for name in IMMUTABLE_FIELDS})


def _coerce(name: str, value: Any) -> Any:
    if name == "price" and isinstance(value, Mapping):
        return Price.from_dict(dict(value))
    if name == "location" and isinstance(value, Mapping):
        return Location.from_dict(dict(value))
    return value


def _merge(before: ListingRecord, name: str, value: Any) -> Any:
    # a partial price/location mapping only replaces the parts it names
    if name in ("price", "location") and isinstance(value, Mapping):
        try:
            return replace(getattr(before, name), **value)
        except TypeError as e:
            raise ValidationError(f"Invalid {name} parts: {sorted(value)}", {name: str(e)}) from e
    return value


def apply_overlay(before: ListingRecord, fields: Mapping[str, Any]) -> ListingRecord:
    """
    Overlay edited fields onto a record.

    Only EDITABLE_FIELDS are taken from `fields`; anything else (status,
    collaborators, forged owner/created_at) is ignored. Price and location
    may be given whole or as partial mappings, which are merged onto the
    stored values. The immutable fields are then restored from `before`
    regardless.
    """
    ignored = sorted(set(fields) - EDITABLE_FIELDS)
    if ignored:
        logger.warning("mutations: ignoring non-editable fields on %s: %s", before.id, ", ".join(ignored))

    changes = {name: _merge(before, name, value) for name, value in fields.items() if name in EDITABLE_FIELDS}
    return freeze_immutable(before, replace(before, **changes))


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class MutationCoordinator:
    """Issues create/update/grant/revoke requests to the store."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def _read(self, record_id: str) -> ListingRecord:
        record = await self.store.get(record_id)
        if record is None:
            logger.info("mutations: %s no longer available", record_id)
            raise NotFound(record_id)
        return record

    async def change_status(self, record_id: str, status: str) -> None:
        """
        Overlay only the status and submit the full record.
        Every other field is written back verbatim.
        """
        if status not in STATUSES:
            raise ValidationError(f"Unknown status: {status}", {"status": f"must be one of {sorted(STATUSES)}"})

        before = await self._read(record_id)
        after = freeze_immutable(before, replace(before, status=status))
        await self.store.write(after, record_id)
        logger.info("mutations: %s status %s -> %s", record_id, before.status, status)

    async def edit_fields(self, record_id: str, fields: Mapping[str, Any]) -> None:
        """Overlay edited fields over the current record and submit it."""
        before = await self._read(record_id)
        after = apply_overlay(before, fields)
        await self.store.write(after, record_id)
        logger.info("mutations: %s edited (%s)", record_id, ", ".join(sorted(set(fields) & EDITABLE_FIELDS)))

    async def publish(self, fields: Mapping[str, Any], identity: str | None) -> str:
        """
        Create a new listing owned by `identity`.

        Status starts as available, collaborators empty, created_at now.
        Returns the id assigned by the store.
        """
        if identity is None:
            raise PermissionDenied("Sign in to publish a listing")

        missing = [name for name in _REQUIRED_ON_PUBLISH if name not in fields]
        if missing:
            raise ValidationError(
                f"Missing fields: {', '.join(missing)}",
                {name: "required" for name in missing},
            )

        record = ListingRecord(
            id="",
            title=fields["title"],
            operation=fields["operation"],
            property_type=fields["property_type"],
            price=_coerce("price", fields["price"]),
            location=_coerce("location", fields["location"]),
            image_ref=fields.get("image_ref", ""),
            status=DEFAULT_STATUS,
            created_at=now_utc(),
            owner=identity,
            collaborators={},
        )
        record_id = await self.store.write(record)
        logger.info("mutations: published %s by %s", record_id, identity[:8])
        return record_id

    async def grant_access(self, record_id: str, grantee: str, level: str = WRITE_LEVEL) -> None:
        """
        Two steps, not atomic:
          (a) ask the store's ACL layer to grant `level` to `grantee`
          (b) copy the entry into the record's collaborators map

        If (b) fails after (a) succeeded, the grantee already has access at
        the store but the listing does not show it yet: PartialShareFailure.
        """
        await self.store.grant(record_id, grantee, level)
        logger.info("mutations: granted %s on %s to %s", level, record_id, grantee[:8])
        try:
            await self.sync_collaborator(record_id, grantee, level)
        except ListingError as e:
            logger.warning("mutations: grant on %s applied but collaborators not updated: %s", record_id, e)
            raise PartialShareFailure(record_id, grantee, level, e) from e

    async def revoke_access(self, record_id: str, grantee: str) -> None:
        """Mirror of grant_access: ACL revoke, then drop the collaborators entry."""
        await self.store.revoke(record_id, grantee)
        logger.info("mutations: revoked %s on %s", grantee[:8], record_id)
        try:
            await self.sync_collaborator(record_id, grantee, None)
        except ListingError as e:
            logger.warning("mutations: revoke on %s applied but collaborators not updated: %s", record_id, e)
            raise PartialShareFailure(record_id, grantee, None, e) from e

    async def sync_collaborator(self, record_id: str, grantee: str, level: str | None) -> None:
        """
        Step (b) on its own: re-read, set (or with level None, remove) the
        grantee's collaborators entry, write. Safe to repeat.
        """
        before = await self._read(record_id)
        collaborators = dict(before.collaborators)
        if level is None:
            collaborators.pop(grantee, None)
        else:
            collaborators[grantee] = level

        if collaborators == before.collaborators:
            logger.debug("mutations: collaborators on %s already up to date", record_id)
            return

        after = freeze_immutable(before, replace(before, collaborators=collaborators))
        await self.store.write(after, record_id)
