"""
Catalog Kernel — Capability Resolution

Derives what the current identity may *attempt* on a record from the
record's owner and its denormalized collaborators map.

This is a hint for the client. The store enforces ACLs on every write and
may reject something resolved here as writable (stale collaborators map,
revoked grant); that rejection is an expected outcome, not a bug.
"""

from __future__ import annotations

from catalog.kernel.types import (
    CAP_NONE,
    CAP_READ,
    CAP_WRITE_COLLABORATOR,
    CAP_WRITE_OWNER,
    WRITE_LEVEL,
    ListingRecord,
)


def resolve_capability(identity: str | None, record: ListingRecord) -> str:
    """
    Capability of `identity` against `record`.

    write-owner         identity is the record owner
    write-collaborator  identity holds a write entry in collaborators
    read                any other signed-in identity
    none                nobody is signed in
    """
    if identity is None:
        return CAP_NONE
    if identity == record.owner:
        return CAP_WRITE_OWNER
    if record.collaborators.get(identity) == WRITE_LEVEL:
        return CAP_WRITE_COLLABORATOR
    return CAP_READ


def can_edit(capability: str) -> bool:
    """Status changes and field edits: owner or write collaborator."""
    return capability in (CAP_WRITE_OWNER, CAP_WRITE_COLLABORATOR)


def can_share(capability: str) -> bool:
    """Granting or revoking access: owner only."""
    return capability == CAP_WRITE_OWNER
