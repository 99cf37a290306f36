"""
Error taxonomy for the listing client.

None of these is fatal: each is recoverable at the view level by re-issuing
the user action that caused it.
"""

from __future__ import annotations

from typing import Any

import pydantic


class ListingError(Exception):
    """Base class for every error the client surfaces."""
    pass


class PermissionDenied(ListingError):
    """
    The store rejected a write or grant.
    Surfaced to the user as-is, never retried: the local capability was stale.
    """
    pass


class NotFound(ListingError):
    """The record vanished while an edit, status change or share was in flight."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Listing {record_id} is no longer available")
        self.record_id = record_id


class ValidationError(ListingError):
    """
    Malformed user input, caught before anything is sent to the store.
    `field_errors` maps a field name to a message suitable for the form.
    """

    def __init__(self, message: str, field_errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.field_errors = field_errors or {}

    @classmethod
    def from_pydantic(cls, exc: pydantic.ValidationError) -> ValidationError:
        field_errors: dict[str, str] = {}
        for err in exc.errors():
            loc = ".".join(str(part) for part in err["loc"]) or "__root__"
            field_errors.setdefault(loc, err["msg"])
        fields = ", ".join(sorted(field_errors))
        return cls(f"Invalid input: {fields}", field_errors)


class SubscriptionFailure(ListingError):
    """The live stream broke; the view is degraded until a resubscribe succeeds."""
    pass


class PartialShareFailure(ListingError):
    """
    The ACL change was accepted by the store but the collaborators map in the
    record payload could not be updated. Retrying the map update is safe.
    """

    def __init__(self, record_id: str, grantee: str, level: str | None, cause: BaseException) -> None:
        super().__init__(f"Access for {grantee} on {record_id} changed but the listing was not updated: {cause}")
        self.record_id = record_id
        self.grantee = grantee
        self.level = level  # None when the failed step was a revoke
        self.cause = cause


class StoreError(ListingError):
    """Transport-level fault talking to the store."""

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.detail = detail
