"""Listing form models — what the publish, edit and share forms send."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from catalog.kernel.types import Location, Price


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ListingForm(BaseModel):
    """
    What the client sends to publish a listing.

    Extra keys are ignored: the form never carries owner, created_at,
    status or collaborators, and anything forged under those names is dropped.
    """

    model_config = {"extra": "ignore", "str_strip_whitespace": True}

    title: str = Field(min_length=1, max_length=200)
    operation: Literal["rent", "sale"] = "sale"
    property_type: Literal["apartment", "house", "office", "land", "commercial", "room"] = "apartment"
    price: float = Field(ge=0)
    currency: Literal["USD", "EUR", "GBP"] = "USD"
    country: str = Field(default="", max_length=100)
    city: str = Field(min_length=1, max_length=100)
    zone: str = Field(default="", max_length=100)
    address: str = Field(default="", max_length=300)
    image_ref: str = Field(default="", max_length=2000)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)

    @field_validator("lat", "lng", "price", mode="before")
    @classmethod
    def _blank_numbers(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def to_fields(self) -> dict[str, Any]:
        """Record-level fields this form sets, ready to overlay onto a listing."""
        return {
            "title": self.title,
            "operation": self.operation,
            "property_type": self.property_type,
            "price": Price(amount=self.price, currency=self.currency),
            "location": Location(
                country=self.country,
                city=self.city,
                zone=self.zone,
                address=self.address,
                lat=self.lat,
                lng=self.lng,
            ),
            "image_ref": self.image_ref,
        }


class ListingEdit(BaseModel):
    """
    What the edit form sends. Every field is optional.

    Only the keys the caller actually sent end up in `to_fields()`, so an
    edit never resets a field it did not mention. Price and location parts
    come back as partial mappings that the coordinator merges onto the
    stored values.
    """

    model_config = {"extra": "ignore", "str_strip_whitespace": True}

    title: str | None = Field(default=None, min_length=1, max_length=200)
    operation: Literal["rent", "sale"] | None = None
    property_type: Literal["apartment", "house", "office", "land", "commercial", "room"] | None = None
    price: float | None = Field(default=None, ge=0)
    currency: Literal["USD", "EUR", "GBP"] | None = None
    country: str | None = Field(default=None, max_length=100)
    city: str | None = Field(default=None, min_length=1, max_length=100)
    zone: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=300)
    image_ref: str | None = Field(default=None, max_length=2000)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)

    @field_validator("lat", "lng", "price", mode="before")
    @classmethod
    def _blank_numbers(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def to_fields(self) -> dict[str, Any]:
        """Record-level fields this edit sets; nested parts stay partial."""
        sent = self.model_dump(exclude_unset=True)
        fields: dict[str, Any] = {
            name: sent[name]
            for name in ("title", "operation", "property_type", "image_ref")
            if sent.get(name) is not None
        }

        price = {}
        if sent.get("price") is not None:
            price["amount"] = sent["price"]
        if sent.get("currency") is not None:
            price["currency"] = sent["currency"]
        if price:
            fields["price"] = price

        # lat/lng may be cleared explicitly; text parts only change when given
        location = {name: sent[name] for name in ("country", "city", "zone", "address") if sent.get(name) is not None}
        location.update({name: sent[name] for name in ("lat", "lng") if name in sent})
        if location:
            fields["location"] = location
        return fields


class GrantRequest(BaseModel):
    """What the share form sends to grant (or revoke) access."""

    model_config = {"extra": "forbid", "str_strip_whitespace": True}

    grantee: str = Field(min_length=3, max_length=100, pattern=r"^0x[0-9a-fA-F]+$")
    level: Literal["read", "write"] = "write"


class StatusChange(BaseModel):
    """What the status buttons send."""

    model_config = {"extra": "forbid"}

    status: Literal["available", "reserved", "sold"]
