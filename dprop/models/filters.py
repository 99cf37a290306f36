"""Search filter model — raw search-form input to a canonical QuerySpec."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from catalog.kernel.query import build_query
from catalog.kernel.types import QuerySpec
from dprop.config import settings


class SearchFilters(BaseModel):
    """
    What the search form sends. Every filter is optional.

    Blank inputs mean "no filter" and are dropped, so they never reach the
    store as match-all values.
    """

    model_config = {"extra": "forbid", "str_strip_whitespace": True}

    operation: Literal["rent", "sale"] | None = None
    property_type: Literal["apartment", "house", "office", "land", "commercial", "room"] | None = None
    city: str | None = Field(default=None, max_length=100)
    price_min: float | None = Field(default=None, ge=0)
    price_max: float | None = Field(default=None, ge=0)
    order_field: Literal["created_at", "price", "title"] = "created_at"
    direction: Literal["desc", "asc"] = "desc"

    @field_validator("operation", "property_type", "city", "price_min", "price_max", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _price_bounds(self) -> SearchFilters:
        if self.price_min is not None and self.price_max is not None and self.price_min > self.price_max:
            raise ValueError("price_min must not exceed price_max")
        return self

    def to_query(self, page_limit: int | None = None) -> QuerySpec:
        return build_query(
            operation=self.operation,
            property_type=self.property_type,
            city=self.city,
            price_min=self.price_min,
            price_max=self.price_max,
            order_field=self.order_field,
            direction=self.direction,
            page_limit=page_limit or settings.PAGE_SIZE,
        )
