"""
Pydantic models for dprop.

Form input crosses into the kernel only through these models.
"""

from dprop.models.filters import SearchFilters
from dprop.models.listing import GrantRequest, ListingEdit, ListingForm, StatusChange

__all__ = [
    "SearchFilters",
    "ListingForm",
    "ListingEdit",
    "GrantRequest",
    "StatusChange",
]
