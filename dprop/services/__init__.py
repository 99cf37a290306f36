"""
Service layer for dprop: live subscription, mutations, markers, session.
"""

from dprop.services.markers import Marker, MarkerIndex
from dprop.services.mutations import MutationCoordinator
from dprop.services.session import ListingSession, ViewRow
from dprop.services.subscription import LiveSubscription

__all__ = [
    "ListingSession",
    "ViewRow",
    "LiveSubscription",
    "MutationCoordinator",
    "MarkerIndex",
    "Marker",
]
