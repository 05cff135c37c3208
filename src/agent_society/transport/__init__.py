"""Agent Society transport - relay access contract and the aiohttp relay pool."""

from .base import Filter, RecordCallback, Subscription, Transport, first_success, matches_filter
from .relay_pool import RelayPool

__all__ = [
    "Filter",
    "RecordCallback",
    "Subscription",
    "Transport",
    "first_success",
    "matches_filter",
    "RelayPool",
]
