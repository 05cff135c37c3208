"""Agent Society discovery - ILP peers from the social graph."""

from .peer_discovery import (
    DEFAULT_FOLLOWED_CREDIT,
    CreditFunction,
    DiscoveredPeer,
    PeerDiscovery,
    default_credit,
)

__all__ = [
    "DEFAULT_FOLLOWED_CREDIT",
    "CreditFunction",
    "DiscoveredPeer",
    "PeerDiscovery",
    "default_credit",
]
