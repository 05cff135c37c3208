# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Agent Society - ILP peer discovery and SPSP over Nostr.

Agents find payment peers through their NIP-02 follow graph and exchange
payment setup parameters over relays instead of HTTPS.

Architecture:
  Follow lists (kind 3)
    → Social graph (follows, followers, credit limits)
    → Peer advertisements (kind 10032, latest per author)
    → Connector peer configs (credit limit + first settlement method)
  SPSP
    → Static parameters (kind 10047)
    → Encrypted request/response (kinds 23194/23195, NIP-44)

CLI entry point: ``agent-society``
"""

from .bootstrap import BootstrapResult, BootstrapService, KnownPeer
from .core.exceptions import (
    AgentSocietyError,
    BootstrapError,
    CorrelationTimeoutError,
    DecryptionError,
    InvalidIdentityError,
    InvalidRecordError,
    PeerDiscoveryError,
    SpspError,
    TransportError,
)
from .crypto.keys import NostrKeys
from .discovery.peer_discovery import DiscoveredPeer, PeerDiscovery
from .routing import ConnectorAdmin, PeerConfig
from .spsp.client import SpspClient
from .spsp.correlator import EncryptedCorrelator
from .spsp.server import SpspServer
from .transport.base import Subscription, Transport
from .transport.relay_pool import RelayPool
from .trust.social_graph import SocialGraph, TrustConfig, TrustScore

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Errors
    "AgentSocietyError",
    "BootstrapError",
    "CorrelationTimeoutError",
    "DecryptionError",
    "InvalidIdentityError",
    "InvalidRecordError",
    "PeerDiscoveryError",
    "SpspError",
    "TransportError",
    # Identity
    "NostrKeys",
    # Transport
    "RelayPool",
    "Subscription",
    "Transport",
    # Trust
    "SocialGraph",
    "TrustConfig",
    "TrustScore",
    # Discovery
    "DiscoveredPeer",
    "PeerDiscovery",
    # Routing
    "ConnectorAdmin",
    "PeerConfig",
    # SPSP
    "EncryptedCorrelator",
    "SpspClient",
    "SpspServer",
    # Bootstrap
    "BootstrapResult",
    "BootstrapService",
    "KnownPeer",
]
