# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Routing collaborator - the connector admin surface we push peers into.

The connector itself (packet forwarding, settlement) lives elsewhere; this
module only describes what discovery and bootstrap hand to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from .events.models import SettlementMethod

PEER_ID_PREFIX = "nostr-"


def peer_id_for(pubkey: str) -> str:
    """Connector peer id derived from a Nostr identity."""
    return PEER_ID_PREFIX + pubkey[:16]


class ConnectorAdmin(Protocol):
    """Admin operations of an ILP connector."""

    async def add_peer(self, peer_id: str, btp_url: str, auth_token: str | None = None) -> Any:
        """Register a BTP peer."""
        ...

    async def add_route(self, prefix: str, next_hop: str, priority: int = 0) -> Any:
        """Route an ILP address prefix to a registered peer."""
        ...


@dataclass
class PeerConfig:
    """Connector configuration for one discovered peer."""

    pubkey: str
    ilp_address: str
    btp_endpoint: str
    credit_limit: int
    settlement: SettlementMethod | None = None
    petname: str | None = None

    @property
    def peer_id(self) -> str:
        return peer_id_for(self.pubkey)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "pubkey": self.pubkey,
            "peer_id": self.peer_id,
            "ilp_address": self.ilp_address,
            "btp_endpoint": self.btp_endpoint,
            "credit_limit": str(self.credit_limit),
            "settlement": (
                {"type": self.settlement.type, "details": list(self.settlement.details)}
                if self.settlement
                else None
            ),
            "petname": self.petname,
        }
