# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Peer Discovery - find ILP peers through the NIP-02 follow graph.

Steps:
1. Resolve the follow list of an identity
2. Query peer advertisements (kind 10032) authored by the followed set
3. Keep the latest valid advertisement per author
4. Map peers to connector configurations with a credit function

Authors without a valid advertisement are simply absent from the results.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from ..core.exceptions import InvalidRecordError, PeerDiscoveryError, TransportError
from ..events.builders import peer_advertisement_to_dict
from ..events.kinds import ILP_PEER_INFO_KIND
from ..events.models import FollowEdge, PeerAdvertisement, Record, validate_identity
from ..events.parsers import parse_peer_info
from ..events.resolver import ReplaceableResolver
from ..routing import ConnectorAdmin, PeerConfig
from ..transport.base import Subscription, Transport
from ..trust.social_graph import SocialGraph

logger = logging.getLogger(__name__)

DEFAULT_FOLLOWED_CREDIT = 1000

CreditFunction = Callable[[str, bool], "int | Awaitable[int]"]


def default_credit(pubkey: str, is_followed: bool) -> int:
    """Flat limit for followed peers, nothing for everyone else."""
    return DEFAULT_FOLLOWED_CREDIT if is_followed else 0


@dataclass
class DiscoveredPeer:
    """A followed identity with a valid peer advertisement."""

    pubkey: str
    info: PeerAdvertisement
    created_at: int
    petname: str | None = None
    is_followed: bool = True

    @classmethod
    def from_record(cls, record: Record, edge: FollowEdge | None = None) -> DiscoveredPeer:
        return cls(
            pubkey=record.pubkey,
            info=parse_peer_info(record),
            created_at=record.created_at,
            petname=edge.petname if edge else None,
            is_followed=edge is not None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "pubkey": self.pubkey,
            "petname": self.petname,
            "is_followed": self.is_followed,
            "created_at": self.created_at,
            "info": peer_advertisement_to_dict(self.info),
        }


class PeerDiscovery:
    """
    Discovers ILP peers from the social graph of an identity.

    Responsible for:
    - Session-scoped latest-advertisement state (until ``invalidate``)
    - Peer configuration for the connector
    - Live advertisement updates for followed peers
    """

    def __init__(
        self,
        transport: Transport,
        relays: Sequence[str],
        social_graph: SocialGraph | None = None,
    ):
        self.transport = transport
        self.relays = list(relays)
        self._graph = social_graph
        self._owns_graph = social_graph is None
        self._resolver = ReplaceableResolver(validate=parse_peer_info)

    def _social_graph(self, pubkey: str) -> SocialGraph:
        if self._graph is None:
            self._graph = SocialGraph(self.transport, self.relays, pubkey)
        return self._graph

    # -------------------------------------------------------------------------
    # FOLLOWS
    # -------------------------------------------------------------------------

    async def get_follows(self, pubkey: str) -> list[str]:
        """Identities followed by ``pubkey``, in follow-list order."""
        pubkey = validate_identity(pubkey)
        edges = await self._social_graph(pubkey).get_follow_edges(pubkey)
        return [edge.to_pubkey for edge in edges]

    # -------------------------------------------------------------------------
    # DISCOVERY
    # -------------------------------------------------------------------------

    async def discover_peers(self, pubkey: str) -> list[DiscoveredPeer]:
        """Followed identities of ``pubkey`` that advertise valid peer info.

        Raises:
            InvalidIdentityError: if ``pubkey`` is not a valid pubkey
            PeerDiscoveryError: if the relays could not be queried
        """
        pubkey = validate_identity(pubkey)
        try:
            edges = await self._social_graph(pubkey).get_follow_edges(pubkey)
            if not edges:
                logger.debug(f"{pubkey[:16]}... follows nobody, no peers to discover")
                return []

            authors = [edge.to_pubkey for edge in edges]
            records = await self.transport.query_all(
                self.relays, {"kinds": [ILP_PEER_INFO_KIND], "authors": authors}
            )
        except TransportError as e:
            raise PeerDiscoveryError(f"Peer discovery for {pubkey[:16]}... failed", cause=e) from e

        wanted = set(authors)
        self._resolver.offer_all(
            r for r in records if r.kind == ILP_PEER_INFO_KIND and r.pubkey in wanted
        )

        peers = []
        for edge in edges:
            latest = self._resolver.latest(edge.to_pubkey, ILP_PEER_INFO_KIND)
            if latest is not None:
                peers.append(DiscoveredPeer.from_record(latest, edge))

        logger.info(f"Discovered {len(peers)} peers among {len(edges)} follows")
        return peers

    async def get_peer_info(self, pubkey: str) -> PeerAdvertisement | None:
        """Latest valid advertisement of one identity, or None."""
        pubkey = validate_identity(pubkey)
        latest = self._resolver.latest(pubkey, ILP_PEER_INFO_KIND)
        if latest is None:
            records = await self.transport.query_all(
                self.relays, {"kinds": [ILP_PEER_INFO_KIND], "authors": [pubkey]}
            )
            self._resolver.offer_all(
                r for r in records if r.kind == ILP_PEER_INFO_KIND and r.pubkey == pubkey
            )
            latest = self._resolver.latest(pubkey, ILP_PEER_INFO_KIND)
        return parse_peer_info(latest) if latest else None

    async def get_peer_configs(
        self,
        pubkey: str,
        credit_fn: CreditFunction | None = None,
    ) -> list[PeerConfig]:
        """Connector configurations for every discovered peer.

        ``credit_fn(pubkey, is_followed)`` may be sync (for example
        ``SocialGraph.trust_calculator()``) or async.
        """
        calculate = credit_fn or default_credit
        configs = []
        for peer in await self.discover_peers(pubkey):
            credit = calculate(peer.pubkey, peer.is_followed)
            if inspect.isawaitable(credit):
                credit = await credit
            configs.append(
                PeerConfig(
                    pubkey=peer.pubkey,
                    ilp_address=peer.info.ilp_address,
                    btp_endpoint=peer.info.btp_endpoint,
                    credit_limit=credit,
                    settlement=peer.info.settlement[0] if peer.info.settlement else None,
                    petname=peer.petname,
                )
            )
        return configs

    async def sync_to_connector(
        self,
        pubkey: str,
        admin: ConnectorAdmin,
        credit_fn: CreditFunction | None = None,
    ) -> list[PeerConfig]:
        """Register every discovered peer and its route with the connector."""
        configs = await self.get_peer_configs(pubkey, credit_fn)
        for config in configs:
            await admin.add_peer(config.peer_id, config.btp_endpoint)
            await admin.add_route(config.ilp_address, config.peer_id, 0)
            logger.debug(f"Synced peer {config.peer_id} -> {config.ilp_address}")
        logger.info(f"Synced {len(configs)} peers to connector")
        return configs

    # -------------------------------------------------------------------------
    # LIVE UPDATES
    # -------------------------------------------------------------------------

    async def subscribe_to_updates(
        self,
        pubkey: str,
        callback: Callable[[DiscoveredPeer], Any],
    ) -> Subscription:
        """Notify ``callback`` of strictly newer advertisements from followed peers.

        The subscription keeps its own latest-seen state, seeded from what
        this session already knows. Callback errors are logged and do not
        end the subscription.
        """
        pubkey = validate_identity(pubkey)
        edges = {edge.to_pubkey: edge for edge in await self._social_graph(pubkey).get_follow_edges(pubkey)}

        seen = ReplaceableResolver(validate=parse_peer_info)
        for record in self._resolver.records(ILP_PEER_INFO_KIND):
            if record.pubkey in edges:
                seen.offer(record)

        def on_record(record: Record) -> None:
            edge = edges.get(record.pubkey)
            if edge is None or record.kind != ILP_PEER_INFO_KIND:
                return
            if not seen.offer(record, strict=True):
                return
            try:
                peer = DiscoveredPeer.from_record(record, edge)
            except InvalidRecordError:
                return
            try:
                callback(peer)
            except Exception as e:
                logger.warning(f"Peer update callback failed for {record.pubkey[:16]}...: {e}")

        flt = {"kinds": [ILP_PEER_INFO_KIND], "authors": list(edges)}
        return self.transport.subscribe(self.relays, flt, on_record)

    def invalidate(self) -> None:
        """Forget every advertisement seen in this session.

        A social graph created by this object has its follow edges dropped
        too. A graph passed in by the caller is left to the caller.
        """
        self._resolver.clear()
        if self._owns_graph and self._graph is not None:
            self._graph.invalidate()
