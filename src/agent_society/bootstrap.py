# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Bootstrap - join the network through a handful of known peers.

For each known peer, in order:
1. Validate its identity
2. Query its relay for its peer advertisement (kind 10032)
3. Run an encrypted SPSP exchange over that same relay
4. Register it with the connector (peer + route)
5. Publish our own advertisement to its relay

A failing peer is logged and skipped; the others still proceed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from .core.exceptions import (
    AgentSocietyError,
    BootstrapError,
)
from .crypto.keys import NostrKeys
from .events.builders import build_peer_info_event, peer_advertisement_to_dict
from .events.kinds import ILP_PEER_INFO_KIND
from .events.models import PeerAdvertisement, SpspInfo, validate_identity
from .events.parsers import parse_peer_info
from .events.resolver import resolve_latest, resolve_latest_by_author
from .routing import ConnectorAdmin, peer_id_for
from .spsp.client import SpspClient
from .spsp.correlator import DEFAULT_REQUEST_TIMEOUT
from .transport.base import Transport

logger = logging.getLogger(__name__)

DEFAULT_QUERY_TIMEOUT = 5.0


@dataclass(frozen=True)
class KnownPeer:
    """A seed peer reachable at a known relay."""

    pubkey: str
    relay_url: str
    btp_endpoint: str


@dataclass
class BootstrapResult:
    """Outcome of a successful bootstrap with one known peer."""

    known_peer: KnownPeer
    peer_info: PeerAdvertisement
    spsp_info: SpspInfo

    def to_dict(self) -> dict[str, Any]:
        return {
            "pubkey": self.known_peer.pubkey,
            "relay_url": self.known_peer.relay_url,
            "peer_id": peer_id_for(self.known_peer.pubkey),
            "peer_info": peer_advertisement_to_dict(self.peer_info),
            "destination_account": self.spsp_info.destination_account,
        }


class BootstrapService:
    """
    Bootstraps into the ILP network via known Nostr peers.

    Responsible for:
    - Sequential, partial-failure-tolerant handshakes with seed peers
    - Registering bootstrapped peers with the connector
    - Announcing our own advertisement on each seed relay
    """

    def __init__(
        self,
        transport: Transport,
        keys: NostrKeys,
        own_info: PeerAdvertisement,
        known_peers: Sequence[KnownPeer],
        admin: ConnectorAdmin | None = None,
        spsp_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        query_timeout: float = DEFAULT_QUERY_TIMEOUT,
    ):
        self.transport = transport
        self.keys = keys
        self.own_info = own_info
        self.known_peers = list(known_peers)
        self.admin = admin
        self.spsp_timeout = spsp_timeout
        self.query_timeout = query_timeout

    @property
    def pubkey(self) -> str:
        return self.keys.public_key

    def set_connector_admin(self, admin: ConnectorAdmin) -> None:
        self.admin = admin

    async def bootstrap(self) -> list[BootstrapResult]:
        """Bootstrap with every known peer, one after another.

        Returns:
            Results for the peers that fully succeeded, in seed order
        """
        results = []
        for known_peer in self.known_peers:
            label = str(known_peer.pubkey)[:16]
            try:
                result = await self.bootstrap_with_peer(known_peer)
            except Exception as e:
                logger.warning(f"Bootstrap with {label}... failed: {e}")
                continue
            results.append(result)
            logger.info(f"Bootstrapped with {label}...")

        logger.info(f"Bootstrap complete: {len(results)}/{len(self.known_peers)} peers")
        return results

    async def bootstrap_with_peer(self, known_peer: KnownPeer) -> BootstrapResult:
        """Run the full bootstrap sequence against a single known peer.

        Raises:
            InvalidIdentityError: if the peer's pubkey is malformed
            BootstrapError: if any later step fails
        """
        validate_identity(known_peer.pubkey)

        logger.debug(f"Querying {known_peer.relay_url} for peer info")
        peer_info = await self._query_peer_info(known_peer)

        logger.debug(f"SPSP handshake with {known_peer.pubkey[:16]}...")
        spsp_info = await self._spsp_handshake(known_peer)

        if self.admin is not None:
            await self._add_peer_to_connector(known_peer, peer_info, spsp_info)

        await self.publish_to_relay(known_peer.relay_url)

        return BootstrapResult(known_peer=known_peer, peer_info=peer_info, spsp_info=spsp_info)

    async def _query_peer_info(self, known_peer: KnownPeer) -> PeerAdvertisement:
        flt = {"kinds": [ILP_PEER_INFO_KIND], "authors": [known_peer.pubkey]}
        try:
            records = await asyncio.wait_for(
                self.transport.query_all([known_peer.relay_url], flt),
                timeout=self.query_timeout,
            )
        except asyncio.TimeoutError as e:
            raise BootstrapError(f"Timed out querying {known_peer.relay_url}", cause=e) from e
        except AgentSocietyError as e:
            raise BootstrapError(f"Failed to query peer info from {known_peer.relay_url}", cause=e) from e

        latest = resolve_latest(
            (r for r in records if r.pubkey == known_peer.pubkey),
            validate=parse_peer_info,
        )
        if latest is None:
            raise BootstrapError(
                f"No valid kind {ILP_PEER_INFO_KIND} record found for peer {known_peer.pubkey[:16]}..."
            )
        return parse_peer_info(latest)

    async def _spsp_handshake(self, known_peer: KnownPeer) -> SpspInfo:
        client = SpspClient(
            self.transport, [known_peer.relay_url], self.keys, timeout=self.spsp_timeout
        )
        try:
            return await client.request_spsp_info(known_peer.pubkey)
        except AgentSocietyError as e:
            raise BootstrapError(
                f"SPSP handshake failed with {known_peer.pubkey[:16]}...", cause=e
            ) from e

    async def _add_peer_to_connector(
        self,
        known_peer: KnownPeer,
        peer_info: PeerAdvertisement,
        spsp_info: SpspInfo,
    ) -> None:
        peer_id = peer_id_for(known_peer.pubkey)
        try:
            await self.admin.add_peer(peer_id, peer_info.btp_endpoint, spsp_info.shared_secret)
            await self.admin.add_route(peer_info.ilp_address, peer_id, 0)
        except Exception as e:
            raise BootstrapError(f"Failed to add peer {peer_id} to connector", cause=e) from e
        logger.debug(f"Registered {peer_id} for {peer_info.ilp_address}")

    async def publish_to_relay(self, relay_url: str) -> str:
        """Publish our own peer advertisement to one relay.

        Raises:
            BootstrapError: if the relay did not accept it
        """
        record = self.keys.sign(build_peer_info_event(self.own_info))
        try:
            return await self.transport.publish_any([relay_url], record)
        except AgentSocietyError as e:
            raise BootstrapError(f"Failed to publish ILP info to {relay_url}", cause=e) from e

    async def discover_peers_via_relay(
        self,
        relay_url: str,
        exclude: Iterable[str] = (),
    ) -> dict[str, PeerAdvertisement]:
        """Latest valid advertisement per author seen on one relay.

        Our own pubkey and ``exclude`` are left out.

        Raises:
            BootstrapError: if the relay could not be queried
        """
        excluded = {self.pubkey, *exclude}
        try:
            records = await asyncio.wait_for(
                self.transport.query_all([relay_url], {"kinds": [ILP_PEER_INFO_KIND]}),
                timeout=self.query_timeout,
            )
        except (asyncio.TimeoutError, AgentSocietyError) as e:
            raise BootstrapError(f"Failed to discover peers from {relay_url}", cause=e) from e

        latest = resolve_latest_by_author(
            (r for r in records if r.pubkey not in excluded),
            ILP_PEER_INFO_KIND,
            validate=parse_peer_info,
        )
        return {pubkey: parse_peer_info(record) for pubkey, record in latest.items()}
