"""Tests for agent_society.discovery.peer_discovery."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_society.core.exceptions import InvalidIdentityError, PeerDiscoveryError
from agent_society.discovery.peer_discovery import (
    DEFAULT_FOLLOWED_CREDIT,
    DiscoveredPeer,
    PeerDiscovery,
    default_credit,
)
from agent_society.events.builders import build_peer_info_event
from agent_society.events.kinds import ILP_PEER_INFO_KIND
from agent_society.events.models import EventTemplate, PeerAdvertisement, SettlementMethod
from agent_society.trust.social_graph import SocialGraph


@pytest.fixture
def discovery(network, relays):
    return PeerDiscovery(network, relays)


@pytest.fixture
def admin():
    admin = MagicMock()
    admin.add_peer = AsyncMock(return_value=None)
    admin.add_route = AsyncMock(return_value=None)
    return admin


class TestGetFollows:
    async def test_follow_order_preserved(self, discovery, follow, alice, bob, carol, dave):
        follow(alice, [dave, bob, carol])
        assert await discovery.get_follows(alice.public_key) == [
            dave.public_key,
            bob.public_key,
            carol.public_key,
        ]

    async def test_no_follow_list(self, discovery, alice):
        assert await discovery.get_follows(alice.public_key) == []

    async def test_invalid_pubkey(self, discovery):
        with pytest.raises(InvalidIdentityError):
            await discovery.get_follows("A" * 64)


class TestDiscoverPeers:
    async def test_followed_advertisers_only(
        self, discovery, follow, advertise, alice, bob, carol, dave, petname_edge
    ):
        follow(alice, [petname_edge(bob, "bobby"), carol])
        advertise(bob, "g.bob")
        # carol never advertises; dave advertises but is not followed
        advertise(dave, "g.dave")

        peers = await discovery.discover_peers(alice.public_key)

        assert [p.pubkey for p in peers] == [bob.public_key]
        assert peers[0].info.ilp_address == "g.bob"
        assert peers[0].petname == "bobby"
        assert peers[0].is_followed

    async def test_latest_valid_advertisement(self, discovery, publish, follow, advertise, alice, bob):
        follow(alice, [bob])
        advertise(bob, "g.bob.v1", created_at=100)
        advertise(bob, "g.bob.v2", created_at=200)
        publish(bob, EventTemplate(kind=ILP_PEER_INFO_KIND, created_at=300, content='{"ilpAddress": 5}'))

        [peer] = await discovery.discover_peers(alice.public_key)

        assert peer.info.ilp_address == "g.bob.v2"
        assert peer.created_at == 200

    async def test_follows_nobody(self, discovery, network, alice):
        assert await discovery.discover_peers(alice.public_key) == []
        # Only the follow-list query was made
        assert len(network.queries) == 1

    async def test_unreachable_relays(self, network, alice):
        discovery = PeerDiscovery(network, [])
        with pytest.raises(PeerDiscoveryError) as exc_info:
            await discovery.discover_peers(alice.public_key)
        assert exc_info.value.code == "PEER_DISCOVERY_FAILED"

    async def test_uses_provided_graph(self, network, relays, follow, advertise, alice, bob):
        graph = SocialGraph(network, relays, alice.public_key)
        follow(alice, [bob])
        advertise(bob, "g.bob")
        discovery = PeerDiscovery(network, relays, social_graph=graph)

        await discovery.discover_peers(alice.public_key)

        assert bob.public_key in await graph.get_follows(alice.public_key)

    async def test_to_dict(self, discovery, follow, advertise, alice, bob):
        follow(alice, [bob])
        advertise(bob, "g.bob", created_at=123)

        [peer] = await discovery.discover_peers(alice.public_key)

        data = peer.to_dict()
        assert data["pubkey"] == bob.public_key
        assert data["created_at"] == 123
        assert data["info"]["ilpAddress"] == "g.bob"


class TestGetPeerInfo:
    async def test_lookup_and_session_reuse(self, discovery, network, advertise, bob):
        advertise(bob, "g.bob")

        info = await discovery.get_peer_info(bob.public_key)
        again = await discovery.get_peer_info(bob.public_key)

        assert info.ilp_address == again.ilp_address == "g.bob"
        assert len(network.queries) == 1

    async def test_missing(self, discovery, bob):
        assert await discovery.get_peer_info(bob.public_key) is None

    async def test_invalidate_forgets_session(self, discovery, network, advertise, bob):
        advertise(bob, "g.bob", created_at=100)
        await discovery.get_peer_info(bob.public_key)

        advertise(bob, "g.bob.moved", created_at=200)
        assert (await discovery.get_peer_info(bob.public_key)).ilp_address == "g.bob"

        discovery.invalidate()
        assert (await discovery.get_peer_info(bob.public_key)).ilp_address == "g.bob.moved"

    async def test_invalidate_refreshes_own_follow_cache(
        self, discovery, follow, advertise, alice, bob, carol
    ):
        follow(alice, [bob], created_at=100)
        advertise(bob, "g.bob")
        advertise(carol, "g.carol")
        assert [p.pubkey for p in await discovery.discover_peers(alice.public_key)] == [bob.public_key]

        follow(alice, [bob, carol], created_at=200)
        discovery.invalidate()

        peers = await discovery.discover_peers(alice.public_key)
        assert [p.pubkey for p in peers] == [bob.public_key, carol.public_key]

    async def test_invalidate_leaves_supplied_graph(self, network, relays, follow, alice, bob, carol):
        graph = SocialGraph(network, relays, alice.public_key)
        discovery = PeerDiscovery(network, relays, social_graph=graph)
        follow(alice, [bob], created_at=100)
        await discovery.get_follows(alice.public_key)

        follow(alice, [bob, carol], created_at=200)
        discovery.invalidate()
        assert await discovery.get_follows(alice.public_key) == [bob.public_key]

        graph.invalidate()
        assert await discovery.get_follows(alice.public_key) == [bob.public_key, carol.public_key]


class TestPeerConfigs:
    async def test_default_credit(self, discovery, follow, advertise, alice, bob):
        follow(alice, [bob])
        advertise(bob, "g.bob", settlement=[SettlementMethod("xrp-paychan", ["rBob"]), SettlementMethod("evm")])

        [config] = await discovery.get_peer_configs(alice.public_key)

        assert config.credit_limit == DEFAULT_FOLLOWED_CREDIT
        assert config.peer_id == "nostr-" + bob.public_key[:16]
        assert config.settlement == SettlementMethod("xrp-paychan", ["rBob"])
        assert config.to_dict()["credit_limit"] == str(DEFAULT_FOLLOWED_CREDIT)

    async def test_async_credit_function(self, discovery, follow, advertise, alice, bob):
        follow(alice, [bob])
        advertise(bob, "g.bob")

        async def credit(pubkey, is_followed):
            return 2**70

        [config] = await discovery.get_peer_configs(alice.public_key, credit)
        assert config.credit_limit == 2**70
        assert config.settlement is None

    async def test_trust_calculator(self, network, relays, follow, advertise, alice, bob, carol):
        follow(alice, [bob, carol])
        follow(bob, [alice, carol])
        advertise(bob, "g.bob")
        graph = SocialGraph(network, relays, alice.public_key)
        await graph.warm()
        await graph.get_follows(bob.public_key)
        discovery = PeerDiscovery(network, relays, social_graph=graph)

        [config] = await discovery.get_peer_configs(alice.public_key, graph.trust_calculator())

        # base 1000 + one mutual (carol) 100 + reciprocal 500
        assert config.credit_limit == 1600

    def test_default_credit_function(self, bob):
        assert default_credit(bob.public_key, True) == DEFAULT_FOLLOWED_CREDIT
        assert default_credit(bob.public_key, False) == 0


class TestSyncToConnector:
    async def test_registers_peers_and_routes(self, discovery, admin, follow, advertise, alice, bob, carol):
        follow(alice, [bob, carol])
        advertise(bob, "g.bob")
        advertise(carol, "g.carol", btp_endpoint="wss://carol.example.com")

        configs = await discovery.sync_to_connector(alice.public_key, admin)

        assert len(configs) == 2
        admin.add_peer.assert_any_await("nostr-" + carol.public_key[:16], "wss://carol.example.com")
        admin.add_route.assert_any_await("g.bob", "nostr-" + bob.public_key[:16], 0)
        assert admin.add_peer.await_count == 2
        assert admin.add_route.await_count == 2

    async def test_admin_errors_propagate(self, discovery, admin, follow, advertise, alice, bob):
        follow(alice, [bob])
        advertise(bob, "g.bob")
        admin.add_peer.side_effect = RuntimeError("connector down")

        with pytest.raises(RuntimeError):
            await discovery.sync_to_connector(alice.public_key, admin)
        admin.add_route.assert_not_awaited()


class TestSubscribeToUpdates:
    async def test_only_strictly_newer_updates(self, discovery, network, follow, advertise, alice, bob):
        follow(alice, [bob])
        advertise(bob, "g.bob.v1", created_at=100)
        await discovery.discover_peers(alice.public_key)

        updates: list[DiscoveredPeer] = []
        subscription = await discovery.subscribe_to_updates(alice.public_key, updates.append)

        same_time = bob.sign(build_peer_info_event(PeerAdvertisement("g.bob.same", "wss://b"), created_at=100))
        older = bob.sign(build_peer_info_event(PeerAdvertisement("g.bob.v0", "wss://b"), created_at=50))
        newer = bob.sign(build_peer_info_event(PeerAdvertisement("g.bob.v2", "wss://b"), created_at=200))
        for record in (same_time, older, newer):
            network.inject(record)

        assert [u.info.ilp_address for u in updates] == ["g.bob.v2"]
        assert updates[0].petname is None
        subscription.close()
        network.inject(
            bob.sign(build_peer_info_event(PeerAdvertisement("g.bob.v3", "wss://b"), created_at=300))
        )
        assert len(updates) == 1

    async def test_ignores_unfollowed_and_malformed(self, discovery, network, follow, alice, bob, dave):
        follow(alice, [bob])
        updates = []
        await discovery.subscribe_to_updates(alice.public_key, updates.append)

        network.inject(dave.sign(build_peer_info_event(PeerAdvertisement("g.dave", "wss://d"), created_at=10)))
        network.inject(bob.sign(EventTemplate(kind=ILP_PEER_INFO_KIND, created_at=10, content="[]")))

        assert updates == []
        # A later valid record is still delivered
        network.inject(bob.sign(build_peer_info_event(PeerAdvertisement("g.bob", "wss://b"), created_at=11)))
        assert len(updates) == 1

    async def test_callback_errors_do_not_end_subscription(self, discovery, network, follow, alice, bob):
        follow(alice, [bob])
        calls = []

        def callback(peer):
            calls.append(peer)
            raise RuntimeError("consumer failed")

        subscription = await discovery.subscribe_to_updates(alice.public_key, callback)
        network.inject(bob.sign(build_peer_info_event(PeerAdvertisement("g.bob.1", "wss://b"), created_at=10)))
        network.inject(bob.sign(build_peer_info_event(PeerAdvertisement("g.bob.2", "wss://b"), created_at=20)))

        assert len(calls) == 2
        assert not subscription.closed
