"""Global test fixtures for the Agent Society test suite."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from agent_society.core.config import clear_config_cache
from agent_society.core.exceptions import TransportError
from agent_society.crypto.keys import NostrKeys
from agent_society.events.builders import build_follow_list_event, build_peer_info_event
from agent_society.events.kinds import is_ephemeral
from agent_society.events.models import EventTemplate, FollowEdge, PeerAdvertisement, Record
from agent_society.transport.base import Filter, Subscription, matches_filter

RELAYS = ["wss://relay-a.example.com", "wss://relay-b.example.com"]


# ============================================================================
# In-memory relay network
# ============================================================================


class FakeRelayNetwork:
    """Transport that keeps relays in memory.

    - Stored (non-ephemeral) records are returned by ``query_all``
    - Published records are delivered to matching live subscriptions
    - Relays listed in ``failing`` reject publishes and return nothing
    """

    def __init__(self, relays: Sequence[str] = RELAYS):
        self.relays = list(relays)
        self.stored: dict[str, list[Record]] = {url: [] for url in self.relays}
        self.failing: set[str] = set()
        self.published: list[Record] = []
        self.queries: list[tuple[list[str], Filter]] = []
        self.subscriptions: list[tuple[list[str], Filter, Subscription]] = []

    def store(self, record: Record, relays: Sequence[str] | None = None) -> Record:
        for url in relays or self.relays:
            self.stored.setdefault(url, []).append(record)
        return record

    def inject(self, record: Record) -> int:
        """Deliver a record to matching live subscriptions; return deliveries."""
        count = 0
        for relays, flt, sub in list(self.subscriptions):
            if not sub.closed and matches_filter(record, flt):
                count += sub.deliver(record)
        return count

    def live_subscriptions(self) -> list[Subscription]:
        return [sub for _, _, sub in self.subscriptions if not sub.closed]

    async def wait_published(self, kind: int, count: int = 1) -> list[Record]:
        """Yield to the loop until ``count`` records of ``kind`` were published."""
        for _ in range(200):
            found = [r for r in self.published if r.kind == kind]
            if len(found) >= count:
                return found
            await asyncio.sleep(0)
        raise AssertionError(f"expected {count} published records of kind {kind}")

    async def query_all(self, relays: Sequence[str], flt: Filter) -> list[Record]:
        if not relays:
            raise TransportError("Query failed: no relays configured")
        self.queries.append((list(relays), dict(flt)))
        await asyncio.sleep(0)
        found: dict[str, Record] = {}
        for url in relays:
            if url in self.failing:
                continue
            for record in self.stored.get(url, []):
                if matches_filter(record, flt):
                    found.setdefault(record.id, record)
        return list(found.values())

    async def publish_any(self, relays: Sequence[str], record: Record) -> str:
        accepting = [url for url in relays if url not in self.failing]
        if not accepting:
            raise TransportError(f"Publish failed on all {len(relays)} relays", relays=list(relays))
        await asyncio.sleep(0)
        if not is_ephemeral(record.kind):
            self.store(record, accepting)
        self.published.append(record)
        for sub_relays, flt, sub in list(self.subscriptions):
            if sub.closed or not set(sub_relays) & set(accepting):
                continue
            if matches_filter(record, flt):
                sub.deliver(record)
        return accepting[0]

    def subscribe(
        self,
        relays: Sequence[str],
        flt: Filter,
        on_record: Callable[[Record], None],
    ) -> Subscription:
        sub = Subscription(on_record)
        entry = (list(relays), dict(flt), sub)
        self.subscriptions.append(entry)
        return sub


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_config(monkeypatch):
    """Isolate tests from AGENT_SOCIETY_* variables and cached config."""
    for key in list(os.environ):
        if key.startswith("AGENT_SOCIETY_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def relays() -> list[str]:
    return list(RELAYS)


@pytest.fixture
def network() -> FakeRelayNetwork:
    return FakeRelayNetwork()


@pytest.fixture
def alice() -> NostrKeys:
    return NostrKeys("%064x" % 0xA11CE)


@pytest.fixture
def bob() -> NostrKeys:
    return NostrKeys("%064x" % 0xB0B)


@pytest.fixture
def carol() -> NostrKeys:
    return NostrKeys("%064x" % 0xCA201)


@pytest.fixture
def dave() -> NostrKeys:
    return NostrKeys("%064x" % 0xDA7E)


@pytest.fixture
def publish(network) -> Callable[..., Record]:
    """Sign a template with ``keys`` and store it on the fake relays."""

    def _publish(keys: NostrKeys, template: EventTemplate, relays: Sequence[str] | None = None) -> Record:
        return network.store(keys.sign(template), relays)

    return _publish


@pytest.fixture
def follow(publish) -> Callable[..., Record]:
    """Publish a follow list for ``keys``."""

    def _follow(keys: NostrKeys, follows: Sequence[Any], created_at: int = 1_700_000_000) -> Record:
        edges = [f.public_key if isinstance(f, NostrKeys) else f for f in follows]
        return publish(keys, build_follow_list_event(edges, created_at=created_at))

    return _follow


@pytest.fixture
def advertise(publish) -> Callable[..., Record]:
    """Publish a peer advertisement for ``keys``."""

    def _advertise(
        keys: NostrKeys,
        ilp_address: str,
        created_at: int = 1_700_000_000,
        relays: Sequence[str] | None = None,
        **kwargs: Any,
    ) -> Record:
        info = PeerAdvertisement(
            ilp_address=ilp_address,
            btp_endpoint=kwargs.pop("btp_endpoint", f"wss://btp.example.com/{ilp_address}"),
            **kwargs,
        )
        return publish(keys, build_peer_info_event(info, created_at=created_at), relays)

    return _advertise


@pytest.fixture
def petname_edge() -> Callable[[NostrKeys, str], FollowEdge]:
    def _edge(keys: NostrKeys, petname: str) -> FollowEdge:
        return FollowEdge(from_pubkey="", to_pubkey=keys.public_key, petname=petname)

    return _edge
