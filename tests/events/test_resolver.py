"""Tests for agent_society.events.resolver."""

from __future__ import annotations

import itertools
import json

import pytest

from agent_society.core.exceptions import InvalidRecordError
from agent_society.events.kinds import FOLLOW_LIST_KIND, ILP_PEER_INFO_KIND
from agent_society.events.models import Record
from agent_society.events.parsers import parse_peer_info
from agent_society.events.resolver import (
    ReplaceableResolver,
    is_newer,
    resolve_latest,
    resolve_latest_by_author,
    resolve_partitions,
    supersedes,
)

ALICE = "aa" * 32
BOB = "bb" * 32

VALID = json.dumps({"ilpAddress": "g.x", "btpEndpoint": "wss://x"})


def record(event_id: str, created_at: int, pubkey: str = ALICE, kind: int = ILP_PEER_INFO_KIND, content: str = VALID) -> Record:
    """Unsigned record; resolution never looks at signatures."""
    return Record(
        id=event_id * 64 if len(event_id) == 1 else event_id,
        pubkey=pubkey,
        created_at=created_at,
        kind=kind,
        tags=(),
        content=content,
        sig="00" * 64,
    )


class TestResolveLatest:
    """Batch resolution."""

    def test_empty(self):
        assert resolve_latest([]) is None

    def test_greatest_created_at_wins(self):
        records = [record("1", 100), record("2", 300), record("3", 200)]
        assert resolve_latest(records).created_at == 300

    def test_tie_break_smallest_id(self):
        a, b, c = record("c", 500), record("a", 500), record("b", 500)
        assert resolve_latest([a, b, c]) is b

    def test_tie_break_independent_of_order(self):
        records = [record("c", 500), record("a", 500), record("b", 500), record("d", 400)]
        winners = {resolve_latest(list(p)).id for p in itertools.permutations(records)}
        assert winners == {"a" * 64}

    def test_duplicates_are_harmless(self):
        r = record("1", 100)
        assert resolve_latest([r, r, r]) is r

    def test_malformed_excluded_before_comparison(self):
        older = record("1", 100)
        newer_broken = record("2", 200, content="{not json")
        assert resolve_latest([older, newer_broken], validate=parse_peer_info) is older

    def test_all_malformed(self):
        assert resolve_latest([record("1", 100, content="[]")], validate=parse_peer_info) is None

    def test_multiple_partitions_returns_newest_winner(self):
        records = [record("1", 100, ALICE), record("2", 300, BOB), record("3", 200, ALICE)]
        assert resolve_latest(records).pubkey == BOB


class TestPartitions:
    """Per-author/per-kind partitioning."""

    def test_partitions_by_author_and_kind(self):
        records = [
            record("1", 100, ALICE),
            record("2", 200, ALICE),
            record("3", 300, ALICE, kind=FOLLOW_LIST_KIND, content=""),
            record("4", 50, BOB),
        ]
        winners = resolve_partitions(records)
        assert winners[(ALICE, ILP_PEER_INFO_KIND)].id == "2" * 64
        assert winners[(ALICE, FOLLOW_LIST_KIND)].id == "3" * 64
        assert winners[(BOB, ILP_PEER_INFO_KIND)].id == "4" * 64

    def test_latest_by_author_filters_kind(self):
        records = [
            record("1", 100, ALICE),
            record("3", 300, ALICE, kind=FOLLOW_LIST_KIND, content=""),
            record("4", 50, BOB),
        ]
        latest = resolve_latest_by_author(records, ILP_PEER_INFO_KIND)
        assert set(latest) == {ALICE, BOB}
        assert latest[ALICE].id == "1" * 64

    def test_validator_raising_other_errors_propagates(self):
        def explode(r):
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            resolve_latest([record("1", 1)], validate=explode)


class TestIsNewer:
    """Live-update filter."""

    def test_nothing_seen(self):
        assert is_newer(record("1", 1), None)

    def test_strictly_newer(self):
        assert is_newer(record("1", 101), 100)
        assert not is_newer(record("1", 100), 100)
        assert not is_newer(record("1", 99), 100)

    def test_supersedes(self):
        assert supersedes(record("1", 1), None)
        assert supersedes(record("1", 5), record("2", 5))
        assert not supersedes(record("2", 5), record("1", 5))


class TestReplaceableResolver:
    """Stateful resolver."""

    def test_offer_tracks_latest(self):
        resolver = ReplaceableResolver()
        assert resolver.offer(record("1", 100))
        assert resolver.offer(record("2", 200))
        assert not resolver.offer(record("3", 150))
        assert resolver.latest(ALICE, ILP_PEER_INFO_KIND).id == "2" * 64
        assert resolver.last_seen(ALICE, ILP_PEER_INFO_KIND) == 200
        assert len(resolver) == 1

    def test_batch_offers_converge_regardless_of_order(self):
        records = [record("b", 10), record("a", 10), record("c", 9)]
        results = set()
        for perm in itertools.permutations(records):
            resolver = ReplaceableResolver()
            resolver.offer_all(perm)
            results.add(resolver.latest(ALICE, ILP_PEER_INFO_KIND).id)
        assert results == {"a" * 64}

    def test_strict_drops_equal_timestamps(self):
        resolver = ReplaceableResolver()
        assert resolver.offer(record("b", 10), strict=True)
        assert not resolver.offer(record("a", 10), strict=True)
        assert not resolver.offer(record("c", 9), strict=True)
        assert resolver.offer(record("d", 11), strict=True)

    def test_validator_rejects_without_touching_state(self):
        resolver = ReplaceableResolver(validate=parse_peer_info)
        assert resolver.offer(record("1", 100))
        assert not resolver.offer(record("2", 200, content="nope"))
        assert resolver.last_seen(ALICE, ILP_PEER_INFO_KIND) == 100

    def test_records_forget_and_clear(self):
        resolver = ReplaceableResolver()
        resolver.offer_all(
            [
                record("1", 100, ALICE),
                record("2", 100, ALICE, kind=FOLLOW_LIST_KIND),
                record("3", 100, BOB),
            ]
        )
        assert len(resolver.records(ILP_PEER_INFO_KIND)) == 2
        assert len(resolver.records()) == 3

        resolver.forget(ALICE, FOLLOW_LIST_KIND)
        assert resolver.latest(ALICE, FOLLOW_LIST_KIND) is None
        assert resolver.latest(ALICE, ILP_PEER_INFO_KIND) is not None

        resolver.forget(ALICE)
        assert resolver.records() == [resolver.latest(BOB, ILP_PEER_INFO_KIND)]

        resolver.clear()
        assert len(resolver) == 0

    def test_invalid_record_error_is_the_exclusion_signal(self):
        def only_even(r):
            if r.created_at % 2:
                raise InvalidRecordError("odd")

        resolver = ReplaceableResolver(validate=only_even)
        resolver.offer_all([record("1", 2), record("2", 3)])
        assert resolver.last_seen(ALICE, ILP_PEER_INFO_KIND) == 2
