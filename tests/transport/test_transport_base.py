"""Tests for agent_society.transport.base."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from agent_society.core.exceptions import TransportError
from agent_society.events.models import Record
from agent_society.transport.base import Subscription, first_success, matches_filter

ALICE = "aa" * 32
BOB = "bb" * 32


@pytest.fixture
def record() -> Record:
    return Record(
        id="11" * 32,
        pubkey=ALICE,
        created_at=1000,
        kind=23195,
        tags=(("p", BOB), ("e", "22" * 32)),
        content="x",
        sig="00" * 64,
    )


class TestSubscription:
    """Cancellable listener handle."""

    def test_deliver_until_closed(self, record):
        received = []
        sub = Subscription(received.append)
        assert sub.deliver(record)
        sub.close()
        assert not sub.deliver(record)
        assert received == [record]
        assert sub.delivered == 1

    def test_close_is_idempotent_and_runs_hooks_once(self):
        hook = MagicMock()
        sub = Subscription(lambda r: None)
        sub.add_teardown(hook)
        sub.close()
        sub.unsubscribe()
        sub.close()
        hook.assert_called_once_with()
        assert sub.closed

    def test_hook_added_after_close_runs_immediately(self):
        hook = MagicMock()
        sub = Subscription(lambda r: None)
        sub.close()
        sub.add_teardown(hook)
        hook.assert_called_once_with()

    def test_callback_errors_are_contained(self, record):
        sub = Subscription(MagicMock(side_effect=RuntimeError("boom")))
        assert sub.deliver(record)
        assert not sub.closed

    def test_teardown_errors_do_not_stop_other_hooks(self):
        second = MagicMock()
        sub = Subscription(lambda r: None)
        sub.add_teardown(MagicMock(side_effect=RuntimeError("boom")))
        sub.add_teardown(second)
        sub.close()
        second.assert_called_once()

    def test_context_manager(self):
        with Subscription(lambda r: None) as sub:
            assert not sub.closed
        assert sub.closed


class TestMatchesFilter:
    """NIP-01 filter semantics."""

    def test_empty_filter_matches(self, record):
        assert matches_filter(record, {})

    @pytest.mark.parametrize(
        "flt,expected",
        [
            ({"kinds": [23195]}, True),
            ({"kinds": [23194]}, False),
            ({"authors": [ALICE]}, True),
            ({"authors": [BOB]}, False),
            ({"authors": []}, False),
            ({"ids": ["11" * 32]}, True),
            ({"since": 1000}, True),
            ({"since": 1001}, False),
            ({"until": 1000}, True),
            ({"until": 999}, False),
            ({"#p": [BOB]}, True),
            ({"#p": [ALICE]}, False),
            ({"#e": ["22" * 32, "33" * 32]}, True),
            ({"#t": ["ilp"]}, False),
            ({"kinds": [23195], "#p": [BOB], "authors": [ALICE], "since": 995, "limit": 1}, True),
        ],
    )
    def test_fields(self, record, flt, expected):
        assert matches_filter(record, flt) is expected


class TestFirstSuccess:
    """First-success-wins racing."""

    async def test_returns_first_success(self):
        async def slow():
            await asyncio.sleep(0.05)
            return "slow"

        async def fast():
            return "fast"

        label, result = await first_success({"a": slow(), "b": fast()})
        assert (label, result) == ("b", "fast")

    async def test_failures_before_success_are_ignored(self):
        async def fail():
            raise ConnectionError("refused")

        async def ok():
            await asyncio.sleep(0.01)
            return 42

        assert await first_success({"bad": fail(), "good": ok()}) == ("good", 42)

    async def test_all_fail(self):
        async def fail(msg):
            raise ConnectionError(msg)

        with pytest.raises(TransportError) as exc_info:
            await first_success({"a": fail("refused"), "b": fail("reset")}, what="Publish")
        error = exc_info.value
        assert error.code == "TRANSPORT_FAILED"
        assert sorted(error.relays) == ["a", "b"]
        assert error.details["errors"] == {"a": "refused", "b": "reset"}

    async def test_no_attempts(self):
        with pytest.raises(TransportError, match="no relays"):
            await first_success({})

    async def test_pending_attempts_keep_running(self):
        finished = asyncio.Event()

        async def slow():
            await asyncio.sleep(0.01)
            finished.set()
            return "slow"

        async def fast():
            return "fast"

        await first_success({"slow": slow(), "fast": fast()})
        await asyncio.wait_for(finished.wait(), timeout=1)
