# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Transport abstractions shared by every relay client.

- ``Transport``: the publish-to-many / query / subscribe contract
- ``Subscription``: a cancellable listener registration
- ``matches_filter``: NIP-01 filter semantics
- ``first_success``: race awaitables, first success wins, all-fail raises
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, Protocol, TypeVar

from ..core.exceptions import TransportError
from ..events.models import Record

logger = logging.getLogger(__name__)

Filter = dict[str, Any]
RecordCallback = Callable[[Record], None]
T = TypeVar("T")

# Fire-and-forget tasks must be strongly referenced until they finish.
_detached_tasks: set[asyncio.Task] = set()


class Subscription:
    """Handle for a live record subscription.

    The handle owns its cancellation: once ``close()`` returns, ``deliver``
    is a no-op, so no callback can run after unsubscribe. ``close()`` is
    idempotent and runs registered teardown hooks exactly once.
    """

    def __init__(self, on_record: RecordCallback, sub_id: str | None = None):
        self.id = sub_id or uuid.uuid4().hex[:16]
        self._on_record = on_record
        self._teardowns: list[Callable[[], None]] = []
        self._closed = False
        self.delivered = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def add_teardown(self, hook: Callable[[], None]) -> None:
        """Register a hook run once on close (immediately if already closed)."""
        if self._closed:
            hook()
            return
        self._teardowns.append(hook)

    def deliver(self, record: Record) -> bool:
        """Hand a record to the consumer; returns False once closed."""
        if self._closed:
            return False
        self.delivered += 1
        try:
            self._on_record(record)
        except Exception as e:
            logger.warning(f"Subscription {self.id} callback error: {e}")
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        hooks, self._teardowns = self._teardowns, []
        for hook in hooks:
            try:
                hook()
            except Exception as e:
                logger.warning(f"Subscription {self.id} teardown error: {e}")

    # Alias matching the event-stream vocabulary
    unsubscribe = close

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class Transport(Protocol):
    """Publish/subscribe access to a set of relays."""

    async def query_all(self, relays: Sequence[str], flt: Filter) -> list[Record]:
        """Best-effort query: failing relays contribute no records."""
        ...

    async def publish_any(self, relays: Sequence[str], record: Record) -> str:
        """Publish to all relays; return the first relay that acknowledged.

        Raises:
            TransportError: if every relay failed
        """
        ...

    def subscribe(
        self,
        relays: Sequence[str],
        flt: Filter,
        on_record: RecordCallback,
    ) -> Subscription:
        """Open a live subscription; records are delivered via ``on_record``."""
        ...


def matches_filter(record: Record, flt: Mapping[str, Any]) -> bool:
    """Match a record against a NIP-01 filter (``limit`` is ignored)."""
    if not flt:
        return True

    ids = flt.get("ids")
    if ids is not None and record.id not in ids:
        return False

    kinds = flt.get("kinds")
    if kinds is not None and record.kind not in kinds:
        return False

    authors = flt.get("authors")
    if authors is not None and record.pubkey not in authors:
        return False

    since = flt.get("since")
    if since is not None and record.created_at < since:
        return False

    until = flt.get("until")
    if until is not None and record.created_at > until:
        return False

    for key, wanted in flt.items():
        if len(key) == 2 and key[0] == "#":
            values = set(record.tag_values(key[1]))
            if not values.intersection(wanted):
                return False

    return True


def detach(task: asyncio.Task) -> None:
    """Keep a background task alive until done and log its failure."""
    _detached_tasks.add(task)

    def _done(t: asyncio.Task) -> None:
        _detached_tasks.discard(t)
        if not t.cancelled() and t.exception() is not None:
            logger.debug(f"Background task failed: {t.exception()}")

    task.add_done_callback(_done)


async def first_success(
    attempts: Mapping[str, Awaitable[T]],
    what: str = "operation",
) -> tuple[str, T]:
    """Run labelled attempts concurrently and return the first success.

    Attempts still pending when one succeeds keep running in the background
    (their outcome no longer matters to the caller).

    Raises:
        TransportError: if there are no attempts or every attempt failed
    """
    if not attempts:
        raise TransportError(f"{what} failed: no relays configured")

    tasks = {asyncio.ensure_future(aw): label for label, aw in attempts.items()}
    pending = set(tasks)
    errors: dict[str, str] = {}
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                label = tasks[task]
                if task.cancelled():
                    errors[label] = "cancelled"
                    continue
                exc = task.exception()
                if exc is None:
                    for rest in pending:
                        detach(rest)
                    pending = set()
                    return label, task.result()
                errors[label] = str(exc) or exc.__class__.__name__
                logger.debug(f"{what} failed on {label}: {errors[label]}")
    except asyncio.CancelledError:
        for task in pending:
            task.cancel()
        raise

    error = TransportError(f"{what} failed on all {len(tasks)} relays", relays=list(errors))
    error.details["errors"] = errors
    raise error
