# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Relay Pool - aiohttp websocket client for a set of Nostr relays.

This module manages:
- One lazily opened websocket connection per relay URL
- Queries (REQ until EOSE, then CLOSE), tolerant of individual relay failures
- Publishing (EVENT, await OK), first acknowledgement wins
- Live subscriptions with per-subscription event-id dedupe

Inbound records are shape-checked, matched against the filter that
requested them and signature-verified before reaching callers.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections import OrderedDict
from collections.abc import Callable, Sequence
from typing import Any

import aiohttp
from aiohttp import WSMsgType

from ..core.exceptions import InvalidRecordError, TransportError
from ..crypto.keys import verify_record
from ..events.models import Record
from .base import Filter, RecordCallback, Subscription, detach, first_success, matches_filter

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], None]

# Per-subscription dedupe window (record ids)
SEEN_IDS_LIMIT = 10_000


class RecentIds:
    """Insertion-ordered set of record ids that forgets the oldest past ``limit``."""

    def __init__(self, limit: int = SEEN_IDS_LIMIT):
        self.limit = limit
        self._ids: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, record_id: str) -> None:
        self._ids[record_id] = None
        self._ids.move_to_end(record_id)
        while len(self._ids) > self.limit:
            self._ids.popitem(last=False)


class RelayConnection:
    """A single websocket to one relay plus its message dispatch tables."""

    def __init__(self, url: str, ws: aiohttp.ClientWebSocketResponse):
        self.url = url
        self.ws = ws
        self._handlers: dict[str, Handler] = {}
        self._ok_waiters: dict[str, asyncio.Future] = {}
        self._reader: asyncio.Task | None = None
        self.notices: list[str] = []

    @property
    def closed(self) -> bool:
        return self.ws.closed or (self._reader is not None and self._reader.done())

    def start(self) -> None:
        self._reader = asyncio.create_task(self._receive_loop())

    async def send(self, message: list[Any]) -> None:
        await self.ws.send_str(json.dumps(message, separators=(",", ":"), ensure_ascii=False))

    def add_handler(self, sub_id: str, handler: Handler) -> None:
        self._handlers[sub_id] = handler

    def remove_handler(self, sub_id: str) -> None:
        self._handlers.pop(sub_id, None)

    def expect_ok(self, event_id: str) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._ok_waiters[event_id] = future
        return future

    def forget_ok(self, event_id: str) -> None:
        self._ok_waiters.pop(event_id, None)

    async def _receive_loop(self) -> None:
        try:
            async for msg in self.ws:
                if msg.type == WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        continue
                    if isinstance(data, list) and data:
                        self._dispatch(data)
                elif msg.type in (WSMsgType.ERROR, WSMsgType.CLOSE, WSMsgType.CLOSED):
                    break
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"Receive loop error for relay {self.url}: {e}")
        finally:
            self._fail_all("connection closed")

    def _dispatch(self, data: list[Any]) -> None:
        msg_type = data[0]
        if msg_type == "EVENT" and len(data) >= 3:
            handler = self._handlers.get(data[1])
            if handler:
                handler("EVENT", data[2])
        elif msg_type == "EOSE" and len(data) >= 2:
            handler = self._handlers.get(data[1])
            if handler:
                handler("EOSE", None)
        elif msg_type == "CLOSED" and len(data) >= 2:
            handler = self._handlers.get(data[1])
            if handler:
                handler("CLOSED", data[2] if len(data) > 2 else "")
        elif msg_type == "OK" and len(data) >= 3:
            future = self._ok_waiters.pop(str(data[1]), None)
            if future and not future.done():
                future.set_result((bool(data[2]), str(data[3]) if len(data) > 3 else ""))
        elif msg_type == "NOTICE" and len(data) >= 2:
            self.notices.append(str(data[1]))
            logger.info(f"Relay {self.url} notice: {data[1]}")

    def _fail_all(self, reason: str) -> None:
        for future in self._ok_waiters.values():
            if not future.done():
                future.set_exception(ConnectionError(reason))
        self._ok_waiters.clear()
        for handler in list(self._handlers.values()):
            handler("CLOSED", reason)

    async def close(self) -> None:
        if self._reader:
            self._reader.cancel()
        if not self.ws.closed:
            await self.ws.close()


class RelayPool:
    """
    Transport implementation over Nostr relay websockets.

    Responsible for:
    - Connecting to relays on first use and reconnecting after drops
    - Best-effort multi-relay queries with event-id dedupe
    - First-acknowledgement-wins publishing
    - Live subscriptions whose cancellation stops delivery immediately
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        query_timeout: float = 5.0,
        publish_timeout: float = 5.0,
        connect_timeout: float = 10.0,
        verify_signatures: bool = True,
        seen_limit: int = SEEN_IDS_LIMIT,
    ):
        self._session = session
        self._own_session = session is None
        self.query_timeout = query_timeout
        self.publish_timeout = publish_timeout
        self.connect_timeout = connect_timeout
        self.verify_signatures = verify_signatures
        self.seen_limit = seen_limit

        self._connections: dict[str, RelayConnection] = {}
        self._connect_locks: dict[str, asyncio.Lock] = {}
        self._subscriptions: dict[str, Subscription] = {}

        self._stats: dict[str, int] = {
            "queries": 0,
            "records_received": 0,
            "records_rejected": 0,
            "publishes": 0,
            "publish_failures": 0,
        }

    @classmethod
    def from_config(cls, config: Any) -> RelayPool:
        """Build a pool using timeouts from AgentSocietySettings."""
        return cls(query_timeout=config.query_timeout, publish_timeout=config.publish_timeout)

    def get_stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "connected_relays": sorted(u for u, c in self._connections.items() if not c.closed),
            "open_subscriptions": len(self._subscriptions),
        }

    async def __aenter__(self) -> RelayPool:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # CONNECTIONS
    # -------------------------------------------------------------------------

    async def _connect(self, url: str) -> RelayConnection:
        lock = self._connect_locks.setdefault(url, asyncio.Lock())
        async with lock:
            conn = self._connections.get(url)
            if conn and not conn.closed:
                return conn

            if self._session is None:
                self._session = aiohttp.ClientSession()
            try:
                ws = await asyncio.wait_for(
                    self._session.ws_connect(url, heartbeat=30),
                    timeout=self.connect_timeout,
                )
            except asyncio.TimeoutError as e:
                raise ConnectionError(f"Timed out connecting to {url}") from e
            except aiohttp.ClientError as e:
                raise ConnectionError(f"Failed to connect to {url}: {e}") from e

            conn = RelayConnection(url, ws)
            conn.start()
            self._connections[url] = conn
            logger.debug(f"Connected to relay {url}")
            return conn

    async def close(self) -> None:
        """Close every subscription, connection and the owned HTTP session."""
        for sub in list(self._subscriptions.values()):
            sub.close()
        for conn in list(self._connections.values()):
            try:
                await conn.close()
            except Exception as e:
                logger.debug(f"Error closing relay {conn.url}: {e}")
        self._connections.clear()
        if self._own_session and self._session is not None:
            await self._session.close()
            self._session = None

    # -------------------------------------------------------------------------
    # INBOUND VALIDATION
    # -------------------------------------------------------------------------

    def _accept(self, raw: Any, flt: Filter, url: str) -> Record | None:
        try:
            record = Record.from_dict(raw)
        except InvalidRecordError as e:
            self._stats["records_rejected"] += 1
            logger.debug(f"Dropping malformed event from {url}: {e.message}")
            return None
        if not matches_filter(record, flt):
            self._stats["records_rejected"] += 1
            logger.debug(f"Dropping event {record.id[:16]}... from {url}: does not match filter")
            return None
        if self.verify_signatures and not verify_record(record):
            self._stats["records_rejected"] += 1
            logger.debug(f"Dropping event {record.id[:16]}... from {url}: bad signature")
            return None
        self._stats["records_received"] += 1
        return record

    # -------------------------------------------------------------------------
    # QUERY
    # -------------------------------------------------------------------------

    async def _query_one(self, url: str, flt: Filter) -> list[Record]:
        conn = await self._connect(url)
        sub_id = uuid.uuid4().hex[:16]
        raw_events: list[Any] = []
        finished = asyncio.get_running_loop().create_future()

        def handler(msg_type: str, payload: Any) -> None:
            if msg_type == "EVENT":
                raw_events.append(payload)
            elif not finished.done():
                finished.set_result(msg_type)

        conn.add_handler(sub_id, handler)
        try:
            await conn.send(["REQ", sub_id, flt])
            await asyncio.wait_for(finished, timeout=self.query_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Query on {url} timed out after {self.query_timeout}s, using partial results")
        finally:
            conn.remove_handler(sub_id)
            if not conn.closed:
                try:
                    await conn.send(["CLOSE", sub_id])
                except Exception as e:
                    logger.debug(f"Failed to close query {sub_id} on {url}: {e}")

        return [r for r in (self._accept(raw, flt, url) for raw in raw_events) if r is not None]

    async def query_all(self, relays: Sequence[str], flt: Filter) -> list[Record]:
        """Query every relay concurrently and merge the results.

        Individual relay failures are logged and contribute nothing.

        Raises:
            TransportError: if no relays were given
        """
        relays = list(dict.fromkeys(relays))
        if not relays:
            raise TransportError("Query failed: no relays configured")

        self._stats["queries"] += 1
        results = await asyncio.gather(
            *(self._query_one(url, flt) for url in relays),
            return_exceptions=True,
        )

        merged: dict[str, Record] = {}
        for url, result in zip(relays, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning(f"Query failed on relay {url}: {result}")
                continue
            for record in result:
                merged.setdefault(record.id, record)
        return list(merged.values())

    # -------------------------------------------------------------------------
    # PUBLISH
    # -------------------------------------------------------------------------

    async def _publish_one(self, url: str, record: Record) -> str:
        conn = await self._connect(url)
        ack = conn.expect_ok(record.id)
        try:
            await conn.send(["EVENT", record.to_dict()])
            accepted, message = await asyncio.wait_for(ack, timeout=self.publish_timeout)
        except asyncio.TimeoutError as e:
            raise ConnectionError(f"No OK from {url} within {self.publish_timeout}s") from e
        finally:
            conn.forget_ok(record.id)
        if not accepted:
            raise ConnectionError(f"Relay {url} rejected event: {message}")
        return url

    async def publish_any(self, relays: Sequence[str], record: Record) -> str:
        """Offer ``record`` to every relay; return once the first one accepts it.

        Raises:
            TransportError: if every relay failed or rejected the record
        """
        relays = list(dict.fromkeys(relays))
        self._stats["publishes"] += 1
        try:
            url, _ = await first_success(
                {url: self._publish_one(url, record) for url in relays},
                what=f"Publish of event {record.id[:16]}...",
            )
        except TransportError:
            self._stats["publish_failures"] += 1
            raise
        logger.debug(f"Event {record.id[:16]}... acknowledged by {url}")
        return url

    # -------------------------------------------------------------------------
    # SUBSCRIBE
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        relays: Sequence[str],
        flt: Filter,
        on_record: RecordCallback,
    ) -> Subscription:
        """Open a live subscription on every relay.

        Records seen from several relays are delivered once; the dedupe
        window keeps the last ``seen_limit`` ids. Closing the returned handle
        stops delivery immediately and sends CLOSE to the relays in the
        background.
        """
        relays = list(dict.fromkeys(relays))
        subscription = Subscription(on_record)
        seen = RecentIds(self.seen_limit)
        opened: list[RelayConnection] = []

        def make_handler(url: str) -> Handler:
            def handler(msg_type: str, payload: Any) -> None:
                if msg_type == "EVENT":
                    record = self._accept(payload, flt, url)
                    if record is None or record.id in seen:
                        return
                    seen.add(record.id)
                    subscription.deliver(record)
                elif msg_type == "CLOSED":
                    logger.debug(f"Relay {url} closed subscription {subscription.id}: {payload}")
            return handler

        async def open_on(url: str) -> None:
            conn = await self._connect(url)
            if subscription.closed:
                return
            conn.add_handler(subscription.id, make_handler(url))
            opened.append(conn)
            await conn.send(["REQ", subscription.id, flt])

        for url in relays:
            detach(asyncio.create_task(open_on(url)))

        def teardown() -> None:
            self._subscriptions.pop(subscription.id, None)
            for conn in opened:
                conn.remove_handler(subscription.id)
                if not conn.closed:
                    detach(asyncio.create_task(conn.send(["CLOSE", subscription.id])))

        subscription.add_teardown(teardown)
        self._subscriptions[subscription.id] = subscription
        return subscription
