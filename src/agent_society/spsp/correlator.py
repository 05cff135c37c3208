# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Encrypted Correlator - request/response over ephemeral encrypted records.

One PendingCorrelation exists per outstanding request and moves through:

    BUILT -> PUBLISHED -> RESOLVED | TIMED_OUT
    BUILT -> FAILED                      (every relay rejected the publish)

The request id only travels inside the encrypted payload; the cleartext
record carries nothing but the recipient ``p`` tag. Candidates that fail
decryption, fail shape checks or carry another request id are discarded
and listening continues. Exactly one of RESOLVED / TIMED_OUT happens, and
the listener and the timer are torn down exactly once.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Sequence
from enum import Enum

from ..core.exceptions import (
    CorrelationTimeoutError,
    DecryptionError,
    InvalidRecordError,
    TransportError,
)
from ..core.logging import exchange_context
from ..crypto.keys import NostrKeys
from ..events.builders import build_spsp_request
from ..events.kinds import SPSP_REQUEST_KIND, SPSP_RESPONSE_KIND
from ..events.models import EventTemplate, Record, SpspRequest, SpspResponse, validate_identity
from ..events.parsers import parse_spsp_response
from ..transport.base import Filter, Subscription, Transport

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0

# Accept responses stamped slightly before the request (clock skew)
SINCE_SLACK_SECONDS = 5


class CorrelationState(str, Enum):
    """Lifecycle of one outstanding request."""

    BUILT = "built"
    PUBLISHED = "published"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CorrelationState.RESOLVED, CorrelationState.TIMED_OUT, CorrelationState.FAILED)


class PendingCorrelation:
    """State for a single request awaiting its encrypted response."""

    def __init__(
        self,
        keys: NostrKeys,
        recipient: str,
        request: SpspRequest,
        record: Record,
        timeout: float,
    ):
        self.keys = keys
        self.recipient = recipient
        self.request = request
        self.record = record
        self.timeout = timeout
        self.state = CorrelationState.BUILT
        self.published_to: str | None = None
        self.discarded = 0

        self._future: asyncio.Future[SpspResponse] = asyncio.get_running_loop().create_future()
        self._subscription: Subscription | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._torn_down = False

    @property
    def request_id(self) -> str:
        return self.request.request_id

    @property
    def done(self) -> bool:
        return self._future.done()

    def response_filter(self) -> Filter:
        return {
            "kinds": [SPSP_RESPONSE_KIND],
            "#p": [self.keys.public_key],
            "authors": [self.recipient],
            "since": self.record.created_at - SINCE_SLACK_SECONDS,
        }

    def start(self, subscription: Subscription) -> None:
        """Attach the listener and arm the deadline."""
        self._subscription = subscription
        if subscription.closed or self.state.is_terminal:
            return
        self._timer = asyncio.get_running_loop().call_later(self.timeout, self._expire)

    def mark_published(self, relay: str) -> None:
        self.published_to = relay
        if self.state == CorrelationState.BUILT:
            self.state = CorrelationState.PUBLISHED

    def fail(self) -> None:
        """Every relay rejected the request; nothing will be awaited."""
        if self.state.is_terminal:
            return
        self.state = CorrelationState.FAILED
        self._teardown()
        self._future.cancel()

    def handle_candidate(self, record: Record) -> None:
        """Listener callback: resolve on the first valid matching response."""
        if self.state.is_terminal:
            return
        if record.kind != SPSP_RESPONSE_KIND or record.pubkey != self.recipient:
            self._discard(record, "unexpected kind or author")
            return
        try:
            plaintext = self.keys.decrypt(self.recipient, record.content)
            response = parse_spsp_response(plaintext)
        except DecryptionError as e:
            self._discard(record, f"decryption failed: {e.message}")
            return
        except InvalidRecordError as e:
            self._discard(record, f"malformed response: {e.message}")
            return
        if response.request_id != self.request_id:
            self._discard(record, "request id mismatch")
            return

        self.state = CorrelationState.RESOLVED
        self._teardown()
        self._future.set_result(response)

    async def wait(self) -> SpspResponse:
        return await self._future

    def close(self) -> None:
        """Release listener and timer if still held (e.g. caller cancelled)."""
        self._teardown()
        if not self._future.done():
            self._future.cancel()

    def _discard(self, record: Record, reason: str) -> None:
        self.discarded += 1
        logger.debug(f"Discarding candidate {record.id[:16]}... for {self.request_id}: {reason}")

    def _expire(self) -> None:
        self._timer = None
        if self.state.is_terminal:
            return
        self.state = CorrelationState.TIMED_OUT
        self._teardown()
        self._future.set_exception(
            CorrelationTimeoutError(
                f"No response from {self.recipient[:16]}... within {self.timeout}s",
                recipient=self.recipient,
                request_id=self.request_id,
            )
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        self._cancel_timer()
        if self._subscription is not None:
            self._subscription.close()


class EncryptedCorrelator:
    """Sends encrypted SPSP requests and awaits their correlated responses."""

    def __init__(
        self,
        transport: Transport,
        keys: NostrKeys,
        relays: Sequence[str],
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.transport = transport
        self.keys = keys
        self.relays = list(relays)
        self.timeout = timeout

    def build(
        self,
        recipient: str,
        request: SpspRequest | None = None,
        timeout: float | None = None,
    ) -> PendingCorrelation:
        """Encrypt and sign a request for ``recipient`` (state BUILT)."""
        recipient = validate_identity(recipient)
        now = int(time.time())
        if request is None:
            request = SpspRequest(request_id=str(uuid.uuid4()), timestamp=now)

        content = self.keys.encrypt(recipient, build_spsp_request(request))
        record = self.keys.sign(
            EventTemplate(
                kind=SPSP_REQUEST_KIND,
                created_at=now,
                tags=(("p", recipient),),
                content=content,
            )
        )
        return PendingCorrelation(
            self.keys,
            recipient,
            request,
            record,
            self.timeout if timeout is None else timeout,
        )

    async def request(
        self,
        recipient: str,
        request: SpspRequest | None = None,
        *,
        timeout: float | None = None,
        relays: Sequence[str] | None = None,
    ) -> SpspResponse:
        """Run one request/response exchange.

        The listener is registered before publishing so a fast responder
        cannot be missed.

        Returns:
            The first decryptable response carrying our request id
            (which may be an error response)

        Raises:
            InvalidIdentityError: if ``recipient`` is not a valid pubkey
            TransportError: if every relay rejected the request before the
                exchange settled
            CorrelationTimeoutError: if no valid response arrived in time
        """
        pending = self.build(recipient, request, timeout)
        target_relays = list(relays) if relays is not None else self.relays

        with exchange_context(pending.request_id, pending.recipient):
            subscription = self.transport.subscribe(
                target_relays, pending.response_filter(), pending.handle_candidate
            )
            pending.start(subscription)
            try:
                try:
                    relay = await self.transport.publish_any(target_relays, pending.record)
                except TransportError:
                    if not pending.done:
                        logger.warning(f"SPSP request to {pending.recipient[:16]}... could not be published")
                        pending.fail()
                        raise
                    # Settled while the publish was still in flight
                    logger.debug(f"SPSP request {pending.state.value} before any relay accepted it")
                else:
                    pending.mark_published(relay)
                    logger.debug(f"SPSP request published to {relay}, awaiting response")

                response = await pending.wait()
                logger.debug(f"SPSP response received after {pending.discarded} discarded candidates")
                return response
            finally:
                pending.close()
