# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""SPSP server - publish static parameters and answer encrypted requests."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from ..core.exceptions import DecryptionError, InvalidRecordError, TransportError
from ..core.logging import exchange_context
from ..crypto.keys import NostrKeys
from ..events.builders import build_spsp_info_event, build_spsp_response
from ..events.kinds import SPSP_REQUEST_KIND, SPSP_RESPONSE_KIND
from ..events.models import EventTemplate, Record, SpspErrorInfo, SpspInfo, SpspRequest, SpspResponse
from ..events.parsers import parse_spsp_request
from ..transport.base import Subscription, Transport, detach

logger = logging.getLogger(__name__)

# (request, requester pubkey) -> fresh parameters
SpspGenerator = Callable[[SpspRequest, str], "SpspInfo | Awaitable[SpspInfo]"]

INTERNAL_ERROR = "INTERNAL_ERROR"


class SpspServer:
    """Serves SPSP parameters to other agents over Nostr."""

    def __init__(self, transport: Transport, relays: Sequence[str], keys: NostrKeys):
        self.transport = transport
        self.relays = list(relays)
        self.keys = keys
        self._stats = {"requests": 0, "responses": 0, "errors": 0, "dropped": 0}

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)

    async def publish_spsp_info(self, info: SpspInfo) -> str:
        """Publish static SPSP info (kind 10047); returns the accepting relay.

        Raises:
            TransportError: if every relay failed
        """
        record = self.keys.sign(build_spsp_info_event(info))
        relay = await self.transport.publish_any(self.relays, record)
        logger.info(f"Published SPSP info {record.id[:16]}... to {relay}")
        return relay

    def handle_spsp_requests(self, generator: SpspGenerator) -> Subscription:
        """Answer every encrypted request addressed to us.

        ``generator`` may be sync or async. If it raises, the requester
        gets an error response instead. Requests that cannot be decrypted
        or parsed are dropped; handling continues either way. Close the
        returned subscription to stop serving.
        """
        flt = {"kinds": [SPSP_REQUEST_KIND], "#p": [self.keys.public_key]}

        def on_record(record: Record) -> None:
            detach(asyncio.create_task(self._handle_request(record, generator)))

        subscription = self.transport.subscribe(self.relays, flt, on_record)
        logger.info(f"Serving SPSP requests for {self.keys.public_key[:16]}...")
        return subscription

    async def _handle_request(self, record: Record, generator: SpspGenerator) -> None:
        self._stats["requests"] += 1
        try:
            plaintext = self.keys.decrypt(record.pubkey, record.content)
            request = parse_spsp_request(plaintext)
        except (DecryptionError, InvalidRecordError) as e:
            self._stats["dropped"] += 1
            logger.debug(f"Dropping SPSP request {record.id[:16]}...: {e.message}")
            return

        with exchange_context(request.request_id, record.pubkey):
            try:
                result = generator(request, record.pubkey)
                if inspect.isawaitable(result):
                    result = await result
                response = SpspResponse(
                    request_id=request.request_id,
                    destination_account=result.destination_account,
                    shared_secret=result.shared_secret,
                    receipts_enabled=result.receipts_enabled,
                )
            except Exception as e:
                self._stats["errors"] += 1
                logger.warning(f"SPSP generator failed for {record.pubkey[:16]}...: {e}")
                response = SpspResponse(
                    request_id=request.request_id,
                    error=SpspErrorInfo(code=INTERNAL_ERROR, message=str(e) or e.__class__.__name__),
                )

            try:
                await self._send_response(record.pubkey, response)
            except TransportError as e:
                logger.warning(f"Could not deliver SPSP response to {record.pubkey[:16]}...: {e.message}")

    async def _send_response(self, requester: str, response: SpspResponse) -> None:
        content = self.keys.encrypt(requester, build_spsp_response(response))
        reply = self.keys.sign(
            EventTemplate(
                kind=SPSP_RESPONSE_KIND,
                created_at=int(time.time()),
                tags=(("p", requester),),
                content=content,
            )
        )
        relay = await self.transport.publish_any(self.relays, reply)
        self._stats["responses"] += 1
        logger.debug(f"SPSP response sent to {requester[:16]}... via {relay}")
