# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""SPSP client - obtain payment setup parameters from a peer.

Two variants:
- Static: read the peer's published kind 10047 record (no round trip)
- Dynamic: encrypted kind 23194 request answered by kind 23195
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Sequence

from ..core.exceptions import SpspError
from ..crypto.keys import NostrKeys
from ..events.kinds import SPSP_INFO_KIND
from ..events.models import SpspInfo, SpspRequest, validate_identity
from ..events.parsers import parse_spsp_info
from ..events.resolver import resolve_latest
from ..transport.base import Transport
from .correlator import DEFAULT_REQUEST_TIMEOUT, EncryptedCorrelator

logger = logging.getLogger(__name__)


class SpspClient:
    """Fetches SPSP parameters over Nostr relays."""

    def __init__(
        self,
        transport: Transport,
        relays: Sequence[str],
        keys: NostrKeys | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.transport = transport
        self.relays = list(relays)
        self.keys = keys
        self.timeout = timeout
        self._cache: dict[str, SpspInfo] = {}
        self._correlator: EncryptedCorrelator | None = None
        if keys is not None:
            self._correlator = EncryptedCorrelator(transport, keys, self.relays, timeout)

    async def get_spsp_info(self, pubkey: str) -> SpspInfo | None:
        """Latest static SPSP info published by ``pubkey``, or None.

        Malformed records are skipped in favour of older valid ones.
        Successful lookups are cached until ``clear_cache``.
        """
        pubkey = validate_identity(pubkey)
        cached = self._cache.get(pubkey)
        if cached is not None:
            return cached

        records = await self.transport.query_all(
            self.relays, {"kinds": [SPSP_INFO_KIND], "authors": [pubkey]}
        )
        latest = resolve_latest(
            (r for r in records if r.pubkey == pubkey and r.kind == SPSP_INFO_KIND),
            validate=parse_spsp_info,
        )
        if latest is None:
            logger.debug(f"No valid SPSP info published by {pubkey[:16]}...")
            return None

        info = parse_spsp_info(latest)
        self._cache[pubkey] = info
        return info

    async def request_spsp_info(
        self,
        recipient: str,
        *,
        timeout: float | None = None,
        relays: Sequence[str] | None = None,
        receipt_nonce: str | None = None,
        receipt_secret: str | None = None,
    ) -> SpspInfo:
        """Ask ``recipient`` for fresh SPSP parameters.

        Raises:
            InvalidIdentityError: if ``recipient`` is not a valid pubkey
            TransportError: if the request could not be published anywhere
            CorrelationTimeoutError: if no valid response arrived in time
            SpspError: if the recipient answered with an error, or no keys
                were configured
        """
        recipient = validate_identity(recipient)
        if self._correlator is None:
            raise SpspError("Dynamic SPSP requests require signing keys")

        request = SpspRequest(
            request_id=str(uuid.uuid4()),
            timestamp=int(time.time()),
            receipt_nonce=receipt_nonce,
            receipt_secret=receipt_secret,
        )
        response = await self._correlator.request(
            recipient, request, timeout=timeout, relays=relays
        )

        if response.error is not None:
            raise SpspError(
                f"SPSP request failed: {response.error.code} - {response.error.message}",
                remote_code=response.error.code,
            )
        return response.to_spsp_info()

    def clear_cache(self) -> None:
        self._cache.clear()
