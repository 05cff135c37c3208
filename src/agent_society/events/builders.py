# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Builders for Agent Society records.

Builders return unsigned ``EventTemplate``s (or plaintext JSON for the
encrypted request/response payloads). Signing is done by the crypto layer.
Optional payload fields that are ``None`` are omitted from the JSON.
"""

from __future__ import annotations

import json
import time
from collections.abc import Iterable
from typing import Any

from .kinds import FOLLOW_LIST_KIND, ILP_PEER_INFO_KIND, SPSP_INFO_KIND
from .models import (
    EventTemplate,
    FollowEdge,
    PeerAdvertisement,
    SpspInfo,
    SpspRequest,
    SpspResponse,
    validate_identity,
)


def _now() -> int:
    return int(time.time())


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def peer_advertisement_to_dict(info: PeerAdvertisement) -> dict[str, Any]:
    """JSON form of a PeerAdvertisement (camelCase keys, absent fields omitted)."""
    data: dict[str, Any] = {
        "ilpAddress": info.ilp_address,
        "btpEndpoint": info.btp_endpoint,
    }
    if info.assets is not None:
        data["assets"] = [{"code": a.code, "scale": a.scale} for a in info.assets]
    if info.settlement is not None:
        data["settlement"] = [
            {"type": s.type, "details": list(s.details)} for s in info.settlement
        ]
    if info.relays is not None:
        data["relays"] = list(info.relays)
    return data


def build_peer_info_event(info: PeerAdvertisement, created_at: int | None = None) -> EventTemplate:
    """Build a kind 10032 ILP peer info template."""
    return EventTemplate(
        kind=ILP_PEER_INFO_KIND,
        created_at=_now() if created_at is None else created_at,
        tags=(),
        content=_dumps(peer_advertisement_to_dict(info)),
    )


def build_spsp_info_event(info: SpspInfo, created_at: int | None = None) -> EventTemplate:
    """Build a kind 10047 static SPSP info template."""
    data: dict[str, Any] = {
        "destinationAccount": info.destination_account,
        "sharedSecret": info.shared_secret,
    }
    if info.receipts_enabled is not None:
        data["receiptsEnabled"] = info.receipts_enabled
    return EventTemplate(
        kind=SPSP_INFO_KIND,
        created_at=_now() if created_at is None else created_at,
        tags=(),
        content=_dumps(data),
    )


def build_follow_list_event(
    follows: Iterable[FollowEdge | str],
    created_at: int | None = None,
) -> EventTemplate:
    """Build a kind 3 follow list template.

    This replaces the entire follow list, so include all follows.
    Entries may be bare pubkeys or FollowEdges (whose ``from_pubkey`` is
    ignored; the signer is the author).
    """
    tags: list[tuple[str, ...]] = []
    for follow in follows:
        if isinstance(follow, str):
            tags.append(("p", validate_identity(follow)))
            continue
        tag = ["p", validate_identity(follow.to_pubkey)]
        if follow.relay_hint:
            tag.append(follow.relay_hint)
        elif follow.petname:
            tag.append("")  # empty relay hint keeps the petname in position 3
        if follow.petname:
            tag.append(follow.petname)
        tags.append(tuple(tag))

    return EventTemplate(
        kind=FOLLOW_LIST_KIND,
        created_at=_now() if created_at is None else created_at,
        tags=tuple(tags),
        content="",
    )


def build_spsp_request(request: SpspRequest) -> str:
    """Plaintext JSON for an SPSP request, ready for NIP-44 encryption."""
    data: dict[str, Any] = {
        "requestId": request.request_id,
        "timestamp": request.timestamp,
    }
    if request.receipt_nonce is not None:
        data["receiptNonce"] = request.receipt_nonce
    if request.receipt_secret is not None:
        data["receiptSecret"] = request.receipt_secret
    return _dumps(data)


def build_spsp_response(response: SpspResponse) -> str:
    """Plaintext JSON for an SPSP response, ready for NIP-44 encryption."""
    data: dict[str, Any] = {"requestId": response.request_id}
    if response.error is not None:
        data["error"] = {"code": response.error.code, "message": response.error.message}
    else:
        data["destinationAccount"] = response.destination_account
        data["sharedSecret"] = response.shared_secret
        if response.receipts_enabled is not None:
            data["receiptsEnabled"] = response.receipts_enabled
    return _dumps(data)
