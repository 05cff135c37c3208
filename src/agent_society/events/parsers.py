# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Parsers for Agent Society records.

Every parser is pure: it either returns the payload dataclass or raises
InvalidRecordError. Unknown keys and tags are ignored so newer publishers
stay readable. Optional fields missing from the input stay ``None``.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from ..core.exceptions import InvalidRecordError
from .kinds import FOLLOW_LIST_KIND, ILP_PEER_INFO_KIND, SPSP_INFO_KIND
from .models import (
    Asset,
    FollowEdge,
    PeerAdvertisement,
    Record,
    SettlementMethod,
    SpspErrorInfo,
    SpspInfo,
    SpspRequest,
    SpspResponse,
    is_valid_identity,
)

_MISSING = object()


# =============================================================================
# FIELD HELPERS
# =============================================================================


def _expect_kind(record: Record, kind: int) -> None:
    if record.kind != kind:
        raise InvalidRecordError(f"Expected event kind {kind}, got {record.kind}")


def _load_object(text: str) -> dict[str, Any]:
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError) as e:
        raise InvalidRecordError("Failed to parse event content as JSON", cause=e) from e
    if not isinstance(parsed, dict):
        raise InvalidRecordError("Event content must be a JSON object")
    return parsed


def _required_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidRecordError(f"Missing or invalid required field: {key}", field=key)
    return value


def _optional(data: dict[str, Any], key: str, kind: type, label: str) -> Any:
    value = data.get(key, _MISSING)
    if value is _MISSING:
        return None
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise InvalidRecordError(f"Invalid optional field: {key} must be {label}", field=key)
    return value


def _required_int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidRecordError(f"Missing or invalid required field: {key}", field=key)
    return value


def _string_list(value: Any, key: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidRecordError(f"Invalid field: {key} must be a list of strings", field=key)
    return list(value)


# =============================================================================
# REPLACEABLE PAYLOADS
# =============================================================================


def parse_peer_info(record: Record) -> PeerAdvertisement:
    """Parse a kind 10032 record into a PeerAdvertisement.

    Raises:
        InvalidRecordError: if the record is malformed or missing required fields
    """
    _expect_kind(record, ILP_PEER_INFO_KIND)
    data = _load_object(record.content)

    ilp_address = _required_str(data, "ilpAddress")
    btp_endpoint = _required_str(data, "btpEndpoint")

    assets = None
    raw_assets = _optional(data, "assets", list, "a list")
    if raw_assets is not None:
        assets = []
        for entry in raw_assets:
            if not isinstance(entry, dict):
                raise InvalidRecordError("Invalid asset entry", field="assets")
            scale = _required_int(entry, "scale")
            if scale < 0:
                raise InvalidRecordError("Asset scale must be non-negative", field="scale")
            assets.append(Asset(code=_required_str(entry, "code"), scale=scale))

    settlement = None
    raw_settlement = _optional(data, "settlement", list, "a list")
    if raw_settlement is not None:
        settlement = []
        for entry in raw_settlement:
            if not isinstance(entry, dict):
                raise InvalidRecordError("Invalid settlement entry", field="settlement")
            details = entry.get("details", [])
            settlement.append(
                SettlementMethod(
                    type=_required_str(entry, "type"),
                    details=_string_list(details, "details"),
                )
            )

    relays = None
    raw_relays = _optional(data, "relays", list, "a list")
    if raw_relays is not None:
        relays = _string_list(raw_relays, "relays")

    return PeerAdvertisement(
        ilp_address=ilp_address,
        btp_endpoint=btp_endpoint,
        assets=assets,
        settlement=settlement,
        relays=relays,
    )


def parse_spsp_info(record: Record) -> SpspInfo:
    """Parse a kind 10047 record into SpspInfo."""
    _expect_kind(record, SPSP_INFO_KIND)
    data = _load_object(record.content)
    return SpspInfo(
        destination_account=_required_str(data, "destinationAccount"),
        shared_secret=_required_str(data, "sharedSecret"),
        receipts_enabled=_optional(data, "receiptsEnabled", bool, "a boolean"),
    )


def parse_follow_list(record: Record) -> list[FollowEdge]:
    """Extract follow edges from a kind 3 record.

    ``p`` tags whose target is not a valid pubkey are skipped. Duplicate
    targets keep their first occurrence.
    """
    _expect_kind(record, FOLLOW_LIST_KIND)
    edges: list[FollowEdge] = []
    seen: set[str] = set()
    for tag in record.tags:
        if len(tag) < 2 or tag[0] != "p" or not is_valid_identity(tag[1]):
            continue
        if tag[1] in seen:
            continue
        seen.add(tag[1])
        edges.append(
            FollowEdge(
                from_pubkey=record.pubkey,
                to_pubkey=tag[1],
                relay_hint=tag[2] if len(tag) > 2 and tag[2] else None,
                petname=tag[3] if len(tag) > 3 and tag[3] else None,
            )
        )
    return edges


# =============================================================================
# ENCRYPTED PAYLOADS (already decrypted)
# =============================================================================


def parse_spsp_request(plaintext: str) -> SpspRequest:
    """Parse the decrypted content of a kind 23194 request."""
    data = _load_object(plaintext)
    return SpspRequest(
        request_id=_required_str(data, "requestId"),
        timestamp=_required_int(data, "timestamp"),
        receipt_nonce=_optional(data, "receiptNonce", str, "a string"),
        receipt_secret=_optional(data, "receiptSecret", str, "a string"),
    )


def parse_spsp_response(plaintext: str) -> SpspResponse:
    """Parse the decrypted content of a kind 23195 response."""
    data = _load_object(plaintext)
    request_id = _required_str(data, "requestId")

    raw_error = _optional(data, "error", dict, "an object")
    if raw_error is not None:
        return SpspResponse(
            request_id=request_id,
            error=SpspErrorInfo(
                code=_required_str(raw_error, "code"),
                message=str(raw_error.get("message", "")),
            ),
        )

    return SpspResponse(
        request_id=request_id,
        destination_account=_required_str(data, "destinationAccount"),
        shared_secret=_required_str(data, "sharedSecret"),
        receipts_enabled=_optional(data, "receiptsEnabled", bool, "a boolean"),
    )


# =============================================================================
# DISPATCH
# =============================================================================

PARSERS: dict[int, Callable[[Record], Any]] = {
    ILP_PEER_INFO_KIND: parse_peer_info,
    SPSP_INFO_KIND: parse_spsp_info,
    FOLLOW_LIST_KIND: parse_follow_list,
}


def parse(record: Record, expected_kind: int) -> Any:
    """Parse ``record`` as ``expected_kind``.

    Raises:
        InvalidRecordError: wrong kind, unknown kind, or malformed payload
    """
    parser = PARSERS.get(expected_kind)
    if parser is None:
        raise InvalidRecordError(f"No parser registered for kind {expected_kind}")
    return parser(record)


def is_well_formed(record: Record) -> bool:
    """True if ``record`` parses as its own kind."""
    try:
        parse(record, record.kind)
    except InvalidRecordError:
        return False
    return True
