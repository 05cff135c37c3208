# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Record model and payload types for the Agent Society protocol.

A Record is an immutable, signed NIP-01 event. Payload dataclasses are the
parsed forms of the record content for each kind we care about. Optional
payload fields use ``None`` for "absent" so that building and re-parsing a
payload reproduces exactly the fields that were set.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from ..core.exceptions import InvalidIdentityError, InvalidRecordError

PUBKEY_RE = re.compile(r"^[0-9a-f]{64}$")
EVENT_ID_RE = PUBKEY_RE
SIGNATURE_RE = re.compile(r"^[0-9a-f]{128}$")


# =============================================================================
# IDENTITY
# =============================================================================


def is_valid_identity(value: Any) -> bool:
    """Strict check: 64-character lowercase hex string."""
    return isinstance(value, str) and PUBKEY_RE.match(value) is not None


def validate_identity(value: Any) -> str:
    """Return ``value`` unchanged or raise InvalidIdentityError."""
    if not is_valid_identity(value):
        raise InvalidIdentityError(value)
    return value


def normalize_identity(value: Any) -> str:
    """Case-normalize a hex pubkey supplied by a user, then validate it."""
    if isinstance(value, str):
        value = value.strip().lower()
    return validate_identity(value)


# =============================================================================
# RECORDS
# =============================================================================


@dataclass(frozen=True)
class EventTemplate:
    """An unsigned record: what builders produce and signers consume."""

    kind: int
    created_at: int
    tags: tuple[tuple[str, ...], ...] = ()
    content: str = ""


@dataclass(frozen=True)
class Record:
    """A signed, immutable NIP-01 event."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    sig: str

    def tag_values(self, name: str) -> list[str]:
        """First values of every tag called ``name`` (e.g. all ``p`` targets)."""
        return [t[1] for t in self.tags if len(t) > 1 and t[0] == name]

    def to_dict(self) -> dict[str, Any]:
        """Wire (JSON) form."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(t) for t in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Record:
        """Validate the NIP-01 shape of a wire event.

        Raises:
            InvalidRecordError: if any field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise InvalidRecordError("Event must be a JSON object")

        for name, pattern in (("id", EVENT_ID_RE), ("pubkey", PUBKEY_RE), ("sig", SIGNATURE_RE)):
            value = data.get(name)
            if not isinstance(value, str) or not pattern.match(value):
                raise InvalidRecordError(f"Missing or invalid event field: {name}", field=name)

        for name in ("created_at", "kind"):
            value = data.get(name)
            if not _is_int(value) or value < 0:
                raise InvalidRecordError(f"Missing or invalid event field: {name}", field=name)

        content = data.get("content")
        if not isinstance(content, str):
            raise InvalidRecordError("Missing or invalid event field: content", field="content")

        raw_tags = data.get("tags")
        if not isinstance(raw_tags, list):
            raise InvalidRecordError("Missing or invalid event field: tags", field="tags")
        tags: list[tuple[str, ...]] = []
        for tag in raw_tags:
            if not isinstance(tag, list) or not all(isinstance(v, str) for v in tag):
                raise InvalidRecordError("Event tags must be lists of strings", field="tags")
            tags.append(tuple(tag))

        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=tuple(tags),
            content=content,
            sig=data["sig"],
        )


def _is_int(value: Any) -> bool:
    # bool is a subclass of int but never a valid numeric field
    return isinstance(value, int) and not isinstance(value, bool)


# =============================================================================
# PAYLOADS
# =============================================================================


@dataclass
class Asset:
    """An asset a peer can settle in, with its decimal scale."""

    code: str
    scale: int


@dataclass
class SettlementMethod:
    """A settlement descriptor, e.g. ``("xrp-paychan", ["rXYZ..."])``."""

    type: str
    details: list[str] = field(default_factory=list)


@dataclass
class PeerAdvertisement:
    """Content of a kind 10032 ILP peer info record."""

    ilp_address: str
    btp_endpoint: str
    assets: list[Asset] | None = None
    settlement: list[SettlementMethod] | None = None
    relays: list[str] | None = None

    def __post_init__(self) -> None:
        if not self.ilp_address:
            raise ValueError("ilp_address must be non-empty")
        if not self.btp_endpoint:
            raise ValueError("btp_endpoint must be non-empty")


@dataclass
class SpspInfo:
    """Static or freshly negotiated SPSP parameters."""

    destination_account: str
    shared_secret: str
    receipts_enabled: bool | None = None


@dataclass
class SpspRequest:
    """Decrypted content of a kind 23194 request."""

    request_id: str
    timestamp: int
    receipt_nonce: str | None = None
    receipt_secret: str | None = None


@dataclass
class SpspErrorInfo:
    """Error body of an SPSP response."""

    code: str
    message: str


@dataclass
class SpspResponse:
    """Decrypted content of a kind 23195 response.

    Carries either SPSP parameters or an error, never both.
    """

    request_id: str
    destination_account: str | None = None
    shared_secret: str | None = None
    receipts_enabled: bool | None = None
    error: SpspErrorInfo | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_spsp_info(self) -> SpspInfo:
        if self.destination_account is None or self.shared_secret is None:
            raise ValueError("error responses carry no SPSP parameters")
        return SpspInfo(
            destination_account=self.destination_account,
            shared_secret=self.shared_secret,
            receipts_enabled=self.receipts_enabled,
        )


@dataclass(frozen=True)
class FollowEdge:
    """A directed follow relationship from a NIP-02 ``p`` tag."""

    from_pubkey: str
    to_pubkey: str
    relay_hint: str | None = None
    petname: str | None = None
