# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Nostr identity keys: event ids, BIP-340 signatures and NIP-44 shortcuts."""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
from typing import Any

from coincurve import PrivateKey, PublicKeyXOnly

from ..core.exceptions import DecryptionError, InvalidIdentityError
from ..events.models import EventTemplate, Record, validate_identity
from . import nip44

logger = logging.getLogger(__name__)


def compute_event_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Any,
    content: str,
) -> str:
    """NIP-01 event id: sha256 of the canonical serialization."""
    serial = [0, pubkey, created_at, kind, [list(t) for t in tags], content]
    payload = json.dumps(serial, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def verify_record(record: Record) -> bool:
    """Check the id commitment and the Schnorr signature of a record."""
    expected = compute_event_id(
        record.pubkey, record.created_at, record.kind, record.tags, record.content
    )
    if expected != record.id:
        return False
    try:
        return PublicKeyXOnly(bytes.fromhex(record.pubkey)).verify(
            bytes.fromhex(record.sig), bytes.fromhex(record.id)
        )
    except (ValueError, TypeError):
        return False


class NostrKeys:
    """A secp256k1 keypair used to sign records and encrypt to peers.

    Conversation keys are memoized per peer pubkey for the lifetime of the
    instance.
    """

    def __init__(self, private_key_hex: str):
        try:
            secret = bytes.fromhex(private_key_hex.strip())
            if len(secret) != 32:
                raise ValueError("private key must be 32 bytes")
            self._private_key = PrivateKey(secret)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid private key: {e}") from e
        self._secret = secret
        # x-only pubkey: drop the parity byte of the compressed point
        self.public_key: str = self._private_key.public_key.format(compressed=True)[1:].hex()
        self._conversation_keys: dict[str, bytes] = {}

    @classmethod
    def generate(cls) -> NostrKeys:
        """Create a fresh random keypair."""
        return cls(secrets.token_hex(32))

    @property
    def private_key_hex(self) -> str:
        return self._secret.hex()

    def __repr__(self) -> str:
        return f"NostrKeys(public_key={self.public_key[:16]}...)"

    # -------------------------------------------------------------------------
    # SIGNING
    # -------------------------------------------------------------------------

    def sign(self, template: EventTemplate) -> Record:
        """Finalize a template into a signed record authored by this key."""
        event_id = compute_event_id(
            self.public_key, template.created_at, template.kind, template.tags, template.content
        )
        sig = self._private_key.sign_schnorr(bytes.fromhex(event_id))
        return Record(
            id=event_id,
            pubkey=self.public_key,
            created_at=template.created_at,
            kind=template.kind,
            tags=tuple(tuple(t) for t in template.tags),
            content=template.content,
            sig=sig.hex(),
        )

    # -------------------------------------------------------------------------
    # NIP-44
    # -------------------------------------------------------------------------

    def conversation_key(self, peer_pubkey: str) -> bytes:
        key = self._conversation_keys.get(peer_pubkey)
        if key is None:
            validate_identity(peer_pubkey)
            key = nip44.get_conversation_key(self._secret, peer_pubkey)
            self._conversation_keys[peer_pubkey] = key
        return key

    def encrypt(self, peer_pubkey: str, plaintext: str) -> str:
        """NIP-44 encrypt ``plaintext`` for ``peer_pubkey``."""
        return nip44.encrypt(plaintext, self.conversation_key(peer_pubkey))

    def decrypt(self, peer_pubkey: str, payload: str) -> str:
        """NIP-44 decrypt a payload sent by ``peer_pubkey``.

        Raises:
            DecryptionError: if the payload is not authentic for this pair
        """
        try:
            conversation_key = self.conversation_key(peer_pubkey)
        except InvalidIdentityError as e:
            raise DecryptionError(f"Cannot derive key for {peer_pubkey!r}", cause=e) from e
        return nip44.decrypt(payload, conversation_key)
