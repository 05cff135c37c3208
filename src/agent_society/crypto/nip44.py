# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""NIP-44 v2 payload encryption.

Construction:
- secp256k1 ECDH (unhashed shared x coordinate)
- HKDF-extract with salt "nip44-v2" -> conversation key
- HKDF-expand(conversation key, nonce) -> ChaCha20 key, ChaCha20 nonce, HMAC key
- Length-prefixed, power-of-two-ish padding of the plaintext
- HMAC-SHA256 over nonce || ciphertext
- base64(version || nonce || ciphertext || mac)
"""

from __future__ import annotations

import base64
import binascii
import os
import struct

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms
from cryptography.hazmat.primitives.kdf.hkdf import HKDFExpand

from ..core.exceptions import DecryptionError

VERSION = 2
SALT = b"nip44-v2"
NONCE_SIZE = 32
MAC_SIZE = 32
MIN_PLAINTEXT_SIZE = 1
MAX_PLAINTEXT_SIZE = 65535


def _hmac_sha256(key: bytes, *parts: bytes) -> bytes:
    h = hmac.HMAC(key, hashes.SHA256())
    for part in parts:
        h.update(part)
    return h.finalize()


def shared_secret(private_key: bytes, public_key_hex: str) -> bytes:
    """Unhashed ECDH x coordinate between a secret and an x-only pubkey."""
    try:
        priv = ec.derive_private_key(int.from_bytes(private_key, "big"), ec.SECP256K1())
        pub = ec.EllipticCurvePublicKey.from_encoded_point(
            ec.SECP256K1(), b"\x02" + bytes.fromhex(public_key_hex)
        )
    except ValueError as e:
        raise DecryptionError("Invalid key material for ECDH", cause=e) from e
    return priv.exchange(ec.ECDH(), pub)


def get_conversation_key(private_key: bytes, public_key_hex: str) -> bytes:
    """Symmetric key shared by the two parties, independent of direction."""
    return _hmac_sha256(SALT, shared_secret(private_key, public_key_hex))


def _message_keys(conversation_key: bytes, nonce: bytes) -> tuple[bytes, bytes, bytes]:
    keys = HKDFExpand(algorithm=hashes.SHA256(), length=76, info=nonce).derive(conversation_key)
    return keys[0:32], keys[32:44], keys[44:76]


def calc_padded_len(unpadded_len: int) -> int:
    if unpadded_len <= 32:
        return 32
    next_power = 1 << (unpadded_len - 1).bit_length()
    chunk = 32 if next_power <= 256 else next_power // 8
    return chunk * ((unpadded_len - 1) // chunk + 1)


def _pad(plaintext: str) -> bytes:
    unpadded = plaintext.encode("utf-8")
    length = len(unpadded)
    if not MIN_PLAINTEXT_SIZE <= length <= MAX_PLAINTEXT_SIZE:
        raise ValueError(f"plaintext length {length} outside 1..65535")
    return struct.pack(">H", length) + unpadded + bytes(calc_padded_len(length) - length)


def _unpad(padded: bytes) -> str:
    (length,) = struct.unpack(">H", padded[:2])
    unpadded = padded[2 : 2 + length]
    if length == 0 or len(unpadded) != length or len(padded) != 2 + calc_padded_len(length):
        raise DecryptionError("Invalid padding")
    try:
        return unpadded.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Plaintext is not valid UTF-8", cause=e) from e


def _chacha20(key: bytes, nonce: bytes, data: bytes) -> bytes:
    # cryptography takes a 16-byte nonce: 4-byte little-endian counter + 12-byte nonce
    cipher = Cipher(algorithms.ChaCha20(key, b"\x00\x00\x00\x00" + nonce), mode=None)
    encryptor = cipher.encryptor()
    return encryptor.update(data) + encryptor.finalize()


def encrypt(plaintext: str, conversation_key: bytes, nonce: bytes | None = None) -> str:
    """Encrypt ``plaintext`` into a base64 NIP-44 v2 payload."""
    nonce = nonce if nonce is not None else os.urandom(NONCE_SIZE)
    if len(nonce) != NONCE_SIZE:
        raise ValueError("nonce must be 32 bytes")
    chacha_key, chacha_nonce, hmac_key = _message_keys(conversation_key, nonce)
    ciphertext = _chacha20(chacha_key, chacha_nonce, _pad(plaintext))
    mac = _hmac_sha256(hmac_key, nonce, ciphertext)
    return base64.b64encode(bytes([VERSION]) + nonce + ciphertext + mac).decode("ascii")


def decrypt(payload: str, conversation_key: bytes) -> str:
    """Authenticate and decrypt a NIP-44 v2 payload.

    Raises:
        DecryptionError: on unknown version, bad length, MAC mismatch or bad padding
    """
    if not isinstance(payload, str) or not payload or payload.startswith("#"):
        raise DecryptionError("Unknown encryption version")
    if not 132 <= len(payload) <= 87472:
        raise DecryptionError("Invalid payload size")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("Invalid base64", cause=e) from e
    if not 99 <= len(data) <= 65603:
        raise DecryptionError("Invalid data size")
    if data[0] != VERSION:
        raise DecryptionError(f"Unknown encryption version {data[0]}")

    nonce = data[1 : 1 + NONCE_SIZE]
    ciphertext = data[1 + NONCE_SIZE : -MAC_SIZE]
    mac = data[-MAC_SIZE:]

    chacha_key, chacha_nonce, hmac_key = _message_keys(conversation_key, nonce)
    verifier = hmac.HMAC(hmac_key, hashes.SHA256())
    verifier.update(nonce)
    verifier.update(ciphertext)
    try:
        verifier.verify(mac)
    except InvalidSignature as e:
        raise DecryptionError("Invalid MAC", cause=e) from e

    return _unpad(_chacha20(chacha_key, chacha_nonce, ciphertext))
