"""Tests for agent_society.crypto.nip44."""

from __future__ import annotations

import base64

import pytest

from agent_society.core.exceptions import DecryptionError
from agent_society.crypto import nip44
from agent_society.crypto.keys import NostrKeys

SEC1 = bytes.fromhex("00" * 31 + "01")
SEC2 = bytes.fromhex("00" * 31 + "02")


@pytest.fixture
def pub2() -> str:
    return NostrKeys(SEC2.hex()).public_key


@pytest.fixture
def conversation_key(pub2) -> bytes:
    return nip44.get_conversation_key(SEC1, pub2)


class TestConversationKey:
    """ECDH + HKDF-extract."""

    def test_known_vector(self, conversation_key):
        assert conversation_key.hex() == (
            "c41c775356fd92eadc63ff5a0dc1da211b268cbea22316767095b2871ea1412d"
        )

    def test_symmetric(self, conversation_key):
        pub1 = NostrKeys(SEC1.hex()).public_key
        assert nip44.get_conversation_key(SEC2, pub1) == conversation_key

    def test_invalid_public_key(self):
        with pytest.raises(DecryptionError):
            nip44.get_conversation_key(SEC1, "ff" * 32)


class TestPadding:
    """Padded length buckets."""

    @pytest.mark.parametrize(
        "length,padded",
        [(1, 32), (32, 32), (33, 64), (37, 64), (64, 64), (65, 96), (100, 128), (257, 320), (1000, 1024), (65535, 65536)],
    )
    def test_calc_padded_len(self, length, padded):
        assert nip44.calc_padded_len(length) == padded

    def test_empty_plaintext_rejected(self, conversation_key):
        with pytest.raises(ValueError):
            nip44.encrypt("", conversation_key)


class TestEncryptDecrypt:
    """Payload encryption."""

    def test_known_vector(self, conversation_key):
        nonce = bytes.fromhex("00" * 31 + "01")
        payload = nip44.encrypt("a", conversation_key, nonce=nonce)
        assert payload == (
            "AgAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAABee0G5VSK0/9YypIObAtDKfYEAjD35uVkHyB0F4DwrcNaCXlCWZKaArsGrY6M9wnuTMxWfp1RTN9Xga8no+kF5Vsb"
        )
        assert nip44.decrypt(payload, conversation_key) == "a"

    def test_unicode(self, conversation_key):
        text = "⚡ payment setup 🤝"
        assert nip44.decrypt(nip44.encrypt(text, conversation_key), conversation_key) == text

    def test_random_nonce(self, conversation_key):
        assert nip44.encrypt("same", conversation_key) != nip44.encrypt("same", conversation_key)

    def test_tampered_mac(self, conversation_key):
        data = bytearray(base64.b64decode(nip44.encrypt("hello", conversation_key)))
        data[-1] ^= 0x01
        with pytest.raises(DecryptionError, match="MAC"):
            nip44.decrypt(base64.b64encode(bytes(data)).decode(), conversation_key)

    def test_wrong_key(self, conversation_key):
        payload = nip44.encrypt("hello", conversation_key)
        with pytest.raises(DecryptionError):
            nip44.decrypt(payload, bytes(32))

    def test_unknown_version(self, conversation_key):
        data = bytearray(base64.b64decode(nip44.encrypt("hello", conversation_key)))
        data[0] = 1
        with pytest.raises(DecryptionError, match="version"):
            nip44.decrypt(base64.b64encode(bytes(data)).decode(), conversation_key)

    @pytest.mark.parametrize("payload", ["", "#future", "short", "!" * 200])
    def test_garbage(self, conversation_key, payload):
        with pytest.raises(DecryptionError):
            nip44.decrypt(payload, conversation_key)
