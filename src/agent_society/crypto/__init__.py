"""Agent Society crypto - record signing and NIP-44 payload encryption."""

from .keys import NostrKeys, compute_event_id, verify_record
from .nip44 import decrypt as nip44_decrypt
from .nip44 import encrypt as nip44_encrypt
from .nip44 import get_conversation_key

__all__ = [
    "NostrKeys",
    "compute_event_id",
    "verify_record",
    "get_conversation_key",
    "nip44_encrypt",
    "nip44_decrypt",
]
