"""Agent Society SPSP - payment setup parameter exchange over Nostr."""

from .client import SpspClient
from .correlator import (
    DEFAULT_REQUEST_TIMEOUT,
    CorrelationState,
    EncryptedCorrelator,
    PendingCorrelation,
)
from .server import SpspGenerator, SpspServer

__all__ = [
    "DEFAULT_REQUEST_TIMEOUT",
    "CorrelationState",
    "EncryptedCorrelator",
    "PendingCorrelation",
    "SpspClient",
    "SpspGenerator",
    "SpspServer",
]
