"""Agent Society Core - configuration, logging and the error hierarchy."""

from .config import AgentSocietySettings, clear_config_cache, get_config
from .exceptions import (
    AgentSocietyError,
    BootstrapError,
    ConfigError,
    CorrelationTimeoutError,
    DecryptionError,
    InvalidIdentityError,
    InvalidRecordError,
    PeerDiscoveryError,
    SpspError,
    TransportError,
)
from .logging import configure_logging, current_exchange, exchange_context

__all__ = [
    # Config
    "AgentSocietySettings",
    "get_config",
    "clear_config_cache",
    # Exceptions
    "AgentSocietyError",
    "BootstrapError",
    "ConfigError",
    "CorrelationTimeoutError",
    "DecryptionError",
    "InvalidIdentityError",
    "InvalidRecordError",
    "PeerDiscoveryError",
    "SpspError",
    "TransportError",
    # Logging
    "configure_logging",
    "current_exchange",
    "exchange_context",
]
