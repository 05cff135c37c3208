# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Core configuration - centralized config for the agent_society package.

All environment-based configuration flows through this module.

Usage:
    from agent_society.core.config import get_config
    config = get_config()

    relays = config.relay_list
    timeout = config.request_timeout
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from ..trust.social_graph import TrustConfig

DEFAULT_RELAYS = "wss://relay.damus.io,wss://nos.lol"


class AgentSocietySettings(BaseSettings):
    """Configuration settings for Agent Society.

    Settings can be configured via AGENT_SOCIETY_* environment variables
    or a local .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # IDENTITY / RELAY SETTINGS
    # ==========================================================================

    private_key: str | None = Field(
        default=None,
        description="secp256k1 private key hex used for signing and NIP-44",
        validation_alias="AGENT_SOCIETY_PRIVATE_KEY",
    )
    relays: str = Field(
        default=DEFAULT_RELAYS,
        description="Comma-separated list of relay websocket URLs",
        validation_alias="AGENT_SOCIETY_RELAYS",
    )

    # ==========================================================================
    # TIMEOUTS (seconds)
    # ==========================================================================

    query_timeout: float = Field(
        default=5.0,
        description="Per-relay timeout waiting for EOSE on a query",
        validation_alias="AGENT_SOCIETY_QUERY_TIMEOUT",
    )
    publish_timeout: float = Field(
        default=5.0,
        description="Per-relay timeout waiting for an OK acknowledgement",
        validation_alias="AGENT_SOCIETY_PUBLISH_TIMEOUT",
    )
    request_timeout: float = Field(
        default=10.0,
        description="Deadline for an encrypted SPSP request/response exchange",
        validation_alias="AGENT_SOCIETY_REQUEST_TIMEOUT",
    )

    # ==========================================================================
    # TRUST SETTINGS
    # ==========================================================================

    trust_base_credit_followed: int = Field(
        default=1000,
        validation_alias="AGENT_SOCIETY_TRUST_BASE_CREDIT_FOLLOWED",
    )
    trust_base_credit_unfollowed: int = Field(
        default=0,
        validation_alias="AGENT_SOCIETY_TRUST_BASE_CREDIT_UNFOLLOWED",
    )
    trust_mutual_follower_bonus: int = Field(
        default=100,
        validation_alias="AGENT_SOCIETY_TRUST_MUTUAL_FOLLOWER_BONUS",
    )
    trust_max_mutual_bonus: int = Field(
        default=500,
        validation_alias="AGENT_SOCIETY_TRUST_MAX_MUTUAL_BONUS",
    )
    trust_max_credit_limit: int = Field(
        default=10000,
        validation_alias="AGENT_SOCIETY_TRUST_MAX_CREDIT_LIMIT",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="AGENT_SOCIETY_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="AGENT_SOCIETY_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="AGENT_SOCIETY_LOG_FILE",
    )

    @field_validator("query_timeout", "publish_timeout", "request_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @field_validator("trust_max_credit_limit")
    @classmethod
    def _positive_limit(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("trust_max_credit_limit must be positive")
        return value

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def relay_list(self) -> list[str]:
        """Relay URLs, deduplicated with order preserved."""
        relays = [r.strip() for r in self.relays.split(",") if r.strip()]
        return list(dict.fromkeys(relays))

    def trust_config(self) -> TrustConfig:
        """Build the TrustConfig used by the social graph engine."""
        from ..trust.social_graph import TrustConfig

        return TrustConfig(
            base_credit_for_followed=self.trust_base_credit_followed,
            mutual_follower_bonus=self.trust_mutual_follower_bonus,
            max_mutual_bonus=self.trust_max_mutual_bonus,
            base_credit_for_unfollowed=self.trust_base_credit_unfollowed,
            max_credit_limit=self.trust_max_credit_limit,
        )


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: AgentSocietySettings | None = None


def get_config() -> AgentSocietySettings:
    """Get the global configuration instance.

    Returns:
        The singleton AgentSocietySettings instance.
    """
    global _config
    if _config is None:
        _config = AgentSocietySettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
