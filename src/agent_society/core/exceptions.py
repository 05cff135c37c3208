# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for Agent Society.

Every error raised by the protocol layer carries a stable machine-readable
``code`` so callers can branch on the failure category without parsing
messages.

Propagation rules:
- InvalidRecordError / DecryptionError for a single record are absorbed by
  batch operations (the record is excluded).
- TransportError and CorrelationTimeoutError escalate to the caller.
- The bootstrap loop is the only place that absorbs per-seed failures.
"""

from __future__ import annotations

from typing import Any


class AgentSocietyError(Exception):
    """Base exception for all Agent Society errors."""

    def __init__(
        self,
        message: str,
        code: str = "AGENT_SOCIETY_ERROR",
        details: dict | None = None,
        cause: BaseException | None = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result


class InvalidRecordError(AgentSocietyError):
    """A record or decrypted payload is malformed.

    Raised when:
    - The record kind is not the expected one
    - Content is not a JSON object
    - Required fields are missing or have the wrong primitive type
    """

    def __init__(self, message: str, field: str | None = None, cause: BaseException | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, "INVALID_EVENT", details, cause)
        self.field = field


class InvalidIdentityError(AgentSocietyError):
    """A public key is not a 64-character lowercase hex string."""

    def __init__(self, value: Any):
        shown = str(value)
        if len(shown) > 80:
            shown = shown[:80] + "..."
        super().__init__(
            f"Invalid pubkey format: must be 64-character lowercase hex string, got {shown!r}",
            "INVALID_IDENTITY",
            {"value": shown},
        )
        self.value = value


class TransportError(AgentSocietyError):
    """All relays failed a publish, or a query could not be attempted."""

    def __init__(
        self,
        message: str,
        relays: list[str] | None = None,
        cause: BaseException | None = None,
    ):
        details = {"relays": list(relays)} if relays else {}
        super().__init__(message, "TRANSPORT_FAILED", details, cause)
        self.relays = list(relays or [])


class DecryptionError(AgentSocietyError):
    """A NIP-44 payload could not be authenticated or decrypted."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message, "DECRYPTION_FAILED", None, cause)


class CorrelationTimeoutError(AgentSocietyError):
    """No valid matching response arrived before the deadline.

    Distinct from TransportError so callers can retry the exchange with a
    different relay set.
    """

    def __init__(
        self,
        message: str,
        recipient: str,
        request_id: str | None = None,
        cause: BaseException | None = None,
    ):
        details = {"recipient": recipient}
        if request_id:
            details["request_id"] = request_id
        super().__init__(message, "SPSP_TIMEOUT", details, cause)
        self.recipient = recipient
        self.request_id = request_id


class PeerDiscoveryError(AgentSocietyError):
    """Peer discovery could not be performed."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message, "PEER_DISCOVERY_FAILED", None, cause)


class SpspError(AgentSocietyError):
    """An SPSP exchange failed or the peer answered with an error."""

    def __init__(
        self,
        message: str,
        remote_code: str | None = None,
        cause: BaseException | None = None,
    ):
        details = {"remote_code": remote_code} if remote_code else {}
        super().__init__(message, "SPSP_FAILED", details, cause)
        self.remote_code = remote_code


class BootstrapError(AgentSocietyError):
    """Bootstrapping with a single known peer failed."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message, "BOOTSTRAP_FAILED", None, cause)


class ConfigError(AgentSocietyError):
    """Configuration is missing or invalid.

    Raised when:
    - Required settings (private key, relays) are missing
    - Trust limits are inconsistent
    """

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {"missing_vars": missing_vars} if missing_vars else {}
        super().__init__(message, "CONFIG_ERROR", details)
        self.missing_vars = missing_vars or []
