# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Structured logging configuration for Agent Society.

Log lines emitted while an SPSP exchange is in flight carry that exchange's
request id and the peer on the other side. The JSON formatter writes them as
``request_id`` and ``peer`` fields; the text formatter prefixes the message
with a short ``[request_id peer]`` tag.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

NOISY_LOGGERS = ("aiohttp", "asyncio")


@dataclass(frozen=True)
class ExchangeContext:
    """The SPSP exchange a log line belongs to."""

    request_id: str
    peer: str

    def tag(self) -> str:
        return f"{self.request_id[:8]} {self.peer[:8]}"


_exchange: ContextVar[ExchangeContext | None] = ContextVar("spsp_exchange", default=None)


def current_exchange() -> ExchangeContext | None:
    """The exchange bound to the running task, if any."""
    return _exchange.get()


@contextmanager
def exchange_context(request_id: str, peer: str) -> Generator[ExchangeContext, None, None]:
    """Bind an SPSP request id and its peer pubkey to every log line in scope.

    The binding lives in a ContextVar, so concurrent exchanges on one event
    loop never see each other's ids.
    """
    context = ExchangeContext(request_id, peer)
    token = _exchange.set(context)
    try:
        yield context
    finally:
        _exchange.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        exchange = current_exchange()
        if exchange is not None:
            log_data["request_id"] = exchange.request_id
            log_data["peer"] = exchange.peer

        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


class StandardFormatter(logging.Formatter):
    """Human-readable format, colored when writing to a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    TAG_COLOR = "\033[90m"  # Gray

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the untouched record
        record = logging.makeLogRecord(record.__dict__)

        exchange = current_exchange()
        if exchange is not None:
            tag = f"[{exchange.tag()}]"
            if self.use_colors:
                tag = f"{self.TAG_COLOR}{tag}{self.RESET}"
            record.msg = f"{tag} {record.msg}"

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"

        return super().format(record)


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Install the Agent Society handlers on the root logger.

    Unset arguments fall back to ``AGENT_SOCIETY_LOG_LEVEL``,
    ``AGENT_SOCIETY_LOG_FORMAT`` ("json", "text" or unset for JSON when
    stderr is not a terminal) and ``AGENT_SOCIETY_LOG_FILE``. The log file,
    when given, is always JSON.
    """
    from .config import get_config

    config = get_config()

    if level is None:
        level = config.log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        log_format = config.log_format.lower()
        json_format = log_format == "json" or (log_format != "text" and not sys.stderr.isatty())

    log_file = config.log_file if log_file is None else log_file

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(JSONFormatter() if json_format else StandardFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
