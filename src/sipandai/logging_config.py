"""Structured logging setup.

All modules log through structlog with key/value events:

    logger = get_logger(__name__)
    logger.warning("retry_scheduled", attempt=2, delay_seconds=0.4)

configure_logging() is called once by the application shell. Without
it, structlog's defaults still print readable output, so library code
never depends on configuration having happened.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

SENSITIVE_KEYS = ("password", "token", "secret", "credentials", "authorization", "cookie")


class RedactSensitiveProcessor:
    """Mask values whose key looks like a credential."""

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        self._redact(event_dict)
        return event_dict

    def _redact(self, data: dict[str, Any]) -> None:
        for key in list(data.keys()):
            if any(s in str(key).lower() for s in SENSITIVE_KEYS):
                data[key] = "[REDACTED]"
            elif isinstance(data[key], dict):
                self._redact(data[key])


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure stdlib logging and structlog processors."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        RedactSensitiveProcessor(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Return a structlog logger bound to the given module name."""
    return structlog.get_logger(name)
