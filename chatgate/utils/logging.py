"""
Structured logging for the gateway.

Every entry carries the request context bound by the context middleware
(request id, path, method and, once authenticated, account id). Credentials
that pass through the gateway (bearer tokens, the identity provider's service
key, OpenRouter and PayPal secrets, webhook signatures) are masked before
rendering, including inside nested header mappings.
"""

import logging
import sys
from collections.abc import Mapping
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from chatgate import __version__
from chatgate.config import Settings, get_settings

SENSITIVE_KEYS = (
    "authorization",
    "apikey",
    "api_key",
    "secret",
    "password",
    "access_token",
    "bearer",
    "transmission-sig",
    "transmission_sig",
)

# Token counts are metering data, not credentials
PLAIN_KEYS = frozenset({"tokens_used", "estimated_tokens", "max_tokens"})

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "uvicorn.access")


def mask_secret(value: Any) -> str:
    """Keep just enough of a credential to tell two of them apart."""
    if isinstance(value, str) and len(value) > 12:
        return f"{value[:4]}...{value[-4:]}"
    return "***REDACTED***"


def _is_sensitive(key: str) -> bool:
    key = key.lower()
    return key not in PLAIN_KEYS and any(marker in key for marker in SENSITIVE_KEYS)


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: mask_secret(v) if _is_sensitive(str(k)) else _redact(v) for k, v in value.items()}
    return value


def redact_credentials(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential-looking keys, one level of nesting included."""
    return {
        key: mask_secret(value) if _is_sensitive(key) else _redact(value)
        for key, value in event_dict.items()
    }


def add_service_info(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp every entry with the service name, version and environment."""
    event_dict.setdefault("service", "chatgate")
    event_dict.setdefault("version", __version__)
    event_dict.setdefault("environment", get_settings().environment.value)
    return event_dict


def configure_logging(settings: Settings | None = None) -> None:
    """
    Route structlog and stdlib logging through one processor chain.

    JSON lines in production, coloured console output everywhere else.
    """
    settings = settings or get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        redact_credentials,
        add_service_info,
    ]
    if settings.is_production:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.value),
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
