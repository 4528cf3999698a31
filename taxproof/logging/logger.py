"""
Logger Implementation
=====================

structlog configuration for TaxProof services.

Every entry carries the service name, an ISO timestamp and any context
bound for the current request. Proof witnesses never reach the output:
the raw income, the commitment secret and key material are replaced
before rendering, at any nesting depth.

Version: 0.1.0
"""

import datetime
import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor


if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger


REDACTED = "***REDACTED***"

# Matched as substrings of the lowercased key.
SENSITIVE_KEYS = frozenset(
    {
        "password",
        "api_key",
        "secret",
        "token",
        "authorization",
        "private_key",
    }
)

# Matched exactly, so "income_range" and "witness_path" still log.
WITNESS_KEYS = frozenset({"income", "witness"})

# Third-party loggers that log every request at DEBUG/INFO
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "asyncio", "web3", "aiohttp")

LOG_VERSION = "0.1.0"

_service_name = "taxproof"


def _is_sensitive(key: str) -> bool:
    key_lower = key.lower()
    return key_lower in WITNESS_KEYS or any(s in key_lower for s in SENSITIVE_KEYS)


def censor_event(event_dict: dict[str, Any]) -> dict[str, Any]:
    """Replace values of sensitive keys, recursing into nested dicts."""
    censored = {}
    for key, value in event_dict.items():
        if _is_sensitive(key):
            value = REDACTED
        elif isinstance(value, dict):
            value = censor_event(value)
        censored[key] = value
    return censored


def _censor_witnesses(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    return censor_event(event_dict)


def _stamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Service name, version and UTC timestamp."""
    event_dict.setdefault("service", _service_name)
    event_dict.setdefault("version", LOG_VERSION)
    event_dict["timestamp"] = datetime.datetime.now(datetime.UTC).isoformat()
    return event_dict


def _build_processors(json_logs: bool) -> tuple[list[Processor], Processor]:
    """Processor chain shared by structlog and stdlib records, plus the renderer."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        _stamp,
        _censor_witnesses,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        processors.append(structlog.processors.format_exc_info)
        return processors, structlog.processors.JSONRenderer()

    processors.append(structlog.dev.set_exc_info)
    renderer = structlog.dev.ConsoleRenderer(
        colors=True,
        exception_formatter=structlog.dev.RichTracebackFormatter(
            # Locals would print witnesses held in prover frames
            show_locals=False,
            max_frames=10,
        ),
    )
    return processors, renderer


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    service_name: str = "taxproof",
) -> None:
    """
    Configure structlog and route stdlib logging through it.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON lines (production) instead of colored console output
        service_name: Value of the `service` key on every entry
    """
    global _service_name
    _service_name = service_name

    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    shared_processors, renderer = _build_processors(json_logs)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)


def get_logger(name: str | None = None) -> "BoundLogger":
    """
    Get a structured logger.

    Example:
        logger = get_logger(__name__)
        logger.info("tax_payment_completed", payment_id="...", tx_hash="0x...")
    """
    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """
    Bind values to every later entry in this async context.

    Example:
        bind_context(request_id="r-1", owner="user-1")
        logger.info("proof_verified_locally")  # carries request_id and owner
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop all bound context variables."""
    structlog.contextvars.clear_contextvars()
