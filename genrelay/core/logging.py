"""
Structured logging configuration for genrelay.

JSON-structured logging via structlog on top of the standard library.

All logs include:
- timestamp (ISO 8601 format)
- level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- service (service name identifier)
- request_id (unique per orchestrated call, when set)
- fingerprint / provider (when set for the current call)

Fields whose names look like credential material are masked before rendering,
so a stray ``api_key=...`` keyword never reaches the log sink in clear text.
"""
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from structlog.types import Processor

from .sanitize import is_sensitive_key, masked_display

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
fingerprint_var: ContextVar[Optional[str]] = ContextVar("fingerprint", default=None)
provider_var: ContextVar[Optional[str]] = ContextVar("provider", default=None)

SERVICE_NAME = "genrelay"


def add_call_context(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """Add per-call context (request_id, fingerprint, provider, service)."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    fingerprint = fingerprint_var.get()
    if fingerprint:
        # Short form is enough to correlate log lines
        event_dict["fingerprint"] = fingerprint[:16]

    provider = provider_var.get()
    if provider:
        event_dict["provider"] = provider

    event_dict["service"] = SERVICE_NAME

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    return event_dict


def redact_sensitive_fields(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """Mask values of fields named like secrets (api_key, token, ...)."""
    for key in list(event_dict.keys()):
        if is_sensitive_key(key):
            value = event_dict[key]
            if isinstance(value, str):
                event_dict[key] = masked_display(value)
            elif value is not None:
                event_dict[key] = "[REDACTED]"
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    service_name: Optional[str] = None,
    json_output: bool = True,
) -> None:
    """
    Configure structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Service name identifier (defaults to SERVICE_NAME)
        json_output: JSON lines when True, human-readable console output otherwise
    """
    global SERVICE_NAME
    if service_name:
        SERVICE_NAME = service_name

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_call_context,
        redact_sensitive_fields,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)
    """
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str]) -> None:
    request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_fingerprint(fingerprint: Optional[str]) -> None:
    fingerprint_var.set(fingerprint)


def get_fingerprint() -> Optional[str]:
    return fingerprint_var.get()


def set_provider(provider: Optional[str]) -> None:
    provider_var.set(provider)


def get_provider() -> Optional[str]:
    return provider_var.get()


def generate_request_id() -> str:
    """Generate a new unique request ID (UUID4 string)."""
    return str(uuid.uuid4())
