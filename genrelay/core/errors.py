"""
Error taxonomy for the orchestration layer.

Surfaced to callers:
- ConfigurationError: no credential resolvable (never retried)
- RateLimitError / TransientServerError / RemoteTimeoutError: retried, surfaced
  once attempts are exhausted
- ClientError: other 4xx failures (never retried)

Internal only (logged, degrade gracefully):
- CacheError, VaultError, UsageTrackingError

Classification is abstracted behind ErrorClass so the retry executor is not
tied to one provider's error shape; classify_error is the default classifier
and can be swapped per executor.
"""
import asyncio
import socket
from enum import Enum
from typing import Any, Iterable, Optional

import httpx

from .sanitize import redact

RATE_LIMIT_MESSAGE = "The AI service is under high load, please retry in a moment."
TRANSIENT_MESSAGE = "The AI service is temporarily unavailable, please retry."
TIMEOUT_MESSAGE = "The AI service did not respond in time, please retry."


class ErrorClass(Enum):
    """Retry classification of a remote failure."""
    RATE_LIMITED = "rate_limited"
    TRANSIENT_SERVER = "transient_server"
    CLIENT_FAULT = "client_fault"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in (ErrorClass.RATE_LIMITED, ErrorClass.TRANSIENT_SERVER)


class GenRelayError(Exception):
    """Base class for all errors raised by genrelay."""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class ConfigurationError(GenRelayError):
    """Raised when required configuration (e.g. a credential) is missing."""

    def __init__(self, message: str, hint: Optional[str] = None):
        user_message = f"{message} {hint}" if hint else message
        super().__init__(message, user_message=user_message)
        self.hint = hint


class RemoteServiceError(GenRelayError):
    """A failure reported by (or while reaching) the remote AI service."""

    error_class = ErrorClass.UNKNOWN

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, user_message=user_message)
        self.status = status
        self.attempts = 1
        self.retries_exhausted = False

    def mark_exhausted(self, attempts: int) -> "RemoteServiceError":
        """Annotate the error as the last one seen before giving up."""
        self.attempts = attempts
        self.retries_exhausted = True
        if "retries exhausted" not in self.user_message:
            self.user_message = f"{self.user_message} (retries exhausted after {attempts} attempts)"
        return self


class RateLimitError(RemoteServiceError):
    error_class = ErrorClass.RATE_LIMITED


class TransientServerError(RemoteServiceError):
    error_class = ErrorClass.TRANSIENT_SERVER


class RemoteTimeoutError(TransientServerError):
    """The remote call exceeded the caller-supplied timeout."""


class ClientError(RemoteServiceError):
    error_class = ErrorClass.CLIENT_FAULT


class CacheError(GenRelayError):
    """Internal cache fault. Never propagated to callers."""


class VaultError(GenRelayError):
    """Stored secret is corrupted or cannot be decoded."""


class InvalidCredentialError(GenRelayError, ValueError):
    """Provider name or secret failed validation on write."""


class UsageTrackingError(GenRelayError):
    """Recording usage failed. Logged only."""


def extract_status(error: BaseException) -> Optional[int]:
    """Find a numeric HTTP-like status on an exception, if any."""
    if isinstance(error, RemoteServiceError):
        return error.status
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("status", "status_code", "code"):
        value: Any = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(error, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    return None


def classify_error(error: BaseException) -> ErrorClass:
    """
    Default classifier.

    429 is rate limiting, 5xx is transient, any other 4xx is a client fault.
    Failures with no status are transient when they are timeouts or transport
    errors and UNKNOWN (not retried) otherwise.
    """
    if isinstance(error, RemoteServiceError) and error.status is None:
        return error.error_class

    status = extract_status(error)
    if status is not None:
        if status == 429:
            return ErrorClass.RATE_LIMITED
        if status >= 500:
            return ErrorClass.TRANSIENT_SERVER
        if 400 <= status < 500:
            return ErrorClass.CLIENT_FAULT
        return ErrorClass.UNKNOWN

    if isinstance(
        error,
        (asyncio.TimeoutError, TimeoutError, socket.timeout, httpx.TransportError, ConnectionError),
    ):
        return ErrorClass.TRANSIENT_SERVER
    return ErrorClass.UNKNOWN


def to_remote_error(
    error: BaseException,
    error_class: ErrorClass,
    secrets: Iterable[Optional[str]] = (),
) -> RemoteServiceError:
    """
    Convert an arbitrary failure into the remote error taxonomy.

    The technical message is kept (with secrets redacted); the user-facing
    message is substituted for throttling and transient failures.
    """
    secrets = list(secrets)
    if isinstance(error, RemoteServiceError):
        # Both messages travel to callers and spans
        error.args = (redact(str(error), secrets),) + error.args[1:]
        error.user_message = redact(error.user_message, secrets)
        return error

    status = extract_status(error)
    message = redact(str(error) or type(error).__name__, secrets)

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, socket.timeout, httpx.TimeoutException)):
        return RemoteTimeoutError(message, status=status, user_message=TIMEOUT_MESSAGE)
    if error_class is ErrorClass.RATE_LIMITED:
        return RateLimitError(message, status=status, user_message=RATE_LIMIT_MESSAGE)
    if error_class is ErrorClass.TRANSIENT_SERVER:
        return TransientServerError(message, status=status, user_message=TRANSIENT_MESSAGE)
    if error_class is ErrorClass.CLIENT_FAULT:
        return ClientError(message, status=status)
    return RemoteServiceError(message, status=status)
