"""
Redaction helpers.

Credential values must never appear in user-visible messages or logs. These
helpers mask secrets (first 4 / last 4 characters) and scrub sensitive keys
from nested payloads before they are logged.
"""
from typing import Any, Iterable, Optional, Sequence

SENSITIVE_FIELDS: Sequence[str] = (
    "api_key",
    "apikey",
    "secret",
    "token",
    "password",
    "credential",
    "authorization",
)

SHORT_MASK = "****"


def is_sensitive_key(key: Any, sensitive_fields: Sequence[str] = SENSITIVE_FIELDS) -> bool:
    """True for keys like ``api_key`` or ``access_token``, not ``input_tokens``."""
    lowered = str(key).lower()
    return any(lowered == field or lowered.endswith("_" + field) for field in sensitive_fields)


def masked_display(secret: Optional[str]) -> str:
    """
    Render a secret for display.

    Returns ``first4...last4`` for secrets longer than 8 characters and a fixed
    short mask otherwise, so short secrets reveal nothing.
    """
    if not secret or len(secret) <= 8:
        return SHORT_MASK
    return f"{secret[:4]}...{secret[-4:]}"


def redact(text: str, secrets: Iterable[Optional[str]]) -> str:
    """Replace every occurrence of each secret in ``text`` with its masked form."""
    if not text:
        return text
    for secret in secrets:
        if secret and secret in text:
            text = text.replace(secret, masked_display(secret))
    return text


def sanitize_mapping(obj: Any, sensitive_fields: Sequence[str] = SENSITIVE_FIELDS) -> Any:
    """
    Recursively replace values of sensitive keys with ``[REDACTED]``.

    Lists and dicts are copied; the input is never mutated.
    """
    if isinstance(obj, dict):
        sanitized = {}
        for key, value in obj.items():
            if is_sensitive_key(key, sensitive_fields):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = sanitize_mapping(value, sensitive_fields)
        return sanitized
    if isinstance(obj, (list, tuple)):
        return [sanitize_mapping(item, sensitive_fields) for item in obj]
    return obj


def truncate_for_log(text: Optional[str], max_length: int = 100) -> Optional[str]:
    """Truncate long strings for log output."""
    if not text or len(text) <= max_length:
        return text
    return text[:max_length] + "..."
