"""
Core infrastructure modules.
Contains the response cache, retry executor, error taxonomy, configuration
and observability (logging, metrics, tracing).
"""
from .cache import ResponseCache, get_response_cache
from .config import Settings, get_settings
from .fingerprint import fingerprint
from .retry import RetryExecutor, RetryPolicy

__all__ = [
    "ResponseCache",
    "RetryExecutor",
    "RetryPolicy",
    "Settings",
    "fingerprint",
    "get_response_cache",
    "get_settings",
]
