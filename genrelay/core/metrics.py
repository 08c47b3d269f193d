"""
Prometheus metrics for the orchestration layer.

Metrics Categories:
- Cache: hits, misses, evictions
- Remote calls: request count by outcome, latency, retry attempts
- Usage: estimated tokens and cost
- Credentials: resolution source (vault / environment / missing)

All metrics follow Prometheus naming conventions:
- Counters: _total suffix
- Histograms: _seconds suffix for duration

Recording helpers sit next to the remote call on hot paths and stay cheap:
one label lookup and one increment each. A failing helper logs a warning
and returns; metric recording never raises into callers.
"""
import functools
from typing import Any, Callable, TypeVar

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

from .logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., None])

registry = REGISTRY

# ============================================================================
# CACHE METRICS
# ============================================================================

cache_hits_total = Counter(
    "genrelay_cache_hits_total",
    "Total number of response cache hits",
    registry=registry,
)

cache_misses_total = Counter(
    "genrelay_cache_misses_total",
    "Total number of response cache misses (absent or expired)",
    registry=registry,
)

cache_evictions_total = Counter(
    "genrelay_cache_evictions_total",
    "Total number of LRU evictions from the response cache",
    registry=registry,
)

# ============================================================================
# REMOTE CALL METRICS
# ============================================================================

remote_requests_total = Counter(
    "genrelay_remote_requests_total",
    "Total number of orchestrated remote calls",
    ["operation", "outcome"],  # outcome: success, cache_hit, failed, config_error
    registry=registry,
)

remote_request_duration_seconds = Histogram(
    "genrelay_remote_request_duration_seconds",
    "Remote task latency in seconds, including retries",
    ["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=registry,
)

retry_attempts_total = Counter(
    "genrelay_retry_attempts_total",
    "Total number of failed attempts, by error class",
    ["operation", "error_class"],
    registry=registry,
)

# ============================================================================
# USAGE METRICS
# ============================================================================

tokens_total = Counter(
    "genrelay_tokens_total",
    "Estimated tokens processed",
    ["direction"],  # input / output
    registry=registry,
)

cost_usd_total = Counter(
    "genrelay_cost_usd_total",
    "Estimated remote cost in USD",
    registry=registry,
)

credential_resolutions_total = Counter(
    "genrelay_credential_resolutions_total",
    "Credential resolutions by source",
    ["source"],  # vault / environment / missing
    registry=registry,
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _tolerant(func: F) -> F:
    """Log and swallow failures of a recording helper."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        try:
            func(*args, **kwargs)
        except Exception as e:
            logger.warning(
                "metrics_record_failed",
                metric_helper=func.__name__,
                error=str(e),
                error_type=type(e).__name__,
            )

    return wrapper  # type: ignore[return-value]


@_tolerant
def record_cache_hit() -> None:
    cache_hits_total.inc()


@_tolerant
def record_cache_miss() -> None:
    cache_misses_total.inc()


@_tolerant
def record_cache_eviction() -> None:
    cache_evictions_total.inc()


@_tolerant
def record_remote_request(operation: str, outcome: str, duration_seconds: float = 0.0) -> None:
    """
    Record one orchestrated call.

    Args:
        operation: Operation name passed to invoke()
        outcome: success, cache_hit, failed or config_error
        duration_seconds: Time spent in the remote task (0 for cache hits)
    """
    remote_requests_total.labels(operation=operation, outcome=outcome).inc()
    if outcome in ("success", "failed"):
        remote_request_duration_seconds.labels(operation=operation).observe(duration_seconds)


@_tolerant
def record_retry_attempt(operation: str, error_class: str) -> None:
    retry_attempts_total.labels(operation=operation, error_class=error_class).inc()


@_tolerant
def record_tokens_and_cost(input_tokens: int, output_tokens: int, cost_usd: float) -> None:
    """Record estimated token counts and cost for one usage record."""
    if input_tokens > 0:
        tokens_total.labels(direction="input").inc(input_tokens)
    if output_tokens > 0:
        tokens_total.labels(direction="output").inc(output_tokens)
    if cost_usd > 0:
        cost_usd_total.inc(cost_usd)


@_tolerant
def record_credential_resolution(source: str) -> None:
    credential_resolutions_total.labels(source=source).inc()


def get_metrics() -> bytes:
    """Prometheus metrics in text exposition format."""
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
