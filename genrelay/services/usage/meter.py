"""
Usage and cost metering.

Token counts are estimated (about 4 characters per token) the same way for
request and response text. Cost uses a caller-supplied pricing table of
per-token prices. Records are kept in a bounded session log (FIFO) and summed
into running totals that survive log eviction. Nothing is persisted: a new
process, or reset(), starts a new session.

A cache hit is still recorded, flagged cache_hit=True and costed at zero, so
request counts stay accurate.
"""
import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from genrelay.core.errors import UsageTrackingError
from genrelay.core.logging import get_logger
from genrelay.core.metrics import record_tokens_and_cost

logger = get_logger(__name__)

CHARS_PER_TOKEN = 4
DEFAULT_MAX_RECORDS = 1000
DEFAULT_MODEL = "default"


class ModelPricing(BaseModel):
    """Unit prices for one model, in USD per token."""

    model_config = {"frozen": True}

    input_price_per_token: float = Field(..., ge=0.0)
    output_price_per_token: float = Field(..., ge=0.0)

    @classmethod
    def per_million(cls, input_price: float, output_price: float) -> "ModelPricing":
        return cls(
            input_price_per_token=input_price / 1_000_000,
            output_price_per_token=output_price / 1_000_000,
        )


PricingTable = Mapping[str, ModelPricing]

# Approximate list prices (USD per 1M tokens); callers should supply their own.
DEFAULT_PRICING: Dict[str, ModelPricing] = {
    "gemini-pro": ModelPricing.per_million(0.5, 1.5),
    "gemini-flash": ModelPricing.per_million(0.15, 0.6),
    "gemini-2.0-flash": ModelPricing.per_million(0.1, 0.4),
    DEFAULT_MODEL: ModelPricing.per_million(0.5, 1.5),
}


class UsageRecord(BaseModel):
    """Usage of one orchestrated request."""

    model_config = {"frozen": True}

    request_id: str
    model: str = DEFAULT_MODEL
    input_tokens: int = Field(..., ge=0)
    output_tokens: int = Field(..., ge=0)
    estimated_cost_usd: float = Field(..., ge=0.0)
    timestamp: float
    cache_hit: bool = False


class SessionTotals(BaseModel):
    """Running totals for the current session."""

    request_count: int = 0
    cache_hits: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0
    started_at: float = 0.0


def estimate_tokens(text: Optional[str]) -> int:
    """Approximate token count: one token per ~4 characters, rounded up."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate_to_token_limit(text: Optional[str], max_tokens: int) -> str:
    """Truncate text so its estimated token count fits ``max_tokens``."""
    if not text:
        return ""
    if estimate_tokens(text) <= max_tokens:
        return text
    return text[: max_tokens * CHARS_PER_TOKEN] + "..."


def load_pricing_table(raw: Mapping[str, Mapping[str, float]]) -> Dict[str, ModelPricing]:
    """
    Validate a plain ``{model: {input_price_per_token, output_price_per_token}}``
    mapping (e.g. loaded from JSON).

    Raises:
        ValueError if an entry is malformed
    """
    table: Dict[str, ModelPricing] = {}
    for model, prices in raw.items():
        try:
            table[model] = ModelPricing.model_validate(prices)
        except ValidationError as exc:
            raise ValueError(f"Invalid pricing for model '{model}': {exc}") from exc
    return table


def lookup_pricing(pricing_table: PricingTable, model: str) -> ModelPricing:
    """Model price, falling back to the table's default entry, then to zero."""
    pricing = pricing_table.get(model) or pricing_table.get(DEFAULT_MODEL)
    if pricing is None:
        return ModelPricing(input_price_per_token=0.0, output_price_per_token=0.0)
    return pricing


class UsageMeter:
    """Session-scoped usage log and totals."""

    def __init__(
        self,
        max_records: int = DEFAULT_MAX_RECORDS,
        clock: Callable[[], float] = time.time,
    ):
        if max_records < 1:
            raise ValueError("max_records must be >= 1")
        self.max_records = max_records
        self._clock = clock
        self._lock = threading.Lock()
        self._records: Deque[UsageRecord] = deque(maxlen=max_records)
        self._totals = SessionTotals(started_at=clock())

    def record_usage(
        self,
        request_id: str,
        input_text: Optional[str],
        output_text: Optional[str],
        pricing_table: PricingTable,
        cache_hit: bool = False,
        model: str = DEFAULT_MODEL,
    ) -> UsageRecord:
        """
        Estimate tokens and cost for one request and append it to the session.

        Raises:
            UsageTrackingError if the record cannot be built
        """
        try:
            input_tokens = estimate_tokens(input_text)
            output_tokens = estimate_tokens(output_text)
            if cache_hit:
                cost = 0.0
            else:
                pricing = lookup_pricing(pricing_table, model)
                cost = (
                    input_tokens * pricing.input_price_per_token
                    + output_tokens * pricing.output_price_per_token
                )
            record = UsageRecord(
                request_id=request_id,
                model=model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                estimated_cost_usd=cost,
                timestamp=self._clock(),
                cache_hit=cache_hit,
            )
        except (TypeError, ValueError, AttributeError) as exc:
            raise UsageTrackingError(f"Could not record usage for {request_id}: {exc}") from exc

        with self._lock:
            # deque(maxlen) drops the oldest record on overflow
            self._records.append(record)
            totals = self._totals
            totals.request_count += 1
            totals.cache_hits += int(cache_hit)
            totals.total_input_tokens += input_tokens
            totals.total_output_tokens += output_tokens
            totals.total_cost_usd += cost

        if not cache_hit:
            record_tokens_and_cost(input_tokens, output_tokens, cost)
        return record

    def session_totals(self) -> SessionTotals:
        with self._lock:
            return self._totals.model_copy()

    def records(self) -> List[UsageRecord]:
        """Retained records, oldest first."""
        with self._lock:
            return list(self._records)

    def reset(self) -> None:
        """Start a new session."""
        with self._lock:
            self._records.clear()
            self._totals = SessionTotals(started_at=self._clock())
        logger.info("usage_session_reset")


_usage_meter: Optional[UsageMeter] = None


def get_usage_meter() -> UsageMeter:
    """Process-wide usage meter."""
    global _usage_meter
    if _usage_meter is None:
        from genrelay.core.config import get_settings

        _usage_meter = UsageMeter(max_records=get_settings().usage_max_records)
    return _usage_meter


def reset_usage_meter() -> None:
    global _usage_meter
    _usage_meter = None
