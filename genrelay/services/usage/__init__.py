"""Token estimation, pricing and session usage accounting."""

from .meter import (
    DEFAULT_PRICING,
    ModelPricing,
    SessionTotals,
    UsageMeter,
    UsageRecord,
    estimate_tokens,
    get_usage_meter,
    load_pricing_table,
    reset_usage_meter,
    truncate_to_token_limit,
)

__all__ = [
    "DEFAULT_PRICING",
    "ModelPricing",
    "SessionTotals",
    "UsageMeter",
    "UsageRecord",
    "estimate_tokens",
    "get_usage_meter",
    "load_pricing_table",
    "reset_usage_meter",
    "truncate_to_token_limit",
]
