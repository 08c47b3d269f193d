"""
Unit tests for token estimation and session usage accounting.
"""
import pytest

from genrelay.core.errors import UsageTrackingError
from genrelay.services.usage import (
    DEFAULT_PRICING,
    ModelPricing,
    UsageMeter,
    estimate_tokens,
    get_usage_meter,
    load_pricing_table,
    truncate_to_token_limit,
)

PRICING = {
    "default": ModelPricing(input_price_per_token=0.001, output_price_per_token=0.002),
    "cheap": ModelPricing(input_price_per_token=0.0001, output_price_per_token=0.0001),
}


class TestEstimation:
    @pytest.mark.parametrize(
        "text,expected",
        [("", 0), (None, 0), ("abc", 1), ("abcd", 1), ("abcde", 2), ("x" * 400, 100)],
    )
    def test_estimate_tokens(self, text, expected):
        assert estimate_tokens(text) == expected

    def test_truncate_to_token_limit(self):
        assert truncate_to_token_limit("short", 10) == "short"
        assert truncate_to_token_limit("x" * 100, 5) == "x" * 20 + "..."
        assert truncate_to_token_limit("", 5) == ""


class TestPricing:
    def test_default_pricing_per_million(self):
        assert DEFAULT_PRICING["gemini-pro"].input_price_per_token == pytest.approx(0.5e-6)
        assert DEFAULT_PRICING["gemini-flash"].output_price_per_token == pytest.approx(0.6e-6)
        assert "default" in DEFAULT_PRICING

    def test_load_pricing_table(self):
        table = load_pricing_table(
            {"m": {"input_price_per_token": 0.1, "output_price_per_token": 0.2}}
        )
        assert table["m"].output_price_per_token == 0.2

    def test_load_pricing_table_rejects_negative_prices(self):
        with pytest.raises(ValueError):
            load_pricing_table({"m": {"input_price_per_token": -1, "output_price_per_token": 0}})


class TestUsageMeter:
    def test_cost_from_pricing_table(self, fake_clock):
        meter = UsageMeter(clock=fake_clock)
        record = meter.record_usage("r1", "x" * 40, "y" * 80, PRICING)
        assert record.input_tokens == 10
        assert record.output_tokens == 20
        assert record.estimated_cost_usd == pytest.approx(10 * 0.001 + 20 * 0.002)
        assert record.timestamp == fake_clock.now
        assert record.cache_hit is False

    def test_cache_hit_costs_nothing_but_is_counted(self):
        meter = UsageMeter()
        record = meter.record_usage("r1", "x" * 40, "y" * 80, PRICING, cache_hit=True)
        assert record.estimated_cost_usd == 0.0
        assert record.cache_hit is True
        totals = meter.session_totals()
        assert totals.request_count == 1
        assert totals.cache_hits == 1
        assert totals.total_cost_usd == 0.0

    def test_model_specific_price(self):
        meter = UsageMeter()
        record = meter.record_usage("r1", "x" * 40, "", PRICING, model="cheap")
        assert record.estimated_cost_usd == pytest.approx(10 * 0.0001)

    def test_unknown_model_uses_default_entry(self):
        meter = UsageMeter()
        record = meter.record_usage("r1", "x" * 40, "", PRICING, model="mystery")
        assert record.estimated_cost_usd == pytest.approx(10 * 0.001)

    def test_no_default_entry_means_zero_cost(self):
        meter = UsageMeter()
        record = meter.record_usage("r1", "x" * 40, "y", {}, model="mystery")
        assert record.estimated_cost_usd == 0.0

    def test_session_totals_accumulate(self):
        meter = UsageMeter()
        meter.record_usage("r1", "x" * 4, "y" * 8, PRICING)
        meter.record_usage("r2", "x" * 8, "y" * 4, PRICING)
        totals = meter.session_totals()
        assert totals.request_count == 2
        assert totals.total_input_tokens == 3
        assert totals.total_output_tokens == 3
        assert totals.total_cost_usd == pytest.approx(3 * 0.001 + 3 * 0.002)

    def test_log_is_bounded_fifo_but_totals_are_not(self):
        meter = UsageMeter(max_records=3)
        for i in range(5):
            meter.record_usage(f"r{i}", "abcd", "abcd", PRICING)
        assert [r.request_id for r in meter.records()] == ["r2", "r3", "r4"]
        assert meter.session_totals().request_count == 5

    def test_reset_starts_new_session(self, fake_clock):
        meter = UsageMeter(clock=fake_clock)
        meter.record_usage("r1", "abcd", "abcd", PRICING)
        fake_clock.advance(60)
        meter.reset()
        totals = meter.session_totals()
        assert totals.request_count == 0
        assert totals.started_at == fake_clock.now
        assert meter.records() == []

    def test_session_totals_is_a_snapshot(self):
        meter = UsageMeter()
        snapshot = meter.session_totals()
        meter.record_usage("r1", "abcd", "abcd", PRICING)
        assert snapshot.request_count == 0

    def test_bad_pricing_raises_usage_tracking_error(self):
        meter = UsageMeter()
        with pytest.raises(UsageTrackingError):
            meter.record_usage("r1", "abcd", "abcd", {"default": object()})
        assert meter.session_totals().request_count == 0

    def test_max_records_must_be_positive(self):
        with pytest.raises(ValueError):
            UsageMeter(max_records=0)


def test_get_usage_meter_singleton(monkeypatch):
    from genrelay.core.config import reset_settings
    from genrelay.services.usage import reset_usage_meter

    monkeypatch.setenv("GENRELAY_USAGE_MAX_RECORDS", "5")
    reset_settings()
    reset_usage_meter()
    meter = get_usage_meter()
    assert meter is get_usage_meter()
    assert meter.max_records == 5
