"""Tests for technical indicators and the prompt indicator summary."""

from __future__ import annotations

from decimal import Decimal

import pytest

from paper_agents.agent.indicators import (
    MIN_CLOSES_FOR_INDICATORS,
    bollinger_bands,
    ema,
    evaluate_signals,
    rsi,
    summarize_indicators,
)


class TestRSI:
    def test_insufficient_data_returns_none(self):
        assert rsi([Decimal(i) for i in range(14)], period=14) is None
        assert rsi([], period=14) is None

    def test_exactly_enough_data(self):
        # 15 closes → 14 deltas → exactly one period
        closes = [Decimal(i) for i in range(15)]
        result = rsi(closes, period=14)
        assert result is not None

    def test_all_gains_returns_100(self):
        # Monotonically increasing → RSI = 100
        closes = [Decimal(i) for i in range(20)]
        result = rsi(closes, period=14)
        assert result == Decimal(100)

    def test_all_losses_returns_0(self):
        # Monotonically decreasing → RSI = 0
        closes = [Decimal(20 - i) for i in range(20)]
        result = rsi(closes, period=14)
        assert result == Decimal(0)

    def test_equal_gains_and_losses_around_50(self):
        # Alternating up/down → RSI near 50
        closes = []
        price = Decimal(100)
        for i in range(30):
            closes.append(price)
            price += Decimal(1) if i % 2 == 0 else Decimal(-1)
        result = rsi(closes, period=14)
        assert result is not None
        assert Decimal(40) < result < Decimal(60)

    def test_known_value(self):
        # Hand-calculated example: 14 gains of +1, then 5 losses of -1
        closes = [Decimal(100)]
        for _ in range(14):
            closes.append(closes[-1] + Decimal(1))
        for _ in range(5):
            closes.append(closes[-1] - Decimal(1))
        result = rsi(closes, period=14)
        assert result is not None
        # After 14 gains: avg_gain=1, avg_loss=0 → RSI seed=100
        # Then Wilder smoothing through 5 losses brings it down
        assert Decimal(40) < result < Decimal(80)

    def test_custom_period(self):
        closes = [Decimal(i) for i in range(10)]
        result = rsi(closes, period=5)
        assert result is not None
        assert result == Decimal(100)  # all gains


class TestBollingerBands:
    def test_insufficient_data_returns_none(self):
        assert bollinger_bands([Decimal(1)] * 19, period=20) is None
        assert bollinger_bands([], period=20) is None

    def test_constant_prices_bands_equal_middle(self):
        closes = [Decimal(100)] * 20
        result = bollinger_bands(closes, period=20)
        assert result is not None
        lower, middle, upper = result
        assert middle == Decimal(100)
        assert lower == Decimal(100)
        assert upper == Decimal(100)

    def test_symmetric_bands(self):
        closes = [Decimal(100)] * 10 + [Decimal(110)] * 10
        result = bollinger_bands(closes, period=20, num_std=2)
        assert result is not None
        lower, middle, upper = result
        # Bands should be symmetric around middle
        assert upper - middle == pytest.approx(middle - lower, abs=Decimal("0.0001"))

    def test_middle_is_sma(self):
        closes = [Decimal(i) for i in range(1, 21)]
        result = bollinger_bands(closes, period=20)
        assert result is not None
        _, middle, _ = result
        expected_sma = sum(Decimal(i) for i in range(1, 21)) / 20
        assert middle == expected_sma

    def test_wider_std_gives_wider_bands(self):
        closes = [Decimal(100 + i % 5) for i in range(25)]
        narrow = bollinger_bands(closes, period=20, num_std=1)
        wide = bollinger_bands(closes, period=20, num_std=3)
        assert narrow is not None and wide is not None
        narrow_width = narrow[2] - narrow[0]
        wide_width = wide[2] - wide[0]
        assert wide_width > narrow_width

    def test_uses_last_n_closes(self):
        # First 20 values don't matter; only last 20 are used
        closes = [Decimal(50)] * 20 + [Decimal(100)] * 20
        result = bollinger_bands(closes, period=20)
        assert result is not None
        _, middle, _ = result
        assert middle == Decimal(100)


class TestEMA:
    def test_insufficient_data_returns_none(self):
        assert ema([Decimal(1)] * 8, 9) is None

    def test_constant_series(self):
        assert ema([Decimal(5)] * 30, 9) == Decimal(5)

    def test_seeded_with_sma(self):
        closes = [Decimal(i) for i in range(1, 10)]
        assert ema(closes, 9) == Decimal(5)

    def test_reacts_to_new_close(self):
        closes = [Decimal(10)] * 9 + [Decimal(20)]
        # k = 2 / 10
        assert ema(closes, 9) == Decimal(20) * Decimal("0.2") + Decimal(10) * Decimal("0.8")


class TestSummarizeIndicators:
    def test_too_few_closes(self):
        closes = [Decimal(1)] * (MIN_CLOSES_FOR_INDICATORS - 1)
        summary = summarize_indicators(closes, Decimal(1))
        assert list(summary) == ["note"]

    def test_uptrend(self):
        closes = [Decimal(100 + i) for i in range(30)]
        summary = summarize_indicators(closes, closes[-1])
        assert summary["emaTrend"] == "bullish"
        assert summary["rsi"] == "100.00"
        assert "bollingerPB" in summary

    def test_downtrend(self):
        closes = [Decimal(200 - i) for i in range(30)]
        assert summarize_indicators(closes, closes[-1])["emaTrend"] == "bearish"

    def test_flat_series_has_no_percent_b(self):
        closes = [Decimal(100)] * 25
        assert summarize_indicators(closes, Decimal(100))["bollingerPB"] == "N/A"

    def test_fifteen_closes_skip_long_ema(self):
        closes = [Decimal(100 + i) for i in range(MIN_CLOSES_FOR_INDICATORS)]
        summary = summarize_indicators(closes, closes[-1])
        assert "rsi" in summary
        assert "emaTrend" not in summary


class TestEvaluateSignals:
    def _by_strategy(self, closes, price):
        return {s.strategy: s for s in evaluate_signals(closes, price)}

    def test_too_few_closes(self):
        closes = [Decimal(100 + i) for i in range(MIN_CLOSES_FOR_INDICATORS - 1)]
        assert evaluate_signals(closes, closes[-1]) == []

    def test_overbought_uptrend(self):
        closes = [Decimal(100 + i) for i in range(30)]
        signals = self._by_strategy(closes, Decimal(135))
        assert signals["rsi_oversold"].action == "sell"
        assert signals["rsi_oversold"].confidence == pytest.approx(0.9)
        # No fresh cross in a steady trend
        assert signals["ema_crossover"].action == "hold"
        assert signals["bollinger_bounce"].action == "sell"

    def test_oversold_near_lower_band(self):
        closes = [Decimal(200 - i) for i in range(30)]
        signals = self._by_strategy(closes, Decimal(165))
        assert signals["rsi_oversold"].action == "buy"
        assert signals["bollinger_bounce"].action == "buy"
        assert signals["bollinger_bounce"].confidence == pytest.approx(0.72)

    def test_ema_cross_above(self):
        closes = [Decimal(100)] * 25 + [Decimal(130)]
        signals = self._by_strategy(closes, closes[-1])
        assert signals["ema_crossover"].action == "buy"
        assert signals["ema_crossover"].confidence == pytest.approx(0.75)

    def test_flat_series_has_no_bollinger_signal(self):
        closes = [Decimal(100)] * 25
        signals = self._by_strategy(closes, Decimal(100))
        assert "bollinger_bounce" not in signals
        assert signals["rsi_oversold"].action == "sell"

    def test_fifteen_closes_only_rsi(self):
        closes = [Decimal(100 + i) for i in range(MIN_CLOSES_FOR_INDICATORS)]
        assert [s.strategy for s in evaluate_signals(closes, closes[-1])] == ["rsi_oversold"]
