"""Technical indicators — pure functions on a close series, summarised for the oracle."""

from __future__ import annotations

from decimal import Decimal
from statistics import mean
from typing import Any

from paper_agents.models.market import StrategySignal

MIN_CLOSES_FOR_INDICATORS = 15


def rsi(closes: list[Decimal], period: int = 14) -> Decimal | None:
    """Relative Strength Index (Wilder's smoothing).

    Returns a Decimal in [0, 100] or None if there are fewer than
    ``period + 1`` data points.
    """
    if len(closes) < period + 1:
        return None

    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]

    gains = [d if d > 0 else Decimal(0) for d in deltas[:period]]
    losses = [-d if d < 0 else Decimal(0) for d in deltas[:period]]
    avg_gain = Decimal(mean(gains))
    avg_loss = Decimal(mean(losses))

    for d in deltas[period:]:
        avg_gain = (avg_gain * (period - 1) + (d if d > 0 else Decimal(0))) / period
        avg_loss = (avg_loss * (period - 1) + (-d if d < 0 else Decimal(0))) / period

    if avg_loss == 0:
        return Decimal(100)
    rs = avg_gain / avg_loss
    return Decimal(100) - Decimal(100) / (1 + rs)


def ema(closes: list[Decimal], period: int) -> Decimal | None:
    """Exponential moving average seeded with the SMA of the first *period* closes."""
    if len(closes) < period:
        return None
    k = Decimal(2) / Decimal(period + 1)
    value = Decimal(mean(closes[:period]))
    for close in closes[period:]:
        value = close * k + value * (1 - k)
    return value


def bollinger_bands(
    closes: list[Decimal],
    period: int = 20,
    num_std: int | float = 2,
) -> tuple[Decimal, Decimal, Decimal] | None:
    """Bollinger Bands (SMA +/- num_std * stdev) as ``(lower, middle, upper)``."""
    if len(closes) < period:
        return None

    window = closes[-period:]
    middle = Decimal(mean(window))
    variance = sum((p - middle) ** 2 for p in window) / period
    offset = variance.sqrt() * Decimal(str(num_std))
    return (middle - offset, middle, middle + offset)


def summarize_indicators(closes: list[Decimal], price: Decimal) -> dict[str, Any]:
    """Latest indicator values as short strings for the decision prompt.

    Only computed from real candles; with too few closes the summary says so
    instead of guessing.
    """
    if len(closes) < MIN_CLOSES_FOR_INDICATORS:
        return {"note": "No OHLCV data available; indicators skipped"}

    summary: dict[str, Any] = {}
    last_rsi = rsi(closes)
    if last_rsi is not None:
        summary["rsi"] = f"{last_rsi:.2f}"

    ema9 = ema(closes, 9)
    ema21 = ema(closes, 21)
    if ema9 is not None and ema21 is not None:
        summary["ema9"] = f"{ema9:.4f}"
        summary["ema21"] = f"{ema21:.4f}"
        summary["emaTrend"] = "bullish" if ema9 > ema21 else "bearish"

    bands = bollinger_bands(closes)
    if bands is not None:
        lower, _, upper = bands
        width = upper - lower
        summary["bollingerPB"] = f"{(price - lower) / width:.3f}" if width > 0 else "N/A"
    return summary


# ── Strategy signals ──────────────────────────────────────────


def _rsi_signal(closes: list[Decimal]) -> StrategySignal | None:
    value = rsi(closes)
    if value is None:
        return None
    level = float(value)
    if level < 30:
        return StrategySignal(
            strategy="rsi_oversold",
            action="buy",
            confidence=min(0.9, (30 - level) / 30 + 0.5),
            reason=f"RSI {level:.1f} below 30, oversold",
        )
    if level > 70:
        return StrategySignal(
            strategy="rsi_oversold",
            action="sell",
            confidence=min(0.9, (level - 70) / 30 + 0.5),
            reason=f"RSI {level:.1f} above 70, overbought",
        )
    return StrategySignal(
        strategy="rsi_oversold",
        action="hold",
        confidence=0.6,
        reason=f"RSI {level:.1f} in neutral zone (30-70)",
    )


def _ema_signal(closes: list[Decimal]) -> StrategySignal | None:
    fast, slow = ema(closes, 9), ema(closes, 21)
    prev_fast, prev_slow = ema(closes[:-1], 9), ema(closes[:-1], 21)
    if fast is None or slow is None or prev_fast is None or prev_slow is None:
        return None
    if prev_fast <= prev_slow and fast > slow:
        return StrategySignal(
            strategy="ema_crossover",
            action="buy",
            confidence=0.75,
            reason=f"EMA9 crossed above EMA21 ({fast:.4f} > {slow:.4f})",
        )
    if prev_fast >= prev_slow and fast < slow:
        return StrategySignal(
            strategy="ema_crossover",
            action="sell",
            confidence=0.75,
            reason=f"EMA9 crossed below EMA21 ({fast:.4f} < {slow:.4f})",
        )
    return StrategySignal(
        strategy="ema_crossover",
        action="hold",
        confidence=0.5,
        reason=f"No EMA crossover, EMA9={fast:.4f} EMA21={slow:.4f}",
    )


def _bollinger_signal(closes: list[Decimal], price: Decimal) -> StrategySignal | None:
    bands = bollinger_bands(closes)
    if bands is None:
        return None
    lower, _, upper = bands
    width = upper - lower
    if width <= 0:
        return None
    pb = float((price - lower) / width)
    if pb < 0.05:
        return StrategySignal(
            strategy="bollinger_bounce",
            action="buy",
            confidence=0.72,
            reason=f"Price near lower Bollinger Band ({pb:.3f} %B)",
        )
    if pb > 0.95:
        return StrategySignal(
            strategy="bollinger_bounce",
            action="sell",
            confidence=0.72,
            reason=f"Price near upper Bollinger Band ({pb:.3f} %B)",
        )
    return StrategySignal(
        strategy="bollinger_bounce",
        action="hold",
        confidence=0.5,
        reason=f"Price in middle of Bollinger Bands (%B={pb:.3f})",
    )


def evaluate_signals(closes: list[Decimal], price: Decimal) -> list[StrategySignal]:
    """One signal per strategy that has enough data, in a fixed order.

    Signals are advisory input for the oracle; they never place trades.
    """
    if len(closes) < MIN_CLOSES_FOR_INDICATORS:
        return []
    signals = [
        _rsi_signal(closes),
        _ema_signal(closes),
        _bollinger_signal(closes, price),
    ]
    return [s for s in signals if s is not None]
