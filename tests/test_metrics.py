"""Tests for performance metrics."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from paper_agents.metrics import compute_metrics, max_drawdown, sharpe_ratio, win_rate
from paper_agents.models.position import Position

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def _closed(pnl_pct: float, i: int = 0) -> Position:
    return Position(
        id=f"pos_{i}",
        agent_id="a",
        pair="WETH/USDC",
        dex="aerodrome",
        side="buy",
        entry_price=Decimal("100"),
        effective_entry_price=Decimal("100"),
        amount_usd=Decimal("100"),
        token_amount=Decimal("1"),
        size_pct=Decimal("0.01"),
        confidence_before=0.7,
        slippage=Decimal("0"),
        status="closed",
        opened_at=NOW,
        closed_at=NOW,
        pnl_pct=Decimal(str(pnl_pct)),
        pnl_usd=Decimal(str(pnl_pct)),
    )


def _history(*pnls: float) -> list[Position]:
    return [_closed(p, i) for i, p in enumerate(pnls)]


class TestFormulas:
    def test_win_rate(self):
        assert win_rate([1.0, -1.0, 2.0, 0.0]) == 0.5

    def test_win_rate_empty(self):
        assert win_rate([]) == 0.0

    def test_sharpe_population_std(self):
        pnls = [2.0, 4.0, 6.0]
        mean = 4.0
        std = math.sqrt(((2 - 4) ** 2 + 0 + (6 - 4) ** 2) / 3)
        assert sharpe_ratio(pnls) == pytest.approx(mean / std)

    def test_sharpe_zero_variance(self):
        assert sharpe_ratio([1.0, 1.0, 1.0]) == 0.0

    def test_max_drawdown_example(self):
        assert max_drawdown([5, 3, -8, -4, 6, -2, 3]) == pytest.approx(12.0)

    def test_max_drawdown_from_zero_baseline(self):
        # Peak starts at 0, so an initial loss is a drawdown
        assert max_drawdown([-3, -2]) == pytest.approx(5.0)

    def test_max_drawdown_monotonic_gains(self):
        assert max_drawdown([1, 2, 3]) == 0.0


class TestComputeMetrics:
    def test_no_trades(self):
        m = compute_metrics([], 10000, 10000)
        assert m.total_trades == 0
        assert m.win_rate == 0.0
        assert m.total_pnl_pct == 0.0
        assert m.sharpe_ratio is None
        assert m.max_drawdown is None

    def test_one_trade_has_no_drawdown(self):
        m = compute_metrics(_history(5), 10000, 10005)
        assert m.total_trades == 1
        assert m.max_drawdown is None
        assert m.sharpe_ratio is None

    def test_two_trades_have_drawdown(self):
        m = compute_metrics(_history(5, -3), 10000, 10002)
        assert m.max_drawdown == pytest.approx(3.0)
        assert m.sharpe_ratio is None

    def test_four_trades_no_sharpe(self):
        assert compute_metrics(_history(1, 2, 3, 4), 10000, 10010).sharpe_ratio is None

    def test_five_trades_have_finite_sharpe(self):
        m = compute_metrics(_history(1, -2, 3, 4, -1), 10000, 10005)
        assert m.sharpe_ratio is not None
        assert math.isfinite(m.sharpe_ratio)

    def test_total_pnl_from_balances(self):
        m = compute_metrics(_history(5), 10000, 10500)
        assert m.total_pnl_pct == pytest.approx(5.0)
        assert m.balance == 10500

    def test_as_dict_keys(self):
        d = compute_metrics(_history(1, 2), 1000, 1003).as_dict()
        assert set(d) == {
            "balance", "total_pnl_pct", "win_rate", "total_trades", "sharpe_ratio", "max_drawdown",
        }
