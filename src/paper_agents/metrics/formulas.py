"""Pure metric computation functions — no ledger, no DB."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Sequence

import numpy as np

from paper_agents.models.position import Position

MIN_TRADES_FOR_SHARPE = 5
MIN_TRADES_FOR_DRAWDOWN = 2


@dataclass
class PerformanceMetrics:
    """Aggregate metrics over a closed-position history."""

    balance: float
    total_pnl_pct: float
    win_rate: float
    total_trades: int
    sharpe_ratio: float | None = None
    max_drawdown: float | None = None

    def as_dict(self) -> dict:
        return asdict(self)


def win_rate(pnl_pcts: Sequence[float]) -> float:
    """Fraction (0-1) of trades with positive P&L; 0 for an empty history."""
    if not pnl_pcts:
        return 0.0
    return sum(1 for p in pnl_pcts if p > 0) / len(pnl_pcts)


def sharpe_ratio(pnl_pcts: Sequence[float]) -> float:
    """Per-trade Sharpe: mean / population std (ddof=0), no annualisation.

    Returns 0.0 when the std is zero.
    """
    if not pnl_pcts:
        return 0.0
    arr = np.array(pnl_pcts, dtype=np.float64)
    std = np.std(arr, ddof=0)
    if std == 0:
        return 0.0
    return float(np.mean(arr) / std)


def max_drawdown(pnl_pcts: Sequence[float]) -> float:
    """Largest peak-to-trough drop of the cumulative P&L series, in % points.

    The running peak starts at 0, so an opening losing streak counts as
    drawdown.
    """
    if not pnl_pcts:
        return 0.0
    cumulative = np.cumsum(np.array(pnl_pcts, dtype=np.float64))
    peak = np.maximum.accumulate(np.maximum(cumulative, 0.0))
    return float(np.max(peak - cumulative))


def _pnl_pcts(closed_positions: Sequence[Position]) -> list[float]:
    return [float(p.pnl_pct) if p.pnl_pct is not None else 0.0 for p in closed_positions]


def compute_metrics(
    closed_positions: Sequence[Position],
    initial_balance: Decimal | float,
    current_balance: Decimal | float,
) -> PerformanceMetrics:
    """Roll up a chronological closed-position history.

    Sharpe needs at least 5 trades and drawdown at least 2; below that they
    are ``None``. The other fields are always computed.
    """
    initial = float(initial_balance)
    current = float(current_balance)
    pnls = _pnl_pcts(closed_positions)
    total = len(pnls)

    total_pnl_pct = (current - initial) / initial * 100 if initial > 0 else 0.0

    return PerformanceMetrics(
        balance=current,
        total_pnl_pct=total_pnl_pct,
        win_rate=win_rate(pnls),
        total_trades=total,
        sharpe_ratio=sharpe_ratio(pnls) if total >= MIN_TRADES_FOR_SHARPE else None,
        max_drawdown=max_drawdown(pnls) if total >= MIN_TRADES_FOR_DRAWDOWN else None,
    )
