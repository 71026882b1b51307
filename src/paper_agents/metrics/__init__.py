"""Performance analytics — win rate, total P&L, Sharpe ratio, max drawdown."""

from paper_agents.metrics.formulas import (
    PerformanceMetrics,
    compute_metrics,
    max_drawdown,
    sharpe_ratio,
    win_rate,
)

__all__ = [
    "PerformanceMetrics",
    "compute_metrics",
    "max_drawdown",
    "sharpe_ratio",
    "win_rate",
]
