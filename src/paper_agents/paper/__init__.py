"""Paper trading core — simulated ledger, pricing helpers and risk gate."""

from paper_agents.paper.engine import PaperEngine, generate_id
from paper_agents.paper.risk import (
    ForcedExit,
    RiskVerdict,
    check_cooldown,
    check_daily_loss,
    check_max_open_positions,
    check_position_size,
    entry_suppression,
    evaluate_entry,
    find_forced_exits,
)
from paper_agents.paper.sizing import (
    apply_slippage,
    calculate_pnl_pct,
    calculate_pnl_usd,
    calculate_position_amount,
    calculate_stop_price,
    calculate_take_profit_price,
)

__all__ = [
    "ForcedExit",
    "PaperEngine",
    "RiskVerdict",
    "apply_slippage",
    "calculate_pnl_pct",
    "calculate_pnl_usd",
    "calculate_position_amount",
    "calculate_stop_price",
    "calculate_take_profit_price",
    "check_cooldown",
    "check_daily_loss",
    "check_max_open_positions",
    "check_position_size",
    "entry_suppression",
    "evaluate_entry",
    "find_forced_exits",
    "generate_id",
]
