"""Decision oracle intent, audit records and performance snapshots."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

TradeAction = Literal["buy", "sell", "hold", "close"]

CycleOutcome = Literal[
    "forced_exit",
    "opened",
    "closed",
    "rejected",
    "suppressed",
    "oracle_failure",
    "hold",
    "no_market_data",
    "aborted",
]


class TradeIntent(BaseModel):
    """Structured intent returned by the decision oracle.

    Unknown fields are dropped; camelCase keys from the oracle are accepted.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    action: TradeAction
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    target_pair: str | None = Field(default=None, alias="targetPair")
    suggested_position_size_pct: float | None = Field(
        default=None, ge=0.0, le=100.0, alias="suggestedPositionSizePct",
    )

    @classmethod
    def hold(cls, reasoning: str) -> TradeIntent:
        return cls(action="hold", confidence=0.0, reasoning=reasoning)


class DecisionRecord(BaseModel):
    """Exactly one audit record per cycle outcome."""

    agent_id: str
    ts: datetime
    action: TradeAction
    confidence: float = 0.0
    reasoning: str = ""
    outcome: CycleOutcome
    error: str | None = None
    position_id: str | None = None
    model: str | None = None
    latency_ms: int = 0
    tokens_used: int | None = None
    market_snapshot: list[dict[str, Any]] = Field(default_factory=list)


class PerformanceSnapshot(BaseModel):
    """Point-in-time performance rollup. Appended, never updated."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    snapshot_at: datetime
    balance: float
    total_pnl_pct: float
    win_rate: float
    total_trades: int
    sharpe_ratio: float | None = None
    max_drawdown: float | None = None
