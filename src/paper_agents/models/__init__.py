"""Pydantic domain models."""

from paper_agents.models.agent import AgentState, AgentStatus, CooldownState
from paper_agents.models.decision import (
    CycleOutcome,
    DecisionRecord,
    PerformanceSnapshot,
    TradeAction,
    TradeIntent,
)
from paper_agents.models.market import MarketSnapshot, PairQuote, StrategySignal
from paper_agents.models.position import Position, PositionStatus, Side

__all__ = [
    "AgentState",
    "AgentStatus",
    "CooldownState",
    "CycleOutcome",
    "DecisionRecord",
    "MarketSnapshot",
    "PairQuote",
    "PerformanceSnapshot",
    "Position",
    "PositionStatus",
    "Side",
    "StrategySignal",
    "TradeAction",
    "TradeIntent",
]
