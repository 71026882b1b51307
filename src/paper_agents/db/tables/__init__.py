"""Import all table modules so Base.metadata knows about them."""

from paper_agents.db.tables.agents import (
    AgentDecisionRow,
    AgentStateRow,
    PerformanceSnapshotRow,
    TradeRow,
)

__all__ = [
    "AgentDecisionRow",
    "AgentStateRow",
    "PerformanceSnapshotRow",
    "TradeRow",
]
