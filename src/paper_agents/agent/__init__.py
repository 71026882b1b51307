"""Agent loop: market data, decision oracle, cycle and scheduler."""

from paper_agents.agent.cycle import CycleResult, run_cycle
from paper_agents.agent.market import GeckoMarketSource, MarketDataSource
from paper_agents.agent.oracle import (
    DecisionOracle,
    DecisionRequest,
    OpenRouterOracle,
    OracleReply,
    OracleResult,
    PortfolioView,
    parse_intent,
    request_intent,
)
from paper_agents.agent.scheduler import (
    INTERVAL_SECONDS,
    AgentScheduler,
    CyclePhase,
    interval_to_seconds,
)

__all__ = [
    "INTERVAL_SECONDS",
    "AgentScheduler",
    "CyclePhase",
    "CycleResult",
    "DecisionOracle",
    "DecisionRequest",
    "GeckoMarketSource",
    "MarketDataSource",
    "OpenRouterOracle",
    "OracleReply",
    "OracleResult",
    "PortfolioView",
    "interval_to_seconds",
    "parse_intent",
    "request_intent",
]
