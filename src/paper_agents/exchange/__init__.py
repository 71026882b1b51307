"""Market data API clients."""

from paper_agents.exchange.geckoterminal import GeckoTerminalClient, PoolInfo

__all__ = ["GeckoTerminalClient", "PoolInfo"]
