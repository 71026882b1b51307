"""Market data source — builds the per-cycle MarketSnapshot."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Protocol

import httpx
import structlog

from paper_agents.agent.indicators import evaluate_signals, summarize_indicators
from paper_agents.exchange.geckoterminal import GeckoTerminalClient
from paper_agents.models.market import MarketSnapshot, PairQuote

log = structlog.get_logger("market_data")

# Malformed bodies surface as decode, lookup or Decimal conversion errors.
FETCH_ERRORS = (httpx.HTTPError, ValueError, ArithmeticError, KeyError, TypeError, AttributeError)


class MarketDataSource(Protocol):
    async def fetch_snapshot(self, pairs: list[str]) -> MarketSnapshot: ...


def pair_to_query(pair: str) -> str:
    """"WETH/USDC" -> "WETH USDC" (the network parameter scopes the search)."""
    return pair.replace("/", " ")


class GeckoMarketSource:
    """Quotes the most liquid pool per pair plus an indicator summary."""

    def __init__(
        self,
        client: GeckoTerminalClient,
        candle_limit: int = 48,
        max_pairs: int = 5,
    ) -> None:
        self.client = client
        self.candle_limit = candle_limit
        self.max_pairs = max_pairs

    async def fetch_snapshot(self, pairs: list[str]) -> MarketSnapshot:
        quotes: list[PairQuote] = []
        for pair in pairs[: self.max_pairs]:
            quote = await self._quote(pair)
            if quote is not None:
                quotes.append(quote)
        return MarketSnapshot(ts=datetime.now(timezone.utc), pairs=quotes)

    async def _quote(self, pair: str) -> PairQuote | None:
        try:
            pools = await self.client.search_pools(pair_to_query(pair))
        except FETCH_ERRORS as exc:
            log.warning("pool_search_failed", pair=pair, error_type=type(exc).__name__, error=str(exc))
            return None
        if not pools:
            log.warning("no_pool_found", pair=pair, network=self.client.network)
            return None
        pool = pools[0]

        closes: list[Decimal] = []
        try:
            closes = await self.client.get_close_series(pool.address, self.candle_limit)
        except FETCH_ERRORS as exc:
            log.warning(
                "ohlcv_unavailable",
                pair=pair,
                pool=pool.address,
                error_type=type(exc).__name__,
                error=str(exc),
            )

        return PairQuote(
            pair=pair,
            price_usd=pool.price_usd,
            pool_address=pool.address,
            price_change=pool.price_change,
            volume_24h=pool.volume_24h,
            liquidity=pool.liquidity_usd,
            indicators=summarize_indicators(closes, pool.price_usd),
            signals=evaluate_signals(closes, pool.price_usd),
        )
