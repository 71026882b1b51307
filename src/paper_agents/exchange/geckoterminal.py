"""GeckoTerminal client — DEX pool search and OHLCV over REST."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx


@dataclass
class PoolInfo:
    """A DEX pool as returned by the pool search endpoint."""

    address: str
    name: str
    price_usd: Decimal
    liquidity_usd: float | None = None
    volume_24h: float | None = None
    price_change: dict[str, float | None] = field(default_factory=dict)


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        result = Decimal(str(value))
    except ArithmeticError:
        return None
    return result if result.is_finite() else None


class GeckoTerminalClient:
    """Async client for GeckoTerminal's public v2 API."""

    def __init__(
        self,
        base_url: str = "https://api.geckoterminal.com/api/v2",
        network: str = "base",
        timeout_s: float = 15.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.network = network
        self._timeout_s = timeout_s
        self._http: httpx.AsyncClient | None = None

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self._timeout_s,
                headers={"Accept": "application/json"},
            )
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def _get(self, path: str, params: dict | None = None) -> Any:
        http = await self._get_http()
        resp = await http.get(f"{self.base_url}{path}", params=params)
        resp.raise_for_status()
        return resp.json()

    async def search_pools(self, query: str) -> list[PoolInfo]:
        """Search pools on the configured network, most liquid first."""
        data = await self._get("/search/pools", {"query": query, "network": self.network})
        pools = [self.parse_pool(item) for item in data.get("data", [])]
        pools = [p for p in pools if p.price_usd > 0]
        pools.sort(key=lambda p: p.liquidity_usd or 0.0, reverse=True)
        return pools

    async def get_close_series(self, pool_address: str, limit: int = 48) -> list[Decimal]:
        """Hourly close prices for a pool, oldest first."""
        data = await self._get(
            f"/networks/{self.network}/pools/{pool_address}/ohlcv/hour",
            {"limit": limit},
        )
        candles = data.get("data", {}).get("attributes", {}).get("ohlcv_list", [])
        # [timestamp, open, high, low, close, volume], newest first
        closes: list[Decimal] = []
        for candle in reversed(candles):
            close = _to_decimal(candle[4]) if isinstance(candle, list) and len(candle) >= 5 else None
            if close is not None:
                closes.append(close)
        return closes

    @staticmethod
    def parse_pool(item: dict) -> PoolInfo:
        attrs = item.get("attributes", {})
        changes = attrs.get("price_change_percentage") or {}
        volume = attrs.get("volume_usd") or {}
        price = _to_float(attrs.get("base_token_price_usd")) or 0.0
        return PoolInfo(
            address=attrs.get("address", ""),
            name=attrs.get("name", ""),
            price_usd=Decimal(str(price)),
            liquidity_usd=_to_float(attrs.get("reserve_in_usd")),
            volume_24h=_to_float(volume.get("h24")),
            price_change={k: _to_float(changes.get(k)) for k in ("m5", "h1", "h6", "h24")},
        )
