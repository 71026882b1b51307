"""Market snapshot models — the opaque decision input fetched each cycle."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field


class StrategySignal(BaseModel):
    """Advisory signal from one indicator strategy."""

    strategy: str
    action: Literal["buy", "sell", "hold"]
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""


class PairQuote(BaseModel):
    """Latest observation for one trading pair."""

    pair: str
    price_usd: Decimal
    pool_address: str = ""
    price_change: dict[str, float | None] = Field(default_factory=dict)
    volume_24h: float | None = None
    liquidity: float | None = None
    indicators: dict[str, Any] = Field(default_factory=dict)
    signals: list[StrategySignal] = []


class MarketSnapshot(BaseModel):
    """Pre-fetched bundle of pair quotes, passed to the risk gate and oracle."""

    ts: datetime
    pairs: list[PairQuote] = []

    def quote(self, pair: str) -> PairQuote | None:
        for q in self.pairs:
            if q.pair == pair:
                return q
        return None

    def prices(self) -> dict[str, Decimal]:
        """Map pair -> price for every pair with a positive price."""
        return {q.pair: q.price_usd for q in self.pairs if q.price_usd > 0}
