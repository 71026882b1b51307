"""Simulated position model for the paper ledger."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

Side = Literal["buy", "sell"]
PositionStatus = Literal["open", "closed", "stopped_out"]


class Position(BaseModel):
    """One simulated trade.

    ``buy`` is a long, ``sell`` a short. ``slippage`` is the fraction captured
    at open time; effective prices are always derived from it, never from the
    ledger's current default. P&L fields stay ``None`` while the position is open.
    """

    id: str
    agent_id: str
    pair: str
    dex: str
    side: Side
    entry_price: Decimal
    effective_entry_price: Decimal
    amount_usd: Decimal
    token_amount: Decimal
    size_pct: Decimal
    confidence_before: float
    reasoning: str = ""
    strategy_used: str = ""
    slippage: Decimal
    status: PositionStatus = "open"
    opened_at: datetime
    closed_at: datetime | None = None
    exit_price: Decimal | None = None
    effective_exit_price: Decimal | None = None
    pnl_pct: Decimal | None = None
    pnl_usd: Decimal | None = None
    confidence_after: float | None = None
    exit_reason: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == "open"
