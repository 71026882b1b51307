"""Risk gate — pure checks over read-only ledger state and RiskConfig."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Literal

from paper_agents.config.schema import RiskConfig
from paper_agents.models.agent import CooldownState
from paper_agents.paper.engine import PaperEngine
from paper_agents.paper.sizing import HUNDRED


@dataclass
class RiskVerdict:
    """Result of a risk check.

    ``suppressed`` marks a deliberate no-op (daily breaker, cooldown) as
    opposed to a rejection of a specific trade.
    """

    allowed: bool
    reason: str = ""
    suppressed: bool = False


@dataclass
class ForcedExit:
    """An open position the risk gate closes before the oracle is consulted."""

    position_id: str
    pair: str
    price: Decimal
    reason: Literal["stop_loss", "take_profit"]


ALLOW = RiskVerdict(allowed=True)


# ── Entry sizing ──────────────────────────────────────────────


def check_position_size(
    amount_usd: Decimal,
    balance: Decimal,
    max_position_size_pct: float,
) -> RiskVerdict:
    """Reject if the notional exceeds max_position_size_pct of balance."""
    limit = balance * Decimal(str(max_position_size_pct)) / HUNDRED
    if amount_usd > limit:
        return RiskVerdict(
            allowed=False,
            reason=f"max_position_size ({float(amount_usd):.2f}/{float(limit):.2f})",
        )
    return ALLOW


def check_max_open_positions(open_count: int, limit: int) -> RiskVerdict:
    """Reject if there are already >= limit open positions."""
    if open_count >= limit:
        return RiskVerdict(
            allowed=False,
            reason=f"max_open_positions ({open_count}/{limit})",
        )
    return ALLOW


def evaluate_entry(
    engine: PaperEngine,
    risk: RiskConfig,
    amount_usd: Decimal,
    balance: Decimal | None = None,
) -> RiskVerdict:
    """Sizing checks for a prospective position — returns first failure or ALLOW."""
    verdict = check_max_open_positions(len(engine.open_positions), risk.max_open_positions)
    if not verdict.allowed:
        return verdict
    reference = engine.balance if balance is None else balance
    return check_position_size(amount_usd, reference, risk.max_position_size_pct)


# ── Entry suppression ─────────────────────────────────────────


def check_daily_loss(daily_pnl_pct: float, max_daily_loss_pct: float) -> RiskVerdict:
    """Suppress entries once today's realised loss reaches the limit."""
    if daily_pnl_pct <= -max_daily_loss_pct:
        return RiskVerdict(
            allowed=False,
            reason=f"daily_loss_limit ({daily_pnl_pct:.2f}% <= -{max_daily_loss_pct}%)",
            suppressed=True,
        )
    return ALLOW


def check_cooldown(
    cooldown: CooldownState,
    now: datetime,
    cooldown_minutes: int,
) -> RiskVerdict:
    """Suppress entries while the last realised loss is inside the cooldown window."""
    if cooldown_minutes <= 0 or cooldown.last_loss_at is None:
        return ALLOW
    elapsed = now - cooldown.last_loss_at
    if elapsed < timedelta(minutes=cooldown_minutes):
        remaining = timedelta(minutes=cooldown_minutes) - elapsed
        return RiskVerdict(
            allowed=False,
            reason=f"cooldown_active ({int(remaining.total_seconds() // 60)}m remaining)",
            suppressed=True,
        )
    return ALLOW


def entry_suppression(
    engine: PaperEngine,
    risk: RiskConfig,
    cooldown: CooldownState,
    now: datetime,
) -> RiskVerdict:
    """Daily circuit breaker, then cooldown. Existing positions are unaffected."""
    verdict = check_daily_loss(engine.get_daily_pnl_pct(now), risk.max_daily_loss_pct)
    if not verdict.allowed:
        return verdict
    return check_cooldown(cooldown, now, risk.cooldown_after_loss_minutes)


# ── Forced exits ──────────────────────────────────────────────


def find_forced_exits(
    engine: PaperEngine,
    prices: dict[str, Decimal],
    risk: RiskConfig,
) -> list[ForcedExit]:
    """Open positions breaching stop-loss or take-profit at current prices.

    Stop-loss takes priority over take-profit. Positions whose pair has no
    price this cycle are left alone.
    """
    exits: list[ForcedExit] = []
    for pos in engine.open_positions:
        price = prices.get(pos.pair)
        if price is None or price <= 0:
            continue
        if engine.check_stop_loss(pos, price, risk.stop_loss_pct):
            exits.append(ForcedExit(pos.id, pos.pair, price, "stop_loss"))
        elif engine.check_take_profit(pos, price, risk.take_profit_pct):
            exits.append(ForcedExit(pos.id, pos.pair, price, "take_profit"))
    return exits
