"""Slippage, P&L and sizing calculations — pure functions, no state."""

from __future__ import annotations

from decimal import Decimal

HUNDRED = Decimal("100")


def apply_slippage(
    price: Decimal,
    side: str,
    slippage: Decimal,
    is_entry: bool,
) -> Decimal:
    """Apply slippage to a quoted price, always against the trader.

    For entries:
    - buy (long): pay more (price * (1 + slippage))
    - sell (short): receive less (price * (1 - slippage))

    For exits:
    - buy (long): receive less (price * (1 - slippage))
    - sell (short): pay more (price * (1 + slippage))
    """
    if is_entry:
        if side == "buy":
            return price * (1 + slippage)
        else:
            return price * (1 - slippage)
    else:
        if side == "buy":
            return price * (1 - slippage)
        else:
            return price * (1 + slippage)


def calculate_pnl_pct(
    side: str,
    effective_entry: Decimal,
    effective_exit: Decimal,
) -> Decimal:
    """Percentage P&L from effective prices.

    buy:  (exit - entry) / entry * 100
    sell: (entry - exit) / entry * 100
    """
    if side == "buy":
        return (effective_exit - effective_entry) / effective_entry * HUNDRED
    else:
        return (effective_entry - effective_exit) / effective_entry * HUNDRED


def calculate_pnl_usd(amount_usd: Decimal, pnl_pct: Decimal) -> Decimal:
    return amount_usd * pnl_pct / HUNDRED


def calculate_stop_price(
    side: str,
    effective_entry: Decimal,
    stop_loss_pct: float,
) -> Decimal:
    """Price at which the stop-loss triggers.

    buy:  entry * (1 - pct/100)
    sell: entry * (1 + pct/100)
    """
    pct = Decimal(str(stop_loss_pct)) / HUNDRED
    if side == "buy":
        return effective_entry * (1 - pct)
    else:
        return effective_entry * (1 + pct)


def calculate_take_profit_price(
    side: str,
    effective_entry: Decimal,
    take_profit_pct: float,
) -> Decimal:
    """Price at which the take-profit triggers.

    buy:  entry * (1 + pct/100)
    sell: entry * (1 - pct/100)
    """
    pct = Decimal(str(take_profit_pct)) / HUNDRED
    if side == "buy":
        return effective_entry * (1 + pct)
    else:
        return effective_entry * (1 - pct)


def calculate_position_amount(
    balance: Decimal,
    suggested_pct: float | None,
    default_pct: float,
    max_pct: float,
) -> Decimal:
    """USD notional for a new position.

    Uses the oracle's suggested size when present, otherwise *default_pct*,
    capped at *max_pct* of *balance*.
    """
    pct = default_pct if suggested_pct is None else suggested_pct
    pct = min(pct, max_pct)
    return balance * Decimal(str(pct)) / HUNDRED
