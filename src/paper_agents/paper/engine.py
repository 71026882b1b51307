"""PaperEngine — the simulated ledger: balance, open and closed positions."""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog

from paper_agents.errors import (
    InsufficientBalance,
    LedgerInvariantError,
    PositionNotFound,
    PositionSizeExceeded,
    ValidationError,
)
from paper_agents.models.position import Position, PositionStatus
from paper_agents.paper.sizing import (
    HUNDRED,
    apply_slippage,
    calculate_pnl_pct,
    calculate_pnl_usd,
    calculate_stop_price,
    calculate_take_profit_price,
)

log = structlog.get_logger("paper_engine")

# Decimal arithmetic drifts in the last digits over many trades
_INVARIANT_TOLERANCE = Decimal("0.000001")


def generate_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(16)}"


def _to_decimal(value: Decimal | float | int | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _day_key(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%d")


class PaperEngine:
    """Owns the simulated balance and the position collections.

    The only component allowed to mutate balance or position state. Opening a
    position reserves its notional; closing credits back notional plus P&L.
    """

    def __init__(
        self,
        balance: Decimal | float,
        slippage_pct: Decimal | float,
        initial_balance: Decimal | float | None = None,
        now: datetime | None = None,
    ) -> None:
        self._balance = _to_decimal(balance)
        self.initial_balance = _to_decimal(initial_balance if initial_balance is not None else balance)
        # Percent units: 0.3 means 0.3%
        self.slippage_pct = _to_decimal(slippage_pct)
        self._open: dict[str, Position] = {}
        self._closed: list[Position] = []
        self._day_key = _day_key(now or _utc_now())
        self._day_start_balance = self._balance

    # ── Read-only views ───────────────────────────────────────

    @property
    def balance(self) -> Decimal:
        return self._balance

    @property
    def open_positions(self) -> list[Position]:
        return list(self._open.values())

    @property
    def closed_positions(self) -> list[Position]:
        return list(self._closed)

    def get_open_position(self, position_id: str) -> Position | None:
        return self._open.get(position_id)

    def committed_notional(self) -> Decimal:
        return sum((p.amount_usd for p in self._open.values()), Decimal("0"))

    def realised_pnl(self) -> Decimal:
        return sum((p.pnl_usd for p in self._closed if p.pnl_usd is not None), Decimal("0"))

    def book_equity(self) -> Decimal:
        """Balance plus notional reserved by open positions (valued at cost)."""
        return self._balance + self.committed_notional()

    # ── Position lifecycle ────────────────────────────────────

    def open_position(
        self,
        *,
        agent_id: str,
        pair: str,
        side: str,
        price: Decimal | float,
        amount_usd: Decimal | float,
        max_position_size_pct: float,
        balance: Decimal | float | None = None,
        dex: str = "",
        confidence: float = 0.0,
        reasoning: str = "",
        strategy_used: str = "",
        slippage_pct: Decimal | float | None = None,
        now: datetime | None = None,
    ) -> Position:
        """Open a new position and reserve its notional.

        *balance* is the balance the caller believes is current and is the
        reference for the position-size limit; it defaults to the ledger's own.
        *slippage_pct* overrides the ledger default for this position only.

        Raises:
            ValidationError: non-positive amount or price, unknown side.
            InsufficientBalance: amount above the ledger's balance.
            PositionSizeExceeded: amount above max_position_size_pct of *balance*.
        """
        amount = _to_decimal(amount_usd)
        quoted = _to_decimal(price)
        if amount <= 0:
            raise ValidationError("Position amount must be positive")
        if quoted <= 0:
            raise ValidationError(f"Price must be positive, got {quoted}")
        if side not in ("buy", "sell"):
            raise ValidationError(f"Unknown side {side!r}")

        now = now or _utc_now()
        self._roll_day(now)

        if amount > self._balance:
            raise InsufficientBalance(
                f"Insufficient balance: ${self._balance:.2f} < ${amount:.2f}"
            )

        reference = self._balance if balance is None else _to_decimal(balance)
        max_allowed = reference * _to_decimal(max_position_size_pct) / HUNDRED
        if amount > max_allowed:
            raise PositionSizeExceeded(
                f"Position size ${amount:.2f} exceeds max allowed ${max_allowed:.2f} "
                f"({max_position_size_pct}% of ${reference:.2f} balance)"
            )

        slippage = (self.slippage_pct if slippage_pct is None else _to_decimal(slippage_pct)) / HUNDRED
        effective_entry = apply_slippage(quoted, side, slippage, is_entry=True)

        position = Position(
            id=generate_id("pos"),
            agent_id=agent_id,
            pair=pair,
            dex=dex,
            side=side,
            entry_price=quoted,
            effective_entry_price=effective_entry,
            amount_usd=amount,
            token_amount=amount / effective_entry,
            size_pct=amount / reference,
            confidence_before=confidence,
            reasoning=reasoning,
            strategy_used=strategy_used,
            slippage=slippage,
            opened_at=now,
        )

        self._balance -= amount
        self._open[position.id] = position

        log.info(
            "position_opened",
            position_id=position.id,
            pair=pair,
            side=side,
            price=quoted,
            effective_entry_price=effective_entry,
            amount_usd=amount,
            balance=self._balance,
        )
        return position

    def close_position(
        self,
        position_id: str,
        price: Decimal | float,
        confidence: float | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> Position:
        """Close an open position at *price* and realise its P&L."""
        return self._close(position_id, price, "closed", confidence, reason, now)

    def stop_out_position(
        self,
        position_id: str,
        price: Decimal | float,
        reason: str = "stop_loss",
        now: datetime | None = None,
    ) -> Position:
        """Same economics as close_position, tagged as a risk-triggered exit."""
        return self._close(position_id, price, "stopped_out", None, reason, now)

    def _close(
        self,
        position_id: str,
        price: Decimal | float,
        status: PositionStatus,
        confidence: float | None,
        reason: str | None,
        now: datetime | None,
    ) -> Position:
        position = self._open.get(position_id)
        if position is None:
            raise PositionNotFound(position_id)
        quoted = _to_decimal(price)
        if quoted <= 0:
            raise ValidationError(f"Price must be positive, got {quoted}")

        now = now or _utc_now()
        self._roll_day(now)

        effective_exit = apply_slippage(quoted, position.side, position.slippage, is_entry=False)
        pnl_pct = calculate_pnl_pct(position.side, position.effective_entry_price, effective_exit)
        pnl_usd = calculate_pnl_usd(position.amount_usd, pnl_pct)

        closed = position.model_copy(update={
            "status": status,
            "exit_price": quoted,
            "effective_exit_price": effective_exit,
            "pnl_pct": pnl_pct,
            "pnl_usd": pnl_usd,
            "confidence_after": confidence,
            "exit_reason": reason,
            "closed_at": now,
        })

        self._balance += position.amount_usd + pnl_usd
        del self._open[position_id]
        self._closed.append(closed)

        log.info(
            "position_closed",
            position_id=position_id,
            pair=position.pair,
            side=position.side,
            status=status,
            exit_reason=reason,
            effective_exit_price=effective_exit,
            pnl_pct=pnl_pct,
            pnl_usd=pnl_usd,
            balance=self._balance,
        )
        return closed

    # ── Exit predicates ───────────────────────────────────────

    @staticmethod
    def check_stop_loss(position: Position, current_price: Decimal | float, stop_loss_pct: float) -> bool:
        """True once the move against the effective entry reaches stop_loss_pct."""
        price = _to_decimal(current_price)
        stop = calculate_stop_price(position.side, position.effective_entry_price, stop_loss_pct)
        if position.side == "buy":
            return price <= stop
        return price >= stop

    @staticmethod
    def check_take_profit(position: Position, current_price: Decimal | float, take_profit_pct: float) -> bool:
        """True once the move in favour of the effective entry reaches take_profit_pct."""
        price = _to_decimal(current_price)
        target = calculate_take_profit_price(position.side, position.effective_entry_price, take_profit_pct)
        if position.side == "buy":
            return price >= target
        return price <= target

    # ── Performance queries ───────────────────────────────────

    def get_win_rate(self) -> float:
        """Fraction of closed positions with positive pnl_pct; 0 when none."""
        if not self._closed:
            return 0.0
        wins = sum(1 for p in self._closed if (p.pnl_pct or 0) > 0)
        return wins / len(self._closed)

    def get_total_pnl_pct(self) -> float:
        """Realised P&L across all closed positions as % of the initial balance."""
        if self.initial_balance <= 0:
            return 0.0
        return float(self.realised_pnl() / self.initial_balance * HUNDRED)

    def get_daily_pnl_pct(self, now: datetime | None = None) -> float:
        """Realised P&L of today's (UTC) closes as % of the balance at day start."""
        now = now or _utc_now()
        if _day_key(now) != self._day_key:
            # Nothing has been realised yet on a day the ledger has not rolled into.
            return 0.0
        if self._day_start_balance <= 0:
            return 0.0
        realised_today = sum(
            (
                p.pnl_usd
                for p in self._closed
                if p.pnl_usd is not None and p.closed_at is not None and _day_key(p.closed_at) == self._day_key
            ),
            Decimal("0"),
        )
        return float(realised_today / self._day_start_balance * HUNDRED)

    def _roll_day(self, now: datetime) -> None:
        today = _day_key(now)
        if today != self._day_key:
            self._day_key = today
            self._day_start_balance = self._balance

    # ── Invariants ────────────────────────────────────────────

    def check_invariants(self) -> None:
        """Raise LedgerInvariantError if the balance identity does not hold.

        balance == initial_balance + realised P&L - committed notional
        """
        if self._balance < 0:
            raise LedgerInvariantError(f"Negative balance: {self._balance}")
        expected = self.initial_balance + self.realised_pnl() - self.committed_notional()
        if abs(self._balance - expected) > _INVARIANT_TOLERANCE:
            raise LedgerInvariantError(
                f"Balance {self._balance} does not match ledger history ({expected})"
            )

    # ── Persistence ───────────────────────────────────────────

    def serialize(self) -> dict[str, Any]:
        """JSON-safe snapshot of the full ledger. Decimals are kept as strings."""
        return {
            "balance": str(self._balance),
            "initial_balance": str(self.initial_balance),
            "slippage_pct": str(self.slippage_pct),
            "positions": [p.model_dump(mode="json") for p in self._open.values()],
            "closed_positions": [p.model_dump(mode="json") for p in self._closed],
            "day_start_balance": str(self._day_start_balance),
            "day_key": self._day_key,
        }

    @classmethod
    def deserialize(cls, data: dict[str, Any]) -> PaperEngine:
        """Rebuild a ledger behaviourally identical to the serialized one."""
        engine = cls(
            balance=Decimal(data["balance"]),
            slippage_pct=Decimal(data["slippage_pct"]),
            initial_balance=Decimal(data["initial_balance"]),
        )
        engine._day_start_balance = Decimal(data.get("day_start_balance", data["balance"]))
        engine._day_key = data.get("day_key", engine._day_key)
        for raw in data.get("positions", []):
            position = Position.model_validate(raw)
            engine._open[position.id] = position
        engine._closed = [Position.model_validate(raw) for raw in data.get("closed_positions", [])]
        return engine
