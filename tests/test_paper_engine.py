"""Tests for the paper ledger: open/close/stop-out, queries, persistence."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from paper_agents.errors import (
    InsufficientBalance,
    LedgerInvariantError,
    PositionNotFound,
    PositionSizeExceeded,
    ValidationError,
)
from paper_agents.paper.engine import PaperEngine
from paper_agents.paper.sizing import (
    apply_slippage,
    calculate_pnl_pct,
    calculate_pnl_usd,
    calculate_position_amount,
    calculate_stop_price,
    calculate_take_profit_price,
)

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def _engine(balance=10000, slippage_pct=0.3) -> PaperEngine:
    return PaperEngine(balance=balance, slippage_pct=slippage_pct, now=NOW)


def _open(engine: PaperEngine, side="buy", price=2500, amount=1000, max_pct=10, pair="WETH/USDC", now=NOW):
    return engine.open_position(
        agent_id="agent_1",
        pair=pair,
        side=side,
        price=price,
        amount_usd=amount,
        max_position_size_pct=max_pct,
        confidence=0.8,
        reasoning="test",
        strategy_used="combined",
        now=now,
    )


# ── Pure helpers ──────────────────────────────────────────────


class TestSizing:
    def test_slippage_long_entry_pays_more(self):
        assert apply_slippage(Decimal("100"), "buy", Decimal("0.01"), is_entry=True) == Decimal("101.00")

    def test_slippage_short_entry_receives_less(self):
        assert apply_slippage(Decimal("100"), "sell", Decimal("0.01"), is_entry=True) == Decimal("99.00")

    def test_slippage_exits_are_symmetric(self):
        assert apply_slippage(Decimal("100"), "buy", Decimal("0.01"), is_entry=False) == Decimal("99.00")
        assert apply_slippage(Decimal("100"), "sell", Decimal("0.01"), is_entry=False) == Decimal("101.00")

    def test_pnl_long_and_short(self):
        assert calculate_pnl_pct("buy", Decimal("100"), Decimal("110")) == Decimal("10")
        assert calculate_pnl_pct("sell", Decimal("100"), Decimal("110")) == Decimal("-10")

    def test_pnl_usd(self):
        assert calculate_pnl_usd(Decimal("1000"), Decimal("5")) == Decimal("50")

    def test_stop_and_target_prices(self):
        assert calculate_stop_price("buy", Decimal("100"), 5) == Decimal("95.00")
        assert calculate_stop_price("sell", Decimal("100"), 5) == Decimal("105.00")
        assert calculate_take_profit_price("buy", Decimal("100"), 7) == Decimal("107.00")
        assert calculate_take_profit_price("sell", Decimal("100"), 7) == Decimal("93.00")

    def test_position_amount_uses_default_when_no_suggestion(self):
        assert calculate_position_amount(Decimal("10000"), None, 10, 20) == Decimal("1000")

    def test_position_amount_capped_at_max(self):
        assert calculate_position_amount(Decimal("10000"), 50, 10, 5) == Decimal("500")


# ── Open ──────────────────────────────────────────────────────


class TestOpenPosition:
    def test_long_entry_scenario(self):
        engine = _engine()
        pos = _open(engine)
        assert float(pos.effective_entry_price) == pytest.approx(2507.50)
        assert engine.balance == Decimal("9000")
        assert pos.status == "open"
        assert pos.pnl_pct is None
        assert pos.id.startswith("pos_")

    def test_short_entry_receives_less(self):
        engine = _engine()
        pos = _open(engine, side="sell")
        assert float(pos.effective_entry_price) == pytest.approx(2492.50)

    def test_records_provenance(self):
        pos = _open(_engine())
        assert pos.confidence_before == 0.8
        assert pos.strategy_used == "combined"
        assert pos.slippage == Decimal("0.003")
        assert pos.opened_at == NOW

    def test_size_limit_rejected(self):
        engine = _engine()
        with pytest.raises(PositionSizeExceeded):
            _open(engine, amount=600, max_pct=5)
        assert engine.balance == Decimal("10000")
        assert engine.open_positions == []

    def test_insufficient_balance_rejected(self):
        engine = _engine(balance=500)
        with pytest.raises(InsufficientBalance):
            _open(engine, amount=1000, max_pct=100)
        assert engine.balance == Decimal("500")

    def test_size_limit_uses_caller_balance(self):
        engine = _engine()
        with pytest.raises(PositionSizeExceeded):
            engine.open_position(
                agent_id="a", pair="WETH/USDC", side="buy", price=2500,
                amount_usd=600, max_position_size_pct=10, balance=5000,
            )

    @pytest.mark.parametrize("amount,price,side", [(0, 2500, "buy"), (100, 0, "buy"), (100, 2500, "long")])
    def test_invalid_inputs(self, amount, price, side):
        with pytest.raises(ValidationError):
            _open(_engine(), side=side, price=price, amount=amount)

    def test_rejections_are_trade_rejected(self):
        from paper_agents.errors import TradeRejected

        with pytest.raises(TradeRejected):
            _open(_engine(), amount=5000, max_pct=10)

    def test_per_position_slippage_override(self):
        engine = _engine()
        pos = engine.open_position(
            agent_id="a", pair="WETH/USDC", side="buy", price=100,
            amount_usd=100, max_position_size_pct=10, slippage_pct=1, now=NOW,
        )
        assert pos.effective_entry_price == Decimal("101")


# ── Close / stop-out ──────────────────────────────────────────


class TestClosePosition:
    def test_long_exit_scenario(self):
        engine = _engine()
        pos = _open(engine)
        closed = engine.close_position(pos.id, 2750, now=NOW)
        assert float(closed.effective_exit_price) == pytest.approx(2741.75)
        assert float(closed.pnl_pct) == pytest.approx(9.342, abs=1e-3)
        assert engine.balance > Decimal("10000")
        assert closed.status == "closed"

    def test_balance_after_close_matches_realised_pnl(self):
        engine = _engine()
        before = engine.balance
        pos = _open(engine, side="sell", price=2000, amount=800)
        closed = engine.close_position(pos.id, 1900, now=NOW)
        assert engine.balance == pytest.approx(before + closed.pnl_usd)

    def test_short_profit_when_price_falls(self):
        engine = _engine()
        pos = _open(engine, side="sell")
        closed = engine.close_position(pos.id, 2300, now=NOW)
        assert closed.pnl_pct > 0

    def test_close_unknown_raises(self):
        with pytest.raises(PositionNotFound):
            _engine().close_position("pos_missing", 100)

    def test_close_twice_raises(self):
        engine = _engine()
        pos = _open(engine)
        engine.close_position(pos.id, 2600, now=NOW)
        with pytest.raises(PositionNotFound):
            engine.close_position(pos.id, 2600, now=NOW)

    def test_stop_out_same_economics_different_status(self):
        a, b = _engine(), _engine()
        pa, pb = _open(a), _open(b)
        closed = a.close_position(pa.id, 2400, now=NOW)
        stopped = b.stop_out_position(pb.id, 2400, now=NOW)
        assert stopped.status == "stopped_out"
        assert stopped.exit_reason == "stop_loss"
        assert stopped.pnl_usd == closed.pnl_usd
        assert a.balance == b.balance

    def test_slippage_frozen_at_open(self):
        engine = _engine()
        pos = _open(engine)
        engine.slippage_pct = Decimal("5")
        closed = engine.close_position(pos.id, 2750, now=NOW)
        assert float(closed.effective_exit_price) == pytest.approx(2741.75)

    def test_closed_positions_keep_order(self):
        engine = _engine()
        first = _open(engine, amount=500)
        second = _open(engine, amount=500, pair="AERO/USDC", price=1)
        engine.close_position(second.id, 1, now=NOW)
        engine.close_position(first.id, 2500, now=NOW)
        assert [p.id for p in engine.closed_positions] == [second.id, first.id]


class TestExitPredicates:
    def test_stop_loss_long(self):
        pos = _open(_engine())
        assert PaperEngine.check_stop_loss(pos, 2350, 5) is True
        assert PaperEngine.check_stop_loss(pos, 2450, 5) is False

    def test_stop_loss_short(self):
        pos = _open(_engine(), side="sell")
        assert PaperEngine.check_stop_loss(pos, 2650, 5) is True
        assert PaperEngine.check_stop_loss(pos, 2550, 5) is False

    def test_take_profit_long(self):
        pos = _open(_engine())
        assert PaperEngine.check_take_profit(pos, 2700, 7) is True
        assert PaperEngine.check_take_profit(pos, 2600, 7) is False

    def test_take_profit_short(self):
        pos = _open(_engine(), side="sell")
        assert PaperEngine.check_take_profit(pos, 2300, 7) is True
        assert PaperEngine.check_take_profit(pos, 2400, 7) is False


# ── Queries ───────────────────────────────────────────────────


class TestQueries:
    def test_win_rate_zero_without_trades(self):
        assert _engine().get_win_rate() == 0.0

    def test_win_rate(self):
        engine = _engine()
        for exit_price in (2700, 2400, 2800, 2300):
            pos = _open(engine, amount=500)
            engine.close_position(pos.id, exit_price, now=NOW)
        assert engine.get_win_rate() == 0.5

    def test_total_pnl_pct(self):
        engine = _engine()
        pos = _open(engine)
        closed = engine.close_position(pos.id, 2750, now=NOW)
        assert engine.get_total_pnl_pct() == pytest.approx(float(closed.pnl_usd) / 10000 * 100)

    def test_daily_pnl_counts_today_only(self):
        yesterday = NOW - timedelta(days=1)
        engine = PaperEngine(balance=10000, slippage_pct=0, now=yesterday)
        p1 = _open(engine, price=100, amount=1000, max_pct=20, now=yesterday)
        engine.close_position(p1.id, 90, now=yesterday)  # -100 yesterday
        p2 = _open(engine, price=100, amount=1000, max_pct=20, now=NOW)
        engine.close_position(p2.id, 95, now=NOW)  # -50 today
        # Day started with 9900
        assert engine.get_daily_pnl_pct(NOW) == pytest.approx(-50 / 9900 * 100)

    def test_daily_pnl_resets_next_day(self):
        engine = PaperEngine(balance=10000, slippage_pct=0, now=NOW)
        pos = _open(engine, price=100, amount=1000)
        engine.close_position(pos.id, 90, now=NOW)
        assert engine.get_daily_pnl_pct(NOW) < 0
        assert engine.get_daily_pnl_pct(NOW + timedelta(days=1)) == 0.0

    def test_queries_are_read_only(self):
        engine = PaperEngine(balance=10000, slippage_pct=0.3, now=NOW)
        for exit_price in (2700, 2400):
            pos = _open(engine, amount=500)
            engine.close_position(pos.id, exit_price, now=NOW)
        _open(engine, amount=500)
        before = engine.serialize()

        for now in (NOW, NOW + timedelta(days=1)):
            first = (engine.get_win_rate(), engine.get_total_pnl_pct(), engine.get_daily_pnl_pct(now))
            second = (engine.get_win_rate(), engine.get_total_pnl_pct(), engine.get_daily_pnl_pct(now))
            assert first == second
        assert engine.serialize() == before

    def test_book_equity_includes_committed(self):
        engine = _engine()
        _open(engine)
        assert engine.book_equity() == Decimal("10000")
        assert engine.committed_notional() == Decimal("1000")


class TestInvariants:
    def test_holds_after_trading(self):
        engine = _engine()
        a = _open(engine)
        _open(engine, side="sell", amount=700)
        engine.close_position(a.id, 2600, now=NOW)
        engine.check_invariants()

    def test_detects_tampered_balance(self):
        engine = _engine()
        _open(engine)
        engine._balance += Decimal("1")
        with pytest.raises(LedgerInvariantError):
            engine.check_invariants()


# ── Persistence ───────────────────────────────────────────────


class TestSerialization:
    def test_round_trip_preserves_state(self):
        engine = _engine()
        a = _open(engine)
        _open(engine, side="sell", pair="AERO/USDC", price=1.2, amount=500)
        engine.close_position(a.id, 2750, now=NOW)

        restored = PaperEngine.deserialize(engine.serialize())
        assert restored.balance == engine.balance
        assert restored.initial_balance == engine.initial_balance
        assert restored.open_positions == engine.open_positions
        assert restored.closed_positions == engine.closed_positions

    def test_round_trip_preserves_behaviour(self):
        engine = _engine()
        pos = _open(engine)
        restored = PaperEngine.deserialize(engine.serialize())

        original = engine.close_position(pos.id, 2750, now=NOW)
        replayed = restored.close_position(pos.id, 2750, now=NOW)
        assert replayed.pnl_usd == original.pnl_usd
        assert restored.balance == engine.balance

    def test_serialize_is_idempotent(self):
        engine = _engine()
        _open(engine)
        blob = engine.serialize()
        assert PaperEngine.deserialize(blob).serialize() == blob

    def test_serialized_form_is_json_safe(self):
        import json

        engine = _engine()
        _open(engine)
        json.dumps(engine.serialize())
