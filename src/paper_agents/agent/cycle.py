"""One decision cycle for one agent.

Ledger mutations happen in a fixed order: forced risk exits, then the
oracle-driven action, then the invariant check. Persisting the result is the
scheduler's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog

from paper_agents.agent.market import MarketDataSource
from paper_agents.agent.oracle import (
    DecisionOracle,
    DecisionRequest,
    OracleResult,
    PortfolioView,
    request_intent,
)
from paper_agents.agent.prompts import system_prompt
from paper_agents.config.schema import AgentConfig, OracleConfig
from paper_agents.errors import TradeRejected, ValidationError
from paper_agents.models.agent import CooldownState
from paper_agents.models.decision import CycleOutcome, DecisionRecord, TradeIntent
from paper_agents.models.market import MarketSnapshot
from paper_agents.models.position import Position
from paper_agents.paper.engine import PaperEngine
from paper_agents.paper.risk import entry_suppression, evaluate_entry, find_forced_exits
from paper_agents.paper.sizing import calculate_position_amount

log = structlog.get_logger("cycle")


@dataclass
class CycleResult:
    """Everything a cycle produced, ready to be committed in one transaction."""

    outcome: CycleOutcome
    cooldown: CooldownState
    positions: list[Position] = field(default_factory=list)
    decisions: list[DecisionRecord] = field(default_factory=list)


def _snapshot_for_audit(snapshot: MarketSnapshot | None) -> list[dict[str, Any]]:
    if snapshot is None:
        return []
    return [
        q.model_dump(mode="json", include={"pair", "price_usd", "price_change", "indicators"})
        for q in snapshot.pairs
    ]


def _update_cooldown(cooldown: CooldownState, closed: Position) -> CooldownState:
    """A realised loss starts the cooldown, a realised win clears it."""
    if closed.pnl_usd is None:
        return cooldown
    if closed.pnl_usd < 0:
        return CooldownState(last_loss_at=closed.closed_at)
    if closed.pnl_usd > 0:
        return CooldownState()
    return cooldown


class _Cycle:
    """Mutable bookkeeping for a single run of ``run_cycle``."""

    def __init__(self, agent_id: str, engine: PaperEngine, cooldown: CooldownState, now: datetime):
        self.agent_id = agent_id
        self.engine = engine
        self.now = now
        self.result = CycleResult(outcome="hold", cooldown=cooldown)
        self.audit_snapshot: list[dict[str, Any]] = []
        self.force_closed_pairs: set[str] = set()

    def record(
        self,
        outcome: CycleOutcome,
        intent: TradeIntent,
        *,
        error: str | None = None,
        position_id: str | None = None,
        oracle: OracleResult | None = None,
    ) -> None:
        self.result.decisions.append(DecisionRecord(
            agent_id=self.agent_id,
            ts=self.now,
            action=intent.action,
            confidence=intent.confidence,
            reasoning=intent.reasoning,
            outcome=outcome,
            error=error,
            position_id=position_id,
            model=oracle.model if oracle else None,
            latency_ms=oracle.latency_ms if oracle else 0,
            tokens_used=oracle.tokens_used if oracle else None,
            market_snapshot=self.audit_snapshot,
        ))

    def finish(self, outcome: CycleOutcome) -> CycleResult:
        self.result.outcome = outcome
        return self.result

    def closed(self, position: Position) -> None:
        self.result.positions.append(position)
        self.result.cooldown = _update_cooldown(self.result.cooldown, position)


async def run_cycle(
    *,
    agent_id: str,
    engine: PaperEngine,
    cooldown: CooldownState,
    config: AgentConfig,
    market: MarketDataSource,
    oracle: DecisionOracle,
    oracle_settings: OracleConfig,
    recent_decisions: list[DecisionRecord] | None = None,
    now: datetime,
) -> CycleResult:
    """Run one observe → gate → decide → apply pass over *engine*.

    Market and oracle failures are recorded and do not raise. Ledger invariant
    violations raise LedgerInvariantError; the caller must then discard the
    cycle without persisting.
    """
    cycle = _Cycle(agent_id, engine, cooldown, now)
    risk = config.risk

    # ── Observe ───────────────────────────────────────────────
    try:
        snapshot = await market.fetch_snapshot(config.pairs)
    except Exception as exc:
        log.exception("market_data_failed", agent_id=agent_id)
        cycle.record("no_market_data", TradeIntent.hold("No market data available"), error=str(exc))
        return cycle.finish("no_market_data")

    cycle.audit_snapshot = _snapshot_for_audit(snapshot)
    prices = snapshot.prices()
    if not prices:
        log.warning("no_market_data", agent_id=agent_id, pairs=config.pairs)
        cycle.record("no_market_data", TradeIntent.hold("No market data available"))
        return cycle.finish("no_market_data")

    # ── Forced exits ──────────────────────────────────────────
    for exit_ in find_forced_exits(engine, prices, risk):
        if exit_.reason == "stop_loss":
            closed = engine.stop_out_position(exit_.position_id, exit_.price, reason="stop_loss", now=now)
        else:
            closed = engine.close_position(exit_.position_id, exit_.price, reason="take_profit", now=now)
        cycle.closed(closed)
        cycle.force_closed_pairs.add(closed.pair)
        log.info(
            "forced_exit",
            agent_id=agent_id,
            position_id=closed.id,
            pair=closed.pair,
            reason=exit_.reason,
            pnl_pct=closed.pnl_pct,
        )
        cycle.record(
            "forced_exit",
            TradeIntent(
                action="close",
                confidence=1.0,
                reasoning=f"{exit_.reason} triggered at {exit_.price}",
            ),
            position_id=closed.id,
        )

    # ── Suppression ───────────────────────────────────────────
    suppression = entry_suppression(engine, risk, cycle.result.cooldown, now)
    if suppression.suppressed:
        log.info("entries_suppressed", agent_id=agent_id, reason=suppression.reason)
        if not engine.open_positions:
            # No open positions to manage: skip the oracle.
            cycle.record("suppressed", TradeIntent.hold(f"Entries suppressed: {suppression.reason}"))
            engine.check_invariants()
            return cycle.finish("suppressed")

    # ── Decide ────────────────────────────────────────────────
    request = DecisionRequest(
        agent_id=agent_id,
        system_prompt=system_prompt(config.autonomy_level, config.persona),
        portfolio=PortfolioView(
            balance=engine.balance,
            open_positions=engine.open_positions,
            daily_pnl_pct=engine.get_daily_pnl_pct(now),
            total_pnl_pct=engine.get_total_pnl_pct(),
            win_rate=engine.get_win_rate(),
        ),
        market=snapshot,
        allowed_pairs=config.pairs,
        strategies=config.strategies,
        max_position_size_pct=risk.max_position_size_pct,
        max_open_positions=risk.max_open_positions,
        entries_suppressed=suppression.suppressed,
        suppression_reason=suppression.reason if suppression.suppressed else "",
        recent_decisions=recent_decisions or [],
    )
    oracle_result = await request_intent(
        oracle,
        request,
        timeout_s=oracle_settings.timeout_s,
        max_retries=oracle_settings.max_retries,
        backoff_s=oracle_settings.backoff_s,
    )
    intent = oracle_result.intent
    if oracle_result.failed:
        cycle.record("oracle_failure", intent, error=oracle_result.error, oracle=oracle_result)
        engine.check_invariants()
        return cycle.finish("oracle_failure")

    log.info(
        "decision_received",
        agent_id=agent_id,
        action=intent.action,
        confidence=intent.confidence,
        target_pair=intent.target_pair,
    )

    # ── Apply ─────────────────────────────────────────────────
    if intent.action == "close":
        outcome = _apply_close_all(cycle, prices, intent, oracle_result)
    elif suppression.suppressed:
        # Open positions stay managed; only new entries are blocked.
        cycle.record(
            "suppressed",
            intent,
            error=f"Entries suppressed: {suppression.reason}" if intent.action != "hold" else None,
            oracle=oracle_result,
        )
        outcome = "suppressed"
    elif intent.action in ("buy", "sell"):
        outcome = _apply_entry(cycle, config, snapshot, intent, oracle_result)
    else:
        cycle.record("hold", intent, oracle=oracle_result)
        outcome = "hold"

    engine.check_invariants()
    return cycle.finish(outcome)


def _reject(cycle: _Cycle, intent: TradeIntent, oracle: OracleResult, reason: str) -> CycleOutcome:
    log.info("trade_rejected", agent_id=cycle.agent_id, action=intent.action, reason=reason)
    cycle.record("rejected", intent, error=reason, oracle=oracle)
    return "rejected"


def _apply_entry(
    cycle: _Cycle,
    config: AgentConfig,
    snapshot: MarketSnapshot,
    intent: TradeIntent,
    oracle: OracleResult,
) -> CycleOutcome:
    engine = cycle.engine
    risk = config.risk

    if intent.confidence < config.min_confidence:
        return _reject(
            cycle, intent, oracle,
            f"confidence {intent.confidence:.2f} below minimum {config.min_confidence:.2f}",
        )

    pair = intent.target_pair or config.pairs[0]
    if pair not in config.pairs:
        return _reject(cycle, intent, oracle, f"pair {pair} is not in the allowed list")
    if pair in cycle.force_closed_pairs:
        return _reject(cycle, intent, oracle, f"{pair} was force-closed this cycle")
    quote = snapshot.quote(pair)
    if quote is None or quote.price_usd <= 0:
        return _reject(cycle, intent, oracle, f"no price data for {pair}")

    amount = calculate_position_amount(
        engine.balance,
        intent.suggested_position_size_pct,
        config.default_position_size_pct,
        risk.max_position_size_pct,
    )
    verdict = evaluate_entry(engine, risk, amount)
    if not verdict.allowed:
        return _reject(cycle, intent, oracle, verdict.reason)

    try:
        position = engine.open_position(
            agent_id=cycle.agent_id,
            pair=pair,
            side=intent.action,
            price=quote.price_usd,
            amount_usd=amount,
            max_position_size_pct=risk.max_position_size_pct,
            dex=config.dexes[0] if config.dexes else "",
            confidence=intent.confidence,
            reasoning=intent.reasoning,
            strategy_used=config.strategies[0] if config.strategies else "",
            now=cycle.now,
        )
    except (TradeRejected, ValidationError) as exc:
        return _reject(cycle, intent, oracle, str(exc))

    cycle.result.positions.append(position)
    cycle.record("opened", intent, position_id=position.id, oracle=oracle)
    return "opened"


def _apply_close_all(
    cycle: _Cycle,
    prices: dict[str, Decimal],
    intent: TradeIntent,
    oracle: OracleResult,
) -> CycleOutcome:
    engine = cycle.engine
    if not engine.open_positions:
        return _reject(cycle, intent, oracle, "no open positions to close")

    closed_ids: list[str] = []
    for pos in engine.open_positions:
        price = prices.get(pos.pair)
        if price is None:
            log.warning("close_skipped_no_price", agent_id=cycle.agent_id, position_id=pos.id, pair=pos.pair)
            continue
        closed = engine.close_position(
            pos.id, price, confidence=intent.confidence, reason="oracle_close", now=cycle.now,
        )
        cycle.closed(closed)
        closed_ids.append(closed.id)

    if not closed_ids:
        return _reject(cycle, intent, oracle, "no prices for open positions")
    cycle.record(
        "closed",
        intent,
        position_id=closed_ids[0] if len(closed_ids) == 1 else None,
        oracle=oracle,
    )
    return "closed"
