"""SqlAgentRepository — durable agent state plus append-only history."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

import structlog
from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from paper_agents.db.tables.agents import (
    AgentDecisionRow,
    AgentStateRow,
    PerformanceSnapshotRow,
    TradeRow,
)
from paper_agents.errors import PersistenceFailure
from paper_agents.models import (
    AgentState,
    CooldownState,
    DecisionRecord,
    PerformanceSnapshot,
    Position,
)

log = structlog.get_logger("repository")


def _as_utc(ts: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; everything stored is UTC."""
    if ts is None or ts.tzinfo is not None:
        return ts
    return ts.replace(tzinfo=timezone.utc)


class SqlAgentRepository:
    """Keyed state store and history sink for agent schedulers.

    ``commit_cycle`` writes the new state and every record of a cycle in one
    transaction, so a failed write leaves the previous good state durable.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        try:
            with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as exc:
            log.error("persistence_failed", operation=operation, error=str(exc))
            raise PersistenceFailure(f"{operation} failed: {exc}") from exc

    # ── State ─────────────────────────────────────────────────

    def load_state(self, agent_id: str) -> AgentState | None:
        with self._transaction("load_state") as session:
            row = session.get(AgentStateRow, agent_id)
            if row is None:
                return None
            return AgentState(
                agent_id=row.agent_id,
                status=row.status,
                interval=row.interval,
                ledger=row.ledger,
                cooldown=CooldownState.model_validate(row.cooldown or {}),
                cycle_count=row.cycle_count,
                next_wake_at=_as_utc(row.next_wake_at),
                updated_at=_as_utc(row.updated_at),
            )

    def save_state(self, state: AgentState) -> None:
        with self._transaction("save_state") as session:
            self._write_state(session, state)

    def commit_cycle(
        self,
        state: AgentState,
        positions: Iterable[Position] = (),
        decisions: Iterable[DecisionRecord] = (),
        snapshot: PerformanceSnapshot | None = None,
    ) -> None:
        """Persist a completed cycle atomically."""
        with self._transaction("commit_cycle") as session:
            self._write_state(session, state)
            for position in positions:
                session.merge(_trade_row(position))
            for record in decisions:
                session.add(_decision_row(record))
            if snapshot is not None:
                session.add(PerformanceSnapshotRow(**snapshot.model_dump()))

    def record_decision(self, record: DecisionRecord) -> None:
        """Append one audit record outside a cycle commit."""
        with self._transaction("record_decision") as session:
            session.add(_decision_row(record))

    @staticmethod
    def _write_state(session: Session, state: AgentState) -> None:
        session.merge(AgentStateRow(
            agent_id=state.agent_id,
            status=state.status,
            interval=state.interval,
            ledger=state.ledger,
            cooldown=state.cooldown.model_dump(mode="json"),
            cycle_count=state.cycle_count,
            next_wake_at=state.next_wake_at,
            updated_at=state.updated_at or datetime.now(timezone.utc),
        ))

    # ── Queries ───────────────────────────────────────────────

    def running_agents(self) -> list[str]:
        with self._transaction("running_agents") as session:
            return list(session.execute(
                select(AgentStateRow.agent_id).where(AgentStateRow.status == "running")
            ).scalars())

    def recent_decisions(self, agent_id: str, limit: int = 10) -> list[DecisionRecord]:
        """Most recent audit records, newest first."""
        with self._transaction("recent_decisions") as session:
            rows = session.execute(
                select(AgentDecisionRow)
                .where(AgentDecisionRow.agent_id == agent_id)
                .order_by(desc(AgentDecisionRow.ts), desc(AgentDecisionRow.id))
                .limit(limit)
            ).scalars().all()
            return [
                DecisionRecord(
                    agent_id=r.agent_id,
                    ts=_as_utc(r.ts),
                    action=r.decision,
                    confidence=r.confidence,
                    reasoning=r.reasoning,
                    outcome=r.outcome,
                    error=r.error,
                    position_id=r.position_id,
                    model=r.llm_model,
                    latency_ms=r.llm_latency_ms,
                    tokens_used=r.llm_tokens_used,
                )
                for r in rows
            ]

    def performance_history(self, agent_id: str) -> list[PerformanceSnapshot]:
        """All snapshots for an agent in chronological order."""
        with self._transaction("performance_history") as session:
            rows = session.execute(
                select(PerformanceSnapshotRow)
                .where(PerformanceSnapshotRow.agent_id == agent_id)
                .order_by(PerformanceSnapshotRow.snapshot_at, PerformanceSnapshotRow.id)
            ).scalars().all()
            return [
                PerformanceSnapshot(
                    agent_id=r.agent_id,
                    snapshot_at=_as_utc(r.snapshot_at),
                    balance=r.balance,
                    total_pnl_pct=r.total_pnl_pct,
                    win_rate=r.win_rate,
                    total_trades=r.total_trades,
                    sharpe_ratio=r.sharpe_ratio,
                    max_drawdown=r.max_drawdown,
                )
                for r in rows
            ]


def _trade_row(position: Position) -> TradeRow:
    return TradeRow(
        id=position.id,
        agent_id=position.agent_id,
        pair=position.pair,
        dex=position.dex,
        side=position.side,
        entry_price=position.entry_price,
        effective_entry_price=position.effective_entry_price,
        exit_price=position.exit_price,
        effective_exit_price=position.effective_exit_price,
        amount_usd=position.amount_usd,
        pnl_pct=position.pnl_pct,
        pnl_usd=position.pnl_usd,
        confidence_before=position.confidence_before,
        confidence_after=position.confidence_after,
        reasoning=position.reasoning,
        strategy_used=position.strategy_used,
        slippage_simulated=position.slippage,
        status=position.status,
        exit_reason=position.exit_reason,
        opened_at=position.opened_at,
        closed_at=position.closed_at,
    )


def _decision_row(record: DecisionRecord) -> AgentDecisionRow:
    return AgentDecisionRow(
        agent_id=record.agent_id,
        ts=record.ts,
        decision=record.action,
        confidence=record.confidence,
        reasoning=record.reasoning,
        outcome=record.outcome,
        error=record.error,
        position_id=record.position_id,
        llm_model=record.model,
        llm_latency_ms=record.latency_ms,
        llm_tokens_used=record.tokens_used,
        market_snapshot=record.market_snapshot,
    )
