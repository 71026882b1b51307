"""SQLAlchemy ORM models for the paper_agents schema."""

from sqlalchemy import BigInteger, Float, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from paper_agents.db.base import Base

SCHEMA = "paper_agents"


class AgentStateRow(Base):
    """Durable actor state — one row per agent, overwritten every cycle."""

    __tablename__ = "agent_state"
    __table_args__ = {"schema": SCHEMA}

    agent_id: Mapped[str] = mapped_column(Text, primary_key=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="stopped")
    interval: Mapped[str] = mapped_column(Text, nullable=False, default="1h")
    ledger: Mapped[dict] = mapped_column(JSONB, nullable=False)
    cooldown: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    cycle_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_wake_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class TradeRow(Base):
    """Trade history, upserted by position id as the position moves to terminal."""

    __tablename__ = "trades"
    __table_args__ = {"schema": SCHEMA}

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    agent_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    pair: Mapped[str] = mapped_column(Text, nullable=False)
    dex: Mapped[str] = mapped_column(Text, nullable=False)
    side: Mapped[str] = mapped_column(Text, nullable=False)
    entry_price: Mapped[float] = mapped_column(Numeric, nullable=False)
    effective_entry_price: Mapped[float] = mapped_column(Numeric, nullable=False)
    exit_price: Mapped[float | None] = mapped_column(Numeric, nullable=True)
    effective_exit_price: Mapped[float | None] = mapped_column(Numeric, nullable=True)
    amount_usd: Mapped[float] = mapped_column(Numeric, nullable=False)
    pnl_pct: Mapped[float | None] = mapped_column(Numeric, nullable=True)
    pnl_usd: Mapped[float | None] = mapped_column(Numeric, nullable=True)
    confidence_before: Mapped[float] = mapped_column(Float, nullable=False)
    confidence_after: Mapped[float | None] = mapped_column(Float, nullable=True)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    strategy_used: Mapped[str] = mapped_column(Text, nullable=False, default="")
    slippage_simulated: Mapped[float] = mapped_column(Numeric, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="open")
    exit_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    opened_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class AgentDecisionRow(Base):
    """Append-only audit log — one row per cycle outcome."""

    __tablename__ = "agent_decisions"
    __table_args__ = {"schema": SCHEMA}

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    agent_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    ts: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    decision: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    outcome: Mapped[str] = mapped_column(Text, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    position_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    llm_model: Mapped[str | None] = mapped_column(Text, nullable=True)
    llm_latency_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    llm_tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    market_snapshot: Mapped[list | None] = mapped_column(JSONB, nullable=True)


class PerformanceSnapshotRow(Base):
    """Append-only performance history."""

    __tablename__ = "performance_snapshots"
    __table_args__ = {"schema": SCHEMA}

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    agent_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    snapshot_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    balance: Mapped[float] = mapped_column(Float, nullable=False)
    total_pnl_pct: Mapped[float] = mapped_column(Float, nullable=False)
    win_rate: Mapped[float] = mapped_column(Float, nullable=False)
    total_trades: Mapped[int] = mapped_column(Integer, nullable=False)
    sharpe_ratio: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_drawdown: Mapped[float | None] = mapped_column(Float, nullable=True)
