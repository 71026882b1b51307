"""Per-agent cycle scheduler — the durable actor around one PaperEngine.

All state that must survive eviction lives in ``AgentState`` and is written
through the repository. The in-memory copy is only a cache; a fresh scheduler
over the same repository picks up where the last one stopped.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Literal

import structlog

from paper_agents.agent.cycle import CycleResult, run_cycle
from paper_agents.agent.market import MarketDataSource
from paper_agents.agent.oracle import DecisionOracle
from paper_agents.config.schema import AgentConfig, AppConfig
from paper_agents.db.repository import SqlAgentRepository
from paper_agents.errors import LedgerInvariantError, PersistenceFailure
from paper_agents.logging import bind_agent
from paper_agents.metrics import compute_metrics
from paper_agents.models.agent import AgentState, AgentStatus, CooldownState
from paper_agents.models.decision import DecisionRecord, PerformanceSnapshot
from paper_agents.paper.engine import PaperEngine

log = structlog.get_logger("scheduler")

CyclePhase = Literal["idle", "deciding", "applying", "persisted"]

INTERVAL_SECONDS: dict[str, int] = {
    "1m": 60,
    "5m": 300,
    "15m": 900,
    "1h": 3600,
    "4h": 14400,
    "1d": 86400,
}
DEFAULT_INTERVAL = "1h"


def interval_to_seconds(interval: str) -> int:
    """Unknown interval strings fall back to one hour."""
    return INTERVAL_SECONDS.get(interval, INTERVAL_SECONDS[DEFAULT_INTERVAL])


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AgentScheduler:
    """Runs at most one cycle at a time for one agent and persists the result."""

    def __init__(
        self,
        agent_id: str,
        config: AgentConfig,
        repository: SqlAgentRepository,
        market: MarketDataSource,
        oracle: DecisionOracle,
        settings: AppConfig | None = None,
    ):
        self.agent_id = agent_id
        self.config = config
        self.repository = repository
        self.market = market
        self.oracle = oracle
        self.settings = settings or AppConfig()
        self.phase: CyclePhase = "idle"
        self._state: AgentState | None = None
        self._lock = asyncio.Lock()
        self._pending_status: AgentStatus | None = None

    # ── State ─────────────────────────────────────────────────

    @property
    def state(self) -> AgentState | None:
        if self._state is None:
            self._state = self.repository.load_state(self.agent_id)
        return self._state

    def refresh(self) -> None:
        """Drop the cached state so the next read comes from the repository."""
        if not self.in_flight:
            self._state = None

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    def engine(self) -> PaperEngine | None:
        """A ledger rebuilt from the last persisted state."""
        state = self.state
        if state is None or not state.ledger:
            return None
        return PaperEngine.deserialize(state.ledger)

    def seconds_until_wake(self, now: datetime | None = None) -> float | None:
        """Delay until the persisted next wake; None when nothing is scheduled."""
        state = self.state
        if state is None or state.status != "running" or state.next_wake_at is None:
            return None
        now = now or _utc_now()
        return max(0.0, (state.next_wake_at - now).total_seconds())

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self, now: datetime | None = None) -> AgentState:
        """Mark the agent running and schedule its first wake.

        The ledger is created on first start only; a restart keeps the existing
        balance and positions.
        """
        now = now or _utc_now()
        interval = self.config.analysis_interval
        interval_s = interval_to_seconds(interval)
        first_wake = min(self.settings.scheduler.first_wake_delay_s, interval_s)

        existing = self.state
        if existing is not None and existing.ledger:
            ledger = existing.ledger
            cooldown = existing.cooldown
            cycle_count = existing.cycle_count
        else:
            ledger = PaperEngine(
                balance=self.config.paper_balance,
                slippage_pct=self.config.slippage_pct,
                now=now,
            ).serialize()
            cooldown = existing.cooldown if existing else CooldownState()
            cycle_count = 0

        state = AgentState(
            agent_id=self.agent_id,
            status="running",
            interval=interval,
            ledger=ledger,
            cycle_count=cycle_count,
            next_wake_at=now + timedelta(seconds=first_wake),
            updated_at=now,
            cooldown=cooldown,
        )
        self.repository.save_state(state)
        self._state = state
        self._pending_status = None
        log.info(
            "agent_started",
            agent_id=self.agent_id,
            interval=interval,
            next_wake_at=state.next_wake_at,
            restored=existing is not None and bool(existing.ledger),
        )
        return state

    def stop(self, now: datetime | None = None) -> None:
        self._set_status("stopped", now)

    def pause(self, now: datetime | None = None) -> None:
        self._set_status("paused", now)

    def _set_status(self, status: AgentStatus, now: datetime | None) -> None:
        if self.in_flight:
            # The running cycle persists this status instead of rescheduling.
            self._pending_status = status
            log.info("status_change_deferred", agent_id=self.agent_id, status=status)
            return
        state = self.state
        if state is None:
            return
        state = state.model_copy(update={
            "status": status,
            "next_wake_at": None,
            "updated_at": now or _utc_now(),
        })
        self.repository.save_state(state)
        self._state = state
        log.info("agent_status_changed", agent_id=self.agent_id, status=status)

    # ── Wake ──────────────────────────────────────────────────

    async def wake(self, now: datetime | None = None) -> CycleResult | None:
        """Run one cycle if the agent is running. Returns None when skipped or aborted."""
        if self.in_flight:
            log.warning("wake_skipped_in_flight", agent_id=self.agent_id)
            return None
        async with self._lock:
            now = now or _utc_now()
            state = self.state
            if state is None or state.status != "running":
                log.debug("wake_ignored", agent_id=self.agent_id, status=state.status if state else None)
                return None
            bind_agent(self.agent_id)
            try:
                return await self._run(state, now)
            finally:
                self.phase = "idle"
                self._pending_status = None

    async def _run(self, state: AgentState, now: datetime) -> CycleResult | None:
        interval_s = interval_to_seconds(state.interval)
        next_wake = now + timedelta(seconds=interval_s)
        engine = PaperEngine.deserialize(state.ledger)
        try:
            recent = self.repository.recent_decisions(
                self.agent_id, self.settings.scheduler.recent_decisions,
            )
        except PersistenceFailure as exc:
            self._abort(state, now, next_wake, exc)
            return None

        self.phase = "deciding"
        try:
            result = await run_cycle(
                agent_id=self.agent_id,
                engine=engine,
                cooldown=state.cooldown,
                config=self.config,
                market=self.market,
                oracle=self.oracle,
                oracle_settings=self.settings.oracle,
                recent_decisions=recent,
                now=now,
            )
        except LedgerInvariantError as exc:
            self._abort(state, now, next_wake, exc)
            return None

        self.phase = "applying"
        cycle_count = state.cycle_count + 1
        status = self._pending_status or "running"
        new_state = state.model_copy(update={
            "status": status,
            "ledger": engine.serialize(),
            "cooldown": result.cooldown,
            "cycle_count": cycle_count,
            "next_wake_at": next_wake if status == "running" else None,
            "updated_at": now,
        })

        snapshot = None
        if cycle_count % self.settings.scheduler.snapshot_every_cycles == 0:
            metrics = compute_metrics(
                engine.closed_positions, engine.initial_balance, engine.book_equity(),
            )
            snapshot = PerformanceSnapshot(agent_id=self.agent_id, snapshot_at=now, **metrics.as_dict())

        try:
            self.repository.commit_cycle(new_state, result.positions, result.decisions, snapshot)
        except PersistenceFailure as exc:
            self._abort(state, now, next_wake, exc)
            return None

        self._state = new_state
        self.phase = "persisted"
        log.info(
            "cycle_completed",
            agent_id=self.agent_id,
            cycle=cycle_count,
            outcome=result.outcome,
            balance=engine.balance,
            open_positions=len(engine.open_positions),
            snapshot=snapshot is not None,
            next_wake_at=new_state.next_wake_at,
        )
        return result

    def _abort(self, state: AgentState, now: datetime, next_wake: datetime, exc: Exception) -> None:
        """Discard the cycle. The last persisted ledger stays authoritative."""
        log.error(
            "cycle_aborted",
            agent_id=self.agent_id,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        try:
            self.repository.record_decision(DecisionRecord(
                agent_id=self.agent_id,
                ts=now,
                action="hold",
                reasoning="Cycle aborted",
                outcome="aborted",
                error=str(exc),
            ))
        except PersistenceFailure:
            log.error("abort_record_failed", agent_id=self.agent_id)

        status = self._pending_status or state.status
        # Keep the cadence in memory so a failing store does not spin the host.
        self._state = state.model_copy(update={
            "status": status,
            "next_wake_at": next_wake if status == "running" else None,
        })
        if self._pending_status is not None:
            try:
                self.repository.save_state(state.model_copy(update={
                    "status": status, "next_wake_at": None, "updated_at": now,
                }))
            except PersistenceFailure:
                log.error("status_persist_failed", agent_id=self.agent_id, status=status)
