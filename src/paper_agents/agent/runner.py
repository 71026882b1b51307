"""Agent host — one durable-timer task per configured agent."""

from __future__ import annotations

import argparse
import asyncio
import signal
from datetime import datetime, timezone

import structlog

from paper_agents.agent.market import GeckoMarketSource, MarketDataSource
from paper_agents.agent.oracle import DecisionOracle, OpenRouterOracle
from paper_agents.agent.scheduler import AgentScheduler
from paper_agents.config.loader import load_config
from paper_agents.config.schema import AppConfig
from paper_agents.db import SqlAgentRepository, create_db_engine, init_schema, make_session_factory
from paper_agents.exchange import GeckoTerminalClient
from paper_agents.logging.setup import setup_logging

log = structlog.get_logger("agent_runner")

# How often an idle (stopped/paused) agent re-reads its persisted status
IDLE_POLL_S = 30.0


class AgentHost:
    """Drives every configured agent's scheduler until ``stop()`` is called.

    Agents share nothing mutable; each loop only sleeps until its persisted
    ``next_wake_at`` and then wakes its own scheduler.
    """

    def __init__(
        self,
        config: AppConfig,
        repository: SqlAgentRepository,
        market: MarketDataSource,
        oracle: DecisionOracle,
    ):
        self.config = config
        self.repository = repository
        self.schedulers: dict[str, AgentScheduler] = {
            agent_id: AgentScheduler(agent_id, agent_cfg, repository, market, oracle, settings=config)
            for agent_id, agent_cfg in config.agents.items()
        }
        self._stopping = asyncio.Event()

    def bootstrap(self, now: datetime | None = None) -> list[str]:
        """Start auto_start agents that have no persisted state yet."""
        now = now or datetime.now(timezone.utc)
        started = []
        for agent_id, scheduler in self.schedulers.items():
            if scheduler.state is None and scheduler.config.auto_start:
                scheduler.start(now)
                started.append(agent_id)
        running = set(self.repository.running_agents())
        log.info(
            "agents_bootstrapped",
            started=started,
            running=sorted(running & set(self.schedulers)),
        )
        return started

    def stop(self) -> None:
        self._stopping.set()

    async def run(self) -> None:
        self.bootstrap()
        tasks = [
            asyncio.create_task(self._agent_loop(scheduler), name=f"agent:{agent_id}")
            for agent_id, scheduler in self.schedulers.items()
        ]
        if not tasks:
            log.warning("no_agents_configured")
            return
        await asyncio.gather(*tasks)
        log.info("agent_host_stopped")

    async def _sleep(self, seconds: float) -> bool:
        """Sleep unless the host is stopping. True when the host is stopping."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _agent_loop(self, scheduler: AgentScheduler) -> None:
        while not self._stopping.is_set():
            delay = scheduler.seconds_until_wake()
            if delay is None:
                # Pick up status changes written by another process.
                if await self._sleep(IDLE_POLL_S):
                    break
                scheduler.refresh()
                continue
            if delay > 0 and await self._sleep(delay):
                break
            try:
                await scheduler.wake()
            except Exception:
                log.exception("wake_error", agent_id=scheduler.agent_id)
                if await self._sleep(IDLE_POLL_S):
                    break


async def run_host(config: AppConfig) -> None:
    """Wire the store, market data and oracle, then run the host."""
    db_engine = create_db_engine(config.database.url)
    init_schema(db_engine)
    repository = SqlAgentRepository(make_session_factory(db_engine))

    gecko = GeckoTerminalClient(
        base_url=config.market.base_url,
        network=config.market.network,
        timeout_s=config.market.timeout_s,
    )
    market = GeckoMarketSource(gecko, candle_limit=config.market.candle_limit, max_pairs=config.market.max_pairs)
    oracle = OpenRouterOracle(
        api_key=config.oracle.api_key,
        model=config.oracle.model,
        base_url=config.oracle.base_url,
        fallback_model=config.oracle.fallback_model,
        allow_fallback=config.oracle.allow_fallback,
        temperature=config.oracle.temperature,
        timeout_s=config.oracle.timeout_s,
    )
    if not config.oracle.api_key:
        log.warning("oracle_api_key_missing")

    host = AgentHost(config, repository, market, oracle)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, host.stop)

    log.info("agent_host_starting", agents=list(host.schedulers))
    try:
        await host.run()
    finally:
        await gecko.close()
        await oracle.close()
        db_engine.dispose()


def main(config_path: str | None = None) -> None:
    """Entry point — load config, set up logging, run the async loop."""
    config = load_config(config_path)
    setup_logging(level=config.logging.level, log_format=config.logging.format)
    asyncio.run(run_host(config))


def cli() -> None:
    parser = argparse.ArgumentParser(description="Paper trading agents")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    args = parser.parse_args()
    main(config_path=args.config)
