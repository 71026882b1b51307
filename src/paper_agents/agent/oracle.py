"""Decision oracle boundary — request model, intent parsing, retries.

The oracle is an unreliable external collaborator. Whatever it returns is
validated into a ``TradeIntent``; anything else becomes an ``OracleFailure``
which ``request_intent`` turns into a recorded ``hold``.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

import httpx
import pydantic
import structlog
from pydantic import BaseModel, Field

from paper_agents.agent.prompts import build_analysis_prompt
from paper_agents.errors import OracleFailure
from paper_agents.models.decision import DecisionRecord, TradeIntent
from paper_agents.models.market import MarketSnapshot
from paper_agents.models.position import Position

log = structlog.get_logger("oracle")

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


# ── Request ───────────────────────────────────────────────────


class PortfolioView(BaseModel):
    """Read-only ledger projection handed to the oracle."""

    balance: Decimal
    open_positions: list[Position] = []
    daily_pnl_pct: float = 0.0
    total_pnl_pct: float = 0.0
    win_rate: float = 0.0


class DecisionRequest(BaseModel):
    agent_id: str
    system_prompt: str
    portfolio: PortfolioView
    market: MarketSnapshot
    allowed_pairs: list[str]
    strategies: list[str] = Field(default_factory=list)
    max_position_size_pct: float
    max_open_positions: int
    entries_suppressed: bool = False
    suppression_reason: str = ""
    recent_decisions: list[DecisionRecord] = Field(default_factory=list)


@dataclass
class OracleReply:
    """Raw oracle output plus call metadata."""

    content: Any
    model: str | None = None
    tokens_used: int | None = None


@dataclass
class OracleResult:
    intent: TradeIntent
    error: str | None = None
    model: str | None = None
    latency_ms: int = 0
    tokens_used: int | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class DecisionOracle(Protocol):
    async def decide(self, request: DecisionRequest) -> OracleReply: ...


# ── Parsing ───────────────────────────────────────────────────


def parse_intent(raw: Any) -> TradeIntent:
    """Validate oracle output into a TradeIntent.

    Accepts a mapping or a JSON string, optionally wrapped in a fenced code
    block. Raises OracleFailure on anything that does not validate.
    """
    if isinstance(raw, str):
        text = raw.strip()
        fenced = _FENCE_RE.match(text)
        if fenced:
            text = fenced.group(1)
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise OracleFailure(f"Oracle returned non-JSON output: {exc}") from exc
    if not isinstance(raw, dict):
        raise OracleFailure(f"Oracle output must be an object, got {type(raw).__name__}")
    try:
        return TradeIntent.model_validate(raw)
    except pydantic.ValidationError as exc:
        raise OracleFailure(f"Invalid oracle intent: {exc.error_count()} error(s)") from exc


# ── OpenRouter ────────────────────────────────────────────────


class OpenRouterOracle:
    """Chat-completions oracle against an OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str | None,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        fallback_model: str | None = None,
        allow_fallback: bool = False,
        temperature: float = 0.7,
        timeout_s: float = 180.0,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.fallback_model = fallback_model if allow_fallback else None
        self.temperature = temperature
        self._timeout_s = timeout_s
        self._http: httpx.AsyncClient | None = None

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._http = httpx.AsyncClient(timeout=self._timeout_s, headers=headers)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def decide(self, request: DecisionRequest) -> OracleReply:
        if not self.api_key:
            raise OracleFailure("Oracle API key is not configured")
        try:
            return await self._complete(self.model, request)
        except (httpx.HTTPError, OracleFailure) as exc:
            if not self.fallback_model:
                raise
            log.warning(
                "oracle_primary_failed",
                model=self.model,
                fallback=self.fallback_model,
                error=str(exc),
            )
            return await self._complete(self.fallback_model, request)

    async def _complete(self, model: str, request: DecisionRequest) -> OracleReply:
        http = await self._get_http()
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": build_analysis_prompt(request)},
            ],
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }
        resp = await http.post(f"{self.base_url}/chat/completions", json=payload)
        resp.raise_for_status()
        try:
            data = resp.json()
        except ValueError as exc:
            raise OracleFailure(f"Non-JSON response body from {model}: {exc}") from exc
        if not isinstance(data, dict):
            raise OracleFailure(f"Unexpected response body from {model}: {type(data).__name__}")

        choices = data.get("choices") or []
        if not isinstance(choices, list) or not choices:
            raise OracleFailure(f"No completion returned by {model}")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise OracleFailure(f"Malformed completion returned by {model}")
        content = message.get("content")
        if not content:
            raise OracleFailure(f"Empty completion returned by {model}")
        usage = data.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        return OracleReply(
            content=content,
            model=data.get("model", model),
            tokens_used=usage.get("total_tokens"),
        )


# ── Timeout / retry ───────────────────────────────────────────


def is_transient(exc: BaseException) -> bool:
    """Timeouts, transport errors and 429/5xx responses are worth retrying."""
    if isinstance(exc, (asyncio.TimeoutError, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    return False


async def request_intent(
    oracle: DecisionOracle,
    request: DecisionRequest,
    timeout_s: float = 180.0,
    max_retries: int = 2,
    backoff_s: float = 1.0,
) -> OracleResult:
    """Ask the oracle for an intent. Never raises on oracle misbehaviour.

    Transient failures are retried up to *max_retries* times with exponential
    backoff. Malformed output is not retried. On failure the result carries a
    ``hold`` intent and the error text.
    """
    started = time.monotonic()
    attempt = 0
    while True:
        try:
            reply = await asyncio.wait_for(oracle.decide(request), timeout=timeout_s)
            intent = parse_intent(reply.content)
            return OracleResult(
                intent=intent,
                model=reply.model,
                latency_ms=int((time.monotonic() - started) * 1000),
                tokens_used=reply.tokens_used,
            )
        except (OracleFailure, httpx.HTTPError, asyncio.TimeoutError) as exc:
            error = str(exc) or type(exc).__name__
            if is_transient(exc) and attempt < max_retries:
                delay = backoff_s * (2 ** attempt)
                attempt += 1
                log.warning(
                    "oracle_retry",
                    agent_id=request.agent_id,
                    attempt=attempt,
                    delay_s=delay,
                    error=error,
                )
                await asyncio.sleep(delay)
                continue
            log.error("oracle_failed", agent_id=request.agent_id, attempts=attempt + 1, error=error)
            return OracleResult(
                intent=TradeIntent.hold(f"Oracle failure: {error}"),
                error=error,
                latency_ms=int((time.monotonic() - started) * 1000),
            )
