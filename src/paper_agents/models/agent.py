"""Durable per-agent state — what survives process eviction."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

AgentStatus = Literal["running", "stopped", "paused"]


class CooldownState(BaseModel):
    """Timestamp of the last realised loss; cleared by a later realised win."""

    last_loss_at: datetime | None = None


class AgentState(BaseModel):
    agent_id: str
    status: AgentStatus = "stopped"
    interval: str = "1h"
    ledger: dict[str, Any] = Field(default_factory=dict)
    cooldown: CooldownState = Field(default_factory=CooldownState)
    cycle_count: int = 0
    next_wake_at: datetime | None = None
    updated_at: datetime | None = None
