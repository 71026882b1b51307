"""System prompts per autonomy level and the per-cycle analysis prompt."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from paper_agents.agent.oracle import DecisionRequest

FULL_AUTONOMY_PROMPT = """You are an autonomous crypto trading agent operating on Base chain DEXes.
You have full authority to:
- Choose which pairs to analyze from your allowed list
- Select trading strategies dynamically
- Adjust position sizes within bounds

Analyze the provided market data, portfolio state, and recent decision history.
Make a trading decision and explain your reasoning clearly.

Rules:
- Only trade pairs in your allowed list
- Never exceed max position size percentage
- Always include confidence (0.0-1.0) reflecting conviction
- If uncertain, hold is always a valid choice"""

GUIDED_PROMPT = """You are a guided crypto trading agent on Base chain.
You analyze markets and make recommendations within defined bounds.

You MUST stay within these constraints:
- Only trade pairs from the provided allowed list
- Position size must be within the configured maximum
- Only use the configured strategies

Analyze the market data and current portfolio.
Recommend a trade action. Explain your reasoning clearly.
If the best action is to hold, say so with confidence.

Be conservative — a missed trade is better than a bad trade.
Confidence below 0.6 means hold."""

STRICT_RULES_PROMPT = """You are a rule-following trading analysis agent.
Your ONLY job is to evaluate technical indicators and report signals.
You do NOT decide trades — the system executes based on rules.

Evaluate the provided indicator values against the active strategy rules.
Report which rules are triggered and with what confidence.
Be precise and systematic. Do not add opinions or speculation."""

RESPONSE_FORMAT = """Respond with a single JSON object and nothing else:
{"action": "buy" | "sell" | "hold" | "close", "confidence": 0.0-1.0, "reasoning": "...",
 "targetPair": "<pair from the allowed list, optional>", "suggestedPositionSizePct": 0-100 (optional)}"""


def system_prompt(autonomy_level: str, persona: str = "") -> str:
    if autonomy_level == "full":
        base = FULL_AUTONOMY_PROMPT
    elif autonomy_level == "strict":
        base = STRICT_RULES_PROMPT
    else:
        base = GUIDED_PROMPT
    parts = [base]
    if persona:
        parts.append(f"Persona and strategy guidance:\n{persona}")
    parts.append(RESPONSE_FORMAT)
    return "\n\n".join(parts)


def _signed_pct(value: float | None) -> str:
    if value is None:
        return "N/A"
    return f"{value:+.2f}%"


def build_analysis_prompt(request: DecisionRequest) -> str:
    """Render the ledger projection, market snapshot and constraints as text."""
    portfolio = request.portfolio
    lines = [
        "## Portfolio State",
        f"Balance: ${portfolio.balance:.2f} USDC",
        f"Open positions: {len(portfolio.open_positions)}/{request.max_open_positions}",
        f"Daily P&L: {_signed_pct(portfolio.daily_pnl_pct)}",
        f"Total P&L: {_signed_pct(portfolio.total_pnl_pct)}",
        f"Win rate: {portfolio.win_rate * 100:.1f}%",
    ]
    for pos in portfolio.open_positions:
        lines.append(
            f"- {pos.side} {pos.pair} ${pos.amount_usd:.2f} @ {pos.effective_entry_price:.6f}"
        )

    lines += ["", "## Market Data"]
    for q in request.market.pairs:
        lines += [
            f"### {q.pair}",
            f"Price: ${q.price_usd:.6f}",
            f"24h change: {_signed_pct(q.price_change.get('h24'))}",
            f"1h change: {_signed_pct(q.price_change.get('h1'))}",
            f"Volume 24h: {f'${q.volume_24h / 1_000:.1f}K' if q.volume_24h is not None else 'N/A'}",
            f"Liquidity: {f'${q.liquidity / 1_000_000:.2f}M' if q.liquidity is not None else 'N/A'}",
        ]
        if q.indicators:
            lines.append(f"Indicators: {q.indicators}")
        for s in q.signals:
            lines.append(f"Signal {s.strategy}: {s.action} ({s.confidence:.2f}) {s.reason}")

    lines += ["", f"## Recent Decisions (last {len(request.recent_decisions)})"]
    if request.recent_decisions:
        for d in request.recent_decisions[:5]:
            lines.append(f"- {d.ts:%Y-%m-%d %H:%M}: {d.action} (confidence: {d.confidence:.2f})")
    else:
        lines.append("No recent decisions")

    lines += [
        "",
        "## Constraints",
        f"Allowed pairs: {', '.join(request.allowed_pairs)}",
        f"Max position size: {request.max_position_size_pct}% of balance",
        f"Active strategies: {', '.join(request.strategies)}",
    ]
    if request.entries_suppressed:
        lines.append(
            f"New entries are suppressed this cycle ({request.suppression_reason}); "
            "only hold or close are actionable."
        )
    lines += ["", "Based on the above data, what is your trading decision?"]
    return "\n".join(lines)
