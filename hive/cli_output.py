"""CLI output formatting for terminal display (plain text or JSON)."""

from __future__ import annotations

import json
import sys
from enum import Enum
from typing import Any, Dict, List

from hive.routing.router import ExecutionPlan, RouteResult
from hive.yields.types import YieldPool, YieldResult


class OutputFormat(Enum):
    """Supported output formats."""

    TEXT = "text"
    JSON = "json"


class CLIOutput:
    """Unified output handler for CLI."""

    def __init__(
        self,
        format: OutputFormat = OutputFormat.TEXT,
        verbose: bool = False,
        stream: Any = None,
    ) -> None:
        self.format = format
        self.verbose = verbose
        self.stream = stream or sys.stdout

    def route(self, result: RouteResult, plan: ExecutionPlan) -> None:
        """Output a routed turn and the plan the executor would run."""
        if self.format == OutputFormat.JSON:
            payload = {
                "agent": result.agent_name,
                "decision": result.decision.to_payload(),
                "intent": result.intent.to_payload(),
                "annotation": result.annotation(),
                "plan": {
                    "tools": plan.plan_keys,
                    "forcedTool": plan.forced_tool,
                    "maxRounds": plan.max_rounds,
                    "missing": plan.missing,
                },
            }
            print(json.dumps(payload, indent=2), file=self.stream)
            return

        decision = result.decision
        print(f"Agent: {result.agent_name or 'none'}", file=self.stream)
        print(f"Mode: {decision.mode}  |  UI: {decision.ui}", file=self.stream)
        if result.intent.needs_clarification:
            print(f"Clarify: {result.intent.clarifying_question}", file=self.stream)
        if plan.plan_keys:
            print(f"Tools: {' -> '.join(plan.plan_keys)}", file=self.stream)
            print(f"Max rounds: {plan.max_rounds}", file=self.stream)
        if plan.missing:
            print(f"Unresolved tools: {', '.join(plan.missing)}", file=self.stream)
        print(f"Layout: {', '.join(decision.layout or ['text'])}", file=self.stream)
        if result.summary:
            print(f"Summary: {result.summary}", file=self.stream)
        self.debug("intent", result.intent.to_payload())

    def yields(self, result: YieldResult) -> None:
        """Output a yield tool result."""
        if self.format == OutputFormat.JSON:
            payload = {"status": result.status, **result.as_tool_result()}
            print(json.dumps(payload, indent=2), file=self.stream)
            return

        print(result.message, file=self.stream)
        if result.pools:
            print(format_pools_plain(result.pools), file=self.stream)

    def tool_result(self, payload: Dict[str, Any]) -> None:
        """Output a raw ``{message, body}`` tool result."""
        if self.format == OutputFormat.JSON:
            print(json.dumps(payload, indent=2, default=str), file=self.stream)
            return

        print(payload.get("message", ""), file=self.stream)
        body = payload.get("body") or {}
        for items in body.values():
            for i, item in enumerate(items or [], 1):
                print(f"{i}. {_describe_item(item)}", file=self.stream)

    def status(self, message: str) -> None:
        """Output a status message."""
        if self.format == OutputFormat.JSON:
            return  # Suppress status in JSON mode
        print(f"... {message}", file=self.stream)

    def info(self, message: str) -> None:
        """Output an info message."""
        if self.format == OutputFormat.JSON:
            return
        print(message, file=self.stream)

    def warning(self, message: str) -> None:
        """Output a warning message."""
        if self.format == OutputFormat.JSON:
            print(json.dumps({"warning": message}), file=sys.stderr)
            return
        print(f"warning: {message}", file=sys.stderr)

    def error(self, message: str) -> None:
        """Output an error message."""
        if self.format == OutputFormat.JSON:
            print(json.dumps({"error": message}), file=sys.stderr)
            return
        print(f"error: {message}", file=sys.stderr)

    def debug(self, message: str, data: Any = None) -> None:
        """Output debug information (only in verbose mode)."""
        if not self.verbose:
            return

        if self.format == OutputFormat.JSON:
            output: Dict[str, Any] = {"debug": message}
            if data is not None:
                output["data"] = data
            print(json.dumps(output), file=sys.stderr)
            return

        print(f"debug: {message}", file=sys.stderr)
        if data is not None:
            print(f"   {data}", file=sys.stderr)


def format_pool_plain(pool: YieldPool) -> str:
    """Format a single pool for plain text output."""
    lines = [f"{pool.symbol} on {pool.project}"]
    apy_line = f"   APY: {pool.apy:.2f}%"
    if pool.apy_reward:
        apy_line += f"  (base {pool.apy_base or 0:.2f}% + reward {pool.apy_reward:.2f}%)"
    lines.append(apy_line)
    if pool.tvl_usd:
        lines.append(f"   TVL: ${_format_number(pool.tvl_usd)}")
    if pool.token_mint_address:
        lines.append(f"   Mint: {pool.token_mint_address}")
    return "\n".join(lines)


def format_pools_plain(pools: List[YieldPool]) -> str:
    """Format a list of pools for plain text output."""
    if not pools:
        return "No pools found."
    return "\n".join(f"\n{i}. {format_pool_plain(pool)}" for i, pool in enumerate(pools, 1))


def _describe_item(item: Any) -> str:
    if not isinstance(item, dict):
        return str(item)
    label = item.get("symbol") or item.get("name") or item.get("address") or "?"
    price = item.get("price")
    if price is not None:
        return f"{label}  ${_format_number(price)}"
    pnl = item.get("pnl")
    if pnl is not None:
        return f"{label}  PnL ${_format_number(pnl)}"
    return str(label)


def _format_number(value: Any) -> str:
    """Format a number with K/M/B suffixes."""
    try:
        num = float(value)
    except (TypeError, ValueError):
        return str(value)

    if num >= 1_000_000_000:
        return f"{num / 1_000_000_000:.2f}B"
    elif num >= 1_000_000:
        return f"{num / 1_000_000:.2f}M"
    elif num >= 1_000:
        return f"{num / 1_000:.2f}K"
    else:
        return f"{num:.2f}"
