"""Canonical tool identifiers and helpers for namespaced tool names.

Agents expose tools under namespaced keys (``solana_lend``,
``lending-solana_lending_yields`` ...). Everything inside the router works on
the canonical :class:`Tool` ids; :func:`match_tool` maps a raw name back to its
id and :func:`qualified_name` builds the namespaced key.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional

DEFAULT_NAMESPACE = "solana"


class Tool(str, Enum):
    """Tools the router knows how to reason about."""

    GET_WALLET_ADDRESS = "get_wallet_address"
    ALL_BALANCES = "get_all_balances"
    LENDING_YIELDS = "lending_yields"
    LIQUID_STAKING_YIELDS = "liquid_staking_yields"
    LEND = "lend"
    WITHDRAW = "withdraw"
    STAKE = "stake"
    UNSTAKE = "unstake"
    TRADE = "trade"
    TRANSFER = "transfer"
    DEPOSIT_LIQUIDITY = "deposit_liquidity"
    WITHDRAW_LIQUIDITY = "withdraw_liquidity"


YIELD_TOOLS: FrozenSet[Tool] = frozenset({Tool.LENDING_YIELDS, Tool.LIQUID_STAKING_YIELDS})

# Tools that mutate on-chain state and therefore require execute mode.
EXECUTION_TOOLS: FrozenSet[Tool] = frozenset(
    {
        Tool.LEND,
        Tool.WITHDRAW,
        Tool.STAKE,
        Tool.UNSTAKE,
        Tool.TRADE,
        Tool.TRANSFER,
        Tool.DEPOSIT_LIQUIDITY,
        Tool.WITHDRAW_LIQUIDITY,
    }
)

# Actions recorded as the conversation's "last action".
TRACKED_ACTIONS: FrozenSet[Tool] = frozenset(
    {Tool.LEND, Tool.WITHDRAW, Tool.STAKE, Tool.UNSTAKE, Tool.TRADE, Tool.TRANSFER}
)

AGENT_FOR_TOOL: Dict[Tool, str] = {
    Tool.LENDING_YIELDS: "lending",
    Tool.LEND: "lending",
    Tool.WITHDRAW: "lending",
    Tool.LIQUID_STAKING_YIELDS: "staking",
    Tool.STAKE: "staking",
    Tool.UNSTAKE: "staking",
    Tool.TRADE: "trading",
    Tool.TRANSFER: "wallet",
    Tool.GET_WALLET_ADDRESS: "wallet",
    Tool.DEPOSIT_LIQUIDITY: "liquidity",
    Tool.WITHDRAW_LIQUIDITY: "liquidity",
}

# Longest ids first so "withdraw_liquidity" wins over "withdraw".
_MATCH_ORDER = sorted(Tool, key=lambda tool: len(tool.value), reverse=True)


def normalize_tool_name(name: object) -> str:
    """Lower-case a tool name and use underscores as the only separator."""
    return str(name or "").strip().lower().replace("-", "_")


def tool_matches(name: object, tool: Tool | str) -> bool:
    """Return True when ``name`` is ``tool`` or a namespaced variant of it."""
    normalized = normalize_tool_name(name)
    target = normalize_tool_name(tool.value if isinstance(tool, Tool) else tool)
    if not normalized or not target:
        return False
    return normalized == target or normalized.endswith(f"_{target}")


def match_tool(name: object) -> Optional[Tool]:
    """Resolve a raw (possibly namespaced) tool name to its canonical id."""
    for tool in _MATCH_ORDER:
        if tool_matches(name, tool):
            return tool
    return None


def matches_any(name: object, tools: Iterable[Tool]) -> bool:
    tool = match_tool(name)
    return tool is not None and tool in tools


def is_yield_tool(name: object) -> bool:
    return matches_any(name, YIELD_TOOLS)


def is_execution_tool(name: object) -> bool:
    return matches_any(name, EXECUTION_TOOLS)


def agent_for_tool(name: object) -> Optional[str]:
    """Infer the feature agent that owns ``name``."""
    tool = match_tool(name)
    if tool is None:
        return None
    return AGENT_FOR_TOOL.get(tool)


def qualified_name(tool: Tool, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Namespaced key for ``tool`` (e.g. ``solana_get_wallet_address``)."""
    if not namespace:
        return tool.value
    return f"{namespace}_{tool.value}"


def resolve_tool_key(available: Iterable[str], name: str) -> Optional[str]:
    """Find the available tool key for a plan entry's ``name``.

    Exact keys win; otherwise the first key that is a namespaced form of the
    same canonical tool (or simply ends with ``name``) is used.
    """
    keys = list(available)
    if name in keys:
        return name
    tool = match_tool(name)
    for key in keys:
        if tool is not None and match_tool(key) is tool:
            return key
        if key.endswith(name):
            return key
    return None


__all__ = [
    "AGENT_FOR_TOOL",
    "DEFAULT_NAMESPACE",
    "EXECUTION_TOOLS",
    "TRACKED_ACTIONS",
    "Tool",
    "YIELD_TOOLS",
    "agent_for_tool",
    "is_execution_tool",
    "is_yield_tool",
    "match_tool",
    "matches_any",
    "normalize_tool_name",
    "qualified_name",
    "resolve_tool_key",
    "tool_matches",
]
