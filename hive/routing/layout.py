"""Message layout rules for a routed turn."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from hive.routing.types import YIELD_STOP, LayoutBlock, RouterDecision, Ui

LAYOUT_ORDER: Dict[str, int] = {"card": 0, "tool": 0, "text": 1, "summary": 2}

YIELD_SUMMARIES: Dict[str, str] = {
    "lending": "Top lending yields shown above. Pick a pool to continue.",
    "staking": "Top liquid staking yields shown above. Pick a pool to continue.",
}
DEFAULT_YIELD_SUMMARY = "Yields shown above. Pick a pool to continue."

AGENT_SUMMARIES: Dict[str, str] = {
    "lending": "Lending options shown above. Pick a pool to continue.",
    "staking": "Staking options shown above. Pick a pool to continue.",
    "wallet": "Wallet results shown above. Pick one to continue.",
    "trading": "Swap options shown above. Pick one to continue.",
    "market": "Market highlights shown above. Pick one to continue.",
    "token-analysis": "Token analysis cards shown above. Pick one to continue.",
    "liquidity": "Liquidity pools shown above. Pick one to continue.",
    "knowledge": "Knowledge cards shown above. Pick one to continue.",
    "none": "Cards above show the results. Pick one to continue.",
}


def default_layout(ui: Ui) -> List[LayoutBlock]:
    if ui == "cards":
        return ["tool"]
    if ui == "cards_then_text":
        return ["tool", "text"]
    return ["text"]


def normalize_layout(layout: Iterable[LayoutBlock], has_tools: bool) -> List[LayoutBlock]:
    """Dedupe, drop tool blocks without tools, prefer card over tool, sort.

    An empty result falls back to ``["text"]``.
    """
    blocks: List[LayoutBlock] = []
    for block in layout:
        if block not in blocks:
            blocks.append(block)

    if not has_tools:
        blocks = [block for block in blocks if block not in ("tool", "card")]
    if "card" in blocks:
        blocks = [block for block in blocks if block != "tool"]

    blocks.sort(key=lambda block: LAYOUT_ORDER[block])
    return blocks or ["text"]


def resolve_layout(decision: RouterDecision) -> List[LayoutBlock]:
    base = decision.layout if decision.layout is not None else default_layout(decision.ui)
    return normalize_layout(base, has_tools=bool(decision.tool_plan))


def summary_for_decision(decision: RouterDecision) -> Optional[str]:
    """Closing line shown under the cards when the layout asks for a summary."""
    if "summary" not in (decision.layout or []):
        return None
    if decision.stop_condition == YIELD_STOP:
        return YIELD_SUMMARIES.get(decision.agent, DEFAULT_YIELD_SUMMARY)
    return AGENT_SUMMARIES.get(decision.agent)


__all__ = [
    "AGENT_SUMMARIES",
    "LAYOUT_ORDER",
    "default_layout",
    "normalize_layout",
    "resolve_layout",
    "summary_for_decision",
]
