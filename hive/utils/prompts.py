"""System prompts for the routing model calls."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from hive.utils.logging import get_logger

logger = get_logger(__name__)

INTENT_SYSTEM_PROMPT = """\
Classify the user's latest Solana request into one intent object.

Rules:
- Interpret intent using the conversation context, not keyword matching.
- Set needsClarification when the request is ambiguous or misses key constraints.
- If the user says "try again" or "out of these", set references accordingly.
- If the user asks for the full list or "all pools", set constraints.limit to 50.
- Keep assumptions short and explicit.
"""

ROUTER_SYSTEM_PROMPT = """\
Pick the feature agent, mode and tool plan for the user's latest Solana request.

Rules:
- If context.intent is present, use it as the primary signal.
- Actions (lend, stake, swap, transfer, withdraw) use mode "execute".
- Yield, pool and rate questions use mode "explore" and the matching yields tool.
- Pass context.intent.constraints tokenSymbol/protocol to the yields tool args.
- To retry a cancelled or failed context.lastAction, reuse its tool and args.
- Use agent "none" for open-ended discovery questions.
- Keep toolPlan minimal.
- stopCondition "when_first_yields_result_received" for card-only yield lists,
  "after_tool_plan_complete" when a text summary is expected.
"""


def load_prompt_template(path: Optional[Path]) -> Optional[str]:
    """Return prompt template contents from ``path`` if provided."""
    if path is None:
        return None

    try:
        content = path.read_text(encoding="utf-8")
        return content.strip() or None
    except FileNotFoundError:
        logger.warning("prompt_template_missing", path=str(path))
    except OSError as exc:  # pragma: no cover - filesystem issues
        logger.error("prompt_template_error", path=str(path), error=str(exc))
    return None


def resolve_prompt(path: Optional[Path], default: str) -> str:
    """Template at ``path`` when readable, otherwise ``default``."""
    return load_prompt_template(path) or default


__all__ = [
    "INTENT_SYSTEM_PROMPT",
    "ROUTER_SYSTEM_PROMPT",
    "load_prompt_template",
    "resolve_prompt",
]
