"""Router decision proposal and deterministic normalization.

The model's proposal is only a suggestion. :func:`normalize_decision` runs an
ordered list of rules over a working copy; a rule returns True to stop the
pipeline. Layout derivation always runs last. The pipeline is idempotent:
normalizing an already normalized decision returns it unchanged.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional

from hive.cache.coalescing import CoalescingCache, cache_key
from hive.llm import ProposalModel
from hive.routing.layout import resolve_layout
from hive.routing.types import (
    PLAN_STOP,
    YIELD_STOP,
    RouterContext,
    RouterDecision,
    ToolPlanItem,
)
from hive.tools import (
    Tool,
    agent_for_tool,
    is_execution_tool,
    is_yield_tool,
    qualified_name,
    tool_matches,
)
from hive.utils.logging import get_logger
from hive.utils.metrics import record_timing
from hive.utils.prompts import ROUTER_SYSTEM_PROMPT

logger = get_logger(__name__)

WALLET_ADDRESS_TOOL = qualified_name(Tool.GET_WALLET_ADDRESS)

DecisionRule = Callable[[RouterDecision, Optional[RouterContext]], bool]


def fallback_decision() -> RouterDecision:
    return RouterDecision(
        agent="none", mode="explore", ui="text", tool_plan=[], stop_condition="none"
    )


def _collapse_to_text(decision: RouterDecision) -> None:
    decision.ui = "text"
    decision.tool_plan = []
    decision.stop_condition = "none"


def clarification_rule(decision: RouterDecision, ctx: Optional[RouterContext]) -> bool:
    """A question for the user replaces any plan."""
    if ctx is None or ctx.intent is None or not ctx.intent.needs_clarification:
        return False
    decision.agent = "none"
    decision.mode = "explore"
    decision.layout = ["text"]
    _collapse_to_text(decision)
    return True


def last_yield_rule(decision: RouterDecision, ctx: Optional[RouterContext]) -> bool:
    """Questions about the pools just shown are answered in text."""
    if ctx is None or ctx.intent is None or ctx.last_yield is None:
        return False
    refs = ctx.intent.references
    if refs is None or not refs.from_last_yield:
        return False
    inferred = agent_for_tool(ctx.last_yield.tool)
    decision.agent = inferred or (decision.agent if decision.agent != "none" else "lending")
    if ctx.intent.goal == "decide":
        decision.mode = "decide"
    _collapse_to_text(decision)
    return True


def last_action_rule(decision: RouterDecision, ctx: Optional[RouterContext]) -> bool:
    """Replay the previous action (e.g. "try again") when nothing was planned."""
    if ctx is None or ctx.intent is None or ctx.last_action is None:
        return False
    refs = ctx.intent.references
    if refs is None or not refs.from_last_action or decision.tool_plan:
        return False
    action = ctx.last_action
    decision.tool_plan = [
        ToolPlanItem(tool=action.tool, args=dict(action.args) if action.args else None)
    ]
    inferred = agent_for_tool(action.tool)
    if decision.agent == "none" and inferred:
        decision.agent = inferred
    return False


def last_selection_rule(decision: RouterDecision, ctx: Optional[RouterContext]) -> bool:
    if ctx is None or ctx.intent is None or ctx.last_selection is None:
        return False
    refs = ctx.intent.references
    if refs is None or not refs.from_last_selection or decision.tool_plan:
        return False
    if decision.agent == "none" and ctx.intent.domain != "none":
        decision.agent = ctx.intent.domain
    if ctx.intent.goal == "decide":
        decision.mode = "decide"
    return False


def _fill_yield_args(decision: RouterDecision, values: Dict[str, Any], empty: Callable[[Any], bool]) -> None:
    for item in decision.tool_plan:
        if not is_yield_tool(item.tool):
            continue
        args = dict(item.args or {})
        for key, value in values.items():
            if empty(args.get(key)):
                args[key] = value
        if args:
            item.args = args


def intent_constraints_rule(decision: RouterDecision, ctx: Optional[RouterContext]) -> bool:
    """Copy the intent's token/protocol/limit into yield tool args (fill only)."""
    constraints = ctx.intent.constraints if ctx and ctx.intent else None
    if constraints is None:
        return False
    values: Dict[str, Any] = {}
    if constraints.token_symbol:
        values["tokenSymbol"] = constraints.token_symbol
    if constraints.protocol:
        values["protocol"] = constraints.protocol
    if values:
        _fill_yield_args(decision, values, empty=lambda current: not current)
    if constraints.limit is not None:
        _fill_yield_args(
            decision, {"limit": constraints.limit}, empty=lambda current: current is None
        )
    return False


def user_prefs_rule(decision: RouterDecision, ctx: Optional[RouterContext]) -> bool:
    """Copy remembered preferences into yield tool args (fill only)."""
    prefs = ctx.user_prefs if ctx else None
    if prefs is None:
        return False
    values: Dict[str, Any] = {}
    if prefs.stablecoin_only is not None:
        values["stablecoinOnly"] = prefs.stablecoin_only
    if prefs.time_horizon:
        values["timeHorizon"] = prefs.time_horizon
    if prefs.risk:
        values["risk"] = prefs.risk
    if values:
        _fill_yield_args(decision, values, empty=lambda current: current is None)
    return False


def no_agent_rule(decision: RouterDecision, ctx: Optional[RouterContext]) -> bool:
    if decision.agent != "none":
        return False
    decision.mode = "explore"
    _collapse_to_text(decision)
    return True


def empty_plan_rule(decision: RouterDecision, ctx: Optional[RouterContext]) -> bool:
    if decision.tool_plan:
        return False
    decision.stop_condition = "none"
    return True


def tool_kind_rule(decision: RouterDecision, ctx: Optional[RouterContext]) -> bool:
    """Execution tools force execute mode; yield tools force cards."""
    names = decision.tool_names
    has_yield = any(is_yield_tool(name) for name in names)
    if any(is_execution_tool(name) for name in names):
        decision.mode = "execute"
    if has_yield:
        if decision.ui == "text":
            decision.ui = "cards"
        decision.stop_condition = YIELD_STOP if decision.ui == "cards" else PLAN_STOP
    return False


def wallet_address_rule(decision: RouterDecision, ctx: Optional[RouterContext]) -> bool:
    """Executing without a known wallet starts by asking for the address."""
    if decision.mode != "execute" or ctx is None or ctx.wallet.has_wallet_address:
        return False
    plan = decision.tool_plan
    if not plan or not tool_matches(plan[0].tool, Tool.GET_WALLET_ADDRESS):
        decision.tool_plan = [ToolPlanItem(tool=WALLET_ADDRESS_TOOL), *plan]
    return False


DECISION_RULES: List[DecisionRule] = [
    clarification_rule,
    last_yield_rule,
    last_action_rule,
    last_selection_rule,
    intent_constraints_rule,
    user_prefs_rule,
    no_agent_rule,
    empty_plan_rule,
    tool_kind_rule,
    wallet_address_rule,
]


def normalize_decision(
    decision: RouterDecision, context: Optional[RouterContext] = None
) -> RouterDecision:
    """Apply :data:`DECISION_RULES` to a copy of ``decision``."""
    working = decision.model_copy(deep=True)
    for rule in DECISION_RULES:
        if rule(working, context):
            break
    working.layout = resolve_layout(working)
    return working


def decision_schema() -> Dict[str, Any]:
    return RouterDecision.model_json_schema(by_alias=True)


class DecisionRouter:
    """Ask the model for a routing decision and normalize it."""

    def __init__(
        self,
        model: ProposalModel,
        system_prompt: str = ROUTER_SYSTEM_PROMPT,
        cache: Optional[CoalescingCache[RouterDecision]] = None,
    ) -> None:
        self.model = model
        self.system_prompt = system_prompt
        self.cache = cache

    async def decide(self, user_text: str, context: RouterContext) -> RouterDecision:
        trimmed = str(user_text or "").strip()
        if not trimmed:
            return fallback_decision()

        started = time.perf_counter()
        try:
            if self.cache is None:
                return await self._propose(trimmed, context)
            key = cache_key(
                model=self.model.model_id,
                lastUserText=trimmed,
                context=context.to_payload(),
            )
            return await self.cache.get_or_fetch(
                key, lambda: self._propose(trimmed, context)
            )
        except Exception as exc:
            logger.warning("decision_proposal_failed", error=str(exc))
            return fallback_decision()
        finally:
            record_timing("router.proposal", (time.perf_counter() - started) * 1000)

    async def _propose(self, user_text: str, context: RouterContext) -> RouterDecision:
        payload = {"lastUserText": user_text, "context": context.to_payload()}
        raw = await self.model.propose(self.system_prompt, decision_schema(), payload)
        proposed = RouterDecision.model_validate(raw)
        normalized = normalize_decision(proposed, context)
        decision = RouterDecision.model_validate(normalized.to_payload())
        logger.info(
            "decision_normalized",
            agent=decision.agent,
            mode=decision.mode,
            ui=decision.ui,
            tools=decision.tool_names,
            stop=decision.stop_condition,
        )
        return decision


__all__ = [
    "DECISION_RULES",
    "DecisionRouter",
    "WALLET_ADDRESS_TOOL",
    "decision_schema",
    "fallback_decision",
    "normalize_decision",
]
