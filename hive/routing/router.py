"""Turn orchestration: context -> intent -> decision -> execution plan."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from hive.cache.coalescing import CoalescingCache
from hive.config import Settings
from hive.llm import ProposalModel
from hive.routing.context import build_router_context, last_user_text
from hive.routing.decision import DecisionRouter, fallback_decision, normalize_decision
from hive.routing.intent import IntentClassifier, normalize_intent
from hive.routing.layout import summary_for_decision
from hive.routing.types import (
    YIELD_STOP,
    ChatMemory,
    Intent,
    IntentConstraints,
    IntentReferences,
    ProfileContext,
    RouterContext,
    RouterDecision,
    ToolPlanItem,
)
from hive.tools import agent_for_tool, is_execution_tool, is_yield_tool, resolve_tool_key
from hive.utils.logging import get_logger
from hive.utils.metrics import record_timing
from hive.utils.prompts import (
    INTENT_SYSTEM_PROMPT,
    ROUTER_SYSTEM_PROMPT,
    resolve_prompt,
)

logger = get_logger(__name__)

AGENT_NAMES: Dict[str, str] = {
    "lending": "Lending Agent",
    "staking": "Staking Agent",
    "wallet": "Wallet Agent",
    "trading": "Trading Agent",
    "market": "Market Agent",
    "token-analysis": "Token Analysis Agent",
    "liquidity": "Liquidity Agent",
    "knowledge": "Knowledge Agent",
}

DEFAULT_ROUND_CAP = 2
EXECUTE_ROUND_CAP = 4


@dataclass
class RouteResult:
    """Routing outcome for one turn.

    Attributes:
        agent_name: Feature agent that should answer, or None for the
            general overview / clarification reply.
        decision: Normalized router decision.
        intent: Normalized intent the decision was based on.
        context: Context the normalizers saw.
    """

    agent_name: Optional[str]
    decision: RouterDecision
    intent: Intent
    context: RouterContext

    @property
    def summary(self) -> Optional[str]:
        return summary_for_decision(self.decision)

    def annotation(self) -> Dict[str, Any]:
        """Layout annotation attached to the assistant reply."""
        payload: Dict[str, Any] = {"layout": list(self.decision.layout or ["text"])}
        if self.summary:
            payload["summary"] = self.summary
        return payload


@dataclass
class ExecutionPlan:
    """What the tool executor should run for a routed turn.

    Attributes:
        tools: Available tool keys after gating by mode.
        plan_keys: Plan entries resolved to available keys, in order.
        forced_tool: First tool the executor must call, if any.
        max_rounds: Cap on tool rounds; None means unbounded.
        missing: Plan entries with no matching available tool.
        forced_args: Args of the plan item that resolved to forced_tool.
    """

    tools: List[str]
    plan_keys: List[str] = field(default_factory=list)
    forced_tool: Optional[str] = None
    max_rounds: Optional[int] = None
    missing: List[str] = field(default_factory=list)
    forced_args: Optional[Dict[str, Any]] = None

    @property
    def sequenced(self) -> bool:
        return len(self.plan_keys) > 1 and not self.missing


def gate_tools_by_mode(available: Iterable[str], mode: str) -> List[str]:
    """Hide mutating tools unless the turn is in execute mode."""
    keys = list(available)
    if mode == "execute":
        return keys
    return [key for key in keys if not is_execution_tool(key)]


def build_execution_plan(
    decision: RouterDecision, available_tools: Iterable[str]
) -> ExecutionPlan:
    """Resolve the decision's tool plan against the agent's tool keys.

    Round cap:
      * yield stop condition: 1
      * multi-tool plan with every tool resolved: the plan length
      * any other forced plan: 2
      * nothing forced: 4 in execute mode, otherwise unbounded
    """
    tools = gate_tools_by_mode(available_tools, decision.mode)
    plan_keys: List[str] = []
    missing: List[str] = []
    forced_args: Optional[Dict[str, Any]] = None
    for item in decision.tool_plan:
        key = resolve_tool_key(tools, item.tool)
        if key is None:
            missing.append(item.tool)
            continue
        if not plan_keys:
            forced_args = dict(item.args or {})
        plan_keys.append(key)

    forced = plan_keys[0] if plan_keys else None

    if forced is None:
        max_rounds = EXECUTE_ROUND_CAP if decision.mode == "execute" else None
    elif decision.stop_condition == YIELD_STOP:
        max_rounds = 1
    elif len(plan_keys) > 1 and not missing:
        max_rounds = len(plan_keys)
    else:
        max_rounds = DEFAULT_ROUND_CAP

    return ExecutionPlan(
        tools=tools,
        plan_keys=plan_keys,
        forced_tool=forced,
        max_rounds=max_rounds,
        missing=missing,
        forced_args=forced_args,
    )


def read_router_override(messages: Sequence[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Newest internal ``route`` annotation carrying a toolPlan or intent."""
    for message in reversed(messages):
        if not isinstance(message, Mapping) or message.get("role") != "user":
            continue
        annotations = message.get("annotations")
        if not isinstance(annotations, list):
            continue
        for entry in annotations:
            if (
                isinstance(entry, Mapping)
                and entry.get("internal") is True
                and entry.get("route") is True
                and (entry.get("toolPlan") or entry.get("intent"))
            ):
                return dict(entry)
    return None


def _merge_profile(
    memory: Optional[ChatMemory], wallet_address: Optional[str]
) -> Optional[ProfileContext]:
    profile = memory.profile_context if memory else None
    if profile is not None:
        return profile.model_copy(
            update={"wallet_address": wallet_address or profile.wallet_address}
        )
    if wallet_address:
        return ProfileContext(wallet_address=wallet_address)
    return None


class ConversationRouter:
    """Route a chat turn to a feature agent.

    Internal route annotations bypass both model calls; otherwise the intent
    is classified first and a clarification short-circuits the decision call.
    """

    def __init__(
        self,
        intent_classifier: IntentClassifier,
        decision_router: DecisionRouter,
    ) -> None:
        self.intent_classifier = intent_classifier
        self.decision_router = decision_router

    @classmethod
    def from_settings(cls, model: ProposalModel, settings: Settings) -> "ConversationRouter":
        """Build a router whose model calls are cached per settings."""

        def _cache(name: str) -> CoalescingCache[Any]:
            return CoalescingCache(
                name,
                ttl_seconds=settings.router_cache_ttl_seconds,
                max_entries=settings.router_cache_max_entries,
            )

        use_cache = settings.router_cache_ttl_seconds > 0
        return cls(
            IntentClassifier(
                model,
                system_prompt=resolve_prompt(
                    settings.intent_prompt_path, INTENT_SYSTEM_PROMPT
                ),
                cache=_cache("router.intent") if use_cache else None,
            ),
            DecisionRouter(
                model,
                system_prompt=resolve_prompt(
                    settings.router_prompt_path, ROUTER_SYSTEM_PROMPT
                ),
                cache=_cache("router.decision") if use_cache else None,
            ),
        )

    async def route(
        self,
        messages: Sequence[Mapping[str, Any]],
        wallet_address: Optional[str] = None,
        memory: Optional[ChatMemory] = None,
    ) -> RouteResult:
        started = time.perf_counter()
        profile = _merge_profile(memory, wallet_address)
        options: Dict[str, Any] = {
            "wallet_address": wallet_address,
            "last_selection": memory.last_selection if memory else None,
            "user_prefs": memory.user_prefs if memory else None,
            "profile_context": profile,
        }

        override = read_router_override(messages)
        result: Optional[RouteResult] = None
        if override is not None:
            try:
                result = self._route_override(messages, override, options)
            except ValidationError as exc:
                logger.warning("router_override_invalid", error=str(exc))
                override = None
        if result is None:
            result = await self._route_with_model(messages, options)

        record_timing("router.decision", (time.perf_counter() - started) * 1000)
        logger.info(
            "turn_routed",
            agent=result.decision.agent,
            mode=result.decision.mode,
            tools=result.decision.tool_names,
            override=override is not None,
            needs_clarification=result.intent.needs_clarification,
        )
        return result

    async def _route_with_model(
        self, messages: Sequence[Mapping[str, Any]], options: Dict[str, Any]
    ) -> RouteResult:
        user_text = last_user_text(messages)
        intent_context = build_router_context(messages, **options)
        intent = await self.intent_classifier.classify(user_text, intent_context)

        context = build_router_context(messages, intent=intent, **options)
        if intent.needs_clarification:
            decision = normalize_decision(fallback_decision(), context)
        else:
            decision = await self.decision_router.decide(user_text, context)
        return RouteResult(
            agent_name=AGENT_NAMES.get(decision.agent),
            decision=decision,
            intent=intent,
            context=context,
        )

    def _route_override(
        self,
        messages: Sequence[Mapping[str, Any]],
        override: Dict[str, Any],
        options: Dict[str, Any],
    ) -> RouteResult:
        plan = [
            ToolPlanItem.model_validate(item)
            for item in override.get("toolPlan") or []
            if isinstance(item, Mapping) and item.get("tool")
        ]
        partial = override.get("intent") if isinstance(override.get("intent"), Mapping) else {}

        agent = (
            override.get("agent")
            or partial.get("domain")
            or (agent_for_tool(plan[0].tool) if plan else None)
            or "none"
        )
        goal = partial.get("goal") or (
            "execute" if any(is_execution_tool(item.tool) for item in plan) else "explore"
        )

        intent = normalize_intent(
            Intent(
                goal=goal,
                domain=partial.get("domain") or agent,
                query_type=partial.get("queryType") or "explicit_action",
                constraints=(
                    IntentConstraints.model_validate(partial["constraints"])
                    if isinstance(partial.get("constraints"), Mapping)
                    else None
                ),
                assumptions=list(partial.get("assumptions") or []),
                confidence=1.0,
                needs_clarification=False,
                references=(
                    IntentReferences.model_validate(partial["references"])
                    if isinstance(partial.get("references"), Mapping)
                    else None
                ),
            )
        )
        context = build_router_context(messages, intent=intent, **options)

        base = RouterDecision(
            agent=agent,
            mode=override.get("mode") or ("execute" if goal == "execute" else "explore"),
            ui=override.get("ui")
            or ("cards" if any(is_yield_tool(item.tool) for item in plan) else "text"),
            tool_plan=plan,
            stop_condition=override.get("stopCondition") or "none",
            layout=override.get("layout") or None,
        )
        decision = normalize_decision(base, context)
        return RouteResult(
            agent_name=AGENT_NAMES.get(decision.agent),
            decision=decision,
            intent=intent,
            context=context,
        )


__all__ = [
    "AGENT_NAMES",
    "ConversationRouter",
    "ExecutionPlan",
    "RouteResult",
    "build_execution_plan",
    "gate_tools_by_mode",
    "read_router_override",
]
