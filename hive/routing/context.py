"""Build the router context from raw chat messages.

Messages use the chat transport shape: ``role``, ``content``, optional
``annotations`` and tool invocations, either as
``parts[] = {"type": "tool-invocation", "toolInvocation": {...}}`` or the
legacy ``toolInvocations`` list. Every helper here is pure and tolerant of
malformed entries.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from hive.routing.types import (
    ChatMemory,
    Intent,
    LastAction,
    LastYield,
    ProfileContext,
    RouterContext,
    Selection,
    UserPrefs,
    WalletState,
    YieldPoolSample,
)
from hive.tools import (
    TRACKED_ACTIONS,
    YIELD_TOOLS,
    Tool,
    match_tool,
    matches_any,
    tool_matches,
)

MAX_POOL_SAMPLES = 6

Message = Mapping[str, Any]


def _annotations(message: Message) -> List[Any]:
    annotations = message.get("annotations")
    return annotations if isinstance(annotations, list) else []


def is_internal_message(message: Optional[Message]) -> bool:
    """True for user messages the client injected (``{internal: true}``)."""
    if not isinstance(message, Mapping) or message.get("role") != "user":
        return False
    return any(
        isinstance(entry, Mapping) and entry.get("internal") is True
        for entry in _annotations(message)
    )


def last_user_text(messages: Sequence[Message]) -> str:
    """Content of the newest user message that is not internal."""
    for message in reversed(messages):
        if not isinstance(message, Mapping) or message.get("role") != "user":
            continue
        if is_internal_message(message):
            continue
        content = message.get("content")
        if isinstance(content, str):
            return content
        return "" if content is None else str(content)
    return ""


def tool_invocations(message: Optional[Message]) -> List[Mapping[str, Any]]:
    """Tool invocations carried by ``message`` in either transport shape."""
    if not isinstance(message, Mapping):
        return []
    parts = message.get("parts")
    if isinstance(parts, list):
        return [
            part["toolInvocation"]
            for part in parts
            if isinstance(part, Mapping)
            and part.get("type") == "tool-invocation"
            and isinstance(part.get("toolInvocation"), Mapping)
        ]
    legacy = message.get("toolInvocations")
    if isinstance(legacy, list):
        return [inv for inv in legacy if isinstance(inv, Mapping)]
    return []


def _result_body(invocation: Mapping[str, Any]) -> Any:
    result = invocation.get("result")
    if not isinstance(result, Mapping):
        return None
    return result.get("body")


def _args(invocation: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    args = invocation.get("args")
    return dict(args) if isinstance(args, Mapping) else None


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def summarize_yield_pools(body: Any) -> List[YieldPoolSample]:
    """Compact samples of the first pools of a yield tool result."""
    if not isinstance(body, list):
        return []
    samples: List[YieldPoolSample] = []
    for pool in body[:MAX_POOL_SAMPLES]:
        if not isinstance(pool, Mapping):
            continue
        token_data = pool.get("tokenData") if isinstance(pool.get("tokenData"), Mapping) else {}
        symbol = str(token_data.get("symbol") or pool.get("symbol") or "").upper()
        if not symbol:
            continue
        samples.append(
            YieldPoolSample(
                symbol=symbol,
                project=str(pool["project"]) if pool.get("project") else None,
                apy=_finite(pool.get("yield")),
                tvl_usd=_finite(pool.get("tvlUsd")),
                token_mint_address=str(
                    pool.get("tokenMintAddress") or token_data.get("id") or ""
                ),
            )
        )
    return samples


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def selection_from_action(
    tool_name: str, args: Optional[Mapping[str, Any]]
) -> Optional[Selection]:
    """Derive the user's last pool/token selection from an action's args."""
    if not isinstance(args, Mapping):
        return None

    if tool_matches(tool_name, Tool.LEND) or tool_matches(tool_name, Tool.WITHDRAW):
        symbol = _text(args.get("tokenSymbol"))
        protocol = _text(args.get("protocol"))
        pool_id = _text(args.get("protocolAddress")) or _text(args.get("tokenAddress"))
        if not (symbol or protocol or pool_id):
            return None
        return Selection(
            token_symbol=symbol.upper() if symbol else None,
            protocol=protocol.lower() if protocol else None,
            pool_id=pool_id,
        )

    if tool_matches(tool_name, Tool.STAKE):
        pool_data = args.get("poolData") if isinstance(args.get("poolData"), Mapping) else {}
        symbol = _text(pool_data.get("symbol"))
        protocol = _text(pool_data.get("project"))
        pool_id = _text(args.get("contractAddress"))
        if not (symbol or protocol or pool_id):
            return None
        return Selection(
            token_symbol=symbol.upper() if symbol else None,
            protocol=protocol.lower() if protocol else None,
            pool_id=pool_id,
        )

    tool = match_tool(tool_name)
    key = {
        Tool.UNSTAKE: "contractAddress",
        Tool.DEPOSIT_LIQUIDITY: "poolId",
        Tool.WITHDRAW_LIQUIDITY: "mint",
    }.get(tool) if tool else None
    if key is None:
        return None
    pool_id = _text(args.get(key))
    return Selection(pool_id=pool_id) if pool_id else None


def has_balances_from(invocation: Mapping[str, Any]) -> Optional[bool]:
    """Whether a balances result holds any entries; None if not a balances call."""
    if not tool_matches(invocation.get("toolName"), Tool.ALL_BALANCES):
        return None
    body = _result_body(invocation)
    balances = body.get("balances") if isinstance(body, Mapping) else None
    if not isinstance(balances, list):
        return None
    return len(balances) > 0


def prefs_from_intent(intent: Optional[Intent]) -> Optional[UserPrefs]:
    constraints = intent.constraints if intent else None
    if constraints is None:
        return None
    prefs = UserPrefs(
        risk=constraints.risk or None,
        stablecoin_only=constraints.stablecoin_only,
        time_horizon=constraints.time_horizon or None,
    )
    if prefs.risk is None and prefs.stablecoin_only is None and prefs.time_horizon is None:
        return None
    return prefs


def _iter_invocations_newest_first(messages: Sequence[Message]):
    for message in reversed(messages):
        for invocation in reversed(tool_invocations(message)):
            yield invocation


def build_router_context(
    messages: Sequence[Message],
    *,
    wallet_address: Optional[str] = None,
    intent: Optional[Intent] = None,
    last_selection: Optional[Selection] = None,
    user_prefs: Optional[UserPrefs] = None,
    profile_context: Optional[ProfileContext] = None,
    summary: Optional[str] = None,
) -> RouterContext:
    """Scan the history newest to oldest and collect the routing slots.

    Stops as soon as the last yield query, the last mutating action and the
    balances flag are all known. Explicit overrides win over what the scan
    finds. Never raises on malformed history.
    """
    last_yield: Optional[LastYield] = None
    last_action: Optional[LastAction] = None
    scanned_selection: Optional[Selection] = None
    has_balances: Optional[bool] = None

    for invocation in _iter_invocations_newest_first(messages):
        tool_name = str(invocation.get("toolName") or "")

        if has_balances is None:
            has_balances = has_balances_from(invocation)

        if last_yield is None and matches_any(tool_name, YIELD_TOOLS):
            last_yield = LastYield(
                tool=tool_name,
                args=_args(invocation),
                pools=summarize_yield_pools(_result_body(invocation)),
            )

        if last_action is None and matches_any(tool_name, TRACKED_ACTIONS):
            body = _result_body(invocation)
            status = body.get("status") if isinstance(body, Mapping) else None
            args = _args(invocation)
            last_action = LastAction(
                tool=tool_name, args=args, status=str(status) if status else None
            )
            if scanned_selection is None:
                scanned_selection = selection_from_action(tool_name, args)

        if last_yield and last_action and has_balances is not None:
            break

    return RouterContext(
        last_yield=last_yield,
        last_action=last_action,
        last_selection=last_selection or scanned_selection,
        user_prefs=user_prefs or prefs_from_intent(intent),
        profile_context=profile_context
        or ProfileContext(wallet_address=wallet_address, has_balances=has_balances),
        wallet=WalletState(has_wallet_address=bool(wallet_address)),
        intent=intent,
        summary=summary,
    )


def build_router_input(
    messages: Sequence[Message], **options: Any
) -> Tuple[str, RouterContext]:
    """``(last user text, context)`` pair fed to the decision model."""
    return last_user_text(messages), build_router_context(messages, **options)


def build_intent_input(
    messages: Sequence[Message], **options: Any
) -> Tuple[str, RouterContext]:
    """Same as :func:`build_router_input`, without an intent attached."""
    options.pop("intent", None)
    return last_user_text(messages), build_router_context(messages, **options)


def derive_chat_memory(
    messages: Sequence[Message],
    previous: Optional[ChatMemory] = None,
    wallet_address: Optional[str] = None,
) -> ChatMemory:
    """Refresh cross-turn memory; remembered values win over the scan."""
    selection = previous.last_selection if previous else None
    prev_profile = previous.profile_context if previous else None
    has_balances = prev_profile.has_balances if prev_profile else None

    for invocation in _iter_invocations_newest_first(messages):
        if has_balances is None:
            has_balances = has_balances_from(invocation)
        if selection is None:
            selection = selection_from_action(
                str(invocation.get("toolName") or ""), _args(invocation)
            )
        if selection is not None and has_balances is not None:
            break

    return ChatMemory(
        last_selection=selection,
        user_prefs=previous.user_prefs if previous else None,
        profile_context=ProfileContext(
            wallet_address=wallet_address
            or (prev_profile.wallet_address if prev_profile else None),
            has_balances=has_balances,
        ),
    )


__all__ = [
    "MAX_POOL_SAMPLES",
    "build_intent_input",
    "build_router_context",
    "build_router_input",
    "derive_chat_memory",
    "has_balances_from",
    "is_internal_message",
    "last_user_text",
    "prefs_from_intent",
    "selection_from_action",
    "summarize_yield_pools",
    "tool_invocations",
]
