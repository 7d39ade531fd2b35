"""Routing: conversation context, intent and decision normalization."""

from hive.routing.context import build_router_context, derive_chat_memory, last_user_text
from hive.routing.decision import DecisionRouter, fallback_decision, normalize_decision
from hive.routing.intent import (
    IntentClassifier,
    fallback_intent,
    merge_user_prefs,
    normalize_intent,
)
from hive.routing.router import (
    ConversationRouter,
    ExecutionPlan,
    RouteResult,
    build_execution_plan,
)
from hive.routing.types import ChatMemory, Intent, RouterContext, RouterDecision

__all__ = [
    "ChatMemory",
    "ConversationRouter",
    "DecisionRouter",
    "ExecutionPlan",
    "Intent",
    "IntentClassifier",
    "RouteResult",
    "RouterContext",
    "RouterDecision",
    "build_execution_plan",
    "build_router_context",
    "derive_chat_memory",
    "fallback_decision",
    "fallback_intent",
    "last_user_text",
    "merge_user_prefs",
    "normalize_decision",
    "normalize_intent",
]
