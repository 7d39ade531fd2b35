"""Intent classification and normalization."""

from __future__ import annotations

import math
import time
from typing import Any, Dict, Optional

from hive.cache.coalescing import CoalescingCache, cache_key
from hive.llm import ProposalModel
from hive.routing.types import Intent, IntentConstraints, RouterContext, UserPrefs
from hive.utils.logging import get_logger
from hive.utils.metrics import record_timing
from hive.utils.prompts import INTENT_SYSTEM_PROMPT

logger = get_logger(__name__)

DEFAULT_CLARIFYING_QUESTION = (
    "Can you clarify what you want to do on Solana "
    "(lending, staking, trading, wallet, or something else)?"
)
CLARIFY_THRESHOLD = 0.45
MIN_LIMIT = 1
MAX_LIMIT = 50


def fallback_intent() -> Intent:
    """Low-confidence intent that asks the user to clarify."""
    return Intent(
        goal="explore",
        domain="none",
        query_type="unknown",
        confidence=0.2,
        assumptions=[],
        needs_clarification=True,
        clarifying_question=DEFAULT_CLARIFYING_QUESTION,
    )


def clamp_confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return max(0.0, min(1.0, number))


def clamp_limit(value: Any) -> Optional[int]:
    """Round half up and clamp to [1, 50]; NaN is dropped."""
    if value is None or isinstance(value, bool):
        return None
    number = float(value)
    if math.isnan(number):
        return None
    if math.isinf(number):
        return MAX_LIMIT if number > 0 else MIN_LIMIT
    return max(MIN_LIMIT, min(int(math.floor(number + 0.5)), MAX_LIMIT))


def normalize_intent(intent: Intent) -> Intent:
    """Return a copy of ``intent`` that satisfies the post-normalization rules.

    * confidence clamped to [0, 1] (non-finite becomes 0)
    * tokenSymbol upper-cased, protocol lower-cased
    * limit rounded and clamped to [1, 50]
    * empty assumptions dropped
    * needsClarification forced below the confidence threshold, and then a
      clarifying question is always present
    """
    confidence = clamp_confidence(intent.confidence)

    constraints: Optional[IntentConstraints] = None
    if intent.constraints is not None:
        constraints = intent.constraints.model_copy()
        if constraints.token_symbol:
            constraints.token_symbol = constraints.token_symbol.upper()
        if constraints.protocol:
            constraints.protocol = constraints.protocol.lower()
        if constraints.limit is not None:
            constraints.limit = clamp_limit(constraints.limit)

    needs_clarification = confidence < CLARIFY_THRESHOLD or bool(
        intent.needs_clarification
    )
    clarifying_question = (
        intent.clarifying_question or DEFAULT_CLARIFYING_QUESTION
        if needs_clarification
        else None
    )

    return intent.model_copy(
        update={
            "confidence": confidence,
            "constraints": constraints,
            "assumptions": [item for item in intent.assumptions if item],
            "needs_clarification": needs_clarification,
            "clarifying_question": clarifying_question,
        }
    )


def merge_user_prefs(intent: Intent, prefs: Optional[UserPrefs]) -> Intent:
    """Fold remembered preferences into constraints the intent left unset."""
    if prefs is None:
        return intent
    constraints = (
        intent.constraints.model_copy() if intent.constraints else IntentConstraints()
    )
    if constraints.stablecoin_only is None and prefs.stablecoin_only is not None:
        constraints.stablecoin_only = prefs.stablecoin_only
    if not constraints.time_horizon and prefs.time_horizon:
        constraints.time_horizon = prefs.time_horizon
    if not constraints.risk and prefs.risk:
        constraints.risk = prefs.risk
    return intent.model_copy(update={"constraints": constraints})


def intent_schema() -> Dict[str, Any]:
    return Intent.model_json_schema(by_alias=True)


class IntentClassifier:
    """Ask the model for an intent and normalize whatever comes back.

    Any failure (model error, unparseable JSON, schema mismatch) yields
    :func:`fallback_intent`; failures are never cached.
    """

    def __init__(
        self,
        model: ProposalModel,
        system_prompt: str = INTENT_SYSTEM_PROMPT,
        cache: Optional[CoalescingCache[Intent]] = None,
    ) -> None:
        self.model = model
        self.system_prompt = system_prompt
        self.cache = cache

    async def classify(self, user_text: str, context: RouterContext) -> Intent:
        trimmed = str(user_text or "").strip()
        if not trimmed:
            return fallback_intent()

        payload = {"lastUserText": trimmed, "context": context.to_payload()}
        started = time.perf_counter()
        try:
            if self.cache is None:
                return await self._propose(payload)
            key = cache_key(model=self.model.model_id, **payload)
            return await self.cache.get_or_fetch(key, lambda: self._propose(payload))
        except Exception as exc:
            logger.warning("intent_proposal_failed", error=str(exc))
            return fallback_intent()
        finally:
            record_timing("router.intent", (time.perf_counter() - started) * 1000)

    async def _propose(self, payload: Dict[str, Any]) -> Intent:
        raw = await self.model.propose(self.system_prompt, intent_schema(), payload)
        proposed = Intent.model_validate(raw)
        prefs = payload["context"].get("userPrefs")
        merged = merge_user_prefs(
            proposed, UserPrefs.model_validate(prefs) if prefs else None
        )
        normalized = normalize_intent(merged)
        intent = Intent.model_validate(normalized.to_payload())
        logger.info(
            "intent_classified",
            goal=intent.goal,
            domain=intent.domain,
            confidence=intent.confidence,
            needs_clarification=intent.needs_clarification,
        )
        return intent


__all__ = [
    "CLARIFY_THRESHOLD",
    "DEFAULT_CLARIFYING_QUESTION",
    "IntentClassifier",
    "clamp_confidence",
    "clamp_limit",
    "fallback_intent",
    "intent_schema",
    "merge_user_prefs",
    "normalize_intent",
]
