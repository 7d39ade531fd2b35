"""Routing data model shared by the context builder and the normalizers.

Models serialise with camelCase keys (``toolPlan``, ``needsClarification``)
so they match what the chat transport and the language model exchange;
Python code uses the snake_case attribute names.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Goal = Literal["explore", "decide", "execute", "learn"]
AgentKey = Literal[
    "lending",
    "staking",
    "wallet",
    "trading",
    "market",
    "token-analysis",
    "liquidity",
    "knowledge",
    "none",
]
# Intent domains and agent keys share one vocabulary.
Domain = AgentKey
Mode = Literal["explore", "decide", "execute"]
Ui = Literal["cards", "cards_then_text", "text"]
StopCondition = Literal[
    "when_first_yields_result_received", "after_tool_plan_complete", "none"
]
LayoutBlock = Literal["card", "tool", "text", "summary"]
Risk = Literal["low", "medium", "high"]
TimeHorizon = Literal["short", "medium", "long"]

YIELD_STOP: StopCondition = "when_first_yields_result_received"
PLAN_STOP: StopCondition = "after_tool_plan_complete"


class RoutingModel(BaseModel):
    """Base model: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys and unset fields dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class IntentConstraints(RoutingModel):
    token_symbol: Optional[str] = None
    protocol: Optional[str] = None
    stablecoin_only: Optional[bool] = None
    amount: Optional[float] = None
    limit: Optional[Union[int, float]] = None
    wallet_only: Optional[bool] = None
    risk: Optional[Risk] = None
    time_horizon: Optional[TimeHorizon] = None


class IntentReferences(RoutingModel):
    from_last_yield: Optional[bool] = None
    from_last_action: Optional[bool] = None
    from_last_selection: Optional[bool] = None


class Intent(RoutingModel):
    """Classified goal of the latest user message."""

    goal: Goal
    domain: Domain
    query_type: Optional[str] = None
    constraints: Optional[IntentConstraints] = None
    assumptions: List[Optional[str]] = Field(default_factory=list)
    confidence: float
    needs_clarification: Optional[bool] = None
    clarifying_question: Optional[str] = None
    references: Optional[IntentReferences] = None

    @field_validator("assumptions", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class ToolPlanItem(RoutingModel):
    tool: str
    args: Optional[Dict[str, Any]] = None


class RouterDecision(RoutingModel):
    """Agent, mode and tool plan chosen for the current turn."""

    agent: AgentKey
    mode: Mode
    ui: Ui
    tool_plan: List[ToolPlanItem] = Field(default_factory=list)
    stop_condition: StopCondition = "none"
    layout: Optional[List[LayoutBlock]] = None

    @field_validator("tool_plan", mode="before")
    @classmethod
    def _plan_none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("stop_condition", mode="before")
    @classmethod
    def _stop_none_as_default(cls, value: Any) -> Any:
        return "none" if value is None else value

    @property
    def tool_names(self) -> List[str]:
        return [item.tool for item in self.tool_plan]


class YieldPoolSample(RoutingModel):
    symbol: str
    project: Optional[str] = None
    apy: Optional[float] = None
    tvl_usd: Optional[float] = None
    token_mint_address: Optional[str] = None


class LastYield(RoutingModel):
    tool: str
    args: Optional[Dict[str, Any]] = None
    pools: List[YieldPoolSample] = Field(default_factory=list)


class LastAction(RoutingModel):
    tool: str
    args: Optional[Dict[str, Any]] = None
    status: Optional[str] = None


class Selection(RoutingModel):
    token_symbol: Optional[str] = None
    protocol: Optional[str] = None
    pool_id: Optional[str] = None


class UserPrefs(RoutingModel):
    risk: Optional[Risk] = None
    stablecoin_only: Optional[bool] = None
    time_horizon: Optional[TimeHorizon] = None


class ProfileContext(RoutingModel):
    wallet_address: Optional[str] = None
    has_balances: Optional[bool] = None


class WalletState(RoutingModel):
    has_wallet_address: bool = False


class RouterContext(RoutingModel):
    """Compact view of the conversation handed to the normalizers."""

    last_yield: Optional[LastYield] = None
    last_action: Optional[LastAction] = None
    last_selection: Optional[Selection] = None
    user_prefs: Optional[UserPrefs] = None
    profile_context: Optional[ProfileContext] = None
    wallet: WalletState = Field(default_factory=WalletState)
    intent: Optional[Intent] = None
    summary: Optional[str] = None


class ChatMemory(RoutingModel):
    """Cross-turn memory the caller persists between requests."""

    last_selection: Optional[Selection] = None
    user_prefs: Optional[UserPrefs] = None
    profile_context: Optional[ProfileContext] = None

    def same_as(self, other: Optional["ChatMemory"]) -> bool:
        if other is None:
            return False
        return (
            (self.last_selection or Selection()) == (other.last_selection or Selection())
            and (self.user_prefs or UserPrefs()) == (other.user_prefs or UserPrefs())
            and (self.profile_context or ProfileContext())
            == (other.profile_context or ProfileContext())
        )


__all__ = [
    "AgentKey",
    "ChatMemory",
    "Domain",
    "Goal",
    "Intent",
    "IntentConstraints",
    "IntentReferences",
    "LastAction",
    "LastYield",
    "LayoutBlock",
    "Mode",
    "PLAN_STOP",
    "ProfileContext",
    "Risk",
    "RouterContext",
    "RouterDecision",
    "RoutingModel",
    "Selection",
    "StopCondition",
    "TimeHorizon",
    "ToolPlanItem",
    "Ui",
    "UserPrefs",
    "WalletState",
    "YIELD_STOP",
    "YieldPoolSample",
]
