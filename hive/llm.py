"""Language-model boundary used by the intent and decision steps.

The routing layer only needs "system prompt + JSON schema + payload in, JSON
object out". :class:`ProposalModel` captures that contract so tests (and other
providers) can stand in for Gemini.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional, Protocol

import google.generativeai as genai

from hive.utils.json_utils import parse_llm_json
from hive.utils.logging import get_logger

logger = get_logger(__name__)


class ProposalError(RuntimeError):
    """The model returned nothing usable as a JSON proposal."""


class ProposalModel(Protocol):
    """Anything that turns a prompt into a JSON object proposal."""

    model_id: str

    async def propose(
        self, system: str, schema: Dict[str, Any], payload: Dict[str, Any]
    ) -> Dict[str, Any]: ...


class GeminiProposalModel:
    """Gemini-backed :class:`ProposalModel` using JSON response mode."""

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-1.5-flash-latest",
        timeout_seconds: float = 20.0,
    ) -> None:
        genai.configure(api_key=api_key)
        self.model_id = model_name
        self.timeout_seconds = timeout_seconds
        self._models: Dict[str, genai.GenerativeModel] = {}

    def _model_for(self, system: str) -> genai.GenerativeModel:
        # One model per system prompt; there are only two in practice.
        model = self._models.get(system)
        if model is None:
            model = genai.GenerativeModel(
                model_name=self.model_id, system_instruction=system
            )
            self._models[system] = model
        return model

    async def propose(
        self, system: str, schema: Dict[str, Any], payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Ask the model for one JSON object shaped like ``schema``.

        Raises:
            ProposalError: If the call times out or the output is not JSON.
        """
        prompt = (
            "Return one JSON object matching this JSON schema exactly.\n\n"
            f"Schema: {json.dumps(schema)}\n\n"
            f"User: {payload.get('lastUserText', '')}\n\n"
            f"Context: {json.dumps(payload.get('context') or {}, default=str)}"
        )
        model = self._model_for(system)
        try:
            response = await asyncio.wait_for(
                model.generate_content_async(
                    [{"role": "user", "parts": [{"text": prompt}]}],
                    generation_config={"response_mime_type": "application/json"},
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ProposalError(f"{self.model_id} timed out") from exc

        text = _response_text(response)
        if not text:
            raise ProposalError(f"{self.model_id} returned an empty response")
        try:
            return parse_llm_json(text)
        except json.JSONDecodeError as exc:
            raise ProposalError(str(exc)) from exc


def _response_text(response: Any) -> Optional[str]:
    # ``response.text`` raises when the candidate was blocked or empty.
    try:
        return response.text
    except (ValueError, AttributeError) as exc:
        logger.warning("model_response_without_text", error=str(exc))
        return None


__all__ = ["GeminiProposalModel", "ProposalError", "ProposalModel"]
