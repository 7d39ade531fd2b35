"""JSON parsing helpers for model proposals."""

import json
import re
from typing import Any, Dict

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_llm_json(text: str) -> Dict[str, Any]:
    """
    Parse the JSON object a model returned, tolerating markdown fences.

    Args:
        text: Raw model output; may be wrapped in a ```json block or carry
            prose around the object.

    Returns:
        The parsed JSON object.

    Raises:
        json.JSONDecodeError: If no JSON object can be recovered.
    """
    cleaned = _FENCE_RE.sub("", (text or "").strip()).strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        # Fall back to the outermost {...} span
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            preview = cleaned[:100] + "..." if len(cleaned) > 100 else cleaned
            raise json.JSONDecodeError(
                f"Failed to parse model JSON. Preview: {preview}", exc.doc, exc.pos
            ) from exc
        parsed = json.loads(_fix_single_quoted_keys(cleaned[start : end + 1]))

    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("Expected a JSON object", cleaned, 0)
    return parsed


def _fix_single_quoted_keys(text: str) -> str:
    """Replace 'key': with "key": which models occasionally emit."""
    return re.sub(r"'(\w+)'(\s*:)", r'"\1"\2', text)
