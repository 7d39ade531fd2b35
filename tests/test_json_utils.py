"""Tests for model JSON parsing and prompt loading."""

import json

import pytest

from hive.utils.json_utils import parse_llm_json
from hive.utils.prompts import (
    INTENT_SYSTEM_PROMPT,
    load_prompt_template,
    resolve_prompt,
)


class TestParseLlmJson:
    def test_plain_object(self):
        assert parse_llm_json('{"goal": "explore"}') == {"goal": "explore"}

    def test_markdown_fence(self):
        text = '```json\n{"agent": "lending", "mode": "explore"}\n```'
        assert parse_llm_json(text) == {"agent": "lending", "mode": "explore"}

    def test_object_inside_prose(self):
        text = "Sure! {'goal': \"explore\", 'confidence': 0.8} Hope that helps."
        assert parse_llm_json(text) == {"goal": "explore", "confidence": 0.8}

    def test_non_object_rejected(self):
        with pytest.raises(json.JSONDecodeError):
            parse_llm_json("[1, 2, 3]")

    @pytest.mark.parametrize("text", ["", "no json here", None])
    def test_garbage_rejected(self, text):
        with pytest.raises(json.JSONDecodeError):
            parse_llm_json(text)


class TestPrompts:
    def test_missing_path(self, tmp_path):
        assert load_prompt_template(None) is None
        assert load_prompt_template(tmp_path / "absent.txt") is None

    def test_template_is_stripped(self, tmp_path):
        path = tmp_path / "intent.txt"
        path.write_text("  Custom intent prompt\n", encoding="utf-8")
        assert load_prompt_template(path) == "Custom intent prompt"
        assert resolve_prompt(path, INTENT_SYSTEM_PROMPT) == "Custom intent prompt"

    def test_empty_template_uses_default(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text("   \n", encoding="utf-8")
        assert load_prompt_template(path) is None
        assert resolve_prompt(path, INTENT_SYSTEM_PROMPT) == INTENT_SYSTEM_PROMPT
