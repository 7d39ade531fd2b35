"""Tests for the Gemini proposal model."""

import asyncio

import pytest

from hive.llm import GeminiProposalModel, ProposalError


class FakeResponse:
    def __init__(self, text=None, error=None):
        self._text = text
        self._error = error

    @property
    def text(self):
        if self._error is not None:
            raise self._error
        return self._text


class FakeGenerativeModel:
    instances = []
    response = FakeResponse('{"ok": true}')
    delay = 0.0

    def __init__(self, model_name, system_instruction=None):
        self.model_name = model_name
        self.system_instruction = system_instruction
        self.calls = []
        FakeGenerativeModel.instances.append(self)

    async def generate_content_async(self, contents, generation_config=None):
        self.calls.append((contents, generation_config))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.response


@pytest.fixture
def fake_genai(monkeypatch):
    configured = {}
    FakeGenerativeModel.instances = []
    FakeGenerativeModel.response = FakeResponse('{"ok": true}')
    FakeGenerativeModel.delay = 0.0
    monkeypatch.setattr("hive.llm.genai.configure", lambda **kwargs: configured.update(kwargs))
    monkeypatch.setattr("hive.llm.genai.GenerativeModel", FakeGenerativeModel)
    return configured


@pytest.mark.asyncio
async def test_propose_returns_json_object(fake_genai) -> None:
    model = GeminiProposalModel("key-123", model_name="gemini-test")

    result = await model.propose("system", {"title": "Intent"}, {"lastUserText": "hi", "context": {}})

    assert result == {"ok": True}
    assert fake_genai == {"api_key": "key-123"}
    instance = FakeGenerativeModel.instances[0]
    assert instance.model_name == "gemini-test"
    assert instance.system_instruction == "system"
    contents, config = instance.calls[0]
    assert config == {"response_mime_type": "application/json"}
    assert "User: hi" in contents[0]["parts"][0]["text"]


@pytest.mark.asyncio
async def test_one_model_per_system_prompt(fake_genai) -> None:
    model = GeminiProposalModel("key")

    await model.propose("intent", {}, {})
    await model.propose("intent", {}, {})
    await model.propose("router", {}, {})

    assert [m.system_instruction for m in FakeGenerativeModel.instances] == ["intent", "router"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(""),
        FakeResponse(error=ValueError("blocked by safety")),
        FakeResponse("not json at all"),
        FakeResponse("[1, 2]"),
    ],
)
async def test_unusable_responses_raise(fake_genai, response) -> None:
    FakeGenerativeModel.response = response
    model = GeminiProposalModel("key")

    with pytest.raises(ProposalError):
        await model.propose("system", {}, {})


@pytest.mark.asyncio
async def test_timeout_raises(fake_genai) -> None:
    FakeGenerativeModel.delay = 1.0
    model = GeminiProposalModel("key", timeout_seconds=0.01)

    with pytest.raises(ProposalError, match="timed out"):
        await model.propose("system", {}, {})
