"""Unit tests for the Gemini wrapper with the SDK model replaced."""

import asyncio

import pytest

from ledgerlens.services import llm as llm_module


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    instances = []

    def __init__(self, model_name, generation_config=None, safety_settings=None):
        self.model_name = model_name
        self.generation_config = generation_config
        self.safety_settings = safety_settings
        self.prompts = []
        FakeModel.instances.append(self)

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        return FakeResponse('{"ok": true}' if self.generation_config else "plain answer")


@pytest.fixture
def fake_genai(monkeypatch):
    FakeModel.instances = []
    monkeypatch.setattr(llm_module.genai, "configure", lambda **kwargs: None)
    monkeypatch.setattr(llm_module.genai, "GenerativeModel", FakeModel)
    return FakeModel


@pytest.mark.unit
def test_json_and_text_models_are_configured(fake_genai):
    client = llm_module.GeminiClient("key", "gemini-test")

    json_model, text_model = fake_genai.instances
    assert json_model.generation_config == {"response_mime_type": "application/json"}
    assert text_model.generation_config is None
    assert json_model.safety_settings == llm_module.SAFETY_SETTINGS
    assert client.model_name == "gemini-test"


@pytest.mark.unit
def test_generate_routes_to_matching_model(fake_genai):
    client = llm_module.GeminiClient("key", "gemini-test")

    assert asyncio.run(client.generate("p1", json_output=True)) == '{"ok": true}'
    assert asyncio.run(client.generate("p2")) == "plain answer"

    json_model, text_model = fake_genai.instances
    assert json_model.prompts == ["p1"]
    assert text_model.prompts == ["p2"]
