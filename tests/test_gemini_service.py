"""
Tests for prompt assembly and the Gemini stream wrapper.
"""
import asyncio
import base64
from types import SimpleNamespace

import pytest
from google.genai import errors

from config.settings import GEMINI_FALLBACK_MODEL, GEMINI_MODEL
from models.generation import GenerationRequest, HistoryMessage
from prompts.ui_prompts import build_system_prompt, build_user_message
from services.gemini_service import GeminiService, parse_data_url, should_use_fallback


def chunk(text, usage=None):
    return SimpleNamespace(text=text, usage_metadata=usage)


class FakeModels:
    def __init__(self, chunks, failures=None):
        self.chunks = chunks
        self.failures = failures or {}
        self.models_called = []

    async def generate_content_stream(self, model, contents, config):
        self.models_called.append(model)
        if model in self.failures:
            raise self.failures[model]

        async def stream():
            for item in self.chunks:
                yield item
        return stream()


def fake_client(chunks, failures=None):
    return SimpleNamespace(aio=SimpleNamespace(models=FakeModels(chunks, failures)))


class TestPrompts:

    def test_screen_count_follows_tier(self):
        assert "(3 screens)" in build_system_prompt("mobile", screen_count=3)
        assert "(6 screens)" in build_system_prompt("mobile", screen_count=6)

    def test_edit_context_includes_current_design(self):
        prompt = build_system_prompt("desktop", current_design="<div>A</div>")
        assert "<div>A</div>" in prompt
        assert "**desktop**" in prompt

    def test_user_message_keeps_prompt_last(self):
        assert build_user_message("Make a login page", "mobile").endswith("Make a login page")


class TestHelpers:

    def test_parse_data_url(self):
        encoded = base64.b64encode(b"png-bytes").decode()
        assert parse_data_url(f"data:image/png;base64,{encoded}") == (b"png-bytes", "image/png")
        assert parse_data_url("not a data url") is None

    def test_fallback_on_capacity_errors(self):
        assert should_use_fallback(SimpleNamespace(code=429))
        assert should_use_fallback(Exception("The model is overloaded"))
        assert not should_use_fallback(Exception("invalid api key"))


class TestGeminiService:

    def test_contents_order(self):
        service = GeminiService(client=fake_client([]))
        request = GenerationRequest(message="A travel app")
        history = [HistoryMessage(role="user", content="hi"), HistoryMessage(role="assistant", content="hello")]
        contents, config = service.build_contents(request, history, "free")

        assert [c.role for c in contents] == ["user", "model", "user", "model", "user"]
        assert contents[-1].parts[0].text.endswith("A travel app")
        assert config.temperature == 1.0

    def test_stream_yields_text_and_usage(self):
        usage = SimpleNamespace(prompt_token_count=1200, candidates_token_count=800)
        client = fake_client([chunk("```html\n"), chunk(None), chunk("<div>A</div>\n```", usage)])
        service = GeminiService(client=client)

        async def run():
            upstream = await service.open_stream(GenerationRequest(message="x"))
            texts = [text async for text in upstream]
            return upstream, texts

        upstream, texts = asyncio.run(run())
        assert texts == ["```html\n", "<div>A</div>\n```"]
        assert upstream.usage.input_tokens == 1200
        assert upstream.usage.output_tokens == 800
        assert client.aio.models.models_called == [upstream.model_name]

    def test_overloaded_primary_falls_back(self):
        overloaded = errors.ServerError(503, {"error": {"message": "The model is overloaded", "status": "UNAVAILABLE"}})
        client = fake_client([chunk("<div>A</div>")], failures={GEMINI_MODEL: overloaded})
        service = GeminiService(client=client)

        async def run():
            upstream = await service.open_stream(GenerationRequest(message="x"))
            return upstream, [text async for text in upstream]

        upstream, texts = asyncio.run(run())
        assert upstream.model_name == GEMINI_FALLBACK_MODEL
        assert texts == ["<div>A</div>"]
        assert client.aio.models.models_called == [GEMINI_MODEL, GEMINI_FALLBACK_MODEL]

    def test_invalid_request_is_not_retried_on_fallback(self):
        invalid = errors.ClientError(400, {"error": {"message": "invalid argument", "status": "INVALID_ARGUMENT"}})
        client = fake_client([], failures={GEMINI_MODEL: invalid})
        service = GeminiService(client=client)

        with pytest.raises(errors.ClientError):
            asyncio.run(service.open_stream(GenerationRequest(message="x")))
        assert client.aio.models.models_called == [GEMINI_MODEL]
