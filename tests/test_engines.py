"""Tests for the simulated engine, the OpenRouter engine and its client."""
import json

import httpx
import pytest

from docrelay.errors import EngineFailure
from docrelay.operations.engines import OpenRouterEngine, SimulatedEngine
from docrelay.operations.gateway import OperationGateway
from docrelay.operations.openrouter_client import (
    AuthenticationError,
    ClientConfigurationError,
    OpenRouterClient,
    RateLimitError,
    TransientError,
)
from docrelay.operations.prompts import PromptLoader, PromptValidationError
from docrelay.operations.types import Operation, Request


def completion(content: str) -> dict:
    return {
        "id": "gen-1",
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 4},
    }


def make_client(handler, **kwargs) -> OpenRouterClient:
    return OpenRouterClient(api_key="test-key", transport=httpx.MockTransport(handler), **kwargs)


class TestSimulatedEngine:
    """Test the deterministic stand-in."""

    @pytest.mark.asyncio
    async def test_output_is_deterministic(self):
        engine = SimulatedEngine()
        first = await engine.invoke("abc", Operation.TRANSLATE, {"target_language": "de"})
        second = await engine.invoke("abc", Operation.TRANSLATE, {"target_language": "de"})
        assert first == second
        assert "de" in first.text
        assert json.loads(first.raw)["target_lang"] == "de"

    @pytest.mark.asyncio
    async def test_rewrite_mentions_tone(self):
        output = await SimulatedEngine().invoke("abc", Operation.REWRITE, {"tone": "casual and conversational"})
        assert "casual and conversational" in output.text

    def test_always_available(self):
        assert SimulatedEngine().is_available() is True


class TestOpenRouterEngine:
    """Test capability gating and prompt rendering."""

    def test_unavailable_without_key(self):
        assert OpenRouterEngine(api_key=None).is_available() is False
        assert OpenRouterEngine(api_key="   ").is_available() is False

    def test_available_with_key(self):
        assert OpenRouterEngine(api_key="sk-test").is_available() is True

    @pytest.mark.asyncio
    async def test_invoke_sends_rendered_prompt(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion("  Short summary.  "))

        engine = OpenRouterEngine(api_key=None, model="test/model", client=make_client(handler))
        output = await engine.invoke("Long document", Operation.SUMMARIZE, {"sentence_limit": 3})
        await engine.aclose()

        assert output.text == "Short summary."
        assert json.loads(output.raw)["id"] == "gen-1"
        assert seen["url"].endswith("/chat/completions")
        assert seen["auth"] == "Bearer test-key"
        body = seen["body"]
        assert body["model"] == "test/model"
        assert "at most 3 sentences" in body["messages"][0]["content"]
        assert body["messages"][1] == {"role": "user", "content": "Long document"}

    @pytest.mark.asyncio
    async def test_gateway_wraps_client_errors(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "bad key"}})

        engine = OpenRouterEngine(api_key=None, client=make_client(handler))
        gateway = OperationGateway(engine, fallback=SimulatedEngine())

        with pytest.raises(EngineFailure) as excinfo:
            await gateway.process(Request(text="hello", operation=Operation.SUMMARIZE))
        assert isinstance(excinfo.value.__cause__, AuthenticationError)
        await engine.aclose()


class TestOpenRouterClient:
    """Test HTTP status handling and retries."""

    def test_requires_api_key(self):
        with pytest.raises(AuthenticationError):
            OpenRouterClient(api_key="")

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        client = make_client(lambda request: httpx.Response(429, json={"error": {"message": "slow down"}}), max_retries=0)
        with pytest.raises(RateLimitError, match="slow down"):
            await client.generate("m", [{"role": "user", "content": "hi"}])
        await client.aclose()

    @pytest.mark.asyncio
    async def test_server_error_after_retries(self, monkeypatch):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="unavailable")

        client = make_client(handler, max_retries=2)
        monkeypatch.setattr(client, "_backoff_seconds", lambda *args, **kwargs: 0)
        with pytest.raises(TransientError):
            await client.generate("m", [{"role": "user", "content": "hi"}])
        assert len(calls) == 3
        await client.aclose()

    @pytest.mark.asyncio
    async def test_retry_then_success(self, monkeypatch):
        responses = iter([httpx.Response(502, text="bad gateway"), httpx.Response(200, json=completion("ok"))])
        client = make_client(lambda request: next(responses), max_retries=1)
        monkeypatch.setattr(client, "_backoff_seconds", lambda *args, **kwargs: 0)

        result = await client.generate("m", [{"role": "user", "content": "hi"}])

        assert result.content == "ok"
        assert result.finish_reason == "stop"
        assert result.usage["completion_tokens"] == 4
        await client.aclose()

    @pytest.mark.asyncio
    async def test_missing_choices(self):
        client = make_client(lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(ClientConfigurationError):
            await client.generate("m", [{"role": "user", "content": "hi"}])
        await client.aclose()


class TestPromptLoader:
    """Test packaged prompt templates."""

    @pytest.mark.parametrize("operation", list(Operation))
    def test_every_operation_has_a_prompt(self, operation):
        document = PromptLoader().load(operation.value)
        assert "{{" in document.content

    def test_render_fills_placeholders(self):
        document = PromptLoader().load("translate")
        rendered = document.render({"target_language": "ja"})
        assert '"ja"' in rendered
        assert "{{" not in rendered

    def test_render_rejects_missing_values(self):
        document = PromptLoader().load("rewrite")
        with pytest.raises(PromptValidationError):
            document.render({})

    def test_custom_prompt_dir_takes_precedence(self, tmp_path):
        (tmp_path / "summarize.md").write_text("Summarize in {{sentence_limit}} lines.", encoding="utf-8")
        document = PromptLoader(prompts_dir=tmp_path).load("summarize")
        assert document.render({"sentence_limit": 2}) == "Summarize in 2 lines."

    def test_mismatched_braces_rejected(self, tmp_path):
        (tmp_path / "broken.md").write_text("Summarize {{sentence_limit}", encoding="utf-8")
        with pytest.raises(PromptValidationError):
            PromptLoader(prompts_dir=tmp_path).load("broken")

    def test_operation_prompt_must_use_its_parameter(self, tmp_path):
        (tmp_path / "translate.md").write_text("Translate politely into {{tone}}.", encoding="utf-8")
        with pytest.raises(PromptValidationError, match="target_language"):
            PromptLoader(prompts_dir=tmp_path).load(Operation.TRANSLATE)
