"""Engines that carry out an operation: the OpenRouter-backed one and a simulator."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Protocol

from .openrouter_client import AuthenticationError, OpenRouterClient
from .prompts import PromptLoader
from .types import Operation, Tone

DEFAULT_MODEL = "x-ai/grok-4-fast:free"

# Engine-side tone vocabulary; every Tone has exactly one entry.
ENGINE_TONES: Dict[Tone, str] = {
    Tone.FORMAL: "formal and polished",
    Tone.CASUAL: "casual and conversational",
    Tone.PROFESSIONAL: "professional and businesslike",
    Tone.CONCISE: "concise and to the point",
}


@dataclass
class EngineOutput:
    """Text produced by an engine plus optional raw diagnostics."""

    text: str
    raw: Optional[str] = None


class Engine(Protocol):
    """Capability every engine provides; ``invoke`` may raise on failure."""

    name: str

    def is_available(self) -> bool:
        ...

    async def invoke(self, text: str, operation: Operation, parameters: Mapping[str, object]) -> EngineOutput:
        ...


class SimulatedEngine:
    """Deterministic stand-in used when the real engine cannot run."""

    name = "simulated"

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = max(0.0, delay)

    def is_available(self) -> bool:
        return True

    async def invoke(self, text: str, operation: Operation, parameters: Mapping[str, object]) -> EngineOutput:
        if self.delay:
            await asyncio.sleep(self.delay)

        length = len(text)
        if operation is Operation.SUMMARIZE:
            limit = parameters.get("sentence_limit")
            output = (
                "This is an automatically generated summary. "
                f"The original text has about {length} characters and was condensed to at most {limit} sentences."
            )
            raw = {"input_tokens": length // 4, "output_tokens": 30, "model": "simulated-summarizer", "truncated": False}
        elif operation is Operation.TRANSLATE:
            target = parameters.get("target_language")
            output = f"This is a translated text to {target}. The original text has {length} characters."
            raw = {"target_lang": target, "confidence": 0.92, "model": "simulated-translator"}
        elif operation is Operation.REWRITE:
            tone = parameters.get("tone")
            output = (
                f"This text was rewritten to read {tone}. "
                f"The original text has {length} characters; its core content is preserved."
            )
            raw = {"tone": tone, "modified_level": "medium", "model": "simulated-rewriter"}
        else:
            raise ValueError(f"Unsupported operation: {operation!r}")

        return EngineOutput(text=output, raw=json.dumps(raw, ensure_ascii=False))


class OpenRouterEngine:
    """Real engine: renders a prompt per operation and calls OpenRouter.

    The engine is only available when an API key (or a prebuilt client) is
    configured.
    """

    name = "openrouter"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        *,
        base_url: str = "https://openrouter.ai/api/v1",
        referer: Optional[str] = None,
        title: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        prompt_loader: Optional[PromptLoader] = None,
        client: Optional[OpenRouterClient] = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._api_key = (api_key or "").strip() or None
        self._base_url = base_url
        self._referer = referer
        self._title = title
        self._prompt_loader = prompt_loader or PromptLoader()
        self._client = client

    def is_available(self) -> bool:
        return self._client is not None or self._api_key is not None

    async def invoke(self, text: str, operation: Operation, parameters: Mapping[str, object]) -> EngineOutput:
        client = self._require_client()
        prompt = self._prompt_loader.load(operation.value)
        messages = [
            {"role": "system", "content": prompt.render(parameters)},
            {"role": "user", "content": text},
        ]
        result = await client.generate(
            self.model,
            messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        content = result.content.strip()
        if not content:
            raise ValueError(f"OpenRouter returned an empty {operation.value} result")
        return EngineOutput(text=content, raw=json.dumps(dict(result.raw), ensure_ascii=False, default=str))

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    def _require_client(self) -> OpenRouterClient:
        if self._client is None:
            if self._api_key is None:
                raise AuthenticationError("OpenRouter API key is required to use the real engine")
            self._client = OpenRouterClient(
                api_key=self._api_key,
                base_url=self._base_url,
                referer=self._referer,
                title=self._title,
            )
        return self._client
