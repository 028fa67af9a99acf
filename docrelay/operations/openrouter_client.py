"""Async client for the OpenRouter chat-completions endpoint.

Only the single call the real engine needs is exposed: ``generate`` posts a
message list and returns the first choice. Failures are raised as
``OpenRouterError`` subclasses; the engine gateway wraps them further.
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

import httpx

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
COMPLETIONS_PATH = "/chat/completions"


class OpenRouterError(RuntimeError):
    """Request to OpenRouter failed; ``status_code`` is set for HTTP errors."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(OpenRouterError):
    """Missing or rejected API key."""


class RateLimitError(OpenRouterError):
    """HTTP 429 that outlived the retry budget."""


class TransientError(OpenRouterError):
    """Network failure or 5xx that outlived the retry budget."""


class ClientConfigurationError(OpenRouterError):
    """The endpoint answered with something that is not a chat completion."""


@dataclass
class ChatCompletionResult:
    content: str
    raw: Mapping[str, Any]
    usage: Mapping[str, Any] = field(default_factory=dict)
    finish_reason: Optional[str] = None


def parse_chat_completion(data: Mapping[str, Any]) -> ChatCompletionResult:
    """Pull the first choice's message text out of a completion payload."""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], Mapping):
        raise ClientConfigurationError("Completion payload has no choices")

    choice = choices[0]
    message = choice.get("message")
    content = message.get("content") if isinstance(message, Mapping) else None
    if not isinstance(content, str):
        raise ClientConfigurationError("Completion choice carries no text content")

    usage = data.get("usage")
    finish_reason = choice.get("finish_reason")
    return ChatCompletionResult(
        content=content,
        raw=data,
        usage=dict(usage) if isinstance(usage, Mapping) else {},
        finish_reason=finish_reason if isinstance(finish_reason, str) else None,
    )


class OpenRouterClient:
    """Holds one pooled ``httpx.AsyncClient``; close it with ``aclose``."""

    RETRYABLE_STATUS = frozenset({408, 409, 425, 429, 500, 502, 503, 504})

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        *,
        referer: Optional[str] = None,
        title: Optional[str] = None,
        timeout: float = 60.0,
        max_retries: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise AuthenticationError("OpenRouter API key is required")
        self.max_retries = max(0, max_retries)

        headers = {"Authorization": f"Bearer {api_key}"}
        # Optional attribution headers shown on openrouter.ai rankings.
        if referer:
            headers["HTTP-Referer"] = referer
        if title:
            headers["X-Title"] = title
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def generate(
        self,
        model: str,
        messages: Sequence[Mapping[str, Any]],
        *,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        extra_payload: Optional[Mapping[str, Any]] = None,
    ) -> ChatCompletionResult:
        body: Dict[str, Any] = {"model": model, "messages": list(messages), "temperature": temperature}
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        body.update(extra_payload or {})

        response = await self._post_with_retries(body)
        try:
            data = response.json()
        except ValueError as exc:
            raise ClientConfigurationError("OpenRouter returned a non-JSON body", response.status_code) from exc
        if not isinstance(data, Mapping):
            raise ClientConfigurationError("OpenRouter returned a non-object JSON body", response.status_code)
        return parse_chat_completion(data)

    async def _post_with_retries(self, body: Mapping[str, Any]) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = await self._http.post(COMPLETIONS_PATH, json=body)
            except httpx.HTTPError as exc:
                if attempt >= self.max_retries:
                    kind = "timed out" if isinstance(exc, httpx.TimeoutException) else "failed"
                    raise TransientError(f"OpenRouter request {kind} after {attempt + 1} attempts") from exc
                await asyncio.sleep(self._backoff_seconds(attempt))
                attempt += 1
                continue

            if response.status_code < 400:
                return response
            if response.status_code in self.RETRYABLE_STATUS and attempt < self.max_retries:
                await asyncio.sleep(self._backoff_seconds(attempt, response.headers.get("Retry-After")))
                attempt += 1
                continue
            raise _error_for(response)

    def _backoff_seconds(self, attempt: int, retry_after: Optional[str] = None) -> float:
        delay = min(2.0 ** attempt, 16.0) * random.uniform(0.5, 1.5)
        if retry_after:
            try:
                delay = max(delay, float(retry_after))
            except ValueError:
                pass
        return max(0.5, delay)


def _error_for(response: httpx.Response) -> OpenRouterError:
    status = response.status_code
    message = _error_message(response)
    if status in (401, 403):
        return AuthenticationError(message or f"OpenRouter rejected the credentials ({status})", status)
    if status == 429:
        return RateLimitError(message or "OpenRouter rate limit exceeded", status)
    if status >= 500:
        return TransientError(message or f"OpenRouter server error ({status})", status)
    return OpenRouterError(message or f"OpenRouter request failed ({status})", status)


def _error_message(response: httpx.Response) -> Optional[str]:
    if "json" not in response.headers.get("Content-Type", ""):
        return response.text.strip() or None
    try:
        error = response.json().get("error")
    except (ValueError, AttributeError):
        return None
    if isinstance(error, Mapping) and error.get("message"):
        return str(error["message"])
    return None
