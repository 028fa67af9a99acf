"""Shared exports for the text operations feature."""
from __future__ import annotations

from .codec import decode_response, encode_response
from .engines import ENGINE_TONES, Engine, EngineOutput, OpenRouterEngine, SimulatedEngine
from .gateway import OperationGateway
from .openrouter_client import (
    AuthenticationError,
    ChatCompletionResult,
    ClientConfigurationError,
    OpenRouterClient,
    OpenRouterError,
    RateLimitError,
    TransientError,
)
from .prompts import PromptDocument, PromptLoader, PromptValidationError
from .storage import load_result, result_path_for, write_result
from .types import Operation, Request, Response, ResultRecord, Tone


__all__ = [
    "Operation",
    "Tone",
    "Request",
    "Response",
    "ResultRecord",
    "Engine",
    "EngineOutput",
    "ENGINE_TONES",
    "SimulatedEngine",
    "OpenRouterEngine",
    "OperationGateway",
    "encode_response",
    "decode_response",
    "PromptLoader",
    "PromptDocument",
    "PromptValidationError",
    "write_result",
    "load_result",
    "result_path_for",
    "OpenRouterClient",
    "ChatCompletionResult",
    "OpenRouterError",
    "AuthenticationError",
    "RateLimitError",
    "TransientError",
    "ClientConfigurationError",
]
