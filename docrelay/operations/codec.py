"""Portable JSON encoding for responses handed between processes."""
from __future__ import annotations

import json
import math
from typing import Any, Dict, Mapping, Optional

from ..errors import EncodingFailure
from .types import Operation, Response

FORMAT_VERSION = 1


def response_to_dict(response: Response) -> Dict[str, Any]:
    operation = response.operation
    if not isinstance(operation, Operation):
        raise EncodingFailure(f"Cannot encode unknown operation {operation!r}")
    return {
        "version": FORMAT_VERSION,
        "text": response.text,
        "operation": operation.value,
        "elapsed_seconds": response.elapsed_seconds,
        "raw_diagnostics": response.raw_diagnostics,
        "formatted": response.formatted,
        "source_name": response.source_name,
    }


def response_from_dict(data: Mapping[str, Any]) -> Response:
    """Rebuild a response, rejecting unknown operation discriminants."""
    if not isinstance(data, Mapping):
        raise EncodingFailure("Response payload must be a JSON object")

    text = data.get("text")
    if not isinstance(text, str):
        raise EncodingFailure("Response payload is missing its text")

    discriminant = data.get("operation")
    try:
        operation = Operation(discriminant)
    except ValueError as exc:
        raise EncodingFailure(f"Unknown operation discriminant: {discriminant!r}") from exc

    elapsed = data.get("elapsed_seconds")
    if isinstance(elapsed, bool) or not isinstance(elapsed, (int, float)):
        raise EncodingFailure("Response payload has a non-numeric elapsed_seconds")
    if math.isnan(elapsed) or elapsed < 0:
        raise EncodingFailure(f"Response payload has an invalid elapsed_seconds: {elapsed!r}")

    return Response(
        text=text,
        operation=operation,
        elapsed_seconds=float(elapsed),
        raw_diagnostics=_optional_str(data, "raw_diagnostics"),
        formatted=_optional_str(data, "formatted"),
        source_name=_optional_str(data, "source_name"),
    )


def encode_response(response: Response) -> str:
    try:
        return json.dumps(response_to_dict(response), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise EncodingFailure(f"Response could not be serialized: {exc}") from exc


def decode_response(payload: str) -> Response:
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise EncodingFailure(f"Response payload is not valid JSON: {exc}") from exc
    return response_from_dict(data)


def _optional_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise EncodingFailure(f"Response field '{key}' must be a string")
    return value
