"""Operation gateway: picks an engine, invokes it and wraps the outcome."""
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Mapping, Optional

from ..errors import CapabilityUnavailable, EngineFailure
from .engines import ENGINE_TONES, Engine, EngineOutput
from .types import Operation, Request, Response


class OperationGateway:
    """Public facade used by the CLI and the share flow.

    The gateway holds no per-call state, so concurrent ``process`` calls are
    independent: identical requests issued together each reach the engine.
    It never retries or caches.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        *,
        fallback: Optional[Engine] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._engine = engine
        self._fallback = fallback
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock

    def resolve_engine(self) -> Engine:
        """Return the real engine when usable, else the configured fallback."""
        if self._engine is not None and self._engine.is_available():
            return self._engine
        if self._fallback is not None:
            return self._fallback
        raise CapabilityUnavailable("No usable engine is available and no simulated fallback is configured")

    async def process(self, request: Request) -> Response:
        request.validate()
        engine = self.resolve_engine()
        parameters = self._engine_parameters(request)

        started = self._clock()
        try:
            output = await engine.invoke(request.text, request.operation, parameters)
        except Exception as exc:
            self._log_debug("engine-failure", request, engine, {"error": repr(exc)})
            raise EngineFailure(str(exc) or exc.__class__.__name__) from exc
        elapsed = max(0.0, self._clock() - started)

        if not isinstance(output, EngineOutput) or not output.text:
            raise EngineFailure(f"Engine '{engine.name}' returned no text for {request.operation.value}")

        response = Response(
            text=output.text,
            operation=request.operation,
            elapsed_seconds=elapsed,
            raw_diagnostics=output.raw,
            formatted=self._format(request, output.text),
            source_name=request.source_name,
        )
        self._log_debug("processed", request, engine, {"elapsed_seconds": elapsed})
        return response

    def _engine_parameters(self, request: Request) -> Mapping[str, object]:
        parameters: Dict[str, object] = {}
        if request.operation is Operation.SUMMARIZE:
            parameters["sentence_limit"] = request.resolved_sentence_limit
        elif request.operation is Operation.TRANSLATE:
            parameters["target_language"] = (request.target_language or "").strip()
        elif request.operation is Operation.REWRITE:
            parameters["tone"] = ENGINE_TONES[request.resolved_tone]
        return parameters

    def _format(self, request: Request, text: str) -> str:
        if request.operation is Operation.SUMMARIZE:
            heading = "## Summary"
        elif request.operation is Operation.TRANSLATE:
            heading = f"## Translation ({(request.target_language or '').strip()})"
        else:
            heading = f"## Rewrite (tone: {request.resolved_tone.description})"
        return f"{heading}\n\n{text}"

    def _log_debug(self, event: str, request: Request, engine: Engine, extra: Mapping[str, object]) -> None:
        payload = {
            "event": event,
            "operation": request.operation.value,
            "engine": engine.name,
            "source_name": request.source_name,
        }
        payload.update(dict(extra))
        self._logger.debug("operation-gateway", extra={"gateway": payload})
