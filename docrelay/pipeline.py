"""Orchestration layer joining extraction, the gateway, history and the bridge."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from .bridge import FileKeyValueStore, ResultBridge
from .config import Settings
from .extraction import extract_text
from .history import HistoryEntry, HistoryStore, JsonHistoryRepository
from .operations.engines import OpenRouterEngine, SimulatedEngine
from .operations.gateway import OperationGateway
from .operations.types import Operation, Request, Response, Tone


@dataclass
class SharedDelivery:
    """A response collected from the bridge and the history entry it produced."""

    response: Response
    entry: Optional[HistoryEntry]


class DocumentPipeline:
    """Public facade for both flows.

    The main flow processes and records into history directly. The share
    flow (a short-lived process) processes and hands the result over through
    the bridge; the main process later collects it into its own history.
    """

    def __init__(
        self,
        gateway: OperationGateway,
        history: Optional[HistoryStore],
        bridge: ResultBridge,
        *,
        history_factory: Optional[Callable[[], HistoryStore]] = None,
        extractor: Callable[[Path], str] = extract_text,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if history is None and history_factory is None:
            raise ValueError("DocumentPipeline needs a history store or a history_factory")
        self.gateway = gateway
        self.bridge = bridge
        self._history = history
        self._history_factory = history_factory
        self._extractor = extractor
        self._logger = logger or logging.getLogger(__name__)

    @property
    def history(self) -> HistoryStore:
        """Opened on first use; the share flow never records, so never opens it."""
        if self._history is None:
            self._history = self._history_factory()
        return self._history

    async def process_text(self, request: Request) -> Response:
        response = await self.gateway.process(request)
        self.history.insert(response, request.source_name)
        return response

    async def process_file(
        self,
        path: Union[str, Path],
        operation: Operation,
        *,
        sentence_limit: Optional[int] = None,
        target_language: Optional[str] = None,
        tone: Optional[Tone] = None,
        source_name: Optional[str] = None,
    ) -> Response:
        request = await self.build_file_request(
            path,
            operation,
            sentence_limit=sentence_limit,
            target_language=target_language,
            tone=tone,
            source_name=source_name,
        )
        return await self.process_text(request)

    async def share(self, request: Request) -> Tuple[Response, bool]:
        response = await self.gateway.process(request)
        saved = self.bridge.save(response)
        if not saved:
            self._logger.warning("Result for %s could not be handed to the bridge", request.source_name or "text")
        return response, saved

    async def share_file(
        self,
        path: Union[str, Path],
        operation: Operation,
        *,
        sentence_limit: Optional[int] = None,
        target_language: Optional[str] = None,
        tone: Optional[Tone] = None,
        source_name: Optional[str] = None,
    ) -> Tuple[Response, bool]:
        request = await self.build_file_request(
            path,
            operation,
            sentence_limit=sentence_limit,
            target_language=target_language,
            tone=tone,
            source_name=source_name,
        )
        return await self.share(request)

    def collect_shared_result(self) -> Optional[SharedDelivery]:
        """Poll the bridge once; record any pending response in history."""
        response = self.bridge.load()
        if response is None:
            return None
        entry = self.history.insert(response)
        return SharedDelivery(response=response, entry=entry)

    async def build_file_request(
        self,
        path: Union[str, Path],
        operation: Operation,
        *,
        sentence_limit: Optional[int] = None,
        target_language: Optional[str] = None,
        tone: Optional[Tone] = None,
        source_name: Optional[str] = None,
    ) -> Request:
        """Extract ``path`` off the event loop; the file name is the default source name."""
        path = Path(path).expanduser()
        text = await asyncio.to_thread(self._extractor, path)
        return Request(
            text=text,
            operation=operation,
            sentence_limit=sentence_limit,
            target_language=target_language,
            tone=tone,
            source_name=source_name or path.name,
        )


def create_pipeline(settings: Settings, *, simulate: bool = False) -> Tuple[DocumentPipeline, Optional[OpenRouterEngine]]:
    """Wire a pipeline from settings; the real engine is returned for closing.

    The history file is opened lazily, so a process that only shares results
    never reads or rewrites it.
    """
    engine: Optional[OpenRouterEngine] = None
    if not (simulate or settings.force_simulated):
        engine = OpenRouterEngine(
            api_key=settings.api_key,
            model=settings.model,
            base_url=settings.api_base,
            referer=settings.referer,
            title=settings.title,
        )
    gateway = OperationGateway(engine, fallback=SimulatedEngine())

    store = FileKeyValueStore.for_namespace(settings.shared_dir, settings.namespace)
    store.provision()
    bridge = ResultBridge(store)

    def open_history() -> HistoryStore:
        return HistoryStore(JsonHistoryRepository(settings.history_path))

    return DocumentPipeline(gateway, None, bridge, history_factory=open_history), engine
