"""Shared test fixtures for docrelay tests."""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping

import pytest

from docrelay.bridge import MemoryKeyValueStore, ResultBridge
from docrelay.history import HistoryStore, MemoryHistoryRepository
from docrelay.operations.engines import EngineOutput
from docrelay.operations.types import Operation, Response


class FakeClock:
    """Wall clock the tests advance by hand."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingEngine:
    """Engine double that records every call."""

    name = "recording"

    def __init__(self, available: bool = True, text: str = "engine output", error: Exception = None):
        self.available = available
        self.text = text
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def is_available(self) -> bool:
        return self.available

    async def invoke(self, text: str, operation: Operation, parameters: Mapping[str, object]) -> EngineOutput:
        self.calls.append({"text": text, "operation": operation, "parameters": dict(parameters)})
        if self.error is not None:
            raise self.error
        return EngineOutput(text=self.text, raw='{"engine": "recording"}')


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 14, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def history_repo():
    return MemoryHistoryRepository()


@pytest.fixture
def history(history_repo, clock):
    return HistoryStore(history_repo, clock=clock)


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def bridge(kv_store):
    return ResultBridge(kv_store)


@pytest.fixture
def sample_response():
    return Response(
        text="A short summary of the quarterly report.",
        operation=Operation.SUMMARIZE,
        elapsed_seconds=0.42,
        raw_diagnostics='{"model": "simulated-summarizer"}',
        formatted="## Summary\n\nA short summary of the quarterly report.",
        source_name="report.txt",
    )


@pytest.fixture
def make_engine():
    return RecordingEngine
