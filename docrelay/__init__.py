"""Summarize, translate or rewrite documents and relay results between processes."""
from __future__ import annotations

from .bridge import FileKeyValueStore, MemoryKeyValueStore, ResultBridge
from .errors import (
    CapabilityUnavailable,
    DocRelayError,
    EncodingFailure,
    EngineFailure,
    ExtractionFailed,
    InvalidParameters,
    StorageUnavailable,
    UnsupportedFormat,
)
from .extraction import extract_text
from .history import ExpiringSet, HistoryEntry, HistoryStore, JsonHistoryRepository, MemoryHistoryRepository
from .operations import Operation, OperationGateway, Request, Response, SimulatedEngine, Tone
from .pipeline import DocumentPipeline

__version__ = "0.1.0"

__all__ = [
    "Operation",
    "Tone",
    "Request",
    "Response",
    "OperationGateway",
    "SimulatedEngine",
    "extract_text",
    "ResultBridge",
    "FileKeyValueStore",
    "MemoryKeyValueStore",
    "HistoryStore",
    "HistoryEntry",
    "ExpiringSet",
    "JsonHistoryRepository",
    "MemoryHistoryRepository",
    "DocumentPipeline",
    "DocRelayError",
    "CapabilityUnavailable",
    "InvalidParameters",
    "ExtractionFailed",
    "UnsupportedFormat",
    "EngineFailure",
    "EncodingFailure",
    "StorageUnavailable",
]
