"""Error taxonomy shared by the gateway, extractors, bridge and history store."""
from __future__ import annotations


class DocRelayError(RuntimeError):
    """Base error for every failure surfaced by docrelay."""


class CapabilityUnavailable(DocRelayError):
    """Raised when no engine is usable and no simulated fallback is configured."""


class InvalidParameters(DocRelayError, ValueError):
    """Raised when a request is missing or carries an invalid parameter."""


class ExtractionFailed(DocRelayError):
    """Raised when a document exists in a supported format but cannot be read."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class UnsupportedFormat(DocRelayError):
    """Raised when a file type is not recognized by any extractor."""


class EngineFailure(DocRelayError):
    """Raised when the underlying engine call fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class EncodingFailure(DocRelayError):
    """Raised when a response payload cannot be serialized or deserialized."""


class StorageUnavailable(DocRelayError):
    """Raised when the shared namespace or history medium is unreachable."""
