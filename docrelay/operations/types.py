"""Dataclasses and enums shared across the operations feature."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from ..errors import InvalidParameters

DEFAULT_SENTENCE_LIMIT = 5


class Operation(str, Enum):
    """Closed set of text transformations; values are stable wire discriminants."""

    SUMMARIZE = "summarize"
    TRANSLATE = "translate"
    REWRITE = "rewrite"


class Tone(str, Enum):
    """Writing tones accepted by the rewrite operation."""

    FORMAL = "formal"
    CASUAL = "casual"
    PROFESSIONAL = "professional"
    CONCISE = "concise"

    @property
    def description(self) -> str:
        return _TONE_DESCRIPTIONS[self]


_TONE_DESCRIPTIONS = {
    Tone.FORMAL: "Formal",
    Tone.CASUAL: "Casual",
    Tone.PROFESSIONAL: "Professional",
    Tone.CONCISE: "Concise",
}


@dataclass(frozen=True)
class Request:
    """Immutable request payload used by both the CLI and the share flow.

    Only the parameters relevant to ``operation`` are read; the others are
    ignored.
    """

    text: str
    operation: Operation
    sentence_limit: Optional[int] = None
    target_language: Optional[str] = None
    tone: Optional[Tone] = None
    source_name: Optional[str] = None

    @property
    def resolved_sentence_limit(self) -> int:
        return self.sentence_limit if self.sentence_limit is not None else DEFAULT_SENTENCE_LIMIT

    @property
    def resolved_tone(self) -> Tone:
        return self.tone or Tone.FORMAL

    def validate(self) -> None:
        """Raise ``InvalidParameters`` if the request cannot be processed."""
        if not isinstance(self.text, str) or not self.text:
            raise InvalidParameters("Request text must be a non-empty string")
        if not isinstance(self.operation, Operation):
            raise InvalidParameters(f"Unknown operation: {self.operation!r}")
        if self.operation is Operation.SUMMARIZE:
            limit = self.resolved_sentence_limit
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
                raise InvalidParameters(f"Sentence limit must be a positive integer, got {limit!r}")
        elif self.operation is Operation.TRANSLATE:
            if not self.target_language or not self.target_language.strip():
                raise InvalidParameters("Translate requires a non-empty target language")
        elif self.operation is Operation.REWRITE:
            if self.tone is not None and not isinstance(self.tone, Tone):
                raise InvalidParameters(f"Unknown tone: {self.tone!r}")


@dataclass
class Response:
    """Normalized outcome of a gateway call.

    ``operation`` is authoritative for routing (history categorization);
    ``raw_diagnostics`` is for debugging only.
    """

    text: str
    operation: Operation
    elapsed_seconds: float
    raw_diagnostics: Optional[str] = None
    formatted: Optional[str] = None
    source_name: Optional[str] = None


@dataclass
class ResultRecord:
    """A response exported to Markdown, with its front-matter metadata."""

    body: str
    path: Path
    metadata: Dict[str, object] = field(default_factory=dict)
