"""System prompts for the real engine, one Markdown template per operation."""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Union

from .types import Operation

_PLACEHOLDER = re.compile(r"\{\{\s*([a-z_]+)\s*\}\}")

BUNDLED_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"

# Each operation's template must use the parameter the gateway passes for it.
REQUIRED_PLACEHOLDERS: Dict[str, FrozenSet[str]] = {
    Operation.SUMMARIZE.value: frozenset({"sentence_limit"}),
    Operation.TRANSLATE.value: frozenset({"target_language"}),
    Operation.REWRITE.value: frozenset({"tone"}),
}


class PromptValidationError(ValueError):
    """A prompt template is malformed or cannot be rendered."""


@dataclass(frozen=True)
class PromptDocument:
    content: str
    path: Path

    @property
    def placeholders(self) -> FrozenSet[str]:
        return frozenset(_PLACEHOLDER.findall(self.content))

    def render(self, values: Mapping[str, object]) -> str:
        missing = sorted(self.placeholders - set(values))
        if missing:
            raise PromptValidationError(f"Prompt '{self.path}' needs values for: {', '.join(missing)}")
        return _PLACEHOLDER.sub(lambda match: str(values[match.group(1)]), self.content).strip()


class PromptLoader:
    """Find ``<name>.md`` in the override dirs first, then the bundled prompts."""

    def __init__(
        self,
        prompts_dir: Optional[Path] = None,
        extra_search_dirs: Optional[Sequence[Path]] = None,
    ) -> None:
        candidates: List[Path] = []
        if prompts_dir:
            candidates.append(Path(prompts_dir).expanduser())
        candidates.extend(Path(d).expanduser() for d in extra_search_dirs or ())
        candidates.append(BUNDLED_PROMPTS_DIR)
        self.search_dirs: List[Path] = []
        for directory in candidates:
            if directory not in self.search_dirs:
                self.search_dirs.append(directory)

    def resolve(self, name: Union[str, Operation]) -> Path:
        filename = f"{_name_of(name)}.md"
        for directory in self.search_dirs:
            path = directory / filename
            if path.is_file():
                return path
        searched = ", ".join(str(d) for d in self.search_dirs)
        raise FileNotFoundError(f"No prompt '{filename}' in {searched}")

    def load(self, name: Union[str, Operation]) -> PromptDocument:
        path = self.resolve(name)
        document = PromptDocument(content=path.read_text(encoding="utf-8"), path=path)
        _validate(document, REQUIRED_PLACEHOLDERS.get(_name_of(name), frozenset()))
        return document


def _name_of(name: Union[str, Operation]) -> str:
    return name.value if isinstance(name, Operation) else name


def _validate(document: PromptDocument, required: FrozenSet[str]) -> None:
    opened = document.content.count("{{")
    closed = document.content.count("}}")
    if opened != closed:
        raise PromptValidationError(f"Prompt '{document.path}' has unbalanced braces ({opened} open, {closed} close)")
    if not document.placeholders:
        raise PromptValidationError(f"Prompt '{document.path}' has no placeholders")
    missing = sorted(required - document.placeholders)
    if missing:
        raise PromptValidationError(f"Prompt '{document.path}' must reference: {', '.join(missing)}")
