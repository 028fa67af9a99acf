"""Export responses as Markdown files with a YAML front matter header."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .types import Operation, Response, ResultRecord

DEFAULT_SLUG = "text-snippet"

_FENCE = "---"
_FRONT_MATTER = re.compile(r"\A---[ \t]*\n(?P<meta>.*?)^---[ \t]*\n?(?P<body>.*)\Z", re.DOTALL | re.MULTILINE)
_SEPARATORS = re.compile(r"[\W_]+")


def result_path_for(results_root: Path, source_name: Optional[str], operation: Operation) -> Path:
    """``<root>/<source slug>/<operation>.md``; text input goes under ``text-snippet``."""
    stem = Path(source_name).stem if source_name else ""
    return Path(results_root).expanduser() / _slugify(stem) / f"{operation.value}.md"


def write_result(
    markdown_path: Path,
    response: Response,
    metadata: Optional[Mapping[str, object]] = None,
) -> ResultRecord:
    if metadata is not None and not isinstance(metadata, Mapping):
        raise TypeError("metadata must be a mapping")

    header: Dict[str, object] = {
        "operation": response.operation.value,
        "elapsed_seconds": round(response.elapsed_seconds, 6),
    }
    if response.source_name:
        header["source_name"] = response.source_name
    header.update(metadata or {})

    body = _ensure_trailing_newline(response.formatted or response.text)
    front_matter = yaml.safe_dump(header, sort_keys=True, allow_unicode=True)

    path = Path(markdown_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{_FENCE}\n{front_matter}{_FENCE}\n\n{body}", encoding="utf-8")
    return ResultRecord(body=body, path=path, metadata=header)


def load_result(markdown_path: Path) -> ResultRecord:
    path = Path(markdown_path)
    metadata, body = _split_front_matter(path.read_text(encoding="utf-8"))
    return ResultRecord(body=body, path=path, metadata=metadata)


def _slugify(value: str) -> str:
    return _SEPARATORS.sub("-", value.lower()).strip("-") or DEFAULT_SLUG


def _ensure_trailing_newline(text: str) -> str:
    return text if text.endswith("\n") else f"{text}\n"


def _split_front_matter(content: str) -> Tuple[Dict[str, object], str]:
    """Return (metadata, body); files without a closed header are all body."""
    match = _FRONT_MATTER.match(content)
    if match is None:
        return {}, content

    metadata = yaml.safe_load(match.group("meta")) or {}
    if not isinstance(metadata, dict):
        raise ValueError("Result front matter must deserialize to a mapping")

    body = match.group("body")
    if body.startswith("\n"):
        body = body[1:]
    return metadata, _ensure_trailing_newline(body) if body else body
