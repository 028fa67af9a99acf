"""Turn supported documents (.txt, .pdf, .docx) into plain text."""
from __future__ import annotations

import logging
import zipfile
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Union

import docx
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml.ns import qn
from docx.text.paragraph import Paragraph
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .errors import ExtractionFailed, UnsupportedFormat

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

PAGE_SEPARATOR = "\n\n"


class DocumentKind(str, Enum):
    PLAIN_TEXT = "plain-text"
    PDF = "pdf"
    OFFICE_XML = "office-xml"


_KINDS_BY_SUFFIX: Dict[str, DocumentKind] = {
    ".txt": DocumentKind.PLAIN_TEXT,
    ".pdf": DocumentKind.PDF,
    ".docx": DocumentKind.OFFICE_XML,
}


def supported_suffixes() -> list[str]:
    return sorted(_KINDS_BY_SUFFIX)


def detect_kind(path: PathLike) -> DocumentKind:
    """Map a file extension to its extraction strategy without touching disk."""
    suffix = Path(path).suffix.lower()
    try:
        return _KINDS_BY_SUFFIX[suffix]
    except KeyError:
        raise UnsupportedFormat(
            f"Unsupported file type '{suffix or Path(path).name}'; expected one of {', '.join(supported_suffixes())}"
        ) from None


def extract_text(path: PathLike) -> str:
    """Extract plain text from ``path`` using the strategy implied by its extension."""
    kind = detect_kind(path)
    extractor = _EXTRACTORS[kind]
    text = extractor(Path(path))
    logger.debug("extracted", extra={"extraction": {"path": str(path), "kind": kind.value, "chars": len(text)}})
    return text


def extract_plain_text(path: Path) -> str:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ExtractionFailed(f"Cannot read {path}: {exc}") from exc
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ExtractionFailed(f"{path} is not valid UTF-8: {exc}") from exc


def extract_pdf_text(path: Path) -> str:
    """Join the text of every page that has any, one blank line between pages."""
    if not path.is_file():
        raise ExtractionFailed(f"File not found: {path}")

    try:
        reader = PdfReader(str(path))
        page_texts = []
        for page in reader.pages:
            page_text = page.extract_text() or ""
            page_text = page_text.strip()
            if page_text:
                page_texts.append(page_text)
    except (OSError, ValueError, PyPdfError) as exc:
        raise ExtractionFailed(f"Cannot open PDF {path}: {exc}") from exc

    return PAGE_SEPARATOR.join(page_texts)


def extract_docx_text(path: Path) -> str:
    """Concatenate every body paragraph in document order, table cells included."""
    if not path.is_file():
        raise ExtractionFailed(f"File not found: {path}")

    try:
        document = docx.Document(str(path))
    except PackageNotFoundError as exc:
        raise ExtractionFailed(f"{path} is not a readable Office document package: {exc}") from exc
    except ValueError as exc:
        # python-docx raises ValueError when the main part is not a Word document.
        raise UnsupportedFormat(f"{path} does not contain a Word document body: {exc}") from exc
    except (KeyError, SyntaxError, zipfile.BadZipFile, OSError) as exc:
        raise ExtractionFailed(f"{path} has a missing or malformed document body: {exc}") from exc

    body = document.element.body
    return "\n".join(Paragraph(p, document).text for p in body.iter(qn("w:p"))).strip()


_EXTRACTORS: Dict[DocumentKind, Callable[[Path], str]] = {
    DocumentKind.PLAIN_TEXT: extract_plain_text,
    DocumentKind.PDF: extract_pdf_text,
    DocumentKind.OFFICE_XML: extract_docx_text,
}
