"""
Text Extraction

Turns an uploaded document into something the parsers can read:
- PDF statements become page-ordered plain text. pdfplumber gives us
  word boxes; a new line starts whenever the vertical position jumps by
  more than the configured threshold.
- Delimited exports (CSV, TSV, semicolon files) become a list of row
  dicts whose keys are the lower-cased, trimmed headers.
- Anything else that decodes as text is passed through.

Malformed input degrades instead of failing: an unreadable page is
skipped, bad CSV lines are dropped. Only a document we cannot open at
all raises ExtractionError.
"""

import csv
import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

import pandas as pd
import pdfplumber
import structlog

from extrato.config import ImportSettings


logger = structlog.get_logger(__name__)

PDF_MAGIC = b"%PDF"
DELIMITED_SUFFIXES = {".csv", ".tsv"}
DELIMITED_MIME_TYPES = {"text/csv", "text/tab-separated-values", "application/vnd.ms-excel"}


class ExtractionError(Exception):
    """The document could not be read. Safe to retry with another file."""
    pass


class UnsupportedDocumentError(ExtractionError):
    """The document type is not one we can extract."""

    def __init__(self, detected_type: str, message: str):
        self.detected_type = detected_type
        super().__init__(message)


@dataclass
class ExtractedDocument:
    """Result of extraction: either text or delimited rows."""

    kind: str  # "text" | "rows"
    text: str = ""
    rows: list[dict[str, str]] = field(default_factory=list)
    filename: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.rows) if self.kind == "rows" else len(self.text)


def assemble_lines(words: Iterable[dict], threshold: float = 5.0) -> str:
    """
    Join positioned words into text, breaking lines on vertical jumps.

    Each word is a mapping with "text" and "top" (distance from the top
    of the page). Words on the same visual row are joined with a space.
    """
    pieces = []
    last_top: Optional[float] = None
    for word in words:
        text = word.get("text", "")
        top = float(word.get("top", 0.0))
        if last_top is not None and abs(top - last_top) > threshold:
            pieces.append("\n" + text)
        else:
            pieces.append(text)
        last_top = top
    return " ".join(pieces)


def extract_pdf_text(
    source: Union[bytes, str, Path],
    line_break_threshold: float = 5.0,
) -> str:
    """
    Extract page-ordered text from a PDF.

    Raises:
        ExtractionError: If the file is not a readable PDF.
    """
    stream = io.BytesIO(source) if isinstance(source, bytes) else source
    pages_text = []
    try:
        with pdfplumber.open(stream) as pdf:
            for number, page in enumerate(pdf.pages, start=1):
                try:
                    words = page.extract_words(use_text_flow=True)
                except Exception as e:
                    logger.warning("pdf_page_unreadable", page=number, error=str(e))
                    continue
                pages_text.append(assemble_lines(words, line_break_threshold))
    except Exception as e:
        raise ExtractionError(f"Not a readable PDF: {e}") from e

    if not any(text.strip() for text in pages_text):
        logger.warning("pdf_without_text", pages=len(pages_text))

    return "\n" + "\n".join(pages_text)


def decode_text(data: bytes) -> str:
    """Decode bank exports, which come as UTF-8 or Latin-1."""
    for encoding in ("utf-8-sig", "cp1252"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("latin-1")


def read_delimited_rows(text: str) -> list[dict[str, str]]:
    """
    Read a delimited export into row dicts.

    The delimiter is sniffed. Header keys are lower-cased and trimmed;
    values are kept as trimmed strings so amounts like "1.234,56" reach
    the parser untouched.
    """
    if not text.strip():
        return []
    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep=None,
            engine="python",
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            on_bad_lines="skip",
        )
    except (pd.errors.EmptyDataError, pd.errors.ParserError, csv.Error) as e:
        logger.warning("delimited_read_failed", error=str(e))
        return []

    df.columns = [str(column).strip().lower() for column in df.columns]
    rows = []
    for record in df.to_dict(orient="records"):
        rows.append({key: str(value).strip() for key, value in record.items()})
    return rows


def _looks_delimited(filename: Optional[str], mime_type: Optional[str]) -> bool:
    if mime_type and mime_type.split(";")[0].strip() in DELIMITED_MIME_TYPES:
        return True
    if filename and Path(filename).suffix.lower() in DELIMITED_SUFFIXES:
        return True
    return False


def extract_document(
    data: Union[bytes, str],
    filename: Optional[str] = None,
    mime_type: Optional[str] = None,
    settings: Optional[ImportSettings] = None,
) -> ExtractedDocument:
    """
    Extract text or rows from an uploaded document.

    Args:
        data: Raw file bytes, or text the user pasted.
        filename: Original filename; its extension decides CSV vs text.
        mime_type: Optional content type from the upload.

    Raises:
        ExtractionError: The document could not be opened.
        UnsupportedDocumentError: The document is a binary we cannot read.
    """
    settings = settings or ImportSettings()

    if isinstance(data, str):
        if _looks_delimited(filename, mime_type):
            return ExtractedDocument(kind="rows", rows=read_delimited_rows(data), filename=filename)
        return ExtractedDocument(kind="text", text=data, filename=filename)

    is_pdf = data[:4] == PDF_MAGIC or (mime_type or "").startswith("application/pdf")
    if is_pdf or (filename and filename.lower().endswith(".pdf")):
        text = extract_pdf_text(data, settings.line_break_threshold)
        return ExtractedDocument(kind="text", text=text, filename=filename)

    if b"\x00" in data[:1024]:
        raise UnsupportedDocumentError(
            detected_type=mime_type or Path(filename or "").suffix or "binary",
            message="Only PDF statements and CSV/text exports can be imported",
        )

    text = decode_text(data)
    if _looks_delimited(filename, mime_type):
        return ExtractedDocument(kind="rows", rows=read_delimited_rows(text), filename=filename)
    return ExtractedDocument(kind="text", text=text, filename=filename)
