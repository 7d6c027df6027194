"""
Statement Parsing Package

parse_statement() is the single entry point: it picks the delimited-row
parser for tabular input and otherwise asks the registered bank parsers,
in order, whether they recognize the text.
"""

import re
from datetime import date
from typing import Optional, Union

import structlog

from extrato.config import ImportSettings
from extrato.models.statement import ParsedStatement
from extrato.parsing.base import ParserRegistry, StatementParser
from extrato.parsing.csv_rows import CsvRowParser, has_required_headers
from extrato.parsing.nubank import NubankParser
from extrato.services.extraction import ExtractedDocument, read_delimited_rows


logger = structlog.get_logger(__name__)

_HEADER_SPLIT = re.compile(r"[,;\t|]")

RawInput = Union[str, ExtractedDocument, list]


def default_registry(
    settings: Optional[ImportSettings] = None,
    today: Optional[date] = None,
) -> ParserRegistry:
    """Registry with every bank parser we ship."""
    registry = ParserRegistry()
    registry.register(NubankParser(settings, today))
    return registry


def _looks_tabular(text: str) -> bool:
    for line in text.splitlines():
        if line.strip():
            return has_required_headers(_HEADER_SPLIT.split(line))
    return False


def parse_statement(
    raw_input: RawInput,
    filename_hint: Optional[str] = None,
    settings: Optional[ImportSettings] = None,
    today: Optional[date] = None,
    registry: Optional[ParserRegistry] = None,
) -> ParsedStatement:
    """
    Turn extracted input into candidates plus statement metadata.

    Args:
        raw_input: Statement text, an ExtractedDocument, or row dicts.
        filename_hint: Original filename; used for invoice month/year.

    Returns:
        ParsedStatement. An empty one means nothing was recognized,
        which is an informational outcome, not an error.
    """
    settings = settings or ImportSettings()

    if isinstance(raw_input, ExtractedDocument):
        filename_hint = filename_hint or raw_input.filename
        if raw_input.kind == "rows":
            return CsvRowParser(settings).parse_rows(raw_input.rows)
        raw_input = raw_input.text

    if isinstance(raw_input, list):
        rows = [
            {str(key).strip().lower(): value for key, value in row.items()}
            for row in raw_input
        ]
        return CsvRowParser(settings).parse_rows(rows)

    text = raw_input or ""
    # A header row wins over a bank name in the filename
    if _looks_tabular(text):
        return CsvRowParser(settings).parse_rows(read_delimited_rows(text))

    registry = registry or default_registry(settings, today)
    parser = registry.detect(text, filename_hint)
    if parser is not None:
        return parser.parse(text, filename_hint)

    logger.info("statement_not_recognized", filename=filename_hint, length=len(text))
    return ParsedStatement()


__all__ = [
    "CsvRowParser",
    "NubankParser",
    "ParserRegistry",
    "StatementParser",
    "default_registry",
    "parse_statement",
]
