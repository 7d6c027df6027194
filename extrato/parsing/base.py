"""
Statement Parser Strategies

DESIGN DECISION: Bank statements have no stable schema, so every issuer
gets its own parser behind one interface. Shared logic (amounts, dates,
installments, categorization) lives in parsing.common and the
categorizer; adding a bank means adding one StatementParser subclass and
registering it.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

import structlog

from extrato.config import ImportSettings
from extrato.models.statement import ParsedStatement


logger = structlog.get_logger(__name__)


class StatementParser(ABC):
    """A parser for one statement layout."""

    #: Short identifier used in logs and audit events
    name: str = "base"

    def __init__(self, settings: Optional[ImportSettings] = None, today: Optional[date] = None):
        self.settings = settings or ImportSettings()
        self._today = today

    @property
    def today(self) -> date:
        return self._today or date.today()

    @abstractmethod
    def can_parse(self, text: str, filename: Optional[str] = None) -> bool:
        """Return True if the text looks like this parser's layout."""
        pass

    @abstractmethod
    def parse(self, text: str, filename: Optional[str] = None) -> ParsedStatement:
        """
        Turn statement text into candidates plus metadata.

        Must not raise on garbage lines; unparseable fragments are
        skipped with a warning.
        """
        pass


class ParserRegistry:
    """Ordered list of text parsers; the first that accepts the text wins."""

    def __init__(self):
        self._parsers: list[StatementParser] = []

    def register(self, parser: StatementParser) -> StatementParser:
        self._parsers.append(parser)
        return parser

    @property
    def parsers(self) -> list[StatementParser]:
        return list(self._parsers)

    def detect(self, text: str, filename: Optional[str] = None) -> Optional[StatementParser]:
        for parser in self._parsers:
            if parser.can_parse(text, filename):
                logger.debug("parser_selected", parser=parser.name, filename=filename)
                return parser
        return None
