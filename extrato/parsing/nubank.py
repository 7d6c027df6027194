"""
Nubank Credit-Card Invoice Parser

Reads the text of a Nubank invoice PDF. Transactions appear as
"DD MMM description R$ amount" fragments, e.g.

    05 OUT Uber *Trip R$ 14,90
    12 NOV Loja Exemplo 03/10 R$ 120,00
    20 NOV Estorno de compra -R$ 35,00

Lines are joined before scanning because the PDF layout often splits a
transaction over two extracted lines.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Optional

import structlog
from pydantic import ValidationError

from extrato.categorization.categorizer import categorize
from extrato.models.ledger import SourceType, TransactionType
from extrato.models.statement import CandidateTransaction, ParsedStatement, StatementMetadata
from extrato.parsing.base import StatementParser
from extrato.parsing.common import (
    MONTH_ABBREVIATIONS,
    contains_any,
    dedupe_candidates,
    detect_installments,
    month_from_name,
    parse_amount,
)


logger = structlog.get_logger(__name__)

BANK_NAME = "Nubank"

TRANSACTION_PATTERN = re.compile(
    r"(?<!\d)(\d{2})\s+(JAN|FEV|MAR|ABR|MAI|JUN|JUL|AGO|SET|OUT|NOV|DEZ)\s+(.*?)\s+"
    r"([-−]?)\s?(?:R\$\s?)?([-−]?)"
    r"(\d{1,3}(?:\.\d{3})+,\d{2}|\d+,\d{2}|\d+\.\d{2})(?!\d)",
    re.IGNORECASE,
)

LIMIT_PATTERN = re.compile(r"Limite total.*?R\$\s*([\d\.,]+)", re.IGNORECASE)
DUE_PATTERN = re.compile(r"vencimento:?\s*(\d{1,2})\s*([A-Z]{3})", re.IGNORECASE)
CLOSING_PATTERN = re.compile(r"fechamento:?\s*(\d{1,2})\s*[A-Z]{3}", re.IGNORECASE)
TEXT_YEAR_PATTERNS = (
    re.compile(r"FATURA.*?(20\d{2})", re.IGNORECASE),
    re.compile(r"Vencimento.*?(20\d{2})", re.IGNORECASE),
)
FILENAME_YEAR_PATTERN = re.compile(r"20\d{2}")
WRAPPED_DATE_PATTERN = re.compile(r"^a \d{2} [A-Z]{3}", re.IGNORECASE)

# Totals, limits and carried balances that look like transactions
BOILERPLATE = (
    "total a pagar",
    "limite total",
    "saldo anterior",
    "total de compras",
    "pagamento de fatura",
)

# The cardholder paying this invoice; not a new expense
INVOICE_PAYMENT = ("pagamento em", "pagamento recebido")

REFUND_KEYWORDS = ("estorno", "cancelamento", "credito de", "reembolso")


class NubankParser(StatementParser):
    """Reference parser for Nubank card invoices."""

    name = "nubank"

    def can_parse(self, text: str, filename: Optional[str] = None) -> bool:
        haystack = f"{filename or ''} {text[:5000]}".lower()
        if "nubank" in haystack or "nu pagamentos" in haystack:
            return True
        return TRANSACTION_PATTERN.search(text) is not None

    def parse(self, text: str, filename: Optional[str] = None) -> ParsedStatement:
        metadata = self.extract_metadata(text, filename)
        invoice_year = metadata.invoice_year
        invoice_month = metadata.invoice_month

        buffer = "  ".join(text.split("\n"))
        candidates = []
        for match in TRANSACTION_PATTERN.finditer(buffer):
            candidate = self._candidate_from_match(match, invoice_year, invoice_month)
            if candidate is not None:
                candidates.append(candidate)

        unique = dedupe_candidates(candidates)
        if len(unique) < len(candidates):
            logger.info(
                "statement_repeats_collapsed",
                parser=self.name,
                removed=len(candidates) - len(unique),
            )
        return ParsedStatement(candidates=unique, metadata=metadata, parser_name=self.name)

    def extract_metadata(self, text: str, filename: Optional[str] = None) -> StatementMetadata:
        """Limit, due day, closing day, invoice year and invoice month."""
        limit: Optional[Decimal] = None
        limit_match = LIMIT_PATTERN.search(text)
        if limit_match:
            parsed = parse_amount(limit_match.group(1))
            if parsed is not None and parsed >= 0:
                limit = parsed

        due_day: Optional[int] = None
        due_month: Optional[int] = None
        due_match = DUE_PATTERN.search(text)
        if due_match:
            day = int(due_match.group(1))
            if 1 <= day <= 31:
                due_day = day
            due_month = MONTH_ABBREVIATIONS.get(due_match.group(2).upper())

        closing_day: Optional[int] = None
        closing_match = CLOSING_PATTERN.search(text)
        if closing_match and 1 <= int(closing_match.group(1)) <= 31:
            closing_day = int(closing_match.group(1))
        elif due_day is not None:
            offset = self.settings.closing_day_offset
            closing_day = due_day - offset if due_day > offset else 1

        invoice_month = (month_from_name(filename) if filename else None) or due_month

        return StatementMetadata(
            bank_name=BANK_NAME,
            limit=limit,
            closing_day=closing_day,
            due_day=due_day,
            invoice_year=self._invoice_year(text, filename),
            invoice_month=invoice_month,
        )

    def _invoice_year(self, text: str, filename: Optional[str]) -> int:
        if filename:
            match = FILENAME_YEAR_PATTERN.search(filename)
            if match:
                return int(match.group(0))
        for pattern in TEXT_YEAR_PATTERNS:
            match = pattern.search(text)
            if match:
                return int(match.group(1))
        return self.today.year

    def _candidate_from_match(
        self,
        match: re.Match,
        invoice_year: int,
        invoice_month: Optional[int],
    ) -> Optional[CandidateTransaction]:
        day_token, month_token, raw_description = match.group(1), match.group(2), match.group(3)
        negative = bool(match.group(4) or match.group(5))

        description = " ".join(raw_description.split())
        marker = description.find("R$")
        if marker > 0:
            description = description[:marker].strip()

        lowered = description.lower()
        if (
            any(phrase in lowered for phrase in BOILERPLATE)
            or len(description) < self.settings.min_description_length
            or WRAPPED_DATE_PATTERN.match(description)
        ):
            return None

        if any(phrase in lowered for phrase in INVOICE_PAYMENT):
            return None

        amount = parse_amount(match.group(6))
        if amount is None:
            logger.warning("statement_amount_unreadable", fragment=match.group(0)[:120])
            return None

        kind = TransactionType.EXPENSE
        if negative or contains_any(description, REFUND_KEYWORDS):
            kind = TransactionType.INCOME
        amount = abs(amount)

        month = MONTH_ABBREVIATIONS[month_token.upper()]
        year = invoice_year
        if invoice_month == 1 and month == 12:
            year = invoice_year - 1

        try:
            when = date(year, month, int(day_token))
        except ValueError:
            logger.warning("statement_date_invalid", fragment=match.group(0)[:120])
            return None

        installments = detect_installments(description)
        try:
            return CandidateTransaction(
                date=when,
                description=description,
                amount=amount,
                type=kind,
                category=categorize(description),
                source_type=SourceType.CARD,
                bank_name=BANK_NAME,
                installment_number=installments[0] if installments else None,
                total_installments=installments[1] if installments else None,
            )
        except ValidationError as e:
            logger.warning(
                "statement_line_rejected",
                fragment=match.group(0)[:120],
                error=str(e),
            )
            return None
