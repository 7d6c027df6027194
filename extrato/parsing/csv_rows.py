"""
Delimited-Row Parser

Fallback path for CSV/TSV exports from any bank. Column names vary, so
each canonical field is looked up through a list of header synonyms.

Sign inference, in order:
1. A dedicated sign column (tipo/type/natureza) decides when present.
2. A negative amount is an expense.
3. Income keywords in the description (depósito, recebido, salário,
   estorno) make it income.
4. Otherwise expense.
"""

from typing import Optional

import structlog
from pydantic import ValidationError

from extrato.categorization.categorizer import categorize
from extrato.categorization.taxonomy import normalize_text
from extrato.config import ImportSettings
from extrato.models.ledger import SourceType, TransactionType
from extrato.models.statement import CandidateTransaction, ParsedStatement, StatementMetadata
from extrato.parsing.common import (
    contains_any,
    detect_installments,
    parse_amount,
    parse_day,
)


logger = structlog.get_logger(__name__)

BANK_NAME = "Importado (CSV)"
MISSING_DESCRIPTION = "Sem descrição"

DATE_HEADERS = ("date", "data", "dt", "posted date", "dia")
DESCRIPTION_HEADERS = (
    "title", "titulo", "título", "description", "descrição", "descricao",
    "estabelecimento", "historico", "histórico", "memo",
)
AMOUNT_HEADERS = ("amount", "valor", "value", "quantia")
CATEGORY_HEADERS = ("category", "categoria")
SIGN_HEADERS = ("tipo", "type", "natureza")

INCOME_KEYWORDS = ("deposito", "recebido", "salario", "estorno")
INCOME_SIGN_VALUES = {"c", "cr", "credito", "credit", "income", "receita", "entrada"}
EXPENSE_SIGN_VALUES = {"d", "db", "debito", "debit", "expense", "despesa", "saida"}


def _first(row: dict[str, str], headers: tuple[str, ...]) -> Optional[str]:
    for header in headers:
        value = row.get(header)
        if value is not None and str(value).strip() != "":
            return str(value).strip()
    return None


def has_required_headers(headers: list[str]) -> bool:
    """True if a header row names both a date and an amount column."""
    lowered = {h.strip().lower() for h in headers}
    return bool(lowered & set(DATE_HEADERS)) and bool(lowered & set(AMOUNT_HEADERS))


class CsvRowParser:
    """Parser for rows produced by text_extractor.read_delimited_rows."""

    name = "csv"

    def __init__(self, settings: Optional[ImportSettings] = None):
        self.settings = settings or ImportSettings()

    def parse_rows(self, rows: list[dict[str, str]]) -> ParsedStatement:
        candidates = []
        for index, row in enumerate(rows):
            candidate = self._candidate_from_row(index, row)
            if candidate is not None:
                candidates.append(candidate)

        skipped = len(rows) - len(candidates)
        if skipped:
            logger.warning("csv_rows_skipped", skipped=skipped, total=len(rows))

        return ParsedStatement(
            candidates=candidates,
            metadata=StatementMetadata(bank_name=BANK_NAME),
            parser_name=self.name,
        )

    def _infer_type(self, row: dict[str, str], signed_amount, description: str) -> TransactionType:
        sign = _first(row, SIGN_HEADERS)
        if sign is not None:
            token = normalize_text(sign)
            if token in INCOME_SIGN_VALUES:
                return TransactionType.INCOME
            if token in EXPENSE_SIGN_VALUES:
                return TransactionType.EXPENSE
        if signed_amount < 0:
            return TransactionType.EXPENSE
        if contains_any(description, INCOME_KEYWORDS):
            return TransactionType.INCOME
        return TransactionType.EXPENSE

    def _candidate_from_row(self, index: int, row: dict[str, str]) -> Optional[CandidateTransaction]:
        raw_date = _first(row, DATE_HEADERS)
        raw_amount = _first(row, AMOUNT_HEADERS)
        if raw_date is None or raw_amount is None:
            logger.debug("csv_row_incomplete", row=index)
            return None

        day = parse_day(raw_date)
        signed_amount = parse_amount(raw_amount)
        if day is None or signed_amount is None:
            logger.warning("csv_row_unreadable", row=index, date=raw_date, amount=raw_amount)
            return None

        description = _first(row, DESCRIPTION_HEADERS) or MISSING_DESCRIPTION
        installments = detect_installments(description)

        try:
            return CandidateTransaction(
                date=day,
                description=description,
                amount=abs(signed_amount),
                type=self._infer_type(row, signed_amount, description),
                category=_first(row, CATEGORY_HEADERS) or categorize(description),
                source_type=SourceType.CARD,
                bank_name=BANK_NAME,
                installment_number=installments[0] if installments else None,
                total_installments=installments[1] if installments else None,
            )
        except ValidationError as e:
            logger.warning("csv_row_rejected", row=index, error=str(e))
            return None
