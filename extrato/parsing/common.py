"""
Parsing helpers shared by every statement parser: Portuguese month
names, Brazilian amount and date formats, installment markers and the
within-statement de-duplication.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from extrato.categorization.taxonomy import normalize_text
from extrato.models.ledger import to_money
from extrato.models.statement import CandidateTransaction


MONTH_ABBREVIATIONS = {
    "JAN": 1, "FEV": 2, "MAR": 3, "ABR": 4, "MAI": 5, "JUN": 6,
    "JUL": 7, "AGO": 8, "SET": 9, "OUT": 10, "NOV": 11, "DEZ": 12,
}

# Full names, without diacritics (MARÇO is matched as MARCO)
MONTH_NAMES = {
    "JANEIRO": 1, "FEVEREIRO": 2, "MARCO": 3, "ABRIL": 4, "MAIO": 5, "JUNHO": 6,
    "JULHO": 7, "AGOSTO": 8, "SETEMBRO": 9, "OUTUBRO": 10, "NOVEMBRO": 11, "DEZEMBRO": 12,
}

INSTALLMENT_SLASH = re.compile(r"(\d{1,2})/(\d{1,2})")
INSTALLMENT_VERBOSE = re.compile(r"parcela\s+(\d{1,2})\s+de\s+(\d{1,2})", re.IGNORECASE)

_DMY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_YMD = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_MINUS_SIGNS = "-−"


def month_from_name(text: str) -> Optional[int]:
    """Find a full Portuguese month name anywhere in text (e.g. a filename)."""
    upper = normalize_text(text).upper()
    for name, number in MONTH_NAMES.items():
        if name in upper:
            return number
    return None


def parse_amount(raw: object) -> Optional[Decimal]:
    """
    Parse a signed amount written the Brazilian or the plain way.

    "R$ 1.234,56", "-1234,56", "1234.56" and "1,234.56" are accepted.
    Returns None when the text holds no number.
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float, Decimal)):
        return to_money(raw)

    text = str(raw).replace("R$", "").replace("\xa0", "").replace(" ", "").strip()
    if not text:
        return None

    negative = False
    if text[0] in _MINUS_SIGNS:
        negative = True
        text = text[1:]
    elif text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    if text.endswith("-"):
        negative = True
        text = text[:-1]

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(".", "").replace(",", ".")
    elif text.count(".") > 1:
        text = text.replace(".", "")

    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return to_money(-value if negative else value)


def parse_day(raw: object) -> Optional[date]:
    """Parse DD/MM/YYYY (local convention) or ISO YYYY-MM-DD."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw).strip()
    try:
        match = _DMY.match(text)
        if match:
            day, month, year = (int(part) for part in match.groups())
            return date(year, month, day)
        match = _YMD.match(text)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return date(year, month, day)
    except ValueError:
        return None
    return None


def detect_installments(description: str) -> Optional[tuple[int, int]]:
    """
    Find an installment marker: "03/10" or "Parcela 3 de 10".

    Markers where the number exceeds the total (usually a day/month
    fragment) are ignored.
    """
    for pattern in (INSTALLMENT_SLASH, INSTALLMENT_VERBOSE):
        match = pattern.search(description)
        if match:
            number, total = int(match.group(1)), int(match.group(2))
            if 1 <= number <= total:
                return number, total
            return None
    return None


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    normalized = normalize_text(text)
    return any(keyword in normalized for keyword in keywords)


def dedupe_candidates(candidates: list[CandidateTransaction]) -> list[CandidateTransaction]:
    """Drop exact repeats of (date, description, amount), keeping the first."""
    seen = set()
    unique = []
    for candidate in candidates:
        key = (candidate.date, candidate.description, candidate.amount)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique
