"""
Installment Expander

Dates for repeated transactions and installment plans. Instance i is
always computed from the base date (base + i units), never from the
previous instance, so a purchase on the 31st lands on the last day of
shorter months and returns to the 31st afterwards.
"""

import re
from datetime import date
from typing import Optional

from dateutil.relativedelta import relativedelta

from extrato.models.ledger import Frequency


MAX_REPEAT_COUNT = 60

_UNITS = {
    Frequency.DAILY: lambda n: relativedelta(days=n),
    Frequency.WEEKLY: lambda n: relativedelta(weeks=n),
    Frequency.MONTHLY: lambda n: relativedelta(months=n),
    Frequency.YEARLY: lambda n: relativedelta(years=n),
}

_SLASH_MARKER = re.compile(r"(\d{1,2})/(\d{1,2})")
_VERBOSE_MARKER = re.compile(r"(parcela\s+)(\d{1,2})(\s+de\s+)(\d{1,2})", re.IGNORECASE)


def clamp_count(count: Optional[int], cap: int = MAX_REPEAT_COUNT) -> int:
    """Invalid counts become 1; anything above the cap is cut to the cap."""
    if count is None or isinstance(count, bool):
        return 1
    try:
        count = int(count)
    except (TypeError, ValueError):
        return 1
    if count < 1:
        return 1
    return min(count, cap, MAX_REPEAT_COUNT)


def expand_dates(
    base: date,
    frequency: Frequency,
    count: Optional[int],
    cap: int = MAX_REPEAT_COUNT,
) -> list[tuple[int, date]]:
    """
    Return [(index, date)] for indices 0..count-1.

    Index 0 is the base date itself.
    """
    step = _UNITS[Frequency(frequency)]
    return [(index, base + step(index)) for index in range(clamp_count(count, cap))]


def renumber_description(description: str, number: int, total: int) -> str:
    """
    Rewrite the installment marker of a description for another index.

    "Loja 03/10" becomes "Loja 04/10" (zero padding kept), "Parcela 3 de
    10" becomes "Parcela 4 de 10". Without a marker " (4/10)" is appended.
    """
    match = _SLASH_MARKER.search(description)
    if match:
        width = len(match.group(1))
        replacement = f"{number:0{width}d}/{match.group(2)}"
        return description[:match.start()] + replacement + description[match.end():]

    match = _VERBOSE_MARKER.search(description)
    if match:
        return _VERBOSE_MARKER.sub(
            lambda m: f"{m.group(1)}{number}{m.group(3)}{m.group(4)}",
            description,
            count=1,
        )

    return f"{description} ({number}/{total})"


def remaining_installments(
    base: date,
    installment_number: int,
    total_installments: int,
    cap: int = MAX_REPEAT_COUNT,
) -> list[tuple[int, date]]:
    """
    The installments still to come after an already-posted one.

    Returns [(installment_number, date)] for numbers n+1..T, each dated
    one month per step after the base date.
    """
    remaining = total_installments - installment_number
    if remaining <= 0:
        return []
    dates = expand_dates(base, Frequency.MONTHLY, remaining + 1, cap)
    return [(installment_number + index, day) for index, day in dates[1:]]
