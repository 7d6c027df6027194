"""
Credit-Card Invoice Cycles

Cards have no stored balance. An invoice is a date window derived from
the card's closing day:

    cycle window = [closing date of month M-1, closing date of month M)

M for the current cycle (index 0) is this month while today is before
this month's closing date, and next month afterwards. Cycle i uses
month M-i. Closing days beyond a month's length fall on its last day.
"""

import calendar
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from extrato.models.ledger import CreditCard, InvoiceStatus, Transaction, TransactionType
from extrato.models.statement import InvoiceCycle


def day_in_month(year: int, month: int, day: int) -> date:
    """date(year, month, day) with day clamped to the month's length."""
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def current_invoice_month(card: CreditCard, today: date) -> date:
    """First day of month M of the open cycle."""
    this_month = today.replace(day=1)
    if today < day_in_month(today.year, today.month, card.closing_day):
        return this_month
    return this_month + relativedelta(months=1)


def due_date_for(card: CreditCard, invoice_month: date) -> date:
    """Due date of the invoice closing in invoice_month."""
    month = invoice_month
    if card.due_day <= card.closing_day:
        month = invoice_month + relativedelta(months=1)
    return day_in_month(month.year, month.month, card.due_day)


def invoice_total(transactions: Iterable[Transaction]) -> Decimal:
    """Expenses minus refunds, ignoring transactions marked as ignored."""
    total = Decimal("0.00")
    for transaction in transactions:
        if transaction.is_ignored:
            continue
        if transaction.type == TransactionType.EXPENSE:
            total += transaction.amount
        else:
            total -= transaction.amount
    return total


def invoice_cycles(
    card: CreditCard,
    transactions: Iterable[Transaction],
    today: Optional[date] = None,
    count: int = 3,
) -> list[InvoiceCycle]:
    """
    The current cycle and the count-1 before it, newest first.

    Only transactions owned by the card are considered.
    """
    today = today or date.today()
    owned = [t for t in transactions if t.account_id == card.id]
    anchor = current_invoice_month(card, today)

    cycles = []
    for index in range(count):
        month = anchor - relativedelta(months=index)
        previous = month - relativedelta(months=1)
        start = day_in_month(previous.year, previous.month, card.closing_day)
        end = day_in_month(month.year, month.month, card.closing_day)
        due = due_date_for(card, month)

        if index == 0:
            status = InvoiceStatus.OPEN
        elif today < due:
            status = InvoiceStatus.CLOSED
        else:
            status = InvoiceStatus.PAID

        members = sorted((t for t in owned if start <= t.date < end), key=lambda t: t.date)
        cycles.append(InvoiceCycle(
            card_id=card.id,
            index=index,
            start=start,
            end=end,
            due_date=due,
            status=status,
            total=invoice_total(members),
            transactions=members,
        ))
    return cycles
