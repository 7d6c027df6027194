"""
Ledger Package

Everything that writes to a user's ledger: installment expansion,
duplicate detection, account/card resolution, the reconciliation writer,
manual transaction edits, invoice cycles and automation rules.
"""

from extrato.ledger.balance import (
    BalanceDelta,
    BalanceInvariantError,
    expected_balance,
    verify_account_balance,
)
from extrato.ledger.duplicates import DuplicateDetector, is_duplicate, signature
from extrato.ledger.installments import (
    MAX_REPEAT_COUNT,
    clamp_count,
    expand_dates,
    remaining_installments,
    renumber_description,
)
from extrato.ledger.invoices import invoice_cycles, invoice_total
from extrato.ledger.reconciliation import ReconciliationError, ReconciliationWriter
from extrato.ledger.resolver import EntityResolver, Resolution, ResolutionError
from extrato.ledger.rules import (
    apply_rule_to_history,
    apply_rules,
    load_rules,
    rule_matches,
    save_rule,
)
from extrato.ledger.transactions import TransactionService

__all__ = [
    # Balance
    "BalanceDelta",
    "BalanceInvariantError",
    "expected_balance",
    "verify_account_balance",
    # Duplicates
    "DuplicateDetector",
    "is_duplicate",
    "signature",
    # Installments
    "MAX_REPEAT_COUNT",
    "clamp_count",
    "expand_dates",
    "remaining_installments",
    "renumber_description",
    # Invoices
    "invoice_cycles",
    "invoice_total",
    # Reconciliation
    "ReconciliationError",
    "ReconciliationWriter",
    "EntityResolver",
    "Resolution",
    "ResolutionError",
    # Rules
    "apply_rule_to_history",
    "apply_rules",
    "load_rules",
    "rule_matches",
    "save_rule",
    # Manual entry
    "TransactionService",
]
