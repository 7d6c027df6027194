"""
Data Models Package

All Pydantic models used by Extrato. Data flowing between the parser,
the ledger and the store must conform to these schemas.
"""

from extrato.models.ledger import (
    Account,
    AutomationRule,
    Category,
    CreditCard,
    Frequency,
    InvoiceStatus,
    SourceType,
    Transaction,
    TransactionInput,
    TransactionStatus,
    TransactionType,
    to_money,
)
from extrato.models.statement import (
    CandidateTransaction,
    ImportOutcome,
    ImportSummary,
    InvoiceCycle,
    ParsedStatement,
    StatementMetadata,
    ValidationIssue,
    ValidationResult,
)
from extrato.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AutomationRule",
    "Category",
    "CreditCard",
    "Frequency",
    "InvoiceStatus",
    "SourceType",
    "Transaction",
    "TransactionInput",
    "TransactionStatus",
    "TransactionType",
    "to_money",
    # Import models
    "CandidateTransaction",
    "ImportOutcome",
    "ImportSummary",
    "InvoiceCycle",
    "ParsedStatement",
    "StatementMetadata",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
