"""
Statement Import Models

Everything that exists only while an import is in flight: candidate
transactions produced by a parser or the AI, the metadata detected on
the statement, validation results and the summary of a reconciliation.

A CandidateTransaction is PROPOSED data. It is never persisted as-is;
the reconciliation writer turns approved candidates into Transactions.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from extrato.models.ledger import (
    DocumentModel,
    InvoiceStatus,
    SourceType,
    Transaction,
    TransactionType,
    to_day,
    to_money,
)


class CandidateTransaction(DocumentModel):
    """A parser- or AI-produced transaction awaiting user approval."""

    date: date
    description: str = Field(..., min_length=1, max_length=300)
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    type: TransactionType = TransactionType.EXPENSE
    category: str = Field(default="Outros", min_length=1)
    source_type: SourceType = SourceType.CARD
    bank_name: Optional[str] = None
    installment_number: Optional[int] = Field(default=None, ge=1)
    total_installments: Optional[int] = Field(default=None, ge=1)
    is_ignored: bool = False
    selected: bool = True

    @field_validator("amount", mode="before")
    @classmethod
    def quantize_amount(cls, v: Any) -> Decimal:
        return to_money(v)

    @field_validator("date", mode="before")
    @classmethod
    def date_only(cls, v: Any) -> Any:
        return to_day(v)

    @field_serializer("amount", when_used="json")
    def amount_as_number(self, v: Decimal) -> float:
        return float(v)

    @model_validator(mode="after")
    def validate_installments(self) -> "CandidateTransaction":
        if (self.installment_number is None) != (self.total_installments is None):
            raise ValueError(
                "installment_number and total_installments must be set together"
            )
        if (
            self.installment_number is not None
            and self.installment_number > self.total_installments
        ):
            raise ValueError("installment_number cannot exceed total_installments")
        return self

    @property
    def has_future_installments(self) -> bool:
        return (
            self.total_installments is not None
            and self.total_installments > self.installment_number
        )


class StatementMetadata(DocumentModel):
    """Invoice-level facts detected on a statement."""

    bank_name: Optional[str] = None
    limit: Optional[Decimal] = Field(default=None, ge=0)
    closing_day: Optional[int] = Field(default=None, ge=1, le=31)
    due_day: Optional[int] = Field(default=None, ge=1, le=31)
    invoice_year: Optional[int] = None
    invoice_month: Optional[int] = Field(default=None, ge=1, le=12)


class ParsedStatement(BaseModel):
    """Output of a statement parser: candidates plus metadata."""

    candidates: list[CandidateTransaction] = Field(default_factory=list)
    metadata: StatementMetadata = Field(default_factory=StatementMetadata)
    parser_name: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        """Nothing recognized. Informational, not an error."""
        return not self.candidates


# =============================================================================
# RECONCILIATION RESULT
# =============================================================================

class ImportOutcome(str, Enum):
    """What a reconciliation did, for the user-facing notice."""
    SAVED = "saved"
    NOTHING_SELECTED = "nothing_selected"
    ALL_DUPLICATES = "all_duplicates"


class ImportSummary(DocumentModel):
    """
    Counts reported back to the caller of reconcile_import_batch.

    A batch where everything was a duplicate is a normal outcome and is
    reported as ALL_DUPLICATES, distinct from an empty selection.
    """

    saved_count: int = Field(default=0, ge=0)
    duplicates_skipped: int = Field(default=0, ge=0)
    future_installments_created: int = Field(default=0, ge=0)
    accounts_created: list[str] = Field(default_factory=list)
    cards_created: list[str] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list, exclude=True)

    @property
    def outcome(self) -> ImportOutcome:
        if self.saved_count > 0:
            return ImportOutcome.SAVED
        if self.duplicates_skipped > 0:
            return ImportOutcome.ALL_DUPLICATES
        return ImportOutcome.NOTHING_SELECTED


# =============================================================================
# INVOICE CYCLES
# =============================================================================

class InvoiceCycle(BaseModel):
    """
    One credit-card invoice window, derived on demand.

    The window is [start, end): it starts on the previous closing date
    and ends on this cycle's closing date.
    """

    card_id: str
    index: int = Field(..., ge=0, description="0 = current cycle, 1 = previous, ...")
    start: date
    end: date
    due_date: date
    status: InvoiceStatus
    total: Decimal = Decimal("0.00")
    transactions: list[Transaction] = Field(default_factory=list)

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found on a candidate batch."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'invalid_item', 'future_date', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    candidate_index: Optional[int] = Field(
        default=None,
        description="Position of the offending candidate in the batch"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation of an extracted batch.

    Stage 1: Schema validation (each raw item must become a candidate)
    Stage 2: Semantic validation (dates, amounts, installments, history)
    """

    batch_id: UUID = Field(default_factory=uuid4)
    validated_at: datetime = Field(default_factory=datetime.utcnow)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool
    can_proceed_with_review: bool

    candidates: list[CandidateTransaction] = Field(default_factory=list)
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")
