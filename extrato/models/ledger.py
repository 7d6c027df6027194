"""
Ledger Data Models

Persisted entities of a user's ledger: transactions, accounts, credit
cards, categories and automation rules.

Documents in the store use camelCase field names (accountId,
installmentNumber, createdAt, ...). The models generate those aliases
and accept either spelling, so a document read back from the store
validates directly into its model.

Amounts are Decimal with two places in memory and plain numbers in the
store; dates are day-granular and stored as YYYY-MM-DD.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


CENTS = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Convert a number or numeric string to a 2-place Decimal."""
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ValueError(f"Not a valid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_day(value: Any) -> Any:
    """Accept dates, datetimes and ISO strings (date part only)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return value


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction. Amounts are always positive magnitudes."""
    INCOME = "income"
    EXPENSE = "expense"


class TransactionStatus(str, Enum):
    """
    Settlement status.

    Only COMPLETED transactions affect their account's balance.
    """
    PENDING = "pending"
    COMPLETED = "completed"


class Frequency(str, Enum):
    """Recurrence unit for repeated transactions and installments."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SourceType(str, Enum):
    """Whether a candidate belongs to a bank account or a credit-card invoice."""
    ACCOUNT = "account"
    CARD = "card"


class InvoiceStatus(str, Enum):
    """Presentational status of a credit-card invoice cycle."""
    OPEN = "Aberta"
    CLOSED = "Fechada"
    PAID = "Paga"


# =============================================================================
# BASE
# =============================================================================

class DocumentModel(BaseModel):
    """Base for models that round-trip through the document store."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=False,
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize for the store: camelCase keys, JSON types, no id, no Nones."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"id"},
            exclude_none=True,
        )

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]):
        """Build a model from a stored document and its id."""
        return cls.model_validate({**data, "id": doc_id})


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionFields(DocumentModel):
    """Fields shared by stored transactions and manual-entry input."""

    account_id: str = Field(
        ...,
        min_length=1,
        description="Owning account or credit card id"
    )
    date: date
    description: str = Field(..., min_length=1, max_length=300)
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    type: TransactionType
    category: str = Field(default="Outros", min_length=1)
    status: TransactionStatus = TransactionStatus.COMPLETED
    is_fixed: bool = False
    is_recurring: bool = False
    is_ignored: bool = False
    frequency: Optional[Frequency] = None
    installment_number: Optional[int] = Field(default=None, ge=1)
    total_installments: Optional[int] = Field(default=None, ge=1)
    bank_name: Optional[str] = None

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
    def validate_installments(self):
        """Installment fields come as a pair and number <= total."""
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
    def signed_amount(self) -> Decimal:
        """Amount with the sign implied by the type."""
        return self.amount if self.type == TransactionType.INCOME else -self.amount

    @property
    def affects_balance(self) -> bool:
        return self.status == TransactionStatus.COMPLETED


class Transaction(TransactionFields):
    """A persisted transaction."""

    id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TransactionInput(TransactionFields):
    """
    Manual-entry payload.

    repeat_count only matters when is_recurring and frequency are both set.
    """

    repeat_count: Optional[int] = None


# =============================================================================
# ACCOUNTS AND CARDS
# =============================================================================

class Account(DocumentModel):
    """
    A bank account.

    balance is a persisted cache: initial_balance plus the signed amounts
    of every completed transaction owned by the account.
    """

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    type: str = "Corrente"
    balance: Decimal = Decimal("0.00")
    initial_balance: Decimal = Decimal("0.00")
    color: str = "#21C25E"
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("balance", "initial_balance", mode="before")
    @classmethod
    def quantize_money(cls, v: Any) -> Decimal:
        return to_money(v)

    @field_serializer("balance", "initial_balance", when_used="json")
    def money_as_number(self, v: Decimal) -> float:
        return float(v)


class CreditCard(DocumentModel):
    """A credit card. Its invoice totals are computed on demand."""

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    limit: Decimal = Field(default=Decimal("0.00"), ge=0)
    closing_day: int = Field(..., ge=1, le=31)
    due_day: int = Field(..., ge=1, le=31)
    color: str = "#64748b"
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("limit", mode="before")
    @classmethod
    def quantize_limit(cls, v: Any) -> Decimal:
        return to_money(v)

    @field_serializer("limit", when_used="json")
    def limit_as_number(self, v: Decimal) -> float:
        return float(v)


# =============================================================================
# CATEGORIES
# =============================================================================

class Category(DocumentModel):
    """
    A transaction category.

    Uniqueness is on (normalized name, type); system entries win over
    custom ones with the same key.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=60)
    icon: str = "category"
    color: str = "#94A3B8"
    type: TransactionType
    is_custom: bool = False


# =============================================================================
# AUTOMATION RULES
# =============================================================================

class AutomationRule(DocumentModel):
    """
    A user rule applied to candidates before review and, on request,
    to existing history.

    Conditions are combined with AND; empty conditions match anything
    except that description_contains is required.
    """

    id: Optional[str] = None
    description_contains: str = Field(..., min_length=1)
    amount_min: Optional[Decimal] = None
    amount_max: Optional[Decimal] = None
    account_id: Optional[str] = None

    category: Optional[str] = None
    rename_to: Optional[str] = None
    is_ignored: Optional[bool] = None

    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_serializer("amount_min", "amount_max", when_used="json")
    def bound_as_number(self, v: Optional[Decimal]) -> Optional[float]:
        return float(v) if v is not None else None
