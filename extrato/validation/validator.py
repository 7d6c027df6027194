"""
Two-Stage Validation of AI-Extracted Batches

DESIGN DECISION: AI output goes through two distinct stages before the
user sees it:

STAGE 1 - SCHEMA VALIDATION:
- Each raw item must have a readable date, amount and description
- Items that cannot become a CandidateTransaction are dropped, with a
  warning naming the item
- The batch fails only if items were returned but none survived

STAGE 2 - SEMANTIC VALIDATION:
- Future dates (installments excepted) and implausibly old dates
- Zero or absurd amounts
- Degenerate descriptions
- Candidates that already exist in the history
- Findings are warnings for the review screen, never silent fixes

Stage 2 only runs when stage 1 produced at least one candidate.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from extrato.categorization.categorizer import categorize
from extrato.config import ImportSettings
from extrato.ledger.duplicates import DuplicateDetector, signature
from extrato.models.ledger import SourceType, TransactionType
from extrato.models.statement import (
    CandidateTransaction,
    StatementMetadata,
    ValidationIssue,
    ValidationResult,
)
from extrato.parsing.common import detect_installments, parse_amount, parse_day
from extrato.services.storage.interface import DocumentStore, StorageError


logger = structlog.get_logger(__name__)

_INCOME_WORDS = {"income", "receita", "entrada", "credito", "credit"}
_EXPENSE_WORDS = {"expense", "despesa", "saida", "debito", "debit"}


def _kind(raw: Any) -> TransactionType:
    token = str(raw or "").strip().lower()
    if token in _INCOME_WORDS:
        return TransactionType.INCOME
    return TransactionType.EXPENSE


class CandidateValidator:
    """
    Validates extracted candidate batches through a two-stage pipeline.

    Stage 1: Schema validation (no storage needed)
    Stage 2: Semantic validation (storage optional, for history checks)
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        settings: Optional[ImportSettings] = None,
        today: Optional[date] = None,
    ):
        """
        Args:
            store: Used for the duplicate-of-history hint. If None, that
                check is skipped.
        """
        self._store = store
        self.settings = settings or ImportSettings()
        self._today = today

    @property
    def today(self) -> date:
        return self._today or date.today()

    def _coerce_item(
        self,
        item: dict[str, Any],
        metadata: StatementMetadata,
        source_type: SourceType,
    ) -> CandidateTransaction:
        """Build a candidate from one raw item. Raises ValueError/ValidationError."""
        day = parse_day(item.get("date"))
        if day is None:
            raise ValueError(f"unreadable date {item.get('date')!r}")
        amount = parse_amount(item.get("amount"))
        if amount is None:
            raise ValueError(f"unreadable amount {item.get('amount')!r}")
        description = str(item.get("description") or "").strip()
        installments = detect_installments(description)

        return CandidateTransaction(
            date=day,
            description=description,
            amount=abs(amount),
            type=_kind(item.get("type")),
            category=str(item.get("category") or "").strip() or categorize(description),
            source_type=source_type,
            bank_name=metadata.bank_name,
            installment_number=installments[0] if installments else None,
            total_installments=installments[1] if installments else None,
        )

    def _validate_schema(
        self,
        items: list[dict[str, Any]],
        metadata: StatementMetadata,
        source_type: SourceType,
    ) -> tuple[bool, list[CandidateTransaction], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, candidates, list_of_issues)
        """
        candidates = []
        issues = []

        for index, item in enumerate(items):
            try:
                candidates.append(self._coerce_item(item, metadata, source_type))
            except (ValueError, ValidationError) as e:
                logger.warning("ai_item_dropped", index=index, error=str(e))
                issues.append(ValidationIssue(
                    field="item",
                    issue_type="invalid_item",
                    message=f"Item {index + 1} was discarded: {e}",
                    severity="warning",
                    candidate_index=index,
                ))

        if items and not candidates:
            issues.append(ValidationIssue(
                field="extraction",
                issue_type="empty",
                message="None of the extracted items could be read",
                severity="error",
                suggested_fix="Try again, or import a CSV export instead",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, candidates, issues

    def _validate_semantic(
        self,
        candidates: list[CandidateTransaction],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        max_future_date = self.today + timedelta(days=self.settings.future_date_tolerance_days)
        min_reasonable_date = self.today - timedelta(days=self.settings.old_date_tolerance_days)
        max_amount = Decimal(str(self.settings.max_reasonable_amount))

        for index, candidate in enumerate(candidates):
            if candidate.date > max_future_date and candidate.total_installments is None:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message=f"'{candidate.description}' is dated in the future ({candidate.date})",
                    severity="warning",
                    candidate_index=index,
                    suggested_fix="Please verify the date is correct",
                ))

            if candidate.date < min_reasonable_date:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="suspicious_date",
                    message=f"'{candidate.description}' seems unusually old ({candidate.date})",
                    severity="warning",
                    candidate_index=index,
                    suggested_fix="Please verify the date was read correctly",
                ))

            if candidate.amount == 0:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="suspicious_value",
                    message=f"'{candidate.description}' has a zero amount",
                    severity="warning",
                    candidate_index=index,
                ))
            elif candidate.amount > max_amount:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="suspicious_value",
                    message=f"Amount (R$ {candidate.amount:,.2f}) seems unusually high",
                    severity="warning",
                    candidate_index=index,
                    suggested_fix="Please verify this amount is correct",
                ))

            description = candidate.description
            alpha_count = sum(1 for c in description if c.isalpha())
            if (
                len(description) < self.settings.min_description_length
                or alpha_count / len(description) < 0.3
            ):
                issues.append(ValidationIssue(
                    field="description",
                    issue_type="suspicious_value",
                    message=f"Description '{description}' looks unusual",
                    severity="warning",
                    candidate_index=index,
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _check_history(
        self,
        candidates: list[CandidateTransaction],
    ) -> list[ValidationIssue]:
        """Flag candidates that the reconciliation would skip as duplicates."""
        if self._store is None or not candidates:
            return []

        try:
            known = await DuplicateDetector(self._store, self.settings).existing_signatures(candidates)
        except StorageError as e:
            logger.warning("history_check_unavailable", error=str(e))
            return []

        return [
            ValidationIssue(
                field="duplicate",
                issue_type="potential_duplicate",
                message=f"'{candidate.description}' on {candidate.date} is already recorded",
                severity="info",
                candidate_index=index,
            )
            for index, candidate in enumerate(candidates)
            if signature(candidate) in known
        ]

    async def validate(
        self,
        items: list[dict[str, Any]],
        metadata: Optional[StatementMetadata] = None,
        source_type: SourceType = SourceType.CARD,
        check_duplicates: bool = True,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            items: Raw transaction dicts from the AI agent
            metadata: Statement metadata; its bank name is copied to
                every candidate
            check_duplicates: Whether to look for items already saved

        Returns:
            ValidationResult carrying the surviving candidates
        """
        metadata = metadata or StatementMetadata()
        all_issues = []
        warnings = []

        schema_valid, candidates, schema_issues = self._validate_schema(items, metadata, source_type)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid and candidates:
            semantic_valid, semantic_issues = self._validate_semantic(candidates)
            all_issues.extend(semantic_issues)
            if check_duplicates:
                all_issues.extend(await self._check_history(candidates))
        elif schema_valid:
            semantic_valid = True

        for issue in all_issues:
            if issue.severity == "warning":
                warnings.append(issue.message)

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            can_proceed_with_review=bool(candidates),
            candidates=candidates,
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Summary for the review screen.

        This is what we show to non-technical users.
        """
        if result.is_valid and not result.warnings:
            if not result.candidates:
                return "Nenhuma transação encontrada no documento."
            return f"✅ {len(result.candidates)} transações prontas para revisão."

        lines = []

        if not result.schema_valid:
            lines.append("❌ Não foi possível ler as transações extraídas:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Verifique os itens abaixo:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        if result.can_proceed_with_review:
            lines.append("Você pode continuar, mas revise com atenção.")
        else:
            lines.append("Corrija os problemas acima antes de continuar.")

        return "\n".join(lines)
