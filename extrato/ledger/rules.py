"""
Automation Rules

A rule matches on description (case-insensitive substring), optional
amount bounds and an optional owning account, and can set a category,
rename the description or mark the transaction as ignored.

Rules run on candidates before the user reviews them and, on request,
over existing history. Neither path touches amounts, types or status,
so balances are never affected.
"""

from decimal import Decimal
from typing import Any, Optional

import structlog

from extrato.models.ledger import AutomationRule, to_money
from extrato.models.statement import CandidateTransaction
from extrato.services.storage.interface import (
    AUTOMATION_RULES,
    TRANSACTIONS,
    DocumentStore,
)


logger = structlog.get_logger(__name__)

HISTORY_LIMIT = 500


def rule_matches(
    rule: AutomationRule,
    description: str,
    amount: Decimal,
    account_id: Optional[str] = None,
) -> bool:
    if not rule.is_active:
        return False
    if rule.description_contains.lower() not in description.lower():
        return False
    if rule.account_id and account_id != rule.account_id:
        return False
    if rule.amount_min is not None and amount < rule.amount_min:
        return False
    if rule.amount_max is not None and amount > rule.amount_max:
        return False
    return True


def rule_updates(rule: AutomationRule) -> dict[str, Any]:
    """Field changes a rule makes, keyed by model field name."""
    updates: dict[str, Any] = {}
    if rule.category:
        updates["category"] = rule.category
    if rule.rename_to:
        updates["description"] = rule.rename_to
    if rule.is_ignored is not None:
        updates["is_ignored"] = rule.is_ignored
    return updates


def apply_rules(
    candidates: list[CandidateTransaction],
    rules: list[AutomationRule],
    account_id: Optional[str] = None,
) -> list[CandidateTransaction]:
    """
    Return candidates rewritten by the rules. Rules run in order, so a
    later matching rule overrides an earlier one on the same field.
    Matching always uses the original description.
    """
    result = []
    for candidate in candidates:
        updates: dict[str, Any] = {}
        for rule in rules:
            if rule_matches(rule, candidate.description, candidate.amount, account_id):
                updates.update(rule_updates(rule))
        result.append(candidate.model_copy(update=updates) if updates else candidate)
    return result


async def load_rules(store: DocumentStore) -> list[AutomationRule]:
    docs = await store.list_all(AUTOMATION_RULES)
    return [AutomationRule.from_document(doc.id, doc.data) for doc in docs]


async def save_rule(store: DocumentStore, rule: AutomationRule) -> AutomationRule:
    saved = rule.model_copy(update={"id": rule.id or store.new_id(AUTOMATION_RULES)})
    await store.batch().set(AUTOMATION_RULES, saved.id, saved.to_document()).commit()
    logger.info("automation_rule_saved", rule_id=saved.id, contains=saved.description_contains)
    return saved


async def apply_rule_to_history(
    store: DocumentStore,
    rule: AutomationRule,
    limit: int = HISTORY_LIMIT,
) -> int:
    """
    Apply a rule to the most recent stored transactions.

    Only the newest `limit` transactions by date are considered.

    Returns:
        Number of transactions updated
    """
    updates = rule_updates(rule)
    if not updates:
        return 0
    # Stored documents use camelCase keys
    stored_updates = {"isIgnored" if key == "is_ignored" else key: value for key, value in updates.items()}

    docs = await store.list_all(TRANSACTIONS)
    recent = sorted(docs, key=lambda doc: str(doc.data.get("date", "")), reverse=True)[:limit]

    batch = store.batch()
    for doc in recent:
        try:
            amount = to_money(doc.data.get("amount", 0))
        except ValueError:
            logger.warning("history_amount_unreadable", doc_id=doc.id)
            continue
        description = str(doc.data.get("description", ""))
        if rule_matches(rule, description, amount, doc.data.get("accountId")):
            batch.update(TRANSACTIONS, doc.id, stored_updates)

    if len(batch):
        await batch.commit()
    logger.info("automation_rule_applied", rule_id=rule.id, updated=len(batch))
    return len(batch)
