"""
Category Taxonomy

One immutable table of system categories per transaction type, plus the
merge that layers a user's custom categories on top of it.

Category names are display strings and are stored on transactions as-is,
so renaming an entry here orphans historical transactions.
"""

import unicodedata
from typing import Iterable, Optional

from extrato.models.ledger import Category, TransactionType


FALLBACK_CATEGORY = "Outros"


def normalize_text(value: str) -> str:
    """Lower-case, strip diacritics and trim."""
    decomposed = unicodedata.normalize("NFD", value.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c)).strip()


def _table(kind: TransactionType, rows: list[tuple[str, str, str]]) -> tuple[Category, ...]:
    return tuple(
        Category(name=name, icon=icon, color=color, type=kind, is_custom=False)
        for name, icon, color in rows
    )


SYSTEM_INCOME_CATEGORIES: tuple[Category, ...] = _table(TransactionType.INCOME, [
    ("Salário", "payments", "#10B981"),
    ("Freelance", "computer", "#0EA5E9"),
    ("Bônus", "stars", "#F59E0B"),
    ("Comissões", "trending_up", "#8B5CF6"),
    ("Aluguel recebido", "real_estate_agent", "#6366F1"),
    ("Investimentos", "show_chart", "#14B8A6"),
    ("Dividendos", "pie_chart", "#22C55E"),
    ("Juros recebidos", "percent", "#84CC16"),
    ("Cashback", "currency_exchange", "#EC4899"),
    ("Venda de produtos", "storefront", "#F97316"),
    ("Venda de serviços", "design_services", "#06B6D4"),
    ("Reembolso", "undo", "#64748B"),
    ("Restituição", "account_balance", "#3B82F6"),
    ("Premiações", "emoji_events", "#EAB308"),
    ("Herança", "diversity_3", "#A855F7"),
    ("Aposentadoria", "elderly", "#475569"),
    ("Pensão", "child_friendly", "#FB7185"),
    ("Doações", "volunteer_activism", "#F43F5E"),
    ("Loteria", "casino", "#10B981"),
    ("Transferência", "sync_alt", "#94A3B8"),
    ("Décimo terceiro", "calendar_month", "#059669"),
    ("Resgate", "move_to_inbox", "#0D9488"),
    ("Lucros", "query_stats", "#4ADE80"),
    ("Outros", "more_horiz", "#CBD5E1"),
])

SYSTEM_EXPENSE_CATEGORIES: tuple[Category, ...] = _table(TransactionType.EXPENSE, [
    ("Alimentação", "restaurant", "#EF4444"),
    ("Transporte", "directions_car", "#3B82F6"),
    ("Moradia", "home", "#6366F1"),
    ("Mercado", "shopping_cart", "#F59E0B"),
    ("Compras", "shopping_bag", "#EC4899"),
    ("Saúde", "medical_services", "#14B8A6"),
    ("Educação", "school", "#8B5CF6"),
    ("Lazer", "sports_esports", "#F97316"),
    ("Viagem", "flight", "#0EA5E9"),
    ("Assinaturas", "subscriptions", "#D946EF"),
    ("Cartão de crédito", "credit_card", "#475569"),
    ("Impostos", "gavel", "#B91C1C"),
    ("Presentes", "card_giftcard", "#EAB308"),
    ("Pets", "pets", "#A855F7"),
    ("Manutenção", "build", "#64748B"),
    ("Telefonia", "smartphone", "#2563EB"),
    ("Energia", "bolt", "#FBBF24"),
    ("Água", "water_drop", "#06B6D4"),
    ("Gás", "propane", "#FB923C"),
    ("Bem-estar", "spa", "#10B981"),
    ("Empréstimos", "handshake", "#991B1B"),
    ("Poupança", "savings", "#22C55E"),
    ("Vestiário", "checkroom", "#DB2777"),
    ("Beleza", "face", "#F472B6"),
    ("Carro", "local_gas_station", "#1E40AF"),
    ("Outros", "more_horiz", "#94A3B8"),
])


def system_categories(kind: Optional[TransactionType] = None) -> list[Category]:
    """System categories, optionally restricted to one type."""
    if kind == TransactionType.INCOME:
        return list(SYSTEM_INCOME_CATEGORIES)
    if kind == TransactionType.EXPENSE:
        return list(SYSTEM_EXPENSE_CATEGORIES)
    return list(SYSTEM_INCOME_CATEGORIES) + list(SYSTEM_EXPENSE_CATEGORIES)


def category_key(category: Category) -> tuple[str, TransactionType]:
    return normalize_text(category.name), category.type


def merge_categories(
    system: Iterable[Category],
    custom: Iterable[Category],
) -> list[Category]:
    """
    Layer custom categories over the system table.

    Entries are keyed by (normalized name, type). A system entry always
    wins over a custom one with the same key, and the first custom entry
    wins over later duplicates. The result is sorted by name.
    """
    merged: dict[tuple[str, TransactionType], Category] = {}
    for category in system:
        merged.setdefault(category_key(category), category)
    for category in custom:
        merged.setdefault(category_key(category), category)
    return sorted(merged.values(), key=lambda c: (normalize_text(c.name), c.type.value))


def find_category(
    name: str,
    kind: TransactionType,
    categories: Iterable[Category],
) -> Optional[Category]:
    """Look a category up by (normalized name, type)."""
    key = (normalize_text(name), kind)
    for category in categories:
        if category_key(category) == key:
            return category
    return None
