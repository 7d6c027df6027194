"""
Tests for categorization

Test strategy:
1. Keyword categorizer on typical statement descriptions
2. Taxonomy merge rules (system entries win, names compared normalized)
3. CategoryService against the in-memory store
"""

import asyncio

import pytest

from extrato.categorization import CategoryService, DuplicateCategoryError
from extrato.categorization.categorizer import categorize
from extrato.categorization.taxonomy import (
    find_category,
    merge_categories,
    normalize_text,
    system_categories,
)
from extrato.models.ledger import Category, TransactionType
from extrato.services.storage import CUSTOM_CATEGORIES
from extrato.services.storage.memory import InMemoryDocumentStore


class TestCategorizer:
    """Tests for the keyword categorizer."""

    def test_food_delivery(self):
        """Test a delivery app description."""
        assert categorize("IFOOD PEDIDO 123") == "Alimentação"

    def test_transport(self):
        """Test a ride-hailing description."""
        assert categorize("Uber *Trip") == "Transporte"

    def test_refund(self):
        """Test that refunds get their own category."""
        assert categorize("Estorno de compra") == "Reembolso"

    def test_unknown_falls_back(self):
        """Test the fallback category."""
        assert categorize("xyz qwerty") == "Outros"
        assert categorize("PIX RECEBIDO João") == "Outros"

    def test_specific_rules_before_generic(self):
        """Test that 'mercado livre' is shopping while 'supermercado' is groceries."""
        assert categorize("MERCADO LIVRE*VENDEDOR") == "Compras"
        assert categorize("Supermercado Dia") == "Mercado"

    def test_streaming_subscription(self):
        """Test that a streaming plan is a subscription."""
        assert categorize("Amazon Prime Video") == "Assinaturas"


class TestTaxonomy:
    """Tests for the category taxonomy."""

    def test_normalize_text(self):
        """Test case folding and diacritic removal."""
        assert normalize_text("  Alimentação ") == "alimentacao"

    def test_system_tables_have_fallback(self):
        """Test that both types carry an 'Outros' entry."""
        for kind in TransactionType:
            names = [c.name for c in system_categories(kind)]
            assert "Outros" in names

    def test_system_entry_wins(self):
        """Test that a custom entry cannot shadow a system one."""
        custom = Category(name="alimentacao", type=TransactionType.EXPENSE, is_custom=True)
        merged = merge_categories(system_categories(TransactionType.EXPENSE), [custom])
        matches = [c for c in merged if normalize_text(c.name) == "alimentacao"]
        assert len(matches) == 1
        assert not matches[0].is_custom

    def test_merged_is_sorted(self):
        """Test that the merged list is sorted by normalized name."""
        custom = [Category(name="Academia", type=TransactionType.EXPENSE, is_custom=True)]
        merged = merge_categories(system_categories(TransactionType.EXPENSE), custom)
        keys = [normalize_text(c.name) for c in merged]
        assert keys == sorted(keys)

    def test_same_name_different_type(self):
        """Test that a name may exist once per type."""
        categories = system_categories()
        assert find_category("outros", TransactionType.INCOME, categories) is not None
        assert find_category("outros", TransactionType.EXPENSE, categories) is not None


class TestCategoryService:
    """Tests for CategoryService."""

    def test_add_and_list(self):
        """Test that a custom category shows up in the merged list."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            service = CategoryService(store)
            created = await service.add_custom_category("Academia Premium", TransactionType.EXPENSE)
            listed = await service.list_categories(TransactionType.EXPENSE)
            return store, created, listed

        store, created, listed = asyncio.run(scenario())
        assert created.is_custom
        assert any(c.name == "Academia Premium" and c.is_custom for c in listed)
        stored = store.database.user_data("user-1")[CUSTOM_CATEGORIES]
        assert created.id in stored

    def test_duplicate_of_system_rejected(self):
        """Test that a normalized clash with a system category is rejected."""
        async def scenario():
            service = CategoryService(InMemoryDocumentStore("user-1"))
            await service.add_custom_category("ALIMENTACAO", TransactionType.EXPENSE)

        with pytest.raises(DuplicateCategoryError):
            asyncio.run(scenario())

    def test_duplicate_custom_rejected(self):
        """Test that the same custom name cannot be added twice for one type."""
        async def scenario():
            service = CategoryService(InMemoryDocumentStore("user-1"))
            await service.add_custom_category("Freelas", TransactionType.INCOME)
            await service.add_custom_category("freelas", TransactionType.INCOME)

        with pytest.raises(DuplicateCategoryError):
            asyncio.run(scenario())

    def test_same_custom_name_other_type_allowed(self):
        """Test that the uniqueness key includes the type."""
        async def scenario():
            service = CategoryService(InMemoryDocumentStore("user-1"))
            await service.add_custom_category("Freelas", TransactionType.INCOME)
            await service.add_custom_category("Freelas", TransactionType.EXPENSE)
            return await service.custom_categories()

        assert len(asyncio.run(scenario())) == 2

    def test_delete(self):
        """Test deleting an existing and a missing custom category."""
        async def scenario():
            service = CategoryService(InMemoryDocumentStore("user-1"))
            created = await service.add_custom_category("Pilates", TransactionType.EXPENSE)
            first = await service.delete_custom_category(created.id)
            second = await service.delete_custom_category(created.id)
            return first, second, await service.custom_categories()

        first, second, remaining = asyncio.run(scenario())
        assert first is True
        assert second is False
        assert remaining == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
