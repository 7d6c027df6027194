"""
Category Service

Reads and writes a user's custom categories and exposes the merged
taxonomy (system table plus custom entries).
"""

from typing import Optional

import structlog

from extrato.categorization.categorizer import icon_for_category
from extrato.categorization.taxonomy import (
    find_category,
    merge_categories,
    system_categories,
)
from extrato.models.ledger import Category, TransactionType
from extrato.services.storage.interface import CUSTOM_CATEGORIES, DocumentStore


logger = structlog.get_logger(__name__)


class DuplicateCategoryError(Exception):
    """A category with this name already exists for the type."""

    def __init__(self, name: str, kind: TransactionType):
        self.name = name
        self.kind = kind
        super().__init__(f"Category '{name}' already exists for {kind.value}")


class CategoryService:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def custom_categories(self) -> list[Category]:
        docs = await self._store.list_all(CUSTOM_CATEGORIES)
        return [Category.from_document(doc.id, {**doc.data, "isCustom": True}) for doc in docs]

    async def list_categories(self, kind: Optional[TransactionType] = None) -> list[Category]:
        """The merged taxonomy, optionally restricted to one type."""
        custom = await self.custom_categories()
        if kind is not None:
            custom = [c for c in custom if c.type == kind]
        return merge_categories(system_categories(kind), custom)

    async def add_custom_category(
        self,
        name: str,
        kind: TransactionType,
        icon: Optional[str] = None,
        color: str = "#21C25E",
    ) -> Category:
        """
        Create a custom category.

        Raises:
            DuplicateCategoryError: If (normalized name, type) is taken,
                by a system entry or an existing custom one.
        """
        existing = await self.list_categories(kind)
        if find_category(name, kind, existing) is not None:
            raise DuplicateCategoryError(name, kind)

        category = Category(
            id=self._store.new_id(CUSTOM_CATEGORIES),
            name=name,
            icon=icon or icon_for_category(name),
            color=color,
            type=kind,
            is_custom=True,
        )
        await self._store.batch().set(
            CUSTOM_CATEGORIES, category.id, category.to_document()
        ).commit()
        logger.info("custom_category_added", name=category.name, type=kind.value)
        return category

    async def delete_custom_category(self, category_id: str) -> bool:
        """Delete a custom category. Returns False if it does not exist."""
        if await self._store.get(CUSTOM_CATEGORIES, category_id) is None:
            return False
        await self._store.batch().delete(CUSTOM_CATEGORIES, category_id).commit()
        logger.info("custom_category_deleted", category_id=category_id)
        return True
