"""
Categorization Package

The system taxonomy, the merge with custom categories, and the keyword
categorizer used by the parsers.
"""

from extrato.categorization.categorizer import (
    CATEGORY_KEYWORDS,
    categorize,
    icon_for_category,
)
from extrato.categorization.service import CategoryService, DuplicateCategoryError
from extrato.categorization.taxonomy import (
    FALLBACK_CATEGORY,
    SYSTEM_EXPENSE_CATEGORIES,
    SYSTEM_INCOME_CATEGORIES,
    find_category,
    merge_categories,
    normalize_text,
    system_categories,
)

__all__ = [
    "CATEGORY_KEYWORDS",
    "CategoryService",
    "DuplicateCategoryError",
    "FALLBACK_CATEGORY",
    "SYSTEM_EXPENSE_CATEGORIES",
    "SYSTEM_INCOME_CATEGORIES",
    "categorize",
    "find_category",
    "icon_for_category",
    "merge_categories",
    "normalize_text",
    "system_categories",
]
