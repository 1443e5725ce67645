from dataclasses import dataclass
from enum import Enum
from typing import Any

from smartspendr.logger import get_logger

logger = get_logger(__name__)


class Category(str, Enum):
    FOOD = "food"
    TRANSPORT = "transport"
    ENTERTAINMENT = "entertainment"
    BILLS = "bills"
    SHOPPING = "shopping"
    HEALTH = "health"
    EDUCATION = "education"
    TRAVEL = "travel"
    OTHER = "other"


@dataclass(frozen=True)
class CategoryInfo:
    value: Category
    label: str
    color: str
    icon: str


CATEGORY_INFO: dict[Category, CategoryInfo] = {
    Category.FOOD: CategoryInfo(Category.FOOD, "Food & Dining", "#EF4444", "🍽️"),
    Category.TRANSPORT: CategoryInfo(Category.TRANSPORT, "Transportation", "#3B82F6", "🚗"),
    Category.ENTERTAINMENT: CategoryInfo(Category.ENTERTAINMENT, "Entertainment", "#8B5CF6", "🎬"),
    Category.BILLS: CategoryInfo(Category.BILLS, "Bills & Utilities", "#F59E0B", "📄"),
    Category.SHOPPING: CategoryInfo(Category.SHOPPING, "Shopping", "#10B981", "🛍️"),
    Category.HEALTH: CategoryInfo(Category.HEALTH, "Healthcare", "#F97316", "🏥"),
    Category.EDUCATION: CategoryInfo(Category.EDUCATION, "Education", "#06B6D4", "📚"),
    Category.TRAVEL: CategoryInfo(Category.TRAVEL, "Travel", "#84CC16", "✈️"),
    Category.OTHER: CategoryInfo(Category.OTHER, "Other", "#6B7280", "📦"),
}

FALLBACK_CATEGORY = Category.OTHER

_CATEGORY_VALUES = frozenset(category.value for category in Category)

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "INR": "₹",
    "CAD": "C$",
    "AUD": "A$",
}

CHART_COLORS: tuple[str, ...] = (
    "#3B82F6",
    "#EF4444",
    "#10B981",
    "#F59E0B",
    "#8B5CF6",
    "#F97316",
    "#06B6D4",
    "#84CC16",
    "#6B7280",
)

QUICK_AMOUNTS: tuple[int, ...] = (5, 10, 25, 50, 100, 200)


def is_known_category(value: Any) -> bool:
    if isinstance(value, Category):
        return True
    if not isinstance(value, str):
        return False
    return value.strip().lower() in _CATEGORY_VALUES


def parse_category(value: Any) -> Category:
    """Resolve a raw category value, falling back to `other` for anything unknown."""
    if isinstance(value, Category):
        return value
    if is_known_category(value):
        return Category(value.strip().lower())
    if value not in (None, ""):
        logger.debug("[CATEGORY] Unknown category %r, using '%s'.", value, FALLBACK_CATEGORY.value)
    return FALLBACK_CATEGORY


def get_category_info(value: Any) -> CategoryInfo:
    return CATEGORY_INFO[parse_category(value)]


def list_categories() -> list[CategoryInfo]:
    return [CATEGORY_INFO[category] for category in Category]
