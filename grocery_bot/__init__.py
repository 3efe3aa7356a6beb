"""Grocery list chat bot with cached AI parsing and category-based shopping."""

from .ai import ItemParser, create_parser
from .batch import Batch, BatchManager
from .cache import ProductCache, parse_line
from .categories import CATEGORIES, UNKNOWN_CATEGORY, normalize_category
from .config import (
    AIConfig,
    BotConfig,
    CacheConfig,
    DatabaseConfig,
    SessionConfig,
    TelegramConfig,
    load_config,
)
from .db import ItemStore, SessionStore
from .errors import (
    GroceryBotError,
    NotFoundError,
    ParsingFailedError,
    StoreError,
    ValidationFailedError,
)
from .models import GroceryItem, ParsedItem
from .pipeline import ParsingPipeline
from .shopping import CategoryDetail, CategoryList, ShoppingList, ShoppingNavigator

__all__ = [
    "ItemParser",
    "create_parser",
    "Batch",
    "BatchManager",
    "ProductCache",
    "parse_line",
    "CATEGORIES",
    "UNKNOWN_CATEGORY",
    "normalize_category",
    "BotConfig",
    "TelegramConfig",
    "AIConfig",
    "DatabaseConfig",
    "CacheConfig",
    "SessionConfig",
    "load_config",
    "ItemStore",
    "SessionStore",
    "GroceryBotError",
    "NotFoundError",
    "ParsingFailedError",
    "ValidationFailedError",
    "StoreError",
    "GroceryItem",
    "ParsedItem",
    "ParsingPipeline",
    "ShoppingNavigator",
    "ShoppingList",
    "CategoryList",
    "CategoryDetail",
]
