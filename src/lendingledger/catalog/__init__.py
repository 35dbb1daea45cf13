"""Item catalog module.

Provides functionality for:
- Creating, updating and deleting catalog items
- Live availability (total copies minus open loans)
- Filtered, paginated item listings
"""

from .manager import CatalogManager
from .models import Item
from .schemas import ItemCreate, ItemFilter, ItemResponse, ItemUpdate

__all__ = [
    "CatalogManager",
    "Item",
    "ItemCreate",
    "ItemFilter",
    "ItemResponse",
    "ItemUpdate",
]
