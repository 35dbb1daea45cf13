"""Page arithmetic for paginated ledger queries.

Managers take ``page`` / ``per_page`` and return ``(rows, total_count)``
pairs; ``PageInfo`` is the metadata a presentation layer renders next to
them. Link construction is left to that layer.
"""

from typing import Optional

from pydantic import BaseModel

from .config import get_config
from .errors import ValidationError


class PageInfo(BaseModel):
    """Pagination metadata for one page of results."""

    page: int
    per_page: int
    total_count: int
    total_pages: int

    @classmethod
    def build(cls, page: int, per_page: int, total_count: int) -> "PageInfo":
        total_pages = (total_count + per_page - 1) // per_page if total_count else 0
        return cls(
            page=page,
            per_page=per_page,
            total_count=total_count,
            total_pages=total_pages,
        )


def check_page(page: int, per_page: int, max_page_size: Optional[int] = None) -> tuple[int, int]:
    """Validate page parameters, capping ``per_page`` at the configured maximum.

    Raises:
        ValidationError: if ``page`` or ``per_page`` is below 1
    """
    if page < 1:
        raise ValidationError(f"page must be at least 1, got {page}")
    if per_page < 1:
        raise ValidationError(f"per_page must be at least 1, got {per_page}")
    limit = max_page_size if max_page_size is not None else get_config().max_page_size
    return page, min(per_page, limit)


def offset_for(page: int, per_page: int) -> int:
    return (page - 1) * per_page
