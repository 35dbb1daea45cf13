"""Pydantic schemas for catalog items."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ItemBase(BaseModel):
    """Base item fields."""

    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=500)
    category: str = Field(..., min_length=1, max_length=100)
    external_code: str = Field(..., min_length=1, max_length=64)
    total_copies: int = Field(1, gt=0, description="Number of lendable copies")

    @field_validator("title", "author", "category", "external_code", mode="before")
    @classmethod
    def strip_text(cls, v):
        """Trim surrounding whitespace so blank values are rejected."""
        if isinstance(v, str):
            return v.strip()
        return v


class ItemCreate(ItemBase):
    """Schema for creating an item."""

    pass


class ItemUpdate(BaseModel):
    """Schema for updating an item. Unset fields are left unchanged."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=500)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    external_code: Optional[str] = Field(None, min_length=1, max_length=64)
    total_copies: Optional[int] = Field(None, gt=0)

    @field_validator("title", "author", "category", "external_code", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class ItemFilter(BaseModel):
    """Filters for listing items.

    ``title`` and ``author`` match case-insensitive substrings, ``category``
    matches exactly.
    """

    title: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None
    available_only: bool = False


class ItemResponse(BaseModel):
    """Schema for item responses, including derived availability."""

    id: str
    title: str
    author: str
    category: str
    external_code: str
    total_copies: int
    available_copies: int
    is_available: bool
    created_at: datetime
    updated_at: datetime

    # Populated when a borrower is given
    on_loan_to_borrower: Optional[bool] = None

    model_config = {"from_attributes": True}
