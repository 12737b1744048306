"""Schemas for knowledge base articles."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ArticleCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    is_published: bool = False
    is_public: bool = True
    tags: list[str] = Field(default_factory=list)


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    content: str | None = Field(None, min_length=1)
    is_published: bool | None = None
    is_public: bool | None = None
    tags: list[str] | None = None


class ArticleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    slug: str
    content: str
    is_published: bool
    is_public: bool
    author_membership_id: UUID | None = None
    view_count: int
    tags: list[str]
    created_at: datetime
    updated_at: datetime
