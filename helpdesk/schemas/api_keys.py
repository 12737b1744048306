"""Pydantic schemas for company API keys and the public ticket API."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from helpdesk.db.enums import ApiKeyPermission, TicketPriority, TicketStatus
from helpdesk.schemas.ticketing import CommentRead, TicketRead


# =============================================================================
# Key management
# =============================================================================

class ApiKeyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    permissions: list[ApiKeyPermission] = Field(default_factory=list)
    expires_at: datetime | None = None


class ApiKeyUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    permissions: list[ApiKeyPermission] | None = None
    expires_at: datetime | None = None
    is_active: bool | None = None


class ApiKeyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    prefix: str
    permissions: list[str]
    last_used_at: datetime | None = None
    expires_at: datetime | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ApiKeyCreated(ApiKeyRead):
    """Returned once, at creation. ``key`` is never shown again."""
    key: str


# =============================================================================
# Public ticket API (/api/v1)
# =============================================================================

class ApiTicketCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    priority: TicketPriority = TicketPriority.MEDIUM
    customer_email: EmailStr | None = None
    customer_name: str | None = Field(None, max_length=255)
    tags: list[str] = Field(default_factory=list)


class ApiTicketUpdate(BaseModel):
    subject: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    tags: list[str] | None = None


class ApiCommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=20000)
    customer_email: EmailStr | None = None


class ApiPagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ApiTicketList(BaseModel):
    data: list[TicketRead]
    pagination: ApiPagination


class ApiTicketDetail(TicketRead):
    comments: list[CommentRead]


class ApiTicketResponse(BaseModel):
    data: TicketRead


class ApiTicketDetailResponse(BaseModel):
    data: ApiTicketDetail


class ApiCommentResponse(BaseModel):
    data: CommentRead


class ApiCommentList(BaseModel):
    data: list[CommentRead]
