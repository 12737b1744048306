"""Pydantic schemas for tickets and comments."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from helpdesk.db.enums import TicketPriority, TicketStatus
from helpdesk.schemas.forms import FormSubmissionRead


class TicketCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    priority: TicketPriority = TicketPriority.MEDIUM
    client_id: UUID | None = None
    assigned_to_membership_id: UUID | None = None
    customer_email: EmailStr | None = None
    customer_name: str | None = Field(None, max_length=255)
    tags: list[str] = Field(default_factory=list)
    custom_fields: dict[str, Any] = Field(default_factory=dict)


class TicketUpdate(BaseModel):
    subject: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    client_id: UUID | None = None
    assigned_to_membership_id: UUID | None = None
    assigned_to_customer_portal_access_id: UUID | None = None
    tags: list[str] | None = None
    custom_fields: dict[str, Any] | None = None


class TicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID | None = None
    subject: str
    description: str | None = None
    status: str
    priority: str
    created_by_membership_id: UUID | None = None
    assigned_to_membership_id: UUID | None = None
    assigned_to_customer_portal_access_id: UUID | None = None
    sla_policy_id: UUID | None = None
    first_response_at: datetime | None = None
    resolved_at: datetime | None = None
    sla_response_breach: bool
    sla_resolution_breach: bool
    customer_email: str | None = None
    customer_name: str | None = None
    tags: list[str]
    custom_fields: dict[str, Any]
    external_id: str | None = None
    external_type: str | None = None
    created_at: datetime
    updated_at: datetime


class TicketListResponse(BaseModel):
    items: list[TicketRead]
    total: int
    page: int
    per_page: int
    pages: int


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=20000)
    is_internal: bool = False
    parent_comment_id: UUID | None = None


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ticket_id: UUID
    parent_comment_id: UUID | None = None
    membership_id: UUID | None = None
    customer_portal_access_id: UUID | None = None
    content: str
    is_internal: bool
    is_system: bool
    created_at: datetime


class TicketDetailResponse(BaseModel):
    ticket: TicketRead
    comments: list[CommentRead]
    form_submission: FormSubmissionRead | None = None


class TicketMetricsResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
