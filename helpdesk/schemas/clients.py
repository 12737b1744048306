"""Schemas for clients and SLA policies."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from helpdesk.db.enums import TicketPriority


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    email_domains: list[str] = Field(default_factory=list)
    description: str | None = None
    portal_enabled: bool = False


class ClientUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    email_domains: list[str] | None = None
    description: str | None = None
    is_active: bool | None = None
    portal_enabled: bool | None = None


class ClientRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    email_domains: list[str]
    description: str | None = None
    is_active: bool
    portal_enabled: bool
    created_at: datetime


class SlaPolicyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    priority: TicketPriority
    response_time_minutes: int = Field(..., ge=1)
    resolution_time_minutes: int = Field(..., ge=1)
    is_default: bool = False


class SlaPolicyUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    priority: TicketPriority | None = None
    response_time_minutes: int | None = Field(None, ge=1)
    resolution_time_minutes: int | None = Field(None, ge=1)
    is_default: bool | None = None


class SlaPolicyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID | None = None
    name: str
    priority: str
    response_time_minutes: int
    resolution_time_minutes: int
    is_default: bool


class SlaMetricsResponse(BaseModel):
    total_tickets: int
    resolved_tickets: int
    response_sla_compliance: float
    resolution_sla_compliance: float
    avg_response_time_hours: float
    avg_resolution_time_hours: float
    status_breakdown: dict[str, int]
    priority_breakdown: dict[str, int]


class PortalAccessCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    name: str | None = Field(None, max_length=255)


class PortalAccessRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    email: str
    name: str | None = None
    is_active: bool
    last_login_at: datetime | None = None
