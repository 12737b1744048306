"""Schemas for the Gmail integration."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from helpdesk.db.enums import TicketPriority


class GmailIntegrationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    is_active: bool
    auto_sync_enabled: bool
    sync_frequency_minutes: int
    auto_create_tickets: bool
    default_ticket_priority: str
    last_sync_at: datetime | None = None


class GmailConnectRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    refresh_token: str = Field(..., min_length=1)
    access_token: str | None = None
    token_expires_at: datetime | None = None


class GmailConfigUpdate(BaseModel):
    auto_sync_enabled: bool | None = None
    sync_frequency_minutes: int | None = Field(None, ge=5, le=1440)
    auto_create_tickets: bool | None = None
    default_ticket_priority: TicketPriority | None = None


class GmailSyncResponse(BaseModel):
    messages_seen: int
    threads_processed: int
    tickets_created: int
    comments_created: int
    threads_skipped: int
    errors: int
