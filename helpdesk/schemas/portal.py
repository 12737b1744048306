"""Schemas for the customer portal."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from helpdesk.db.enums import TicketPriority
from helpdesk.schemas.ticketing import CommentRead, TicketRead


class OtpRequest(BaseModel):
    email: EmailStr


class OtpVerifyRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=4, max_length=10)


class OtpRequestResponse(BaseModel):
    sent: bool = True
    expires_in_minutes: int


class PortalTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in_hours: int


class PortalMeResponse(BaseModel):
    portal_access_id: UUID
    email: str
    name: str | None = None
    company_name: str
    client_name: str
    last_login_at: datetime | None = None


class PortalTicketCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    priority: TicketPriority = TicketPriority.MEDIUM


class PortalCommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=20000)


class PortalTicketDetail(BaseModel):
    ticket: TicketRead
    comments: list[CommentRead]
    can_edit: bool
