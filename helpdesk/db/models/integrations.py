"""Gmail integration ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.db.base import Base, JSONDocument
from helpdesk.db.enums import TicketPriority
from helpdesk.db.types import EncryptedString
from helpdesk.utils.datetime_utils import utcnow


class GmailIntegration(Base):
    """Company support mailbox connected through Gmail. One per company."""

    __tablename__ = "gmail_integration"
    __table_args__ = (
        UniqueConstraint("company_id", name="uq_gmail_integration_company"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    refresh_token: Mapped[str] = mapped_column(EncryptedString, nullable=False)
    access_token: Mapped[str | None] = mapped_column(EncryptedString, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_history_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    auto_sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sync_frequency_minutes: Mapped[int] = mapped_column(Integer, default=15, nullable=False)
    auto_create_tickets: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    default_ticket_priority: Mapped[str] = mapped_column(
        String(20), default=TicketPriority.MEDIUM.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class EmailThread(Base):
    """Gmail thread mapped to the ticket it created."""

    __tablename__ = "email_threads"
    __table_args__ = (
        UniqueConstraint("company_id", "gmail_thread_id", name="uq_email_threads_company_thread"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    gmail_thread_id: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    participants: Mapped[list[str]] = mapped_column(JSONDocument, default=list, nullable=False)
    last_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)
