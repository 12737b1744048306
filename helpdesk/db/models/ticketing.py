"""Ticket and comment ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.db.base import Base, JSONDocument
from helpdesk.db.enums import TicketPriority, TicketStatus
from helpdesk.utils.datetime_utils import utcnow

if TYPE_CHECKING:
    from helpdesk.db.models import Client, SlaPolicy


class Ticket(Base):
    """
    Support ticket.

    Assignment is exclusive: ``assigned_to_membership_id`` (staff) or
    ``assigned_to_customer_portal_access_id`` (portal identity), never both.
    ``external_id``/``external_type`` link a ticket back to its origin
    (form submission, Gmail thread).
    """

    __tablename__ = "tickets"
    __table_args__ = (
        Index("idx_tickets_company_status", "company_id", "status"),
        Index("idx_tickets_company_client", "company_id", "client_id"),
        UniqueConstraint("external_id", name="uq_tickets_external_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True
    )
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=TicketStatus.OPEN.value, nullable=False)
    priority: Mapped[str] = mapped_column(
        String(20), default=TicketPriority.MEDIUM.value, nullable=False
    )
    created_by_membership_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("memberships.id", ondelete="SET NULL"), nullable=True
    )
    assigned_to_membership_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("memberships.id", ondelete="SET NULL"), nullable=True
    )
    assigned_to_customer_portal_access_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customer_portal_access.id", ondelete="SET NULL"), nullable=True
    )
    sla_policy_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("sla_policies.id", ondelete="SET NULL"), nullable=True
    )
    first_response_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sla_response_breach: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sla_resolution_breach: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSONDocument, default=list, nullable=False)
    custom_fields: Mapped[dict] = mapped_column(JSONDocument, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    client: Mapped["Client | None"] = relationship()
    sla_policy: Mapped["SlaPolicy | None"] = relationship(back_populates="tickets")
    comments: Mapped[list["TicketComment"]] = relationship(
        back_populates="ticket",
        order_by="TicketComment.created_at",
        cascade="all, delete-orphan",
    )


class TicketComment(Base):
    """Comment on a ticket, authored by staff, a portal identity, or the system."""

    __tablename__ = "ticket_comments"
    __table_args__ = (
        Index("idx_ticket_comments_ticket", "ticket_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    parent_comment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("ticket_comments.id", ondelete="CASCADE"), nullable=True
    )
    membership_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("memberships.id", ondelete="SET NULL"), nullable=True
    )
    customer_portal_access_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customer_portal_access.id", ondelete="SET NULL"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attachments: Mapped[list] = mapped_column(JSONDocument, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    ticket: Mapped["Ticket"] = relationship(back_populates="comments")
