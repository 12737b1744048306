"""Form builder ORM models."""

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
from helpdesk.utils.datetime_utils import utcnow

if TYPE_CHECKING:
    from helpdesk.db.models import Client


class Form(Base):
    """
    Client-facing form.

    ``fields``, ``settings`` and ``ticket_rules`` are stored as opaque JSON
    documents; they are validated on write, not by the store. Stored rules may
    reference fields that were later removed.
    """

    __tablename__ = "forms"
    __table_args__ = (
        UniqueConstraint("company_id", "client_id", "slug", name="uq_forms_company_client_slug"),
        Index("idx_forms_company_published", "company_id", "is_published"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    fields: Mapped[list] = mapped_column(JSONDocument, default=list, nullable=False)
    settings: Mapped[dict] = mapped_column(JSONDocument, default=dict, nullable=False)
    ticket_rules: Mapped[list] = mapped_column(JSONDocument, default=list, nullable=False)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by_membership_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("memberships.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    client: Mapped["Client"] = relationship()
    submissions: Mapped[list["FormSubmission"]] = relationship(
        back_populates="form", cascade="all, delete-orphan"
    )


class FormSubmission(Base):
    """One submitted response. ``ticket_id`` is set at most once."""

    __tablename__ = "form_submissions"
    __table_args__ = (
        Index("idx_form_submissions_form", "form_id", "submitted_at"),
        Index("idx_form_submissions_form_email", "form_id", "submitted_by_email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    form_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )
    submitted_by_email: Mapped[str] = mapped_column(String(255), nullable=False)
    submitted_by_name: Mapped[str] = mapped_column(String(255), nullable=False)
    submitted_by_customer_portal_access_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customer_portal_access.id", ondelete="SET NULL"), nullable=True
    )
    submitted_by_membership_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("memberships.id", ondelete="SET NULL"), nullable=True
    )
    data: Mapped[dict] = mapped_column(JSONDocument, default=dict, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ticket_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True
    )
    ticket_created: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    form: Mapped["Form"] = relationship(back_populates="submissions")
