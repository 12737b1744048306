"""Ticket service - creation, listing, updates, comments and metrics."""

import logging
import uuid
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from helpdesk.core.errors import BadRequestError, ConflictError, NotFoundError
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import PRIORITY_RANK, ExternalType, TicketPriority, TicketStatus
from helpdesk.db.models import (
    CustomerPortalAccess,
    FormSubmission,
    Ticket,
    TicketComment,
)
from helpdesk.services import client_service, company_service, sla_service
from helpdesk.services.ticket_rules import TicketDraft
from helpdesk.utils.datetime_utils import utcnow
from helpdesk.utils.pagination import PaginationParams, paginate_query


logger = logging.getLogger(__name__)

SORT_FIELDS = {"created_at", "updated_at", "priority"}


def _check_assignment(
    db: Session,
    company_id: UUID,
    membership_id: UUID | None,
    portal_access_id: UUID | None,
) -> None:
    if membership_id and portal_access_id:
        raise BadRequestError("A ticket cannot be assigned to a team member and a customer at once")
    if membership_id:
        company_service.require_active_membership(db, company_id, membership_id)
    if portal_access_id:
        access = (
            db.query(CustomerPortalAccess)
            .filter(
                CustomerPortalAccess.company_id == company_id,
                CustomerPortalAccess.id == portal_access_id,
            )
            .first()
        )
        if not access:
            raise NotFoundError("Portal user not found")


def create_ticket(
    db: Session,
    *,
    company_id: UUID,
    subject: str,
    description: str | None = None,
    priority: str = TicketPriority.MEDIUM.value,
    status: str = TicketStatus.OPEN.value,
    client_id: UUID | None = None,
    created_by_membership_id: UUID | None = None,
    assigned_to_membership_id: UUID | None = None,
    assigned_to_customer_portal_access_id: UUID | None = None,
    customer_email: str | None = None,
    customer_name: str | None = None,
    tags: list[str] | None = None,
    custom_fields: dict[str, Any] | None = None,
    external_id: str | None = None,
    external_type: str | None = None,
    commit: bool = True,
) -> Ticket:
    """
    Insert a ticket and attach its SLA policy.

    With ``commit=False`` the ticket is only flushed so callers can fold it
    into a larger unit of work.

    Raises:
        NotFoundError: client or assignee not in this company
        BadRequestError: both assignee kinds given
        ConflictError: external_id already linked to another ticket
    """
    if client_id is not None:
        client_service.require_client(db, company_id, client_id)
    _check_assignment(db, company_id, assigned_to_membership_id, assigned_to_customer_portal_access_id)

    if external_id is not None:
        existing = db.query(Ticket.id).filter(Ticket.external_id == external_id).first()
        if existing:
            raise ConflictError("A ticket already exists for this source")

    policy = sla_service.resolve_policy(db, company_id, client_id, priority)
    ticket = Ticket(
        company_id=company_id,
        client_id=client_id,
        subject=subject[:255],
        description=description,
        status=status,
        priority=priority,
        created_by_membership_id=created_by_membership_id,
        assigned_to_membership_id=assigned_to_membership_id,
        assigned_to_customer_portal_access_id=assigned_to_customer_portal_access_id,
        sla_policy_id=policy.id if policy else None,
        customer_email=customer_email,
        customer_name=customer_name,
        tags=list(tags or []),
        custom_fields=dict(custom_fields or {}),
        external_id=external_id,
        external_type=external_type,
    )
    db.add(ticket)
    db.flush()
    logger.info(
        "ticket_created",
        extra=build_log_context(company_id=company_id, client_id=client_id, ticket_id=ticket.id),
    )
    if commit:
        db.commit()
        db.refresh(ticket)
    return ticket


def create_ticket_from_draft(db: Session, draft: TicketDraft, commit: bool = False) -> Ticket:
    """Create the ticket described by a rule-engine draft (flush only by default)."""
    return create_ticket(
        db,
        company_id=draft.company_id,
        client_id=draft.client_id,
        subject=draft.subject,
        description=draft.description,
        priority=draft.priority,
        status=draft.status,
        created_by_membership_id=draft.created_by_membership_id,
        assigned_to_membership_id=draft.assigned_to_membership_id,
        assigned_to_customer_portal_access_id=draft.assigned_to_customer_portal_access_id,
        customer_email=draft.customer_email,
        customer_name=draft.customer_name,
        external_id=draft.external_id,
        external_type=draft.external_type,
        commit=commit,
    )


def get_ticket(db: Session, company_id: UUID, ticket_id: UUID) -> Ticket | None:
    return (
        db.query(Ticket)
        .filter(Ticket.company_id == company_id, Ticket.id == ticket_id)
        .first()
    )


def require_ticket(db: Session, company_id: UUID, ticket_id: UUID) -> Ticket:
    ticket = get_ticket(db, company_id, ticket_id)
    if not ticket:
        raise NotFoundError("Ticket not found")
    return ticket


def list_tickets(
    db: Session,
    company_id: UUID,
    pagination: PaginationParams,
    *,
    status: str | None = None,
    priority: str | None = None,
    assigned_to_membership_id: UUID | None = None,
    client_id: UUID | None = None,
    mine_membership_id: UUID | None = None,
    search: str | None = None,
    sort: str = "created_at",
    descending: bool = True,
) -> tuple[list[Ticket], int]:
    """List tickets for a company with inbox filters."""
    query = db.query(Ticket).filter(Ticket.company_id == company_id)
    if status:
        query = query.filter(Ticket.status == status)
    if priority:
        query = query.filter(Ticket.priority == priority)
    if assigned_to_membership_id:
        query = query.filter(Ticket.assigned_to_membership_id == assigned_to_membership_id)
    if client_id:
        query = query.filter(Ticket.client_id == client_id)
    if mine_membership_id:
        query = query.filter(Ticket.assigned_to_membership_id == mine_membership_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(Ticket.subject.ilike(pattern), Ticket.description.ilike(pattern))
        )

    if sort not in SORT_FIELDS:
        raise BadRequestError(f"Cannot sort by '{sort}'", field="sort")
    if sort == "priority":
        column = case(PRIORITY_RANK, value=Ticket.priority, else_=0)
    else:
        column = getattr(Ticket, sort)
    query = query.order_by(column.desc() if descending else column.asc(), Ticket.id.asc())
    return paginate_query(query, pagination)


def list_comments(db: Session, ticket: Ticket, include_internal: bool = True) -> list[TicketComment]:
    query = db.query(TicketComment).filter(TicketComment.ticket_id == ticket.id)
    if not include_internal:
        query = query.filter(TicketComment.is_internal.is_(False))
    return query.order_by(TicketComment.created_at.asc()).all()


def get_source_submission(db: Session, ticket: Ticket) -> FormSubmission | None:
    """Form submission a ticket was opened from, via its external linkage."""
    if ticket.external_type != ExternalType.FORM_SUBMISSION.value or not ticket.external_id:
        return None
    try:
        submission_id = uuid.UUID(ticket.external_id)
    except ValueError:
        return None
    return (
        db.query(FormSubmission)
        .filter(FormSubmission.company_id == ticket.company_id, FormSubmission.id == submission_id)
        .first()
    )


def refresh_sla_breaches(db: Session, ticket: Ticket, now: datetime | None = None) -> Ticket:
    """Recompute the breach flags and persist them when they moved."""
    if sla_service.refresh_breaches(ticket, now=now):
        db.commit()
        db.refresh(ticket)
    return ticket


def get_ticket_detail(db: Session, company_id: UUID, ticket_id: UUID) -> dict:
    """Ticket with comments and its originating form submission, if any."""
    ticket = refresh_sla_breaches(db, require_ticket(db, company_id, ticket_id))
    return {
        "ticket": ticket,
        "comments": list_comments(db, ticket),
        "form_submission": get_source_submission(db, ticket),
    }


def update_ticket(db: Session, ticket: Ticket, changes: dict[str, Any]) -> Ticket:
    """
    Apply a partial update.

    Moving to ``resolved`` stamps ``resolved_at``; moving back to an active
    status clears it. Assigning a team member clears the customer assignee
    and vice versa.
    """
    changes = {k: v for k, v in changes.items() if v is not None}

    status = changes.pop("status", None)
    if status is not None:
        status = getattr(status, "value", status)
        if status != ticket.status:
            if status == TicketStatus.RESOLVED.value:
                ticket.resolved_at = utcnow()
            elif status in (TicketStatus.OPEN.value, TicketStatus.IN_PROGRESS.value):
                ticket.resolved_at = None
            ticket.status = status

    priority = changes.pop("priority", None)
    if priority is not None:
        ticket.priority = getattr(priority, "value", priority)

    membership_id = changes.pop("assigned_to_membership_id", None)
    portal_access_id = changes.pop("assigned_to_customer_portal_access_id", None)
    _check_assignment(db, ticket.company_id, membership_id, portal_access_id)
    if membership_id is not None:
        ticket.assigned_to_membership_id = membership_id
        ticket.assigned_to_customer_portal_access_id = None
    elif portal_access_id is not None:
        ticket.assigned_to_customer_portal_access_id = portal_access_id
        ticket.assigned_to_membership_id = None

    client_id = changes.pop("client_id", None)
    if client_id is not None:
        client_service.require_client(db, ticket.company_id, client_id)
        ticket.client_id = client_id

    for key in ("subject", "description", "tags", "custom_fields"):
        if key in changes:
            setattr(ticket, key, changes[key])

    sla_service.refresh_breaches(ticket)
    db.commit()
    db.refresh(ticket)
    return ticket


def add_comment(
    db: Session,
    ticket: Ticket,
    *,
    content: str,
    membership_id: UUID | None = None,
    portal_access_id: UUID | None = None,
    is_internal: bool = False,
    is_system: bool = False,
    parent_comment_id: UUID | None = None,
    commit: bool = True,
) -> TicketComment:
    """
    Add a comment to a ticket.

    The first public comment from a team member other than the ticket's
    creator stamps ``first_response_at``.
    """
    if parent_comment_id is not None:
        parent = (
            db.query(TicketComment)
            .filter(TicketComment.id == parent_comment_id, TicketComment.ticket_id == ticket.id)
            .first()
        )
        if not parent:
            raise NotFoundError("Parent comment not found")

    comment = TicketComment(
        company_id=ticket.company_id,
        ticket_id=ticket.id,
        parent_comment_id=parent_comment_id,
        membership_id=membership_id,
        customer_portal_access_id=portal_access_id,
        content=content,
        is_internal=is_internal,
        is_system=is_system,
    )
    db.add(comment)

    now = utcnow()
    if (
        membership_id is not None
        and not is_internal
        and not is_system
        and ticket.first_response_at is None
        and membership_id != ticket.created_by_membership_id
    ):
        ticket.first_response_at = now
    ticket.updated_at = now
    db.flush()

    if commit:
        db.commit()
        db.refresh(comment)
    return comment


def get_metrics(
    db: Session,
    company_id: UUID,
    since: datetime | None = None,
    until: datetime | None = None,
) -> dict:
    """Ticket counts by status and priority within an optional creation window."""
    base = db.query(Ticket).filter(Ticket.company_id == company_id)
    if since:
        base = base.filter(Ticket.created_at >= since)
    if until:
        base = base.filter(Ticket.created_at < until)

    by_status = {s.value: 0 for s in TicketStatus}
    for status, count in base.with_entities(Ticket.status, func.count(Ticket.id)).group_by(Ticket.status):
        by_status[status] = count

    by_priority = {p.value: 0 for p in TicketPriority}
    for priority, count in base.with_entities(Ticket.priority, func.count(Ticket.id)).group_by(Ticket.priority):
        by_priority[priority] = count

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_priority": by_priority,
    }
