"""Ticket inbox APIs (staff)."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_current_session, get_db, require_csrf_header
from helpdesk.core.errors import HelpdeskError
from helpdesk.core.http import raise_http
from helpdesk.db.enums import TicketPriority, TicketStatus
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.forms import FormSubmissionRead
from helpdesk.schemas.ticketing import (
    CommentCreate,
    CommentRead,
    TicketCreate,
    TicketDetailResponse,
    TicketListResponse,
    TicketMetricsResponse,
    TicketRead,
    TicketUpdate,
)
from helpdesk.services import ticket_service
from helpdesk.utils.pagination import PaginationParams, get_pagination, page_count

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.get("", response_model=TicketListResponse)
def list_tickets(
    status: TicketStatus | None = None,
    priority: TicketPriority | None = None,
    assigned_to: UUID | None = None,
    client_id: UUID | None = None,
    mine: bool = False,
    search: str | None = Query(None, max_length=200),
    sort: str = "created_at",
    order: str = Query("desc", pattern="^(asc|desc)$"),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        items, total = ticket_service.list_tickets(
            db,
            session.company_id,
            pagination,
            status=status.value if status else None,
            priority=priority.value if priority else None,
            assigned_to_membership_id=assigned_to,
            client_id=client_id,
            mine_membership_id=session.membership_id if mine else None,
            search=search,
            sort=sort,
            descending=order == "desc",
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return TicketListResponse(
        items=[TicketRead.model_validate(t) for t in items],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=page_count(total, pagination.per_page),
    )


@router.get("/metrics", response_model=TicketMetricsResponse)
def ticket_metrics(
    since: datetime | None = None,
    until: datetime | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return TicketMetricsResponse(**ticket_service.get_metrics(db, session.company_id, since, until))


@router.post("", response_model=TicketRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_ticket(
    data: TicketCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        ticket = ticket_service.create_ticket(
            db,
            company_id=session.company_id,
            subject=data.subject,
            description=data.description,
            priority=data.priority.value,
            client_id=data.client_id,
            created_by_membership_id=session.membership_id,
            assigned_to_membership_id=data.assigned_to_membership_id,
            customer_email=data.customer_email,
            customer_name=data.customer_name,
            tags=data.tags,
            custom_fields=data.custom_fields,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return TicketRead.model_validate(ticket)


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
def get_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        detail = ticket_service.get_ticket_detail(db, session.company_id, ticket_id)
    except HelpdeskError as exc:
        raise_http(exc)
    submission = detail["form_submission"]
    return TicketDetailResponse(
        ticket=TicketRead.model_validate(detail["ticket"]),
        comments=[CommentRead.model_validate(c) for c in detail["comments"]],
        form_submission=FormSubmissionRead.model_validate(submission) if submission else None,
    )


@router.patch("/{ticket_id}", response_model=TicketRead, dependencies=[Depends(require_csrf_header)])
def update_ticket(
    ticket_id: UUID,
    data: TicketUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        ticket = ticket_service.require_ticket(db, session.company_id, ticket_id)
        ticket = ticket_service.update_ticket(db, ticket, data.model_dump(exclude_unset=True))
    except HelpdeskError as exc:
        raise_http(exc)
    return TicketRead.model_validate(ticket)


@router.post(
    "/{ticket_id}/comments",
    response_model=CommentRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def add_comment(
    ticket_id: UUID,
    data: CommentCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        ticket = ticket_service.require_ticket(db, session.company_id, ticket_id)
        comment = ticket_service.add_comment(
            db,
            ticket,
            content=data.content,
            membership_id=session.membership_id,
            is_internal=data.is_internal,
            parent_comment_id=data.parent_comment_id,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return CommentRead.model_validate(comment)
