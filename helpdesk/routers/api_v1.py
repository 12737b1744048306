"""Public ticket API for integrations, authenticated by company API key."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_db, require_api_permission
from helpdesk.core.errors import HelpdeskError
from helpdesk.core.http import raise_http
from helpdesk.db.enums import ApiKeyPermission, TicketPriority, TicketStatus
from helpdesk.schemas.api_keys import (
    ApiCommentCreate,
    ApiCommentList,
    ApiCommentResponse,
    ApiPagination,
    ApiTicketCreate,
    ApiTicketDetail,
    ApiTicketDetailResponse,
    ApiTicketList,
    ApiTicketResponse,
    ApiTicketUpdate,
)
from helpdesk.schemas.auth import ApiKeyContext
from helpdesk.schemas.ticketing import CommentRead, TicketRead
from helpdesk.services import portal_service, ticket_service
from helpdesk.utils.pagination import PaginationParams, page_count

router = APIRouter(prefix="/api/v1/tickets", tags=["public-api"])


@router.get("", response_model=ApiTicketList)
def list_tickets(
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=100),
    status: TicketStatus | None = None,
    priority: TicketPriority | None = None,
    search: str | None = Query(None, max_length=200),
    db: Session = Depends(get_db),
    api_key: ApiKeyContext = Depends(require_api_permission(ApiKeyPermission.TICKETS_READ)),
):
    pagination = PaginationParams(page=page, per_page=limit)
    items, total = ticket_service.list_tickets(
        db,
        api_key.company_id,
        pagination,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        search=search,
    )
    return ApiTicketList(
        data=[TicketRead.model_validate(t) for t in items],
        pagination=ApiPagination(page=page, limit=limit, total=total, total_pages=page_count(total, limit)),
    )


@router.post("", response_model=ApiTicketResponse, status_code=201)
def create_ticket(
    data: ApiTicketCreate,
    db: Session = Depends(get_db),
    api_key: ApiKeyContext = Depends(require_api_permission(ApiKeyPermission.TICKETS_CREATE)),
):
    try:
        ticket = ticket_service.create_ticket(
            db,
            company_id=api_key.company_id,
            subject=data.subject,
            description=data.description,
            priority=data.priority.value,
            customer_email=data.customer_email,
            customer_name=data.customer_name,
            tags=data.tags,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return ApiTicketResponse(data=TicketRead.model_validate(ticket))


@router.get("/{ticket_id}", response_model=ApiTicketDetailResponse)
def get_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    api_key: ApiKeyContext = Depends(require_api_permission(ApiKeyPermission.TICKETS_READ)),
):
    """Ticket with its public comments, oldest first."""
    try:
        ticket = ticket_service.require_ticket(db, api_key.company_id, ticket_id)
    except HelpdeskError as exc:
        raise_http(exc)
    ticket = ticket_service.refresh_sla_breaches(db, ticket)
    comments = ticket_service.list_comments(db, ticket, include_internal=False)
    detail = ApiTicketDetail(
        **TicketRead.model_validate(ticket).model_dump(),
        comments=[CommentRead.model_validate(c) for c in comments],
    )
    return ApiTicketDetailResponse(data=detail)


@router.put("/{ticket_id}", response_model=ApiTicketResponse)
def update_ticket(
    ticket_id: UUID,
    data: ApiTicketUpdate,
    db: Session = Depends(get_db),
    api_key: ApiKeyContext = Depends(require_api_permission(ApiKeyPermission.TICKETS_UPDATE)),
):
    try:
        ticket = ticket_service.require_ticket(db, api_key.company_id, ticket_id)
        ticket = ticket_service.update_ticket(db, ticket, data.model_dump(exclude_unset=True))
    except HelpdeskError as exc:
        raise_http(exc)
    return ApiTicketResponse(data=TicketRead.model_validate(ticket))


@router.get("/{ticket_id}/comments", response_model=ApiCommentList)
def list_comments(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    api_key: ApiKeyContext = Depends(require_api_permission(ApiKeyPermission.COMMENTS_READ)),
):
    """Public comments, newest first."""
    try:
        ticket = ticket_service.require_ticket(db, api_key.company_id, ticket_id)
    except HelpdeskError as exc:
        raise_http(exc)
    comments = ticket_service.list_comments(db, ticket, include_internal=False)
    return ApiCommentList(data=[CommentRead.model_validate(c) for c in reversed(comments)])


@router.post("/{ticket_id}/comments", response_model=ApiCommentResponse, status_code=201)
def add_comment(
    ticket_id: UUID,
    data: ApiCommentCreate,
    db: Session = Depends(get_db),
    api_key: ApiKeyContext = Depends(require_api_permission(ApiKeyPermission.COMMENTS_CREATE)),
):
    """
    Add a public comment. When ``customer_email`` belongs to an active portal
    user of the ticket's client, the comment is attributed to them.
    """
    try:
        ticket = ticket_service.require_ticket(db, api_key.company_id, ticket_id)
    except HelpdeskError as exc:
        raise_http(exc)

    portal_access_id = None
    if data.customer_email and ticket.client_id:
        access = portal_service.find_active_access(db, ticket.client_id, data.customer_email)
        portal_access_id = access.id if access else None

    comment = ticket_service.add_comment(
        db,
        ticket,
        content=data.content,
        portal_access_id=portal_access_id,
    )
    return ApiCommentResponse(data=CommentRead.model_validate(comment))
