"""Customer portal APIs: OTP sign-in and customer-side tickets.

All routes live under ``/portal/{company_slug}/{client_slug}``. After sign-in
the customer sends ``Authorization: Bearer <token>``; the token only works on
the portal it was issued for.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.deps import get_db, get_portal_session
from helpdesk.core.errors import HelpdeskError
from helpdesk.core.http import raise_http
from helpdesk.core.rate_limit import limiter
from helpdesk.db.enums import TicketStatus
from helpdesk.db.models import CustomerPortalAccess
from helpdesk.schemas.auth import PortalSession
from helpdesk.schemas.clients import SlaMetricsResponse
from helpdesk.schemas.knowledge import ArticleRead
from helpdesk.schemas.portal import (
    OtpRequest,
    OtpRequestResponse,
    OtpVerifyRequest,
    PortalCommentCreate,
    PortalMeResponse,
    PortalTicketCreate,
    PortalTicketDetail,
    PortalTokenResponse,
)
from helpdesk.schemas.ticketing import CommentRead, TicketListResponse, TicketRead
from helpdesk.services import client_service, company_service, knowledge_service, portal_service, sla_service
from helpdesk.utils.pagination import PaginationParams, get_pagination, page_count

router = APIRouter(prefix="/portal/{company_slug}/{client_slug}", tags=["portal"])


@router.post("/auth/request-otp", response_model=OtpRequestResponse)
@limiter.limit(f"{settings.RATE_LIMIT_PORTAL_AUTH}/minute")
def request_otp(
    request: Request,
    company_slug: str,
    client_slug: str,
    data: OtpRequest,
    db: Session = Depends(get_db),
):
    try:
        issued = portal_service.request_otp(db, company_slug, client_slug, data.email)
    except HelpdeskError as exc:
        raise_http(exc)
    return OtpRequestResponse(sent=issued.delivered, expires_in_minutes=settings.PORTAL_OTP_TTL_MINUTES)


@router.post("/auth/verify-otp", response_model=PortalTokenResponse)
@limiter.limit(f"{settings.RATE_LIMIT_PORTAL_AUTH}/minute")
def verify_otp(
    request: Request,
    company_slug: str,
    client_slug: str,
    data: OtpVerifyRequest,
    db: Session = Depends(get_db),
):
    try:
        token, _ = portal_service.verify_otp(db, company_slug, client_slug, data.email, data.code)
    except HelpdeskError as exc:
        raise_http(exc)
    return PortalTokenResponse(access_token=token, expires_in_hours=settings.PORTAL_SESSION_HOURS)


@router.get("/me", response_model=PortalMeResponse)
def me(
    db: Session = Depends(get_db),
    session: PortalSession = Depends(get_portal_session),
):
    access = db.query(CustomerPortalAccess).filter(CustomerPortalAccess.id == session.portal_access_id).first()
    company = company_service.get_company_by_id(db, session.company_id)
    client = client_service.get_client(db, session.company_id, session.client_id)
    return PortalMeResponse(
        portal_access_id=access.id,
        email=access.email,
        name=access.name,
        company_name=company.name,
        client_name=client.name,
        last_login_at=access.last_login_at,
    )


@router.get("/tickets", response_model=TicketListResponse)
def list_tickets(
    status: TicketStatus | None = None,
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: PortalSession = Depends(get_portal_session),
):
    items, total = portal_service.list_customer_tickets(
        db, session, pagination, status=status.value if status else None
    )
    return TicketListResponse(
        items=[TicketRead.model_validate(t) for t in items],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=page_count(total, pagination.per_page),
    )


@router.post("/tickets", response_model=TicketRead, status_code=201)
def create_ticket(
    data: PortalTicketCreate,
    db: Session = Depends(get_db),
    session: PortalSession = Depends(get_portal_session),
):
    try:
        ticket = portal_service.create_customer_ticket(
            db,
            session,
            subject=data.subject,
            description=data.description,
            priority=data.priority.value,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return TicketRead.model_validate(ticket)


@router.get("/tickets/{ticket_id}", response_model=PortalTicketDetail)
def get_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: PortalSession = Depends(get_portal_session),
):
    try:
        detail = portal_service.get_customer_ticket(db, session, ticket_id)
    except HelpdeskError as exc:
        raise_http(exc)
    return PortalTicketDetail(
        ticket=TicketRead.model_validate(detail["ticket"]),
        comments=[CommentRead.model_validate(c) for c in detail["comments"]],
        can_edit=detail["can_edit"],
    )


@router.post("/tickets/{ticket_id}/comments", response_model=CommentRead, status_code=201)
def add_comment(
    ticket_id: UUID,
    data: PortalCommentCreate,
    db: Session = Depends(get_db),
    session: PortalSession = Depends(get_portal_session),
):
    try:
        comment = portal_service.add_customer_comment(db, session, ticket_id, data.content)
    except HelpdeskError as exc:
        raise_http(exc)
    return CommentRead.model_validate(comment)


@router.get("/knowledge", response_model=list[ArticleRead])
def list_articles(
    search: str | None = Query(None, max_length=200),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: PortalSession = Depends(get_portal_session),
):
    items, _ = knowledge_service.list_public_articles(db, session.company_id, pagination, search=search)
    return [ArticleRead.model_validate(a) for a in items]


@router.get("/knowledge/{article_slug}", response_model=ArticleRead)
def get_article(
    article_slug: str,
    db: Session = Depends(get_db),
    session: PortalSession = Depends(get_portal_session),
):
    try:
        article = knowledge_service.view_public_article(db, session.company_id, article_slug)
    except HelpdeskError as exc:
        raise_http(exc)
    return ArticleRead.model_validate(article)


@router.get("/sla-metrics", response_model=SlaMetricsResponse)
def sla_metrics(
    db: Session = Depends(get_db),
    session: PortalSession = Depends(get_portal_session),
):
    return SlaMetricsResponse(**sla_service.get_sla_metrics(db, session.company_id, session.client_id))
