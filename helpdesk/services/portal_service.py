"""Customer portal service - access grants, OTP sign-in, submitter identity and
customer-side ticket operations."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

import jwt
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
)
from helpdesk.core.security import (
    PORTAL_TOKEN_TYPE,
    create_portal_token,
    decode_session_token,
    generate_otp_code,
    hash_otp_code,
    verify_otp_code,
)
from helpdesk.db.enums import Role, TicketStatus
from helpdesk.db.models import (
    Client,
    Company,
    CustomerPortalAccess,
    Membership,
    PortalOtpCode,
    Ticket,
    TicketComment,
    User,
)
from helpdesk.schemas.auth import PortalSession, ViewerContext
from helpdesk.services import (
    client_service,
    company_service,
    notification_service,
    ticket_service,
)
from helpdesk.utils.datetime_utils import as_utc, utcnow
from helpdesk.utils.normalization import normalize_email
from helpdesk.utils.pagination import PaginationParams, paginate_query


logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous"
ANONYMOUS_EMAIL = "anonymous@example.com"


@dataclass(frozen=True)
class SubmitterIdentity:
    """Who submitted a form: a team member, a portal customer, or anonymous."""
    name: str
    email: str
    membership_id: UUID | None = None
    portal_access_id: UUID | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.membership_id is not None or self.portal_access_id is not None


@dataclass(frozen=True)
class IssuedOtp:
    access: CustomerPortalAccess
    code: str
    expires_at: datetime
    delivered: bool


# =============================================================================
# Access grants
# =============================================================================

def get_portal_client(db: Session, company_slug: str, client_slug: str) -> tuple[Company, Client]:
    """Company and client by slugs; the client's portal must be enabled."""
    company = company_service.get_company_by_slug(db, company_slug)
    client = client_service.get_client_by_slug(db, company.id, client_slug) if company else None
    if not company or not client or not client.is_active or not client.portal_enabled:
        raise NotFoundError("Client not found or portal disabled")
    return company, client


def find_active_access(db: Session, client_id: UUID, email: str) -> CustomerPortalAccess | None:
    return (
        db.query(CustomerPortalAccess)
        .filter(
            CustomerPortalAccess.client_id == client_id,
            CustomerPortalAccess.email == normalize_email(email),
            CustomerPortalAccess.is_active.is_(True),
        )
        .first()
    )


def list_access(db: Session, company_id: UUID, client_id: UUID) -> list[CustomerPortalAccess]:
    return (
        db.query(CustomerPortalAccess)
        .filter(
            CustomerPortalAccess.company_id == company_id,
            CustomerPortalAccess.client_id == client_id,
        )
        .order_by(CustomerPortalAccess.email.asc())
        .all()
    )


def grant_access(
    db: Session,
    *,
    company_id: UUID,
    client_id: UUID,
    email: str,
    name: str | None = None,
) -> CustomerPortalAccess:
    """Grant (or re-enable) portal access for an email on one client."""
    client_service.require_client(db, company_id, client_id)
    email = normalize_email(email)
    existing = (
        db.query(CustomerPortalAccess)
        .filter(CustomerPortalAccess.client_id == client_id, CustomerPortalAccess.email == email)
        .first()
    )
    if existing and existing.is_active:
        raise ConflictError("This email already has portal access")
    if existing:
        existing.is_active = True
        if name:
            existing.name = name
        access = existing
    else:
        access = CustomerPortalAccess(
            company_id=company_id, client_id=client_id, email=email, name=name
        )
        db.add(access)
    db.commit()
    db.refresh(access)
    return access


def revoke_access(db: Session, company_id: UUID, access_id: UUID) -> CustomerPortalAccess:
    access = (
        db.query(CustomerPortalAccess)
        .filter(CustomerPortalAccess.company_id == company_id, CustomerPortalAccess.id == access_id)
        .first()
    )
    if not access:
        raise NotFoundError("Portal user not found")
    access.is_active = False
    db.commit()
    db.refresh(access)
    return access


# =============================================================================
# OTP sign-in
# =============================================================================

def request_otp(
    db: Session,
    company_slug: str,
    client_slug: str,
    email: str,
    now: datetime | None = None,
) -> IssuedOtp:
    """
    Issue a sign-in code to an email with portal access.

    Earlier unconsumed codes for the same identity are invalidated.

    Raises:
        NotFoundError: portal missing or disabled
        UnauthorizedError: email has no active access
    """
    now = now or utcnow()
    _, client = get_portal_client(db, company_slug, client_slug)
    access = find_active_access(db, client.id, email)
    if not access:
        raise UnauthorizedError("No portal access for this email")

    db.query(PortalOtpCode).filter(
        PortalOtpCode.portal_access_id == access.id,
        PortalOtpCode.consumed_at.is_(None),
    ).update({PortalOtpCode.consumed_at: now}, synchronize_session=False)

    code = generate_otp_code()
    expires_at = now + timedelta(minutes=settings.PORTAL_OTP_TTL_MINUTES)
    db.add(PortalOtpCode(portal_access_id=access.id, code_hash=hash_otp_code(code), expires_at=expires_at))
    db.commit()

    delivered = notification_service.send_portal_otp(access.email, code, client.name)
    logger.info(
        "portal_otp_issued",
        extra={"portal_access_id": str(access.id), "delivered": delivered},
    )
    return IssuedOtp(access=access, code=code, expires_at=expires_at, delivered=delivered)


def verify_otp(
    db: Session,
    company_slug: str,
    client_slug: str,
    email: str,
    code: str,
    now: datetime | None = None,
) -> tuple[str, CustomerPortalAccess]:
    """
    Exchange a valid code for a portal session token.

    Every wrong guess counts against the newest outstanding code; once the
    attempt cap is reached the code is dead.

    Raises:
        NotFoundError: portal missing or disabled
        UnauthorizedError: no access, no live code, or wrong code
    """
    now = now or utcnow()
    company, client = get_portal_client(db, company_slug, client_slug)
    access = find_active_access(db, client.id, email)
    if not access:
        raise UnauthorizedError("No portal access for this email")

    otp = (
        db.query(PortalOtpCode)
        .filter(
            PortalOtpCode.portal_access_id == access.id,
            PortalOtpCode.consumed_at.is_(None),
        )
        .order_by(PortalOtpCode.created_at.desc())
        .first()
    )
    if (
        not otp
        or as_utc(otp.expires_at) <= now
        or otp.attempts >= settings.PORTAL_OTP_MAX_ATTEMPTS
    ):
        raise UnauthorizedError("Code expired or not found. Request a new code.")

    if not verify_otp_code(code, otp.code_hash):
        otp.attempts += 1
        db.commit()
        raise UnauthorizedError("Invalid code")

    otp.consumed_at = now
    access.last_login_at = now
    db.commit()
    db.refresh(access)

    token = create_portal_token(access.id, company.id, client.id, access.email)
    logger.info("portal_login", extra={"portal_access_id": str(access.id)})
    return token, access


def verify_portal_token(
    db: Session,
    token: str,
    company_slug: str | None = None,
    client_slug: str | None = None,
) -> PortalSession:
    """
    Validate a portal session token against current state.

    Raises:
        UnauthorizedError: bad token, revoked access, or disabled portal
        ForbiddenError: token belongs to a different portal than the URL
    """
    try:
        payload = decode_session_token(token)
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid session")
    if payload.get("typ") != PORTAL_TOKEN_TYPE:
        raise UnauthorizedError("Invalid session")
    try:
        access_id = UUID(payload["sub"])
    except (KeyError, ValueError):
        raise UnauthorizedError("Invalid session")

    access = (
        db.query(CustomerPortalAccess)
        .filter(CustomerPortalAccess.id == access_id)
        .first()
    )
    if not access or not access.is_active:
        raise UnauthorizedError("Portal access revoked")
    client = db.query(Client).filter(Client.id == access.client_id).first()
    if not client or not client.is_active or not client.portal_enabled:
        raise UnauthorizedError("Portal disabled")

    if company_slug is not None or client_slug is not None:
        company = company_service.get_company_by_id(db, access.company_id)
        if (company_slug is not None and company.slug != company_slug) or (
            client_slug is not None and client.slug != client_slug
        ):
            raise ForbiddenError("Session is not valid for this portal")

    return PortalSession(
        portal_access_id=access.id,
        company_id=access.company_id,
        client_id=access.client_id,
        email=access.email,
        name=access.name,
    )


# =============================================================================
# Submitter identity
# =============================================================================

def resolve_submitter(
    db: Session,
    viewer: ViewerContext | None,
    company: Company,
    client: Client,
    contact_name: str | None = None,
    contact_email: str | None = None,
) -> SubmitterIdentity:
    """
    Work out who is submitting a form.

    Precedence: a team member of the company, then a portal customer of the
    form's client, then anonymous with whatever contact details were given.
    An authenticated viewer with neither relationship counts as anonymous.
    """
    if viewer is not None and viewer.user_id is not None:
        membership = company_service.get_active_membership(db, company.id, viewer.user_id)
        if membership:
            user = db.query(User).filter(User.id == viewer.user_id).first()
            return SubmitterIdentity(
                name=user.display_name,
                email=user.email,
                membership_id=membership.id,
            )

    if viewer is not None and viewer.portal_access_id is not None:
        access = (
            db.query(CustomerPortalAccess)
            .filter(
                CustomerPortalAccess.id == viewer.portal_access_id,
                CustomerPortalAccess.client_id == client.id,
                CustomerPortalAccess.is_active.is_(True),
            )
            .first()
        )
        if access:
            return SubmitterIdentity(
                name=access.name or access.email,
                email=access.email,
                portal_access_id=access.id,
            )

    return SubmitterIdentity(
        name=(contact_name or "").strip() or ANONYMOUS_NAME,
        email=normalize_email(contact_email) or ANONYMOUS_EMAIL,
    )


# =============================================================================
# Customer-side tickets
# =============================================================================

def _next_agent(db: Session, company_id: UUID) -> Membership | None:
    """Earliest-joined active agent in the company."""
    return (
        db.query(Membership)
        .join(User, User.id == Membership.user_id)
        .filter(
            Membership.company_id == company_id,
            Membership.role == Role.AGENT.value,
            Membership.is_active.is_(True),
            User.is_active.is_(True),
        )
        .order_by(Membership.joined_at.asc())
        .first()
    )


def _require_client_ticket(db: Session, session: PortalSession, ticket_id: UUID) -> Ticket:
    ticket = (
        db.query(Ticket)
        .filter(
            Ticket.company_id == session.company_id,
            Ticket.client_id == session.client_id,
            Ticket.id == ticket_id,
        )
        .first()
    )
    if not ticket:
        raise NotFoundError("Ticket not found")
    return ticket


def list_customer_tickets(
    db: Session,
    session: PortalSession,
    pagination: PaginationParams,
    status: str | None = None,
) -> tuple[list[Ticket], int]:
    """All tickets of the customer's client, newest first."""
    query = db.query(Ticket).filter(
        Ticket.company_id == session.company_id,
        Ticket.client_id == session.client_id,
    )
    if status:
        query = query.filter(Ticket.status == status)
    query = query.order_by(Ticket.created_at.desc(), Ticket.id.asc())
    return paginate_query(query, pagination)


def get_customer_ticket(db: Session, session: PortalSession, ticket_id: UUID) -> dict:
    """Ticket with public comments only, plus whether the customer may reply."""
    ticket = _require_client_ticket(db, session, ticket_id)
    comments = ticket_service.list_comments(db, ticket, include_internal=False)
    can_edit = ticket.status != TicketStatus.CLOSED.value and (
        ticket.customer_email == session.email
        or ticket.assigned_to_customer_portal_access_id == session.portal_access_id
    )
    return {"ticket": ticket, "comments": comments, "can_edit": can_edit}


def create_customer_ticket(
    db: Session,
    session: PortalSession,
    *,
    subject: str,
    description: str,
    priority: str,
) -> Ticket:
    """Open a ticket from the portal, auto-assigned to the longest-serving agent."""
    agent = _next_agent(db, session.company_id)
    return ticket_service.create_ticket(
        db,
        company_id=session.company_id,
        client_id=session.client_id,
        subject=subject,
        description=description,
        priority=priority,
        assigned_to_membership_id=agent.id if agent else None,
        customer_email=session.email,
        customer_name=session.name or session.email,
    )


def add_customer_comment(
    db: Session,
    session: PortalSession,
    ticket_id: UUID,
    content: str,
) -> TicketComment:
    ticket = _require_client_ticket(db, session, ticket_id)
    if ticket.status == TicketStatus.CLOSED.value:
        raise ForbiddenError("Ticket is closed")
    return ticket_service.add_comment(
        db,
        ticket,
        content=content,
        portal_access_id=session.portal_access_id,
    )
