"""FastAPI dependencies for authentication, authorization, and database access."""

import logging
from typing import Generator
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from helpdesk.core.errors import HelpdeskError
from helpdesk.core.http import raise_http
from helpdesk.core.security import PORTAL_TOKEN_TYPE, STAFF_TOKEN_TYPE, decode_session_token
from helpdesk.db.session import SessionLocal


logger = logging.getLogger(__name__)

# Cookie and header names
COOKIE_NAME = "helpdesk_session"
COMPANY_HEADER = "X-Company-Id"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"
INTERNAL_SECRET_HEADER = "X-Internal-Secret"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(request: Request, db: Session = Depends(get_db)):
    """
    Get authenticated staff user from the session cookie.

    Validates:
    - Session cookie exists
    - JWT is valid, unexpired and a staff token
    - User exists and is active
    - Token version matches (for revocation support)

    Raises:
        HTTPException 401: Authentication failed
    """
    from helpdesk.db.models import User

    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_session_token(token)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid session")
    if payload.get("typ") != STAFF_TOKEN_TYPE:
        raise HTTPException(status_code=401, detail="Invalid session")

    try:
        user_id = UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid session")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")
    if user.token_version != payload.get("token_version"):
        raise HTTPException(status_code=401, detail="Session revoked")
    return user


def get_current_session(request: Request, db: Session = Depends(get_db)):
    """
    Get full staff session context: user, company, membership, role.

    This is the PRIMARY auth dependency for staff endpoints. A user in several
    companies selects one with the ``X-Company-Id`` header; otherwise the
    earliest active membership is used.

    Raises:
        HTTPException 401: Not authenticated
        HTTPException 403: No membership in the requested company
    """
    from helpdesk.db.enums import Role
    from helpdesk.db.models import Membership
    from helpdesk.schemas.auth import UserSession

    user = get_current_user(request, db)

    query = db.query(Membership).filter(
        Membership.user_id == user.id,
        Membership.is_active.is_(True),
    )
    requested = request.headers.get(COMPANY_HEADER)
    if requested:
        try:
            query = query.filter(Membership.company_id == UUID(requested))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid {COMPANY_HEADER} header")
    membership = query.order_by(Membership.joined_at.asc()).first()
    if not membership:
        raise HTTPException(status_code=403, detail="No company membership")

    if not Role.has_value(membership.role):
        raise HTTPException(
            status_code=403,
            detail=f"Unknown role '{membership.role}'. Contact administrator.",
        )

    return UserSession(
        user_id=user.id,
        company_id=membership.company_id,
        membership_id=membership.id,
        role=Role(membership.role),
        email=user.email,
        display_name=user.display_name,
    )


def require_admin(request: Request, db: Session = Depends(get_db)):
    """Staff session whose role may administer the company (owner/admin)."""
    from helpdesk.db.enums import ROLES_CAN_ADMINISTER

    session = get_current_session(request, db)
    if session.role not in ROLES_CAN_ADMINISTER:
        raise HTTPException(
            status_code=403,
            detail=f"Role '{session.role.value}' not authorized for this action",
        )
    return session


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Apply to state-changing staff endpoints (POST, PATCH, DELETE).

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )


def require_internal_secret(request: Request) -> None:
    """Guard for cron-triggered endpoints."""
    from helpdesk.core.config import settings

    if not settings.INTERNAL_SECRET:
        raise HTTPException(status_code=503, detail="Internal endpoints not configured")
    if request.headers.get(INTERNAL_SECRET_HEADER) != settings.INTERNAL_SECRET:
        raise HTTPException(status_code=403, detail="Invalid internal secret")


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def get_portal_session(
    request: Request,
    company_slug: str,
    client_slug: str,
    db: Session = Depends(get_db),
):
    """
    Portal session from ``Authorization: Bearer <token>``, bound to the portal
    in the URL.

    Raises:
        HTTPException 401: missing or invalid portal token
        HTTPException 403: token belongs to a different portal
    """
    from helpdesk.services import portal_service

    token = _bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return portal_service.verify_portal_token(db, token, company_slug, client_slug)
    except HelpdeskError as exc:
        raise_http(exc)


def get_viewer_context(request: Request, db: Session = Depends(get_db)):
    """
    Optional caller identity for public endpoints.

    A valid staff cookie yields the user id; a valid portal bearer token yields
    the portal access id. Invalid credentials are treated as anonymous.
    """
    from helpdesk.schemas.auth import ViewerContext

    viewer = ViewerContext()
    if request.cookies.get(COOKIE_NAME):
        try:
            user = get_current_user(request, db)
            viewer.user_id = user.id
        except HTTPException:
            logger.debug("viewer_staff_session_ignored", exc_info=True)

    token = _bearer_token(request)
    if token:
        try:
            payload = decode_session_token(token)
            if payload.get("typ") == PORTAL_TOKEN_TYPE:
                viewer.portal_access_id = UUID(payload["sub"])
        except (jwt.InvalidTokenError, KeyError, ValueError):
            logger.debug("viewer_portal_token_ignored", exc_info=True)
    return viewer


def get_gmail_client_factory():
    """Builds the mailbox client for a Gmail integration. Overridden in tests."""
    from helpdesk.services.gmail_sync_service import default_client_factory

    return default_client_factory


def get_api_key_context(request: Request, db: Session = Depends(get_db)):
    """
    Company API key from ``Authorization: Bearer <key>``.

    Raises:
        HTTPException 401: missing, unknown, deactivated or expired key
    """
    from helpdesk.services import api_key_service

    try:
        return api_key_service.authenticate(db, _bearer_token(request) or "")
    except HelpdeskError as exc:
        raise_http(exc)


def require_api_permission(permission):
    """
    Dependency factory for API key scopes.

    Usage:
        @router.get("", dependencies=[Depends(require_api_permission(ApiKeyPermission.TICKETS_READ))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        context = get_api_key_context(request, db)
        if not context.allows(permission.value):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return context
    return dependency
