"""Gmail integration management (admin)."""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_db, get_gmail_client_factory, require_admin, require_csrf_header
from helpdesk.core.errors import HelpdeskError
from helpdesk.core.http import raise_http
from helpdesk.core.structured_logging import build_log_context
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.integrations import (
    GmailConfigUpdate,
    GmailConnectRequest,
    GmailIntegrationRead,
    GmailSyncResponse,
)
from helpdesk.services import gmail_sync_service
from helpdesk.services.gmail_client import GmailApiError, GmailAuthError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/gmail", tags=["integrations"])


@router.get("", response_model=GmailIntegrationRead)
def get_gmail_integration(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        integration = gmail_sync_service.require_integration(db, session.company_id)
    except HelpdeskError as exc:
        raise_http(exc)
    return GmailIntegrationRead.model_validate(integration)


@router.post("", response_model=GmailIntegrationRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def connect_gmail(
    data: GmailConnectRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    """Store mailbox tokens obtained by the OAuth flow."""
    integration = gmail_sync_service.connect_integration(
        db,
        company_id=session.company_id,
        email=data.email,
        refresh_token=data.refresh_token,
        access_token=data.access_token,
        token_expires_at=data.token_expires_at,
    )
    logger.info(
        "gmail_integration_connected",
        extra=build_log_context(company_id=session.company_id, integration_id=integration.id),
    )
    return GmailIntegrationRead.model_validate(integration)


@router.patch("/config", response_model=GmailIntegrationRead, dependencies=[Depends(require_csrf_header)])
def update_gmail_config(
    data: GmailConfigUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        integration = gmail_sync_service.require_integration(db, session.company_id)
        integration = gmail_sync_service.update_integration_config(
            db, integration, **data.model_dump(exclude_unset=True)
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return GmailIntegrationRead.model_validate(integration)


@router.post("/disable", response_model=GmailIntegrationRead, dependencies=[Depends(require_csrf_header)])
def disable_gmail(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        integration = gmail_sync_service.require_integration(db, session.company_id)
    except HelpdeskError as exc:
        raise_http(exc)
    integration = gmail_sync_service.disable_integration(db, integration)
    return GmailIntegrationRead.model_validate(integration)


@router.post("/sync", response_model=GmailSyncResponse, dependencies=[Depends(require_csrf_header)])
def sync_gmail_now(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
    client_factory=Depends(get_gmail_client_factory),
):
    """Run a sync immediately, regardless of the schedule."""
    try:
        integration = gmail_sync_service.require_integration(db, session.company_id)
    except HelpdeskError as exc:
        raise_http(exc)
    if not integration.is_active:
        raise HTTPException(status_code=400, detail="Gmail integration is disabled")

    try:
        result = gmail_sync_service.run_sync(db, integration, client_factory)
    except GmailAuthError:
        raise HTTPException(status_code=502, detail="Gmail rejected the stored credentials. Reconnect the mailbox.")
    except GmailApiError as exc:
        raise HTTPException(status_code=502, detail=f"Gmail API error: {exc}")
    return GmailSyncResponse(**asdict(result))
