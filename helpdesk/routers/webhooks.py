"""Inbound webhooks from third-party services."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_db, get_gmail_client_factory
from helpdesk.services import gmail_sync_service
from helpdesk.services.gmail_client import GmailApiError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/gmail")
def gmail_push(
    envelope: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    client_factory=Depends(get_gmail_client_factory),
):
    """
    Gmail Pub/Sub push endpoint.

    Always answers 200 so Pub/Sub does not redeliver; failures are reported in
    the body and the logs.
    """
    try:
        return gmail_sync_service.process_push_notification(db, envelope, client_factory)
    except GmailApiError as exc:
        db.rollback()
        logger.warning("gmail_push_sync_failed", extra={"error": str(exc)})
        return {"status": "error", "reason": "gmail_api_error"}
