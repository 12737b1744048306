"""Cron-triggered endpoints, guarded by the internal shared secret."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_db, get_gmail_client_factory, require_internal_secret
from helpdesk.services import gmail_sync_service

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(require_internal_secret)],
)


@router.post("/gmail/sync-due")
def sync_due_gmail(
    db: Session = Depends(get_db),
    client_factory=Depends(get_gmail_client_factory),
):
    return gmail_sync_service.sync_due_integrations(db, client_factory)
