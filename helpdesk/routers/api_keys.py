"""Company API key management (staff)."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_current_session, get_db, require_admin, require_csrf_header
from helpdesk.core.errors import HelpdeskError
from helpdesk.core.http import raise_http
from helpdesk.schemas.api_keys import ApiKeyCreate, ApiKeyCreated, ApiKeyRead, ApiKeyUpdate
from helpdesk.schemas.auth import UserSession
from helpdesk.services import api_key_service

router = APIRouter(prefix="/api-keys", tags=["api-keys"])


@router.get("", response_model=list[ApiKeyRead])
def list_api_keys(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return [ApiKeyRead.model_validate(k) for k in api_key_service.list_api_keys(db, session.company_id)]


@router.post("", response_model=ApiKeyCreated, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_api_key(
    data: ApiKeyCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    """Issue a key. The response is the only place the full key appears."""
    try:
        record, key = api_key_service.create_api_key(
            db,
            company_id=session.company_id,
            name=data.name,
            permissions=data.permissions,
            expires_at=data.expires_at,
            created_by_membership_id=session.membership_id,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return ApiKeyCreated(**ApiKeyRead.model_validate(record).model_dump(), key=key)


@router.patch("/{key_id}", response_model=ApiKeyRead, dependencies=[Depends(require_csrf_header)])
def update_api_key(
    key_id: UUID,
    data: ApiKeyUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        record = api_key_service.require_api_key(db, session.company_id, key_id)
        record = api_key_service.update_api_key(db, record, **data.model_dump(exclude_unset=True))
    except HelpdeskError as exc:
        raise_http(exc)
    return ApiKeyRead.model_validate(record)


@router.delete("/{key_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def revoke_api_key(
    key_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        api_key_service.revoke_api_key(db, session.company_id, key_id)
    except HelpdeskError as exc:
        raise_http(exc)
