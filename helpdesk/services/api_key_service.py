"""API key service - company keys for the public ticket API."""

import logging
from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from helpdesk.core.errors import BadRequestError, NotFoundError, UnauthorizedError
from helpdesk.core.security import API_KEY_DISPLAY_LENGTH, generate_api_key, hash_api_key
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import ApiKeyPermission
from helpdesk.db.models import ApiKey
from helpdesk.schemas.auth import ApiKeyContext
from helpdesk.utils.datetime_utils import as_utc, utcnow


logger = logging.getLogger(__name__)

INVALID_KEY_MESSAGE = "Invalid or missing API key"


def normalize_permissions(permissions: Iterable[str] | None) -> list[str]:
    """Validate scopes and de-duplicate them, keeping order."""
    result: list[str] = []
    for raw in permissions or []:
        value = getattr(raw, "value", raw)
        if not ApiKeyPermission.has_value(value):
            raise BadRequestError(f"Unknown permission '{value}'", field="permissions")
        if value not in result:
            result.append(value)
    return result


def _check_expiry(expires_at: datetime | None, now: datetime) -> datetime | None:
    expires_at = as_utc(expires_at)
    if expires_at is not None and expires_at <= now:
        raise BadRequestError("Expiry must be in the future", field="expires_at")
    return expires_at


def create_api_key(
    db: Session,
    *,
    company_id: UUID,
    name: str,
    permissions: Iterable[str] | None = None,
    expires_at: datetime | None = None,
    created_by_membership_id: UUID | None = None,
) -> tuple[ApiKey, str]:
    """
    Issue a new key for a company.

    Returns the stored record and the plaintext key. The plaintext is not
    recoverable afterwards.
    """
    key = generate_api_key()
    record = ApiKey(
        company_id=company_id,
        name=name.strip(),
        key_hash=hash_api_key(key),
        prefix=key[:API_KEY_DISPLAY_LENGTH],
        permissions=normalize_permissions(permissions),
        expires_at=_check_expiry(expires_at, utcnow()),
        created_by_membership_id=created_by_membership_id,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info("api_key_created", extra=build_log_context(company_id=company_id, api_key_id=record.id))
    return record, key


def list_api_keys(db: Session, company_id: UUID) -> list[ApiKey]:
    return (
        db.query(ApiKey)
        .filter(ApiKey.company_id == company_id)
        .order_by(ApiKey.created_at.desc())
        .all()
    )


def require_api_key(db: Session, company_id: UUID, key_id: UUID) -> ApiKey:
    record = (
        db.query(ApiKey)
        .filter(ApiKey.company_id == company_id, ApiKey.id == key_id)
        .first()
    )
    if not record:
        raise NotFoundError("API key not found")
    return record


def update_api_key(db: Session, record: ApiKey, **changes) -> ApiKey:
    """Rename, re-scope, re-date or (de)activate a key. None values are ignored."""
    if changes.get("name") is not None:
        record.name = changes["name"].strip()
    if changes.get("permissions") is not None:
        record.permissions = normalize_permissions(changes["permissions"])
    if changes.get("expires_at") is not None:
        record.expires_at = _check_expiry(changes["expires_at"], utcnow())
    if changes.get("is_active") is not None:
        record.is_active = changes["is_active"]
    db.commit()
    db.refresh(record)
    return record


def revoke_api_key(db: Session, company_id: UUID, key_id: UUID) -> None:
    """Delete a key; requests presenting it fail from then on."""
    record = require_api_key(db, company_id, key_id)
    db.delete(record)
    db.commit()
    logger.info("api_key_revoked", extra=build_log_context(company_id=company_id, api_key_id=key_id))


def authenticate(db: Session, key: str, now: datetime | None = None) -> ApiKeyContext:
    """
    Resolve a presented key to its company and scopes, stamping last use.

    Raises:
        UnauthorizedError: unknown, deactivated or expired key
    """
    now = now or utcnow()
    if not key:
        raise UnauthorizedError(INVALID_KEY_MESSAGE)
    record = db.query(ApiKey).filter(ApiKey.key_hash == hash_api_key(key)).first()
    if not record or not record.is_active:
        raise UnauthorizedError(INVALID_KEY_MESSAGE)
    expires_at = as_utc(record.expires_at)
    if expires_at is not None and expires_at <= now:
        raise UnauthorizedError(INVALID_KEY_MESSAGE)

    record.last_used_at = now
    db.commit()
    return ApiKeyContext(
        api_key_id=record.id,
        company_id=record.company_id,
        permissions=list(record.permissions or []),
    )
