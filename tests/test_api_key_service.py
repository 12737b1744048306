"""Tests for company API keys."""

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from helpdesk.core.errors import BadRequestError, NotFoundError, UnauthorizedError
from helpdesk.core.security import hash_api_key
from helpdesk.db.models import ApiKey
from helpdesk.services import api_key_service, company_service
from helpdesk.utils.datetime_utils import as_utc, utcnow


def issue(db: Session, company, **kwargs):
    kwargs.setdefault("name", "Zapier")
    kwargs.setdefault("permissions", ["tickets:read"])
    return api_key_service.create_api_key(db, company_id=company.id, **kwargs)


def test_only_the_hash_is_stored(db: Session, company):
    record, key = issue(db, company)

    assert key.startswith("hdk_")
    assert record.prefix == key[:12]
    assert record.key_hash == hash_api_key(key)
    assert key not in {record.key_hash, record.prefix}
    assert record.is_active is True
    assert record.last_used_at is None


def test_authenticate_stamps_last_use(db: Session, company):
    record, key = issue(db, company, permissions=["tickets:read", "comments:read"])
    now = utcnow()

    context = api_key_service.authenticate(db, key, now=now)

    assert context.company_id == company.id
    assert context.api_key_id == record.id
    assert context.allows("comments:read")
    assert not context.allows("tickets:create")
    db.refresh(record)
    assert as_utc(record.last_used_at) == now


def test_wildcard_allows_everything(db: Session, company):
    _, key = issue(db, company, permissions=["*"])
    context = api_key_service.authenticate(db, key)
    assert context.allows("tickets:update")
    assert context.allows("comments:create")


@pytest.mark.parametrize("presented", ["", "hdk_not-a-real-key", "Bearer"])
def test_unknown_keys_are_rejected(db: Session, company, presented):
    issue(db, company)
    with pytest.raises(UnauthorizedError):
        api_key_service.authenticate(db, presented)


def test_deactivated_key_is_rejected(db: Session, company):
    record, key = issue(db, company)
    api_key_service.update_api_key(db, record, is_active=False)

    with pytest.raises(UnauthorizedError):
        api_key_service.authenticate(db, key)


def test_expired_key_is_rejected(db: Session, company):
    now = utcnow()
    _, key = issue(db, company, expires_at=now + timedelta(hours=1))

    assert api_key_service.authenticate(db, key, now=now + timedelta(minutes=30)).company_id == company.id
    with pytest.raises(UnauthorizedError):
        api_key_service.authenticate(db, key, now=now + timedelta(hours=2))


def test_expiry_must_be_in_the_future(db: Session, company):
    with pytest.raises(BadRequestError) as exc_info:
        issue(db, company, expires_at=utcnow() - timedelta(minutes=1))
    assert exc_info.value.field == "expires_at"


def test_permissions_are_validated_and_deduplicated(db: Session, company):
    record, _ = issue(db, company, permissions=["tickets:read", "tickets:read", "comments:create"])
    assert record.permissions == ["tickets:read", "comments:create"]

    with pytest.raises(BadRequestError) as exc_info:
        issue(db, company, permissions=["tickets:delete"])
    assert exc_info.value.field == "permissions"


def test_update_renames_and_rescopes(db: Session, company):
    record, _ = issue(db, company)

    updated = api_key_service.update_api_key(db, record, name="  Make.com ", permissions=["*"], is_active=None)

    assert updated.name == "Make.com"
    assert updated.permissions == ["*"]
    assert updated.is_active is True


def test_revoke_deletes_the_key(db: Session, company):
    record, key = issue(db, company)

    api_key_service.revoke_api_key(db, company.id, record.id)

    assert db.query(ApiKey).count() == 0
    with pytest.raises(UnauthorizedError):
        api_key_service.authenticate(db, key)
    with pytest.raises(NotFoundError):
        api_key_service.revoke_api_key(db, company.id, record.id)


def test_keys_are_scoped_to_their_company(db: Session, company):
    other, _ = company_service.create_company(db, name="Other", slug="other", owner_email="o@other.com")
    record, _ = issue(db, company)

    assert api_key_service.list_api_keys(db, other.id) == []
    with pytest.raises(NotFoundError):
        api_key_service.require_api_key(db, other.id, record.id)
