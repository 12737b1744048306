"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite database per test
- Company / staff / client / portal fixtures built through the services
- HTTPX AsyncClient, unauthenticated, staff-authenticated and portal-authenticated
"""
import os
from dataclasses import dataclass
from typing import AsyncGenerator, Callable, Generator

# Must be set before any helpdesk import reads settings
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["FERNET_KEY"] = "ZmDfcTF7_60GrrY167zsiPd67pEvs0aGOv2oasOM1Pg="
os.environ["RESEND_API_KEY"] = ""
os.environ["INTERNAL_SECRET"] = "internal-test-secret"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from helpdesk.core.deps import COOKIE_NAME, CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from helpdesk.core.security import create_portal_token, create_session_token
from helpdesk.db import models  # noqa: F401
from helpdesk.db.base import Base
from helpdesk.db.enums import Role
from helpdesk.db.models import Client, Company, CustomerPortalAccess, Form, Membership, User
from helpdesk.main import app
from helpdesk.schemas.forms import FormSettings, form_fields_adapter, ticket_rules_adapter
from helpdesk.services import client_service, company_service, form_service, portal_service


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """A session on a brand-new in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()
    engine.dispose()


# =============================================================================
# Tenant Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def company(db: Session) -> Company:
    company, _ = company_service.create_company(
        db,
        name="Test Company",
        slug="test-co",
        owner_email="owner@test-co.com",
        owner_first_name="Olive",
        owner_last_name="Owner",
    )
    return company


@pytest.fixture(scope="function")
def owner_membership(db: Session, company: Company) -> Membership:
    return company_service.find_admin_membership(db, company.id)


@pytest.fixture(scope="function")
def owner(db: Session, owner_membership: Membership) -> User:
    return db.query(User).filter(User.id == owner_membership.user_id).first()


@pytest.fixture(scope="function")
def agent_membership(db: Session, company: Company) -> Membership:
    return company_service.add_member(
        db,
        company_id=company.id,
        email="agent@test-co.com",
        role=Role.AGENT,
        first_name="Avery",
        last_name="Agent",
    )


@pytest.fixture(scope="function")
def client_org(db: Session, company: Company) -> Client:
    """A client with its portal enabled and mail routed from acme.com."""
    return client_service.create_client(
        db,
        company_id=company.id,
        name="Acme Corp",
        slug="acme",
        email_domains=["acme.com"],
        portal_enabled=True,
    )


@pytest.fixture(scope="function")
def portal_access(db: Session, company: Company, client_org: Client) -> CustomerPortalAccess:
    return portal_service.grant_access(
        db,
        company_id=company.id,
        client_id=client_org.id,
        email="alice@acme.com",
        name="Alice",
    )


@pytest.fixture(scope="function")
def make_form(db: Session, company: Company, client_org: Client) -> Callable[..., Form]:
    """Factory for forms built from plain JSON-like documents."""

    def _make(
        fields: list[dict],
        rules: list[dict] | None = None,
        settings: dict | None = None,
        slug: str = "support",
        publish: bool = True,
    ) -> Form:
        form = form_service.create_form(
            db,
            company_id=company.id,
            client_id=client_org.id,
            name="Support Request",
            slug=slug,
            description=None,
            fields=form_fields_adapter.validate_python(fields),
            settings=FormSettings.model_validate(settings or {}),
            ticket_rules=ticket_rules_adapter.validate_python(rules or []),
        )
        if publish:
            form = form_service.set_published(db, form, True)
        return form

    return _make


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class StaffAuth:
    """Staff authentication context."""
    user: User
    membership: Membership
    token: str
    cookie_name: str = COOKIE_NAME


@pytest.fixture(scope="function")
def owner_auth(owner: User, owner_membership: Membership) -> StaffAuth:
    token = create_session_token(user_id=owner.id, token_version=owner.token_version)
    return StaffAuth(user=owner, membership=owner_membership, token=token)


@pytest.fixture(scope="function")
def portal_token(company: Company, client_org: Client, portal_access: CustomerPortalAccess) -> str:
    return create_portal_token(portal_access.id, company.id, client_org.id, portal_access.email)


# =============================================================================
# Client Fixtures
# =============================================================================

def _override_db(db: Session) -> None:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient for public endpoints."""
    _override_db(db)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(db: Session, owner_auth: StaffAuth) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient signed in as the company owner, with the CSRF header."""
    _override_db(db)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={owner_auth.cookie_name: owner_auth.token},
        headers={CSRF_HEADER: CSRF_HEADER_VALUE},
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def portal_client(db: Session, portal_token: str) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient carrying a portal bearer token for the acme portal."""
    _override_db(db)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {portal_token}"},
    ) as c:
        yield c
    app.dependency_overrides.clear()
