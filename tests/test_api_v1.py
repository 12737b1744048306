"""API tests for the API-key ticket endpoints and staff key management."""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy.orm import Session

from helpdesk.services import api_key_service, company_service, ticket_service

ALL_SCOPES = ["tickets:read", "tickets:create", "tickets:update", "comments:read", "comments:create"]


@pytest.fixture
def make_key(db: Session, company):
    def _make(permissions=ALL_SCOPES, company_id=None) -> dict:
        _, key = api_key_service.create_api_key(
            db, company_id=company_id or company.id, name="Integration", permissions=permissions
        )
        return {"Authorization": f"Bearer {key}"}

    return _make


# =============================================================================
# Authentication
# =============================================================================

@pytest.mark.asyncio
async def test_missing_or_bad_key_is_401(client: AsyncClient, company):
    missing = await client.get("/api/v1/tickets")
    assert missing.status_code == 401
    assert missing.json()["detail"] == "Invalid or missing API key"

    wrong = await client.get("/api/v1/tickets", headers={"Authorization": "Bearer hdk_nope"})
    assert wrong.status_code == 401


@pytest.mark.asyncio
async def test_scope_is_enforced(client: AsyncClient, make_key):
    headers = make_key(["tickets:read"])

    assert (await client.get("/api/v1/tickets", headers=headers)).status_code == 200
    denied = await client.post("/api/v1/tickets", headers=headers, json={"subject": "x", "description": "y"})
    assert denied.status_code == 403
    assert denied.json()["detail"] == "Insufficient permissions"


@pytest.mark.asyncio
async def test_staff_cookie_does_not_open_the_api(authed_client: AsyncClient):
    response = await authed_client.get("/api/v1/tickets")
    assert response.status_code == 401


# =============================================================================
# Tickets
# =============================================================================

@pytest.mark.asyncio
async def test_create_list_and_filter(client: AsyncClient, make_key):
    headers = make_key()

    created = await client.post(
        "/api/v1/tickets",
        headers=headers,
        json={
            "subject": "Webhook failing",
            "description": "503 from the endpoint",
            "priority": "urgent",
            "customer_email": "ops@acme.com",
            "tags": ["webhooks"],
        },
    )
    assert created.status_code == 201
    ticket = created.json()["data"]
    assert ticket["status"] == "open"
    assert ticket["priority"] == "urgent"
    assert ticket["created_by_membership_id"] is None
    assert ticket["tags"] == ["webhooks"]

    await client.post("/api/v1/tickets", headers=headers, json={"subject": "Invoice", "description": "Wrong VAT"})

    listed = await client.get("/api/v1/tickets", headers=headers, params={"limit": 1})
    assert listed.status_code == 200
    body = listed.json()
    assert len(body["data"]) == 1
    assert body["pagination"] == {"page": 1, "limit": 1, "total": 2, "total_pages": 2}

    urgent = await client.get("/api/v1/tickets", headers=headers, params={"priority": "urgent"})
    assert [t["subject"] for t in urgent.json()["data"]] == ["Webhook failing"]

    search = await client.get("/api/v1/tickets", headers=headers, params={"search": "vat"})
    assert [t["subject"] for t in search.json()["data"]] == ["Invoice"]


@pytest.mark.asyncio
async def test_create_requires_description(client: AsyncClient, make_key):
    response = await client.post("/api/v1/tickets", headers=make_key(), json={"subject": "No body"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_limit_is_capped(client: AsyncClient, make_key):
    response = await client.get("/api/v1/tickets", headers=make_key(), params={"limit": 101})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_detail_hides_internal_comments(client: AsyncClient, make_key, db: Session, company, owner_membership):
    ticket = ticket_service.create_ticket(db, company_id=company.id, subject="Printer", description="Jammed")
    ticket_service.add_comment(db, ticket, content="Customer is difficult", membership_id=owner_membership.id, is_internal=True)
    ticket_service.add_comment(db, ticket, content="On our way", membership_id=owner_membership.id)

    response = await client.get(f"/api/v1/tickets/{ticket.id}", headers=make_key())

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["subject"] == "Printer"
    assert [c["content"] for c in data["comments"]] == ["On our way"]


@pytest.mark.asyncio
async def test_update_resolves_ticket(client: AsyncClient, make_key, db: Session, company):
    ticket = ticket_service.create_ticket(db, company_id=company.id, subject="Printer", description="Jammed")

    response = await client.put(
        f"/api/v1/tickets/{ticket.id}",
        headers=make_key(),
        json={"status": "resolved", "tags": ["hardware"]},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "resolved"
    assert data["resolved_at"] is not None
    assert data["tags"] == ["hardware"]


@pytest.mark.asyncio
async def test_other_company_ticket_is_404(client: AsyncClient, make_key, db: Session, company):
    other, _ = company_service.create_company(db, name="Other", slug="other", owner_email="o@other.com")
    foreign = ticket_service.create_ticket(db, company_id=other.id, subject="Secret", description="Not yours")
    headers = make_key()

    assert (await client.get(f"/api/v1/tickets/{foreign.id}", headers=headers)).status_code == 404
    assert (await client.put(f"/api/v1/tickets/{foreign.id}", headers=headers, json={"status": "closed"})).status_code == 404
    assert (await client.get(f"/api/v1/tickets/{uuid.uuid4()}/comments", headers=headers)).status_code == 404


# =============================================================================
# Comments
# =============================================================================

@pytest.mark.asyncio
async def test_comment_from_portal_customer(client: AsyncClient, make_key, db: Session, company, client_org, portal_access):
    ticket = ticket_service.create_ticket(
        db, company_id=company.id, client_id=client_org.id, subject="Login", description="Locked out"
    )
    headers = make_key()

    first = await client.post(
        f"/api/v1/tickets/{ticket.id}/comments",
        headers=headers,
        json={"content": "Still locked out", "customer_email": "Alice@Acme.com"},
    )
    assert first.status_code == 201
    comment = first.json()["data"]
    assert comment["customer_portal_access_id"] == str(portal_access.id)
    assert comment["membership_id"] is None
    assert comment["is_internal"] is False

    await client.post(f"/api/v1/tickets/{ticket.id}/comments", headers=headers, json={"content": "Any news?"})

    listed = await client.get(f"/api/v1/tickets/{ticket.id}/comments", headers=headers)
    contents = [c["content"] for c in listed.json()["data"]]
    assert sorted(contents) == ["Any news?", "Still locked out"]

    db.refresh(ticket)
    assert ticket.first_response_at is None


@pytest.mark.asyncio
async def test_comment_from_unknown_email_is_unattributed(client: AsyncClient, make_key, db: Session, company, client_org):
    ticket = ticket_service.create_ticket(
        db, company_id=company.id, client_id=client_org.id, subject="Login", description="Locked out"
    )

    response = await client.post(
        f"/api/v1/tickets/{ticket.id}/comments",
        headers=make_key(),
        json={"content": "Hello", "customer_email": "stranger@acme.com"},
    )

    assert response.status_code == 201
    assert response.json()["data"]["customer_portal_access_id"] is None


# =============================================================================
# Key management (staff)
# =============================================================================

@pytest.mark.asyncio
async def test_key_lifecycle(authed_client: AsyncClient, client: AsyncClient):
    created = await authed_client.post(
        "/api-keys", json={"name": "Zapier", "permissions": ["tickets:read", "tickets:read"]}
    )
    assert created.status_code == 201
    body = created.json()
    key = body["key"]
    assert key.startswith("hdk_")
    assert body["prefix"] == key[:12]
    assert body["permissions"] == ["tickets:read"]

    listed = await authed_client.get("/api-keys")
    assert [k["name"] for k in listed.json()] == ["Zapier"]
    assert "key" not in listed.json()[0]

    headers = {"Authorization": f"Bearer {key}"}
    assert (await client.get("/api/v1/tickets", headers=headers)).status_code == 200
    used = await authed_client.get("/api-keys")
    assert used.json()[0]["last_used_at"] is not None

    paused = await authed_client.patch(f"/api-keys/{body['id']}", json={"is_active": False})
    assert paused.json()["is_active"] is False
    assert (await client.get("/api/v1/tickets", headers=headers)).status_code == 401

    assert (await authed_client.delete(f"/api-keys/{body['id']}")).status_code == 204
    assert (await authed_client.delete(f"/api-keys/{body['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_unknown_permission_is_422(authed_client: AsyncClient):
    response = await authed_client.post("/api-keys", json={"name": "Bad", "permissions": ["tickets:delete"]})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_past_expiry_is_400(authed_client: AsyncClient):
    response = await authed_client.post(
        "/api-keys", json={"name": "Old", "permissions": ["*"], "expires_at": "2020-01-01T00:00:00Z"}
    )
    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "expires_at"


@pytest.mark.asyncio
async def test_key_management_needs_staff_session(client: AsyncClient, company):
    response = await client.get("/api-keys")
    assert response.status_code == 401
