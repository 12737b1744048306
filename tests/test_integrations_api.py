"""API tests for the Gmail integration, the Pub/Sub webhook and the cron endpoint."""

import base64
import json

import pytest
from httpx import AsyncClient

from helpdesk.core.deps import INTERNAL_SECRET_HEADER, get_gmail_client_factory
from helpdesk.db.models import Ticket
from helpdesk.main import app
from helpdesk.services import gmail_sync_service
from helpdesk.services.gmail_client import GmailApiError, GmailAuthError


def _message(message_id: str, sender: str) -> dict:
    body = base64.urlsafe_b64encode(b"Help please").decode().rstrip("=")
    return {
        "id": message_id,
        "payload": {
            "mimeType": "text/plain",
            "headers": [{"name": "From", "value": sender}, {"name": "Subject", "value": "Outage"}],
            "body": {"data": body},
        },
    }


class StubMailbox:
    def __init__(self, threads=None, error: Exception | None = None):
        self.threads = threads or {}
        self.error = error
        self.closed = False

    def list_messages(self, query, max_results):
        if self.error:
            raise self.error
        return [{"id": m["id"], "threadId": tid} for tid, msgs in self.threads.items() for m in msgs]

    def get_thread(self, thread_id):
        return {"id": thread_id, "messages": self.threads[thread_id]}

    def close(self):
        self.closed = True


def use_mailbox(mailbox: StubMailbox) -> None:
    app.dependency_overrides[get_gmail_client_factory] = lambda: (lambda integration: mailbox)


@pytest.fixture
def integration(db, company):
    return gmail_sync_service.connect_integration(
        db, company_id=company.id, email="support@test-co.com", refresh_token="refresh", access_token="access"
    )


@pytest.mark.asyncio
async def test_connect_and_configure(authed_client: AsyncClient):
    missing = await authed_client.get("/integrations/gmail")
    assert missing.status_code == 404

    connected = await authed_client.post(
        "/integrations/gmail", json={"email": "Support@Test-Co.com", "refresh_token": "r-token"}
    )
    assert connected.status_code == 201
    data = connected.json()
    assert data["email"] == "support@test-co.com"
    assert data["sync_frequency_minutes"] == 15
    assert "refresh_token" not in data

    too_fast = await authed_client.patch("/integrations/gmail/config", json={"sync_frequency_minutes": 1})
    assert too_fast.status_code == 422

    updated = await authed_client.patch(
        "/integrations/gmail/config", json={"sync_frequency_minutes": 30, "default_ticket_priority": "high"}
    )
    assert updated.status_code == 200
    assert updated.json()["sync_frequency_minutes"] == 30
    assert updated.json()["default_ticket_priority"] == "high"

    disabled = await authed_client.post("/integrations/gmail/disable")
    assert disabled.json()["is_active"] is False

    sync = await authed_client.post("/integrations/gmail/sync")
    assert sync.status_code == 400


@pytest.mark.asyncio
async def test_manual_sync(authed_client: AsyncClient, db, integration, client_org):
    mailbox = StubMailbox({"t1": [_message("m1", "Bob <bob@acme.com>")]})
    use_mailbox(mailbox)

    response = await authed_client.post("/integrations/gmail/sync")

    assert response.status_code == 200
    assert response.json()["tickets_created"] == 1
    assert mailbox.closed is True
    assert db.query(Ticket).one().external_type == "gmail_thread"


@pytest.mark.asyncio
async def test_sync_errors_map_to_502(authed_client: AsyncClient, integration):
    use_mailbox(StubMailbox(error=GmailAuthError("revoked", status_code=401)))
    rejected = await authed_client.post("/integrations/gmail/sync")
    assert rejected.status_code == 502
    assert "Reconnect" in rejected.json()["detail"]

    use_mailbox(StubMailbox(error=GmailApiError("quota", status_code=429)))
    failed = await authed_client.post("/integrations/gmail/sync")
    assert failed.status_code == 502
    assert failed.json()["detail"] == "Gmail API error: quota"


@pytest.mark.asyncio
async def test_internal_sync_requires_secret(client: AsyncClient, integration):
    use_mailbox(StubMailbox())

    denied = await client.post("/internal/gmail/sync-due")
    assert denied.status_code == 403

    allowed = await client.post("/internal/gmail/sync-due", headers={INTERNAL_SECRET_HEADER: "internal-test-secret"})
    assert allowed.status_code == 200
    assert allowed.json() == {"checked": 1, "synced": 1, "failed": 0, "not_due": 0}


@pytest.mark.asyncio
async def test_webhook_ignores_bad_payload(client: AsyncClient):
    response = await client.post("/webhooks/gmail", json={"message": {"data": "%%%"}})
    assert response.status_code == 200
    assert response.json() == {"status": "ignored", "reason": "invalid_payload"}


@pytest.mark.asyncio
async def test_webhook_reports_gmail_errors(client: AsyncClient, integration):
    use_mailbox(StubMailbox(error=GmailApiError("boom")))
    data = base64.b64encode(json.dumps({"emailAddress": "support@test-co.com", "historyId": 7}).encode()).decode()

    response = await client.post("/webhooks/gmail", json={"message": {"data": data}})

    assert response.status_code == 200
    assert response.json() == {"status": "error", "reason": "gmail_api_error"}
