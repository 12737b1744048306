"""Tests for the Gmail sync job, using an in-memory mailbox instead of the API."""

import base64
import json
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from helpdesk.core.errors import BadRequestError
from helpdesk.db.enums import ExternalType
from helpdesk.db.models import EmailThread, Ticket, TicketComment
from helpdesk.services import company_service, gmail_sync_service
from helpdesk.services.gmail_client import GmailAuthError, GmailClient
from helpdesk.utils.datetime_utils import utcnow


def _b64(value: str) -> str:
    return base64.urlsafe_b64encode(value.encode()).decode().rstrip("=")


def message(message_id, sender, subject="Printer jam", body="It is jammed again", date="Mon, 5 Jan 2026 10:00:00 +0000"):
    return {
        "id": message_id,
        "payload": {
            "mimeType": "text/plain",
            "headers": [
                {"name": "From", "value": sender},
                {"name": "To", "value": "support@test-co.com"},
                {"name": "Subject", "value": subject},
                {"name": "Date", "value": date},
            ],
            "body": {"data": _b64(body)},
        },
    }


class FakeMailbox:
    """Implements the two GmailClient calls the sync uses."""

    def __init__(self, threads: dict[str, list[dict]], failing: set[str] | None = None):
        self.threads = threads
        self.failing = failing or set()
        self.queries: list[str] = []

    def list_messages(self, query: str, max_results: int) -> list[dict]:
        self.queries.append(query)
        return [
            {"id": m["id"], "threadId": thread_id}
            for thread_id, messages in self.threads.items()
            for m in messages
        ]

    def get_thread(self, thread_id: str) -> dict:
        if thread_id in self.failing:
            raise RuntimeError("mailbox exploded")
        return {"id": thread_id, "messages": self.threads[thread_id]}


@pytest.fixture
def integration(db: Session, company):
    return gmail_sync_service.connect_integration(
        db,
        company_id=company.id,
        email="Support@Test-Co.com",
        refresh_token="refresh-123",
        access_token="access-123",
    )


# =============================================================================
# Parsing
# =============================================================================

def test_parse_sender():
    assert gmail_sync_service.parse_sender('"Bob Smith" <Bob@Acme.com>') == ("Bob Smith", "bob@acme.com")
    assert gmail_sync_service.parse_sender("bob@acme.com") == ("bob@acme.com", "bob@acme.com")


def test_extract_body_prefers_plain_text():
    payload = {
        "mimeType": "multipart/alternative",
        "parts": [
            {"mimeType": "text/html", "body": {"data": _b64("<p>Hello <b>there</b></p>")}},
            {"mimeType": "text/plain", "body": {"data": _b64("Hello there")}},
        ],
    }
    assert gmail_sync_service.extract_body(payload) == "Hello there"


def test_extract_body_strips_html():
    payload = {
        "mimeType": "multipart/mixed",
        "parts": [{
            "mimeType": "multipart/alternative",
            "parts": [{"mimeType": "text/html", "body": {"data": _b64("<style>p{}</style><p>Fish &amp; chips</p><p>Two</p>")}}],
        }],
    }
    assert gmail_sync_service.extract_body(payload) == "Fish & chips\nTwo"


def test_sync_query_uses_epoch_seconds():
    since = utcnow().replace(microsecond=0)
    assert gmail_sync_service.build_sync_query(since) == f"is:unread after:{int(since.timestamp())}"


# =============================================================================
# Sync
# =============================================================================

def test_new_thread_becomes_ticket(db: Session, integration, client_org, owner_membership):
    mailbox = FakeMailbox({
        "t1": [
            message("m1", "Bob Smith <bob@acme.com>", body="The printer is jammed"),
            message("m2", "Bob Smith <bob@acme.com>", subject="Re: Printer jam", body="Still jammed"),
        ],
    })

    result = gmail_sync_service.sync_mailbox(db, integration, mailbox)

    assert result.messages_seen == 2
    assert result.tickets_created == 1
    assert result.comments_created == 1
    assert result.threads_processed == 1
    ticket = db.query(Ticket).one()
    assert ticket.subject == "Printer jam"
    assert ticket.client_id == client_org.id
    assert ticket.customer_email == "bob@acme.com"
    assert ticket.customer_name == "Bob Smith"
    assert ticket.priority == "medium"
    assert ticket.external_type == ExternalType.GMAIL_THREAD.value
    assert ticket.created_by_membership_id == owner_membership.id
    assert ticket.description == (
        "Email from: Bob Smith <bob@acme.com>\n\nSubject: Printer jam\n\nThe printer is jammed"
    )
    comment = db.query(TicketComment).one()
    assert comment.is_system is True
    assert comment.content.startswith("Reply from: Bob Smith <bob@acme.com>\nDate: ")
    assert comment.content.endswith("\n\nStill jammed")
    record = db.query(EmailThread).one()
    assert record.last_message_id == "m2"
    assert "bob@acme.com" in record.participants
    assert integration.last_sync_at is not None


def test_resync_is_idempotent_and_appends_new_replies(db: Session, integration, client_org):
    threads = {"t1": [message("m1", "bob@acme.com")]}
    mailbox = FakeMailbox(threads)
    gmail_sync_service.sync_mailbox(db, integration, mailbox)

    again = gmail_sync_service.sync_mailbox(db, integration, mailbox)
    assert again.tickets_created == 0
    assert again.comments_created == 0
    assert db.query(TicketComment).count() == 0

    threads["t1"].append(message("m2", "carol@acme.com", body="Me too"))
    third = gmail_sync_service.sync_mailbox(db, integration, mailbox)
    assert third.comments_created == 1
    assert db.query(Ticket).count() == 1
    record = db.query(EmailThread).one()
    assert record.last_message_id == "m2"
    assert "carol@acme.com" in record.participants


def test_unmatched_domain_is_skipped(db: Session, integration, client_org):
    mailbox = FakeMailbox({"t1": [message("m1", "eve@elsewhere.org")]})

    result = gmail_sync_service.sync_mailbox(db, integration, mailbox)

    assert result.threads_skipped == 1
    assert db.query(Ticket).count() == 0


def test_auto_create_off(db: Session, integration, client_org):
    gmail_sync_service.update_integration_config(db, integration, auto_create_tickets=False)
    mailbox = FakeMailbox({"t1": [message("m1", "bob@acme.com")]})

    result = gmail_sync_service.sync_mailbox(db, integration, mailbox)

    assert result.threads_skipped == 1
    assert db.query(Ticket).count() == 0


def test_failing_thread_does_not_stop_the_run(db: Session, integration, client_org):
    mailbox = FakeMailbox(
        {"bad": [message("m0", "bob@acme.com")], "t1": [message("m1", "bob@acme.com")]},
        failing={"bad"},
    )

    result = gmail_sync_service.sync_mailbox(db, integration, mailbox)

    assert result.errors == 1
    assert result.tickets_created == 1
    assert db.query(Ticket).count() == 1


def test_auth_failure_aborts(db: Session, integration, client_org):
    class RejectingMailbox(FakeMailbox):
        def get_thread(self, thread_id):
            raise GmailAuthError("token revoked", status_code=401)

    with pytest.raises(GmailAuthError):
        gmail_sync_service.sync_mailbox(db, integration, RejectingMailbox({"t1": [message("m1", "bob@acme.com")]}))


def test_sync_due_respects_frequency(db: Session, integration, client_org):
    mailbox = FakeMailbox({})
    now = utcnow()

    first = gmail_sync_service.sync_due_integrations(db, lambda _: mailbox, now=now)
    assert first == {"checked": 1, "synced": 1, "failed": 0, "not_due": 0}

    soon = gmail_sync_service.sync_due_integrations(db, lambda _: mailbox, now=now + timedelta(minutes=5))
    assert soon["not_due"] == 1

    later = gmail_sync_service.sync_due_integrations(db, lambda _: mailbox, now=now + timedelta(minutes=16))
    assert later["synced"] == 1
    assert len(mailbox.queries) == 2


def test_sync_due_survives_unreachable_mailbox(db: Session, integration):
    other_company, _ = company_service.create_company(
        db, name="Other Co", slug="other-co", owner_email="owner@other-co.com"
    )
    other = gmail_sync_service.connect_integration(
        db,
        company_id=other_company.id,
        email="help@other-co.com",
        refresh_token="refresh-456",
        access_token="access-456",
    )

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def factory(target):
        if target.id == integration.id:
            return GmailClient("access-123", http_client=httpx.Client(transport=httpx.MockTransport(refuse)))
        return FakeMailbox({})

    summary = gmail_sync_service.sync_due_integrations(db, factory)

    assert summary == {"checked": 2, "synced": 1, "failed": 1, "not_due": 0}
    db.refresh(other)
    assert other.last_sync_at is not None


def test_push_notification(db: Session, integration, client_org):
    mailbox = FakeMailbox({"t1": [message("m1", "bob@acme.com")]})
    data = base64.b64encode(json.dumps({"emailAddress": "support@test-co.com", "historyId": 4242}).encode()).decode()

    outcome = gmail_sync_service.process_push_notification(db, {"message": {"data": data}}, lambda _: mailbox)

    assert outcome["status"] == "synced"
    assert outcome["tickets_created"] == 1
    db.refresh(integration)
    assert integration.last_history_id == "4242"


def test_push_notification_ignored(db: Session, integration):
    assert gmail_sync_service.process_push_notification(db, {})["reason"] == "invalid_payload"
    data = base64.b64encode(json.dumps({"emailAddress": "other@x.com"}).encode()).decode()
    outcome = gmail_sync_service.process_push_notification(db, {"message": {"data": data}})
    assert outcome == {"status": "ignored", "reason": "mailbox_not_found"}


# =============================================================================
# Integration management
# =============================================================================

def test_tokens_encrypted_at_rest(db: Session, integration):
    stored = db.execute(text("SELECT refresh_token FROM gmail_integration")).scalar_one()
    assert stored != "refresh-123"
    db.expire_all()
    assert integration.refresh_token == "refresh-123"
    assert integration.email == "support@test-co.com"


def test_frequency_bounds(db: Session, integration):
    with pytest.raises(BadRequestError):
        gmail_sync_service.update_integration_config(db, integration, sync_frequency_minutes=2)
    updated = gmail_sync_service.update_integration_config(
        db, integration, sync_frequency_minutes=60, default_ticket_priority="high"
    )
    assert updated.sync_frequency_minutes == 60
    assert updated.default_ticket_priority == "high"


def test_disable(db: Session, integration):
    assert gmail_sync_service.disable_integration(db, integration).is_active is False


def test_rotated_key_still_decrypts(db: Session, integration, monkeypatch):
    from cryptography.fernet import Fernet

    from helpdesk.core.config import settings

    monkeypatch.setattr(settings, "FERNET_KEY", f"{Fernet.generate_key().decode()},{settings.FERNET_KEY}")
    db.expire_all()
    assert integration.refresh_token == "refresh-123"
