"""Gmail sync job - turns support-mailbox threads into tickets and replies into
comments.

Threads are routed to clients by the sender's email domain. Each thread is its
own unit of work: a failure on one thread is logged and the sync carries on
with the next. An auth failure stops the whole run.
"""

import base64
import binascii
import html
import json
import logging
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from email.utils import getaddresses
from typing import Any, Callable, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.errors import BadRequestError, NotFoundError
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import ExternalType
from helpdesk.db.models import Client, EmailThread, GmailIntegration, Membership, Ticket
from helpdesk.services import client_service, company_service, ticket_service
from helpdesk.services.gmail_client import GmailApiError, GmailAuthError, GmailClient
from helpdesk.utils.datetime_utils import as_utc, utcnow
from helpdesk.utils.normalization import extract_email_domain, normalize_email


logger = logging.getLogger(__name__)

NO_SUBJECT = "No Subject"
MIN_SYNC_FREQUENCY_MINUTES = 5
MAX_SYNC_FREQUENCY_MINUTES = 1440

_EMAIL_IN_TEXT = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")
_HTML_TAG = re.compile(r"<[^>]+>")
_HTML_BLOCK = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_WHITESPACE_RUN = re.compile(r"[ \t]+")


class MailboxClient(Protocol):
    def list_messages(self, query: str, max_results: int) -> list[dict]: ...

    def get_thread(self, thread_id: str) -> dict: ...


ClientFactory = Callable[[GmailIntegration], MailboxClient]


@dataclass
class SyncResult:
    messages_seen: int = 0
    threads_processed: int = 0
    tickets_created: int = 0
    comments_created: int = 0
    threads_skipped: int = 0
    errors: int = 0


def default_client_factory(integration: GmailIntegration) -> GmailClient:
    return GmailClient(integration.access_token or "")


# =============================================================================
# Message parsing
# =============================================================================

def header_value(message: dict, name: str) -> str | None:
    """Case-insensitive header lookup on a Gmail message resource."""
    headers = (message.get("payload") or {}).get("headers") or []
    lowered = name.lower()
    for header in headers:
        if (header.get("name") or "").lower() == lowered:
            return header.get("value")
    return None


def decode_base64url(data: str) -> str:
    padding = "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode((data + padding).encode("utf-8")).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return ""


def strip_html(markup: str) -> str:
    text = _HTML_BLOCK.sub("", markup)
    text = re.sub(r"<br\s*/?>|</p>|</div>", "\n", text, flags=re.IGNORECASE)
    text = html.unescape(_HTML_TAG.sub("", text))
    lines = [_WHITESPACE_RUN.sub(" ", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def _find_part(payload: dict, mime_type: str) -> str | None:
    if payload.get("mimeType") == mime_type:
        data = (payload.get("body") or {}).get("data")
        if data:
            return decode_base64url(data)
    for part in payload.get("parts") or []:
        found = _find_part(part, mime_type)
        if found:
            return found
    return None


def extract_body(payload: dict | None) -> str:
    """Plain-text body of a message: text/plain first, then stripped text/html."""
    if not payload:
        return ""
    plain = _find_part(payload, "text/plain")
    if plain:
        return plain.strip()
    markup = _find_part(payload, "text/html")
    if markup:
        return strip_html(markup)
    data = (payload.get("body") or {}).get("data")
    return decode_base64url(data).strip() if data else ""


def parse_sender(from_header: str) -> tuple[str, str | None]:
    """Split a ``From`` header into (display name, lowercased email)."""
    addresses = getaddresses([from_header or ""])
    name, address = addresses[0] if addresses else ("", "")
    email = normalize_email(address) if address and "@" in address else None
    if email is None:
        found = _EMAIL_IN_TEXT.search(from_header or "")
        email = normalize_email(found.group(0)) if found else None
    if not name:
        name = (from_header or "").split("<", 1)[0].strip().strip('"')
    return name, email


def _participants(messages: list[dict]) -> list[str]:
    seen: list[str] = []
    for message in messages:
        for header in ("From", "To", "Cc"):
            for _, address in getaddresses([header_value(message, header) or ""]):
                email = normalize_email(address)
                if email and "@" in email and email not in seen:
                    seen.append(email)
    return seen


def _reply_comment(message: dict) -> str:
    return (
        f"Reply from: {header_value(message, 'From') or 'Unknown'}\n"
        f"Date: {header_value(message, 'Date') or ''}\n\n"
        f"{extract_body(message.get('payload'))}"
    )


def build_sync_query(since: datetime) -> str:
    return f"is:unread after:{int(as_utc(since).timestamp())}"


# =============================================================================
# Sync
# =============================================================================

def _unique_thread_ids(stubs: list[dict]) -> list[str]:
    thread_ids: list[str] = []
    for stub in stubs:
        thread_id = stub.get("threadId") or stub.get("id")
        if thread_id and thread_id not in thread_ids:
            thread_ids.append(thread_id)
    return thread_ids


def _append_replies(db: Session, record: EmailThread, messages: list[dict]) -> int:
    """Add messages newer than the last one seen as comments on the ticket."""
    ids = [m.get("id") for m in messages]
    if record.last_message_id not in ids:
        logger.warning(
            "gmail_thread_anchor_missing",
            extra=build_log_context(company_id=record.company_id, ticket_id=record.ticket_id),
        )
        return 0
    new_messages = messages[ids.index(record.last_message_id) + 1:]
    if not new_messages:
        return 0

    ticket = db.query(Ticket).filter(Ticket.id == record.ticket_id).first()
    if ticket is None:
        return 0
    for message in new_messages:
        ticket_service.add_comment(
            db, ticket, content=_reply_comment(message), is_system=True, commit=False
        )
    record.last_message_id = new_messages[-1].get("id")
    record.participants = _participants(messages)
    return len(new_messages)


def _open_ticket_for_thread(
    db: Session,
    integration: GmailIntegration,
    thread_id: str,
    messages: list[dict],
    client: Client,
    creator: Membership | None,
) -> Ticket:
    first = messages[0]
    from_header = header_value(first, "From") or ""
    sender_name, sender_email = parse_sender(from_header)
    subject = header_value(first, "Subject") or NO_SUBJECT
    body = extract_body(first.get("payload"))

    ticket = ticket_service.create_ticket(
        db,
        company_id=integration.company_id,
        client_id=client.id,
        subject=subject,
        description=f"Email from: {from_header}\n\nSubject: {subject}\n\n{body}",
        priority=integration.default_ticket_priority,
        created_by_membership_id=creator.id if creator else None,
        customer_email=sender_email,
        customer_name=sender_name or sender_email,
        external_type=ExternalType.GMAIL_THREAD.value,
        commit=False,
    )
    for message in messages[1:]:
        ticket_service.add_comment(
            db, ticket, content=_reply_comment(message), is_system=True, commit=False
        )
    db.add(
        EmailThread(
            company_id=integration.company_id,
            ticket_id=ticket.id,
            gmail_thread_id=thread_id,
            subject=subject,
            participants=_participants(messages),
            last_message_id=messages[-1].get("id"),
        )
    )
    return ticket


def _sync_thread(
    db: Session,
    integration: GmailIntegration,
    client: MailboxClient,
    thread_id: str,
    domain_map: dict[str, Client],
    creator: Membership | None,
    result: SyncResult,
) -> None:
    thread = client.get_thread(thread_id)
    messages = thread.get("messages") or []
    if not messages:
        result.threads_skipped += 1
        return

    record = (
        db.query(EmailThread)
        .filter(
            EmailThread.company_id == integration.company_id,
            EmailThread.gmail_thread_id == thread_id,
        )
        .first()
    )
    if record is not None:
        result.comments_created += _append_replies(db, record, messages)
        result.threads_processed += 1
        return

    _, sender_email = parse_sender(header_value(messages[0], "From") or "")
    matched = domain_map.get(extract_email_domain(sender_email) or "")
    if matched is None:
        logger.info(
            "gmail_thread_skipped_unmatched_domain",
            extra=build_log_context(company_id=integration.company_id, integration_id=integration.id),
        )
        result.threads_skipped += 1
        return
    if not integration.auto_create_tickets:
        result.threads_skipped += 1
        return

    _open_ticket_for_thread(db, integration, thread_id, messages, matched, creator)
    result.tickets_created += 1
    result.comments_created += len(messages) - 1
    result.threads_processed += 1


def sync_mailbox(
    db: Session,
    integration: GmailIntegration,
    client: MailboxClient,
    now: datetime | None = None,
) -> SyncResult:
    """
    Pull unread mail since the last sync and fold it into tickets.

    Each thread commits on its own. ``last_sync_at`` advances once all
    threads have been attempted.

    Raises:
        GmailAuthError: the mailbox token was rejected
    """
    now = now or utcnow()
    result = SyncResult()
    since = as_utc(integration.last_sync_at) or now - timedelta(hours=settings.GMAIL_SYNC_LOOKBACK_HOURS)
    stubs = client.list_messages(build_sync_query(since), settings.GMAIL_SYNC_MAX_RESULTS)
    result.messages_seen = len(stubs)

    company_id = integration.company_id
    integration_id = integration.id
    domain_map = client_service.build_domain_map(db, company_id)
    creator = company_service.find_admin_membership(db, company_id)

    for thread_id in _unique_thread_ids(stubs):
        try:
            _sync_thread(db, integration, client, thread_id, domain_map, creator, result)
            db.commit()
        except GmailAuthError:
            db.rollback()
            raise
        except Exception:
            db.rollback()
            result.errors += 1
            logger.exception(
                "gmail_thread_sync_failed",
                extra=build_log_context(company_id=company_id, integration_id=integration_id),
            )

    integration.last_sync_at = now
    db.commit()
    logger.info(
        "gmail_sync_completed",
        extra={**build_log_context(company_id=company_id, integration_id=integration_id), **asdict(result)},
    )
    return result


def run_sync(
    db: Session,
    integration: GmailIntegration,
    client_factory: ClientFactory = default_client_factory,
    now: datetime | None = None,
) -> SyncResult:
    """Build a mailbox client for the integration and sync it."""
    client = client_factory(integration)
    try:
        return sync_mailbox(db, integration, client, now=now)
    finally:
        close = getattr(client, "close", None)
        if callable(close):
            close()


def sync_due_integrations(
    db: Session,
    client_factory: ClientFactory = default_client_factory,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Sync every active auto-sync integration whose interval has elapsed."""
    now = now or utcnow()
    integrations = (
        db.query(GmailIntegration)
        .filter(
            GmailIntegration.is_active.is_(True),
            GmailIntegration.auto_sync_enabled.is_(True),
        )
        .all()
    )
    summary: dict[str, Any] = {"checked": len(integrations), "synced": 0, "failed": 0, "not_due": 0}
    for integration in integrations:
        last = as_utc(integration.last_sync_at)
        if last and last + timedelta(minutes=integration.sync_frequency_minutes) > now:
            summary["not_due"] += 1
            continue
        integration_id = integration.id
        try:
            run_sync(db, integration, client_factory, now=now)
            summary["synced"] += 1
        except GmailApiError:
            db.rollback()
            summary["failed"] += 1
            logger.warning(
                "gmail_sync_failed",
                exc_info=True,
                extra=build_log_context(integration_id=integration_id),
            )
    return summary


def decode_push_envelope(envelope: dict) -> dict | None:
    """Decode a Pub/Sub push body into the Gmail notification dict."""
    data = ((envelope or {}).get("message") or {}).get("data")
    if not data:
        return None
    try:
        decoded = base64.b64decode(data + "=" * (-len(data) % 4))
        payload = json.loads(decoded)
    except (binascii.Error, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def process_push_notification(
    db: Session,
    envelope: dict,
    client_factory: ClientFactory = default_client_factory,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Handle a Gmail Pub/Sub push: record the history id and sync the mailbox."""
    notification = decode_push_envelope(envelope)
    if notification is None:
        return {"status": "ignored", "reason": "invalid_payload"}
    email = normalize_email(notification.get("emailAddress"))
    if not email:
        return {"status": "ignored", "reason": "missing_email"}

    integration = (
        db.query(GmailIntegration)
        .filter(GmailIntegration.email == email, GmailIntegration.is_active.is_(True))
        .first()
    )
    if integration is None:
        return {"status": "ignored", "reason": "mailbox_not_found"}

    history_id = notification.get("historyId")
    if history_id is not None:
        integration.last_history_id = str(history_id)
        db.commit()

    result = run_sync(db, integration, client_factory, now=now)
    return {"status": "synced", **asdict(result)}


# =============================================================================
# Integration management
# =============================================================================

def get_integration(db: Session, company_id: UUID) -> GmailIntegration | None:
    return (
        db.query(GmailIntegration)
        .filter(GmailIntegration.company_id == company_id)
        .first()
    )


def require_integration(db: Session, company_id: UUID) -> GmailIntegration:
    integration = get_integration(db, company_id)
    if not integration:
        raise NotFoundError("Gmail integration not configured")
    return integration


def connect_integration(
    db: Session,
    *,
    company_id: UUID,
    email: str,
    refresh_token: str,
    access_token: str | None = None,
    token_expires_at: datetime | None = None,
) -> GmailIntegration:
    """Store (or replace) the company's mailbox tokens and re-enable it."""
    integration = get_integration(db, company_id)
    if integration is None:
        integration = GmailIntegration(company_id=company_id, email=normalize_email(email), refresh_token=refresh_token)
        db.add(integration)
    else:
        integration.email = normalize_email(email)
        integration.refresh_token = refresh_token
        integration.is_active = True
    integration.access_token = access_token
    integration.token_expires_at = token_expires_at
    db.commit()
    db.refresh(integration)
    return integration


def update_integration_config(db: Session, integration: GmailIntegration, **changes) -> GmailIntegration:
    frequency = changes.get("sync_frequency_minutes")
    if frequency is not None and not (
        MIN_SYNC_FREQUENCY_MINUTES <= frequency <= MAX_SYNC_FREQUENCY_MINUTES
    ):
        raise BadRequestError(
            f"Sync frequency must be between {MIN_SYNC_FREQUENCY_MINUTES} and {MAX_SYNC_FREQUENCY_MINUTES} minutes",
            field="sync_frequency_minutes",
        )
    priority = changes.get("default_ticket_priority")
    if priority is not None:
        changes["default_ticket_priority"] = getattr(priority, "value", priority)
    for key, value in changes.items():
        if value is not None:
            setattr(integration, key, value)
    db.commit()
    db.refresh(integration)
    return integration


def disable_integration(db: Session, integration: GmailIntegration) -> GmailIntegration:
    integration.is_active = False
    db.commit()
    db.refresh(integration)
    return integration
