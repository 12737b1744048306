"""Outbound notifications - portal one-time codes via Resend."""

import logging

import httpx

from helpdesk.core.config import settings


logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_TIMEOUT_SECONDS = 10.0


def _otp_body(code: str, client_name: str, ttl_minutes: int) -> str:
    return (
        f"<p>Your sign-in code for the {client_name} support portal is:</p>"
        f"<p style=\"font-size:24px;font-weight:bold;letter-spacing:4px\">{code}</p>"
        f"<p>The code expires in {ttl_minutes} minutes.</p>"
    )


def send_email(
    to_email: str,
    subject: str,
    html: str,
    http_client: httpx.Client | None = None,
) -> tuple[bool, str | None]:
    """
    Send one email through Resend.

    Returns:
        (success, error_message)
    """
    if not settings.RESEND_API_KEY:
        logger.info("email_delivery_skipped_unconfigured")
        return False, "Email delivery not configured"

    payload = {
        "from": settings.PORTAL_EMAIL_FROM,
        "to": [to_email],
        "subject": subject,
        "html": html,
    }
    headers = {
        "Authorization": f"Bearer {settings.RESEND_API_KEY}",
        "Content-Type": "application/json",
    }
    client = http_client or httpx.Client(timeout=RESEND_TIMEOUT_SECONDS)
    try:
        response = client.post(RESEND_SEND_URL, headers=headers, json=payload)
    except httpx.HTTPError as e:
        logger.warning("email_delivery_connection_error", extra={"error": e.__class__.__name__})
        return False, f"Connection error: {e.__class__.__name__}"
    finally:
        if http_client is None:
            client.close()

    if 200 <= response.status_code < 300:
        return True, None
    logger.warning("email_delivery_failed", extra={"status_code": response.status_code})
    return False, f"Resend error {response.status_code}"


def send_portal_otp(to_email: str, code: str, client_name: str) -> bool:
    """Deliver a portal sign-in code. The code itself is never logged."""
    ok, _ = send_email(
        to_email,
        subject=f"Your {client_name} portal sign-in code",
        html=_otp_body(code, client_name, settings.PORTAL_OTP_TTL_MINUTES),
    )
    return ok


def send_submission_notice(
    to_emails: list[str],
    form_name: str,
    submitter_name: str,
    ticket_created: bool,
) -> int:
    """Tell form owners about a new submission. Returns the number delivered."""
    outcome = "A ticket was created automatically." if ticket_created else "No ticket was created."
    html = (
        f"<p>{submitter_name} submitted the form <strong>{form_name}</strong>.</p>"
        f"<p>{outcome}</p>"
    )
    delivered = 0
    for address in to_emails:
        ok, _ = send_email(address, subject=f"New submission: {form_name}", html=html)
        if ok:
            delivered += 1
    return delivered
