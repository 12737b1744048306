"""Security utilities for staff and portal session tokens and one-time codes."""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from helpdesk.core.config import settings


PORTAL_TOKEN_TYPE = "portal"
STAFF_TOKEN_TYPE = "staff"


# =============================================================================
# Staff session token (JWT in cookie)
# =============================================================================

def create_session_token(user_id: UUID, token_version: int) -> str:
    """
    Create signed staff session JWT.

    Always signs with current secret (JWT_SECRET). The company is not baked
    into the token; staff pick a company per request among their memberships.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "typ": STAFF_TOKEN_TYPE,
        "token_version": token_version,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_session_token(token: str) -> dict:
    """
    Decode and verify a JWT signed by this service.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


# =============================================================================
# Customer portal session token
# =============================================================================

def create_portal_token(
    portal_access_id: UUID,
    company_id: UUID,
    client_id: UUID,
    email: str,
) -> str:
    """Create a portal session JWT bound to one client portal."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(portal_access_id),
        "typ": PORTAL_TOKEN_TYPE,
        "company_id": str(company_id),
        "client_id": str(client_id),
        "email": email,
        "iat": now,
        "exp": now + timedelta(hours=settings.PORTAL_SESSION_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


# =============================================================================
# One-time passcodes
# =============================================================================

def generate_otp_code(length: int = 6) -> str:
    """Generate a numeric one-time code."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def hash_otp_code(code: str) -> str:
    """Hash a one-time code for storage (keyed by the current JWT secret)."""
    return hmac.new(
        settings.JWT_SECRET.encode(), code.strip().encode(), hashlib.sha256
    ).hexdigest()


def verify_otp_code(code: str, code_hash: str) -> bool:
    """Constant-time comparison of a submitted code against its stored hash."""
    return hmac.compare_digest(hash_otp_code(code), code_hash)


# =============================================================================
# Company API keys
# =============================================================================

API_KEY_PREFIX = "hdk_"
API_KEY_DISPLAY_LENGTH = 12


def generate_api_key() -> str:
    """Generate a new API key. Only its hash is stored."""
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"


def hash_api_key(key: str) -> str:
    """SHA256 of an API key for storage and lookup."""
    return hashlib.sha256(key.encode()).hexdigest()
