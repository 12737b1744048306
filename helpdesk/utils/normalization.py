"""Data normalization utilities for emails, domains and slugs."""

import re
import unicodedata
from typing import Optional


_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    return email.strip().lower()


def extract_email_domain(email: Optional[str]) -> Optional[str]:
    """Extract the lowercased domain part of an email address."""
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized:
        return None
    return normalized.split("@", 1)[1]


def normalize_domain(domain: Optional[str]) -> Optional[str]:
    """Normalize a bare email domain (``@Acme.COM`` -> ``acme.com``)."""
    if not domain:
        return None
    cleaned = domain.strip().lower().lstrip("@")
    return cleaned or None


def slugify(value: str, max_length: int = 100) -> str:
    """URL-friendly slug: ascii, lowercase, hyphen separated."""
    ascii_value = (
        unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    )
    slug = _SLUG_STRIP.sub("-", ascii_value.lower()).strip("-")
    return slug[:max_length].rstrip("-")


def is_valid_slug(value: str) -> bool:
    """Check slug format (lowercase alphanumerics with single hyphens)."""
    return bool(re.fullmatch(r"[a-z0-9]+(?:-[a-z0-9]+)*", value or ""))
