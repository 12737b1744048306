"""Structured logging helpers.

Log context carries identifiers only. Submitted form values and email bodies
never go into log records.
"""

import logging
from typing import Any
from uuid import UUID


def build_log_context(
    *,
    company_id: UUID | str | None = None,
    client_id: UUID | str | None = None,
    form_id: UUID | str | None = None,
    submission_id: UUID | str | None = None,
    ticket_id: UUID | str | None = None,
    integration_id: UUID | str | None = None,
    api_key_id: UUID | str | None = None,
    route: str | None = None,
) -> dict[str, Any]:
    """Return an id-only log context dict suitable for ``extra=``."""
    context: dict[str, Any] = {}
    if company_id:
        context["company_id"] = str(company_id)
    if client_id:
        context["client_id"] = str(client_id)
    if form_id:
        context["form_id"] = str(form_id)
    if submission_id:
        context["submission_id"] = str(submission_id)
    if ticket_id:
        context["ticket_id"] = str(ticket_id)
    if integration_id:
        context["integration_id"] = str(integration_id)
    if api_key_id:
        context["api_key_id"] = str(api_key_id)
    if route:
        context["route"] = route
    return context


def configure_logging(level: str) -> None:
    """Configure root logging once at application start."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
