"""Form service - form CRUD, publishing and public lookup by slugs."""

import logging
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from helpdesk.core.errors import BadRequestError, ConflictError, NotFoundError
from helpdesk.db.models import Client, Company, Form
from helpdesk.schemas.forms import (
    FormField,
    FormSettings,
    TicketRule,
    form_fields_adapter,
)
from helpdesk.services import client_service, company_service
from helpdesk.utils.pagination import PaginationParams, paginate_query


logger = logging.getLogger(__name__)


# =============================================================================
# Documents
# =============================================================================

def parse_fields(raw_fields: list[Any]) -> list[FormField]:
    """Parse a stored ``fields`` document."""
    try:
        return form_fields_adapter.validate_python(raw_fields or [])
    except ValidationError as exc:
        raise BadRequestError(f"Invalid form fields: {exc.errors()[0]['msg']}") from exc


def parse_settings(raw_settings: dict | None) -> FormSettings:
    """Parse a stored ``settings`` document, falling back to defaults."""
    try:
        return FormSettings.model_validate(raw_settings or {})
    except ValidationError:
        logger.warning("form_settings_invalid_defaulted")
        return FormSettings()


def field_ids(fields: list[FormField]) -> set[str]:
    return {field.id for field in fields}


def _validate_fields(fields: list[FormField]) -> None:
    seen: set[str] = set()
    for field in fields:
        if field.id in seen:
            raise BadRequestError(f"Duplicate field id: {field.id}", field="fields")
        seen.add(field.id)


def _validate_rules(rules: list[TicketRule], fields: list[FormField]) -> None:
    known = field_ids(fields)
    seen: set[str] = set()
    for rule in rules:
        if rule.field_id not in known:
            raise BadRequestError(
                f"Ticket rule '{rule.name or rule.id}' references unknown field '{rule.field_id}'",
                field="ticket_rules",
            )
        if rule.id in seen:
            raise BadRequestError(f"Duplicate ticket rule id: {rule.id}", field="ticket_rules")
        seen.add(rule.id)


def _dump_fields(fields: list[FormField]) -> list[dict]:
    return [field.model_dump(mode="json") for field in sorted(fields, key=lambda f: f.order)]


def _dump_rules(rules: list[TicketRule]) -> list[dict]:
    return [rule.model_dump(mode="json") for rule in rules]


def _check_assignees(db: Session, company_id: UUID, rules: list[TicketRule]) -> None:
    for rule in rules:
        if rule.assign_to_membership_id is not None:
            company_service.require_active_membership(db, company_id, rule.assign_to_membership_id)


def _slug_taken(
    db: Session,
    company_id: UUID,
    client_id: UUID,
    slug: str,
    exclude_id: UUID | None = None,
) -> bool:
    query = db.query(Form.id).filter(
        Form.company_id == company_id,
        Form.client_id == client_id,
        Form.slug == slug,
    )
    if exclude_id is not None:
        query = query.filter(Form.id != exclude_id)
    return query.first() is not None


# =============================================================================
# CRUD
# =============================================================================

def create_form(
    db: Session,
    *,
    company_id: UUID,
    client_id: UUID,
    name: str,
    slug: str,
    description: str | None,
    fields: list[FormField],
    settings: FormSettings,
    ticket_rules: list[TicketRule],
    created_by_membership_id: UUID | None = None,
) -> Form:
    """
    Create a draft form.

    Raises:
        NotFoundError: client not in this company
        ConflictError: slug already used by this client
        BadRequestError: duplicate field ids or rules pointing at unknown fields
    """
    client_service.require_client(db, company_id, client_id)
    if _slug_taken(db, company_id, client_id, slug):
        raise ConflictError("A form with this slug already exists for this client")
    _validate_fields(fields)
    _validate_rules(ticket_rules, fields)
    _check_assignees(db, company_id, ticket_rules)

    form = Form(
        company_id=company_id,
        client_id=client_id,
        name=name,
        slug=slug,
        description=description,
        fields=_dump_fields(fields),
        settings=settings.model_dump(mode="json"),
        ticket_rules=_dump_rules(ticket_rules),
        created_by_membership_id=created_by_membership_id,
    )
    db.add(form)
    db.commit()
    db.refresh(form)
    return form


def get_form(db: Session, company_id: UUID, form_id: UUID) -> Form | None:
    return (
        db.query(Form)
        .filter(Form.company_id == company_id, Form.id == form_id)
        .first()
    )


def require_form(db: Session, company_id: UUID, form_id: UUID) -> Form:
    form = get_form(db, company_id, form_id)
    if not form:
        raise NotFoundError("Form not found")
    return form


def list_forms(
    db: Session,
    company_id: UUID,
    pagination: PaginationParams,
    client_id: UUID | None = None,
    is_published: bool | None = None,
) -> tuple[list[Form], int]:
    query = db.query(Form).filter(Form.company_id == company_id)
    if client_id is not None:
        query = query.filter(Form.client_id == client_id)
    if is_published is not None:
        query = query.filter(Form.is_published.is_(is_published))
    query = query.order_by(Form.created_at.desc(), Form.id.asc())
    return paginate_query(query, pagination)


def update_form(
    db: Session,
    form: Form,
    *,
    name: str | None = None,
    slug: str | None = None,
    description: str | None = None,
    fields: list[FormField] | None = None,
    settings: FormSettings | None = None,
    ticket_rules: list[TicketRule] | None = None,
) -> Form:
    """
    Partial update.

    Rules are checked against the effective field list. Removing a field that
    existing rules still reference is allowed; those rules stop matching.
    """
    if slug is not None and slug != form.slug:
        if _slug_taken(db, form.company_id, form.client_id, slug, exclude_id=form.id):
            raise ConflictError("A form with this slug already exists for this client")
        form.slug = slug

    if fields is not None:
        _validate_fields(fields)
        form.fields = _dump_fields(fields)

    if ticket_rules is not None:
        effective_fields = fields if fields is not None else parse_fields(form.fields)
        _validate_rules(ticket_rules, effective_fields)
        _check_assignees(db, form.company_id, ticket_rules)
        form.ticket_rules = _dump_rules(ticket_rules)

    if settings is not None:
        form.settings = settings.model_dump(mode="json")
    if name is not None:
        form.name = name
    if description is not None:
        form.description = description

    db.commit()
    db.refresh(form)
    return form


def set_published(db: Session, form: Form, is_published: bool) -> Form:
    """Publish or unpublish. A form needs at least one field to be published."""
    if is_published and not form.fields:
        raise BadRequestError("Add at least one field before publishing")
    form.is_published = is_published
    db.commit()
    db.refresh(form)
    logger.info("form_published" if is_published else "form_unpublished", extra={"form_id": str(form.id)})
    return form


def delete_form(db: Session, form: Form) -> None:
    db.delete(form)
    db.commit()


# =============================================================================
# Public lookup
# =============================================================================

def get_published_form(
    db: Session,
    company_slug: str,
    client_slug: str,
    form_slug: str,
) -> tuple[Company, Client, Form]:
    """
    Resolve company -> client -> published form by slugs.

    Raises:
        NotFoundError: any step missing (or form not published)
    """
    company = company_service.get_company_by_slug(db, company_slug)
    if not company:
        raise NotFoundError("Company not found")
    client = client_service.get_client_by_slug(db, company.id, client_slug)
    if not client or not client.is_active:
        raise NotFoundError("Client not found")
    form = (
        db.query(Form)
        .filter(
            Form.company_id == company.id,
            Form.client_id == client.id,
            Form.slug == form_slug,
            Form.is_published.is_(True),
        )
        .first()
    )
    if not form:
        raise NotFoundError("Form not found or not published")
    return company, client, form


def public_form_view(company: Company, client: Client, form: Form) -> dict:
    """Read model for the public form page. Ticket rules stay private."""
    settings = parse_settings(form.settings)
    return {
        "form_id": form.id,
        "name": form.name,
        "description": form.description,
        "company_name": company.name,
        "client_name": client.name,
        "fields": sorted(form.fields or [], key=lambda f: f.get("order", 0)),
        "require_authentication": settings.require_authentication,
        "collect_contact_info": settings.collect_contact_info,
    }
