"""Form submission service - public submissions, rule-driven ticket creation,
and staff-side submission review."""

import dataclasses
import logging
import math
import re
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from helpdesk.core.errors import BadRequestError, ConflictError, HelpdeskError, NotFoundError, UnauthorizedError
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import ExternalType, FormFieldType, TicketPriority
from helpdesk.db.models import Form, FormSubmission, Ticket
from helpdesk.schemas.auth import ViewerContext
from helpdesk.schemas.forms import FormField
from helpdesk.services import (
    company_service,
    form_service,
    notification_service,
    portal_service,
    ticket_service,
)
from helpdesk.services.ticket_rules import (
    DEFAULT_SUBJECT_PREFIX,
    TicketDraft,
    default_description,
    load_rules,
    parse_number,
    select_ticket_draft,
)
from helpdesk.utils.pagination import PaginationParams, paginate_query


logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION_MESSAGE = "Thank you for your submission!"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[0-9 ().\-]{5,30}$")

TEXT_TYPES = {
    FormFieldType.TEXT.value,
    FormFieldType.TEXTAREA.value,
    FormFieldType.EMAIL.value,
    FormFieldType.PHONE.value,
}
NUMERIC_TYPES = {FormFieldType.NUMBER.value, FormFieldType.RATING.value}
SINGLE_CHOICE_TYPES = {FormFieldType.SELECT.value, FormFieldType.RADIO.value}


# =============================================================================
# Validation
# =============================================================================

def _is_empty(field: FormField, value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, tuple)) and len(value) == 0:
        return True
    if field.type == FormFieldType.CHECKBOX.value and value is False:
        return True
    return False


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        number = parse_number(value)
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _check_options(field: FormField, values: list[Any]) -> None:
    allowed = {option.value for option in field.options}
    for item in values:
        if not isinstance(item, str):
            raise BadRequestError(f"Field '{field.label}' must be a list of strings", field=field.label)
        if item not in allowed:
            raise BadRequestError(f"Invalid option for '{field.label}'", field=field.label)


def _validate_field_value(field: FormField, value: Any) -> None:
    field_type = field.type
    if field_type in TEXT_TYPES:
        if not isinstance(value, str):
            raise BadRequestError(f"Field '{field.label}' must be a string", field=field.label)
        if field.max_length is not None and len(value) > field.max_length:
            raise BadRequestError(
                f"Field '{field.label}' must be at most {field.max_length} characters",
                field=field.label,
            )
        if field_type == FormFieldType.EMAIL.value and not _EMAIL_RE.match(value.strip()):
            raise BadRequestError(f"Field '{field.label}' must be a valid email", field=field.label)
        if field_type == FormFieldType.PHONE.value and not _PHONE_RE.match(value.strip()):
            raise BadRequestError(f"Field '{field.label}' must be a valid phone number", field=field.label)
        validation = field.validation
        if validation and validation.pattern:
            try:
                matched = re.fullmatch(validation.pattern, value) is not None
            except re.error as exc:
                raise BadRequestError(
                    f"Invalid validation pattern for '{field.label}'", field=field.label
                ) from exc
            if not matched:
                raise BadRequestError(
                    validation.message or f"Field '{field.label}' does not match required pattern",
                    field=field.label,
                )
        return

    if field_type in NUMERIC_TYPES:
        number = _as_number(value)
        if number is None:
            raise BadRequestError(f"Field '{field.label}' must be a number", field=field.label)
        if field.min is not None and number < field.min:
            raise BadRequestError(f"Field '{field.label}' must be at least {field.min:g}", field=field.label)
        if field.max is not None and number > field.max:
            raise BadRequestError(f"Field '{field.label}' must be at most {field.max:g}", field=field.label)
        return

    if field_type in SINGLE_CHOICE_TYPES:
        if not isinstance(value, str):
            raise BadRequestError(f"Field '{field.label}' must be a string", field=field.label)
        _check_options(field, [value])
        return

    if field_type == FormFieldType.MULTISELECT.value:
        if not isinstance(value, list):
            raise BadRequestError(f"Field '{field.label}' must be a list", field=field.label)
        _check_options(field, value)
        return

    if field_type == FormFieldType.CHECKBOX.value:
        # Checkbox fields with options behave like a multiselect. Without options, a boolean.
        if field.options:
            if not isinstance(value, list):
                raise BadRequestError(f"Field '{field.label}' must be a list", field=field.label)
            _check_options(field, value)
            return
        if not isinstance(value, bool):
            raise BadRequestError(f"Field '{field.label}' must be a boolean", field=field.label)
        return

    raise BadRequestError(f"Unsupported field type: {field_type}", field=field.label)


def validate_submission(fields: list[FormField], data: dict[str, Any]) -> None:
    """
    Check submitted data against the form's fields.

    Every required field is checked for presence before any value is
    type-checked, so the first missing required field is always the one
    reported.
    """
    if not isinstance(data, dict):
        raise BadRequestError("Submission data must be an object")
    ordered = sorted(fields, key=lambda f: f.order)
    for field in ordered:
        if field.required and _is_empty(field, data.get(field.id)):
            raise BadRequestError(f'Field "{field.label}" is required', field=field.label)
    for field in ordered:
        value = data.get(field.id)
        if _is_empty(field, value):
            continue
        _validate_field_value(field, value)


# =============================================================================
# Public submission
# =============================================================================

def _usable_draft(db: Session, draft: TicketDraft) -> TicketDraft:
    """Drop a rule's staff assignee that is no longer an active member."""
    if draft.assigned_to_membership_id is None:
        return draft
    membership = company_service.get_membership(db, draft.company_id, draft.assigned_to_membership_id)
    if membership and membership.is_active:
        return draft
    logger.warning(
        "ticket_rule_assignee_unavailable",
        extra=build_log_context(company_id=draft.company_id),
    )
    return dataclasses.replace(draft, assigned_to_membership_id=None)


def submit_public_form(
    db: Session,
    *,
    company_slug: str,
    client_slug: str,
    form_slug: str,
    data: dict[str, Any],
    viewer: ViewerContext | None = None,
    contact_name: str | None = None,
    contact_email: str | None = None,
    description: str | None = None,
    external_id: str | None = None,
    external_type: str | None = None,
) -> dict:
    """
    Accept a submission to a published form.

    Resolves the form and the submitter, validates the data, stores the
    submission, then opens a ticket for the first ticket rule that matches.
    Nothing is persisted unless every step succeeds.

    Raises:
        NotFoundError: company, client or published form missing
        UnauthorizedError: form requires sign-in and the caller is anonymous
        BadRequestError: a required field is empty or a value is invalid
        ConflictError: the form allows one submission per person and this
            person already submitted
    """
    company, client, form = form_service.get_published_form(db, company_slug, client_slug, form_slug)
    settings = form_service.parse_settings(form.settings)
    log_context = build_log_context(company_id=company.id, client_id=client.id, form_id=form.id)

    submitter = portal_service.resolve_submitter(
        db, viewer, company, client, contact_name=contact_name, contact_email=contact_email
    )
    if settings.require_authentication and not submitter.is_authenticated:
        raise UnauthorizedError("This form requires authentication")

    fields = form_service.parse_fields(form.fields)
    validate_submission(fields, data)

    if not settings.allow_multiple_submissions and submitter.email != portal_service.ANONYMOUS_EMAIL:
        already = (
            db.query(FormSubmission.id)
            .filter(
                FormSubmission.form_id == form.id,
                FormSubmission.submitted_by_email == submitter.email,
            )
            .first()
        )
        if already:
            raise ConflictError("You have already submitted this form")

    try:
        submission = FormSubmission(
            company_id=company.id,
            form_id=form.id,
            submitted_by_email=submitter.email,
            submitted_by_name=submitter.name,
            submitted_by_customer_portal_access_id=submitter.portal_access_id,
            submitted_by_membership_id=submitter.membership_id,
            data=data,
            description=description,
            external_id=external_id,
            external_type=external_type,
        )
        db.add(submission)
        db.flush()

        ticket: Ticket | None = None
        match = select_ticket_draft(
            load_rules(form.ticket_rules), submission, form, form_service.field_ids(fields)
        )
        if match is not None:
            ticket = ticket_service.create_ticket_from_draft(db, _usable_draft(db, match.draft))
            submission.ticket_id = ticket.id
            submission.ticket_created = True

        db.commit()
    except HelpdeskError:
        db.rollback()
        raise

    logger.info(
        "form_submission_received",
        extra={
            **log_context,
            "submission_id": str(submission.id),
            "ticket_id": str(ticket.id) if ticket else None,
            "rule_id": match.rule.id if match else None,
        },
    )

    if settings.notify_on_submission and settings.notification_emails:
        notification_service.send_submission_notice(
            [str(e) for e in settings.notification_emails],
            form.name,
            submitter.name,
            ticket is not None,
        )

    return {
        "success": True,
        "submission_id": submission.id,
        "ticket_created": ticket is not None,
        "ticket_id": ticket.id if ticket else None,
        "message": settings.confirmation_message or DEFAULT_CONFIRMATION_MESSAGE,
        "redirect_url": settings.redirect_url,
    }


# =============================================================================
# Staff review
# =============================================================================

def list_submissions(
    db: Session,
    company_id: UUID,
    form_id: UUID,
    pagination: PaginationParams,
) -> tuple[list[FormSubmission], int]:
    form_service.require_form(db, company_id, form_id)
    query = (
        db.query(FormSubmission)
        .filter(FormSubmission.company_id == company_id, FormSubmission.form_id == form_id)
        .order_by(FormSubmission.submitted_at.desc(), FormSubmission.id.asc())
    )
    return paginate_query(query, pagination)


def get_submission(db: Session, company_id: UUID, submission_id: UUID) -> FormSubmission | None:
    return (
        db.query(FormSubmission)
        .filter(FormSubmission.company_id == company_id, FormSubmission.id == submission_id)
        .first()
    )


def create_ticket_from_submission(
    db: Session,
    *,
    company_id: UUID,
    submission_id: UUID,
    membership_id: UUID,
    subject: str | None = None,
    priority: str | None = None,
) -> Ticket:
    """
    Manually open a ticket for a submission that did not get one.

    Raises:
        NotFoundError: submission not in this company
        ConflictError: the submission already has a ticket
    """
    submission = get_submission(db, company_id, submission_id)
    if not submission:
        raise NotFoundError("Submission not found")
    if submission.ticket_id is not None:
        raise ConflictError("A ticket has already been created for this submission")

    form: Form = submission.form
    try:
        ticket = ticket_service.create_ticket(
            db,
            company_id=company_id,
            client_id=form.client_id,
            subject=subject or f"{DEFAULT_SUBJECT_PREFIX}{form.name}",
            description=submission.description or default_description(submission.submitted_by_name),
            priority=priority or TicketPriority.MEDIUM.value,
            created_by_membership_id=membership_id,
            customer_email=submission.submitted_by_email,
            customer_name=submission.submitted_by_name,
            external_id=str(submission.id),
            external_type=ExternalType.FORM_SUBMISSION.value,
            commit=False,
        )
        submission.ticket_id = ticket.id
        submission.ticket_created = True
        db.commit()
    except HelpdeskError:
        db.rollback()
        raise
    db.refresh(ticket)
    logger.info(
        "form_submission_ticket_created_manually",
        extra=build_log_context(
            company_id=company_id, submission_id=submission.id, ticket_id=ticket.id
        ),
    )
    return ticket
