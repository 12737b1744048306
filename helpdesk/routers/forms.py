"""Form builder APIs (staff): forms, publishing and submissions."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_current_session, get_db, require_admin, require_csrf_header
from helpdesk.core.errors import HelpdeskError, NotFoundError
from helpdesk.core.http import raise_http
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.forms import (
    FormCreate,
    FormListResponse,
    FormPublishRequest,
    FormRead,
    FormSubmissionListResponse,
    FormSubmissionRead,
    FormUpdate,
    SubmissionTicketCreate,
)
from helpdesk.schemas.ticketing import TicketRead
from helpdesk.services import form_service, form_submission_service
from helpdesk.utils.pagination import PaginationParams, get_pagination, page_count

router = APIRouter(prefix="/forms", tags=["forms"])


@router.get("", response_model=FormListResponse)
def list_forms(
    client_id: UUID | None = None,
    is_published: bool | None = Query(None),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    items, total = form_service.list_forms(
        db, session.company_id, pagination, client_id=client_id, is_published=is_published
    )
    return FormListResponse(
        items=[FormRead.model_validate(f) for f in items],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=page_count(total, pagination.per_page),
    )


@router.post(
    "",
    response_model=FormRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_form(
    data: FormCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        form = form_service.create_form(
            db,
            company_id=session.company_id,
            client_id=data.client_id,
            name=data.name,
            slug=data.slug,
            description=data.description,
            fields=data.fields,
            settings=data.settings,
            ticket_rules=data.ticket_rules,
            created_by_membership_id=session.membership_id,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return FormRead.model_validate(form)


@router.get("/submissions/{submission_id}", response_model=FormSubmissionRead)
def get_submission(
    submission_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    submission = form_submission_service.get_submission(db, session.company_id, submission_id)
    if not submission:
        raise_http(NotFoundError("Submission not found"))
    return FormSubmissionRead.model_validate(submission)


@router.post(
    "/submissions/{submission_id}/ticket",
    response_model=TicketRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_ticket_from_submission(
    submission_id: UUID,
    data: SubmissionTicketCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Open a ticket for a submission no rule ticketed. 409 if it already has one."""
    try:
        ticket = form_submission_service.create_ticket_from_submission(
            db,
            company_id=session.company_id,
            submission_id=submission_id,
            membership_id=session.membership_id,
            subject=data.subject,
            priority=data.priority.value if data.priority else None,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return TicketRead.model_validate(ticket)


@router.get("/{form_id}", response_model=FormRead)
def get_form(
    form_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        form = form_service.require_form(db, session.company_id, form_id)
    except HelpdeskError as exc:
        raise_http(exc)
    return FormRead.model_validate(form)


@router.patch("/{form_id}", response_model=FormRead, dependencies=[Depends(require_csrf_header)])
def update_form(
    form_id: UUID,
    data: FormUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        form = form_service.require_form(db, session.company_id, form_id)
        form = form_service.update_form(
            db,
            form,
            name=data.name,
            slug=data.slug,
            description=data.description,
            fields=data.fields,
            settings=data.settings,
            ticket_rules=data.ticket_rules,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return FormRead.model_validate(form)


@router.post("/{form_id}/publish", response_model=FormRead, dependencies=[Depends(require_csrf_header)])
def publish_form(
    form_id: UUID,
    data: FormPublishRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        form = form_service.require_form(db, session.company_id, form_id)
        form = form_service.set_published(db, form, data.is_published)
    except HelpdeskError as exc:
        raise_http(exc)
    return FormRead.model_validate(form)


@router.delete("/{form_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def delete_form(
    form_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        form = form_service.require_form(db, session.company_id, form_id)
    except HelpdeskError as exc:
        raise_http(exc)
    form_service.delete_form(db, form)


@router.get("/{form_id}/submissions", response_model=FormSubmissionListResponse)
def list_submissions(
    form_id: UUID,
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        items, total = form_submission_service.list_submissions(
            db, session.company_id, form_id, pagination
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return FormSubmissionListResponse(
        items=[FormSubmissionRead.model_validate(s) for s in items],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=page_count(total, pagination.per_page),
    )
