"""Public form endpoints: render a published form and accept submissions."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.deps import get_db, get_viewer_context
from helpdesk.core.errors import HelpdeskError
from helpdesk.core.http import raise_http
from helpdesk.core.rate_limit import limiter
from helpdesk.schemas.auth import ViewerContext
from helpdesk.schemas.forms import FormPublicRead, FormSubmissionResult, FormSubmitRequest
from helpdesk.services import form_service, form_submission_service

router = APIRouter(prefix="/forms/public", tags=["forms-public"])


@router.get("/{company_slug}/{client_slug}/{form_slug}", response_model=FormPublicRead)
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_FORMS}/minute")
def get_public_form(
    request: Request,
    company_slug: str,
    client_slug: str,
    form_slug: str,
    db: Session = Depends(get_db),
):
    try:
        company, client, form = form_service.get_published_form(
            db, company_slug, client_slug, form_slug
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return FormPublicRead(**form_service.public_form_view(company, client, form))


@router.post(
    "/{company_slug}/{client_slug}/{form_slug}/submit",
    response_model=FormSubmissionResult,
    status_code=201,
)
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_FORMS}/minute")
def submit_public_form(
    request: Request,
    company_slug: str,
    client_slug: str,
    form_slug: str,
    body: FormSubmitRequest,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(get_viewer_context),
):
    """Submit a form. A matching ticket rule opens a ticket in the same request."""
    try:
        result = form_submission_service.submit_public_form(
            db,
            company_slug=company_slug,
            client_slug=client_slug,
            form_slug=form_slug,
            data=body.data,
            viewer=viewer,
            contact_name=body.submitter_name,
            contact_email=body.submitter_email,
            description=body.description,
            external_id=body.external_id,
            external_type=body.external_type,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return FormSubmissionResult(**result)
