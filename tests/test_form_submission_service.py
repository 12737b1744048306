"""Tests for public form submission and rule-driven ticket creation."""

import pytest
from sqlalchemy.orm import Session

from helpdesk.core.errors import BadRequestError, ConflictError, NotFoundError, UnauthorizedError
from helpdesk.db.enums import ExternalType
from helpdesk.db.models import FormSubmission, Membership, Ticket
from helpdesk.schemas.auth import ViewerContext
from helpdesk.services import form_submission_service


RATING_FIELD = {"id": "f1", "type": "rating", "label": "Satisfaction", "required": True, "order": 0}
EMAIL_FIELD = {"id": "email", "type": "email", "label": "Email", "required": True, "order": 1}


def submit(form, data, **kwargs):
    db = kwargs.pop("db")
    return form_submission_service.submit_public_form(
        db,
        company_slug="test-co",
        client_slug="acme",
        form_slug=form.slug,
        data=data,
        **kwargs,
    )


def test_low_rating_opens_urgent_ticket(db: Session, make_form):
    form = make_form(
        [RATING_FIELD],
        rules=[{
            "field_id": "f1",
            "operator": "lte",
            "value": 2,
            "create_ticket": True,
            "ticket_priority": "urgent",
            "ticket_subject": "Low score: {{f1}}",
        }],
    )

    result = submit(form, {"f1": 1}, db=db)

    assert result["success"] is True
    assert result["ticket_created"] is True
    ticket = db.query(Ticket).filter(Ticket.id == result["ticket_id"]).one()
    assert ticket.priority == "urgent"
    assert ticket.subject == "Low score: 1"
    assert ticket.external_id == str(result["submission_id"])
    assert ticket.external_type == ExternalType.FORM_SUBMISSION.value

    stored = db.query(FormSubmission).filter(FormSubmission.id == result["submission_id"]).one()
    assert stored.ticket_id == ticket.id
    assert stored.ticket_created is True


def test_first_matching_rule_wins(db: Session, make_form):
    form = make_form(
        [RATING_FIELD],
        rules=[
            {"field_id": "f1", "operator": "lte", "value": 2, "ticket_priority": "urgent", "ticket_subject": "first"},
            {"field_id": "f1", "operator": "lte", "value": 4, "ticket_priority": "low", "ticket_subject": "second"},
        ],
    )

    result = submit(form, {"f1": 1}, db=db)

    tickets = db.query(Ticket).all()
    assert len(tickets) == 1
    assert tickets[0].id == result["ticket_id"]
    assert tickets[0].subject == "first"
    assert tickets[0].priority == "urgent"


def test_subject_template_uses_submitter_name(db: Session, make_form):
    form = make_form(
        [{"id": "rating", "type": "rating", "label": "Rating", "required": True}],
        rules=[{
            "field_id": "rating",
            "operator": "lte",
            "value": 2,
            "ticket_subject": "Urgent: {{rating}} stars from {{customer_name}}",
        }],
    )

    result = submit(form, {"rating": "1"}, db=db, contact_name="Alice", contact_email="alice@example.org")

    ticket = db.query(Ticket).filter(Ticket.id == result["ticket_id"]).one()
    assert ticket.subject == "Urgent: 1 stars from Alice"
    assert ticket.customer_email == "alice@example.org"


def test_missing_required_field_is_rejected_without_storing(db: Session, make_form):
    form = make_form([RATING_FIELD, EMAIL_FIELD], rules=[{"field_id": "f1", "operator": "lte", "value": 5}])

    with pytest.raises(BadRequestError) as exc_info:
        submit(form, {"f1": 3}, db=db)

    assert exc_info.value.field == "Email"
    assert "Email" in exc_info.value.message
    assert db.query(FormSubmission).count() == 0
    assert db.query(Ticket).count() == 0


def test_empty_submission_reports_first_required_field(db: Session, make_form):
    form = make_form([EMAIL_FIELD])

    with pytest.raises(BadRequestError) as exc_info:
        submit(form, {}, db=db)

    assert exc_info.value.field == "Email"


def test_invalid_values_are_rejected(db: Session, make_form):
    form = make_form([
        EMAIL_FIELD,
        {"id": "topic", "type": "select", "label": "Topic", "options": [{"label": "Billing", "value": "billing"}]},
    ])

    with pytest.raises(BadRequestError):
        submit(form, {"email": "not-an-email"}, db=db)
    with pytest.raises(BadRequestError) as exc_info:
        submit(form, {"email": "a@b.co", "topic": "sales"}, db=db)
    assert exc_info.value.field == "Topic"


def test_blank_optional_rating_counts_as_zero(db: Session, make_form):
    form = make_form(
        [{**RATING_FIELD, "required": False}],
        rules=[{"field_id": "f1", "operator": "lte", "value": 2, "create_ticket": True}],
    )

    result = submit(form, {"f1": ""}, db=db)

    assert result["ticket_created"] is True


@pytest.mark.parametrize("raw", ["1_000", "inf", "NaN"])
def test_number_fields_reject_non_numeric_text(db: Session, make_form, raw):
    form = make_form([{**RATING_FIELD, "type": "number", "label": "Seats"}])

    with pytest.raises(BadRequestError) as exc_info:
        submit(form, {"f1": raw}, db=db)

    assert exc_info.value.field == "Seats"


def test_no_matching_rule_stores_submission_only(db: Session, make_form):
    form = make_form(
        [RATING_FIELD],
        rules=[{"field_id": "f1", "operator": "lte", "value": 2}],
        settings={"confirmation_message": "Thanks!", "redirect_url": "https://acme.com/done"},
    )

    result = submit(form, {"f1": 5}, db=db)

    assert result["ticket_created"] is False
    assert result["ticket_id"] is None
    assert result["message"] == "Thanks!"
    assert result["redirect_url"] == "https://acme.com/done"
    assert db.query(FormSubmission).count() == 1
    assert db.query(Ticket).count() == 0


def test_default_confirmation_message(db: Session, make_form):
    form = make_form([RATING_FIELD])
    result = submit(form, {"f1": 4}, db=db)
    assert result["message"] == "Thank you for your submission!"


def test_unpublished_form_is_not_found(db: Session, make_form):
    form = make_form([RATING_FIELD], publish=False)
    with pytest.raises(NotFoundError):
        submit(form, {"f1": 4}, db=db)


def test_authentication_required(db: Session, make_form, portal_access):
    form = make_form(
        [RATING_FIELD],
        rules=[{"field_id": "f1", "operator": "lte", "value": 2}],
        settings={"require_authentication": True},
    )

    with pytest.raises(UnauthorizedError):
        submit(form, {"f1": 1}, db=db)

    viewer = ViewerContext(portal_access_id=portal_access.id)
    result = submit(form, {"f1": 1}, db=db, viewer=viewer)

    submission = db.query(FormSubmission).filter(FormSubmission.id == result["submission_id"]).one()
    assert submission.submitted_by_customer_portal_access_id == portal_access.id
    assert submission.submitted_by_email == "alice@acme.com"
    ticket = db.query(Ticket).filter(Ticket.id == result["ticket_id"]).one()
    assert ticket.assigned_to_customer_portal_access_id == portal_access.id
    assert ticket.assigned_to_membership_id is None


def test_staff_viewer_is_recorded_as_member(db: Session, make_form, owner, owner_membership):
    form = make_form([RATING_FIELD], settings={"require_authentication": True})

    result = submit(form, {"f1": 4}, db=db, viewer=ViewerContext(user_id=owner.id))

    submission = db.query(FormSubmission).filter(FormSubmission.id == result["submission_id"]).one()
    assert submission.submitted_by_membership_id == owner_membership.id
    assert submission.submitted_by_name == "Olive Owner"


def test_single_submission_per_person(db: Session, make_form):
    form = make_form([RATING_FIELD], settings={"allow_multiple_submissions": False})

    submit(form, {"f1": 4}, db=db, contact_email="bob@example.org")
    with pytest.raises(ConflictError):
        submit(form, {"f1": 3}, db=db, contact_email="BOB@example.org")

    # Anonymous submitters are not tracked
    submit(form, {"f1": 4}, db=db)
    submit(form, {"f1": 4}, db=db)
    assert db.query(FormSubmission).count() == 3


def test_inactive_rule_assignee_is_dropped(db: Session, make_form, agent_membership: Membership):
    form = make_form(
        [RATING_FIELD],
        rules=[{"field_id": "f1", "operator": "lte", "value": 2, "assign_to": str(agent_membership.id)}],
    )
    agent_membership.is_active = False
    db.commit()

    result = submit(form, {"f1": 1}, db=db)

    ticket = db.query(Ticket).filter(Ticket.id == result["ticket_id"]).one()
    assert ticket.assigned_to_membership_id is None


def test_rule_assignee_is_applied(db: Session, make_form, agent_membership: Membership):
    form = make_form(
        [RATING_FIELD],
        rules=[{"field_id": "f1", "operator": "lte", "value": 2, "assign_to": str(agent_membership.id)}],
    )

    result = submit(form, {"f1": 2}, db=db)

    ticket = db.query(Ticket).filter(Ticket.id == result["ticket_id"]).one()
    assert ticket.assigned_to_membership_id == agent_membership.id


# =============================================================================
# Manual ticket creation
# =============================================================================

def test_manual_ticket_then_conflict(db: Session, make_form, company, owner_membership):
    form = make_form([RATING_FIELD])
    result = submit(form, {"f1": 4}, db=db, contact_name="Carol", contact_email="carol@example.org")
    assert result["ticket_created"] is False

    ticket = form_submission_service.create_ticket_from_submission(
        db,
        company_id=company.id,
        submission_id=result["submission_id"],
        membership_id=owner_membership.id,
    )
    assert ticket.subject == "Form submission: Support Request"
    assert ticket.customer_name == "Carol"
    assert ticket.created_by_membership_id == owner_membership.id

    with pytest.raises(ConflictError):
        form_submission_service.create_ticket_from_submission(
            db,
            company_id=company.id,
            submission_id=result["submission_id"],
            membership_id=owner_membership.id,
        )
    assert db.query(Ticket).count() == 1


def test_manual_ticket_for_auto_ticketed_submission_conflicts(db: Session, make_form, company, owner_membership):
    form = make_form([RATING_FIELD], rules=[{"field_id": "f1", "operator": "lte", "value": 2}])
    result = submit(form, {"f1": 1}, db=db)

    with pytest.raises(ConflictError):
        form_submission_service.create_ticket_from_submission(
            db,
            company_id=company.id,
            submission_id=result["submission_id"],
            membership_id=owner_membership.id,
        )
    assert db.query(Ticket).count() == 1
