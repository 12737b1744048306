"""Tests for form CRUD, publishing and public lookup."""

import pytest
from sqlalchemy.orm import Session

from helpdesk.core.errors import BadRequestError, ConflictError, NotFoundError
from helpdesk.db.models import Ticket
from helpdesk.schemas.forms import FormSettings, form_fields_adapter, ticket_rules_adapter
from helpdesk.services import form_service, form_submission_service


TEXT_FIELD = {"id": "summary", "type": "text", "label": "Summary", "maxLength": 20}
RATING_FIELD = {"id": "f1", "type": "rating", "label": "Satisfaction"}


def test_field_documents_are_tagged_by_type():
    fields = form_fields_adapter.validate_python([TEXT_FIELD, RATING_FIELD])
    assert fields[0].max_length == 20
    assert fields[1].type == "rating"


def test_choice_field_needs_options():
    with pytest.raises(ValueError):
        form_fields_adapter.validate_python([{"id": "t", "type": "select", "label": "Topic", "options": []}])


def test_rule_must_reference_existing_field(db: Session, company, client_org):
    with pytest.raises(BadRequestError) as exc_info:
        form_service.create_form(
            db,
            company_id=company.id,
            client_id=client_org.id,
            name="Feedback",
            slug="feedback",
            description=None,
            fields=form_fields_adapter.validate_python([RATING_FIELD]),
            settings=FormSettings(),
            ticket_rules=ticket_rules_adapter.validate_python(
                [{"field_id": "nope", "operator": "eq", "value": 1}]
            ),
        )
    assert exc_info.value.field == "ticket_rules"


def test_duplicate_field_ids_rejected(make_form):
    with pytest.raises(BadRequestError):
        make_form([RATING_FIELD, {**RATING_FIELD, "label": "Again"}])


def test_slug_unique_per_client(make_form):
    make_form([RATING_FIELD], slug="feedback")
    with pytest.raises(ConflictError):
        make_form([RATING_FIELD], slug="feedback")


def test_publish_requires_fields(db: Session, make_form):
    form = make_form([], publish=False)
    with pytest.raises(BadRequestError):
        form_service.set_published(db, form, True)


def test_removed_field_leaves_rule_dormant(db: Session, make_form):
    form = make_form(
        [RATING_FIELD, TEXT_FIELD],
        rules=[{"field_id": "f1", "operator": "lte", "value": 5}],
    )

    form = form_service.update_form(db, form, fields=form_fields_adapter.validate_python([TEXT_FIELD]))
    assert form.ticket_rules[0]["field_id"] == "f1"

    result = form_submission_service.submit_public_form(
        db,
        company_slug="test-co",
        client_slug="acme",
        form_slug=form.slug,
        data={"summary": "hello", "f1": 1},
    )
    assert result["ticket_created"] is False
    assert db.query(Ticket).count() == 0


def test_updating_rules_checks_current_fields(db: Session, make_form):
    form = make_form([TEXT_FIELD])
    with pytest.raises(BadRequestError):
        form_service.update_form(
            db,
            form,
            ticket_rules=ticket_rules_adapter.validate_python([{"field_id": "f1", "operator": "eq", "value": 1}]),
        )


@pytest.mark.parametrize(
    "company_slug,client_slug,form_slug,message",
    [
        ("nope", "acme", "support", "Company not found"),
        ("test-co", "nope", "support", "Client not found"),
        ("test-co", "acme", "nope", "Form not found or not published"),
    ],
)
def test_public_lookup_not_found(db: Session, make_form, company_slug, client_slug, form_slug, message):
    make_form([RATING_FIELD])
    with pytest.raises(NotFoundError) as exc_info:
        form_service.get_published_form(db, company_slug, client_slug, form_slug)
    assert exc_info.value.message == message


def test_public_view_hides_rules(db: Session, make_form):
    make_form([RATING_FIELD], rules=[{"field_id": "f1", "operator": "lte", "value": 2}])
    company, client, form = form_service.get_published_form(db, "test-co", "acme", "support")

    view = form_service.public_form_view(company, client, form)

    assert "ticket_rules" not in view
    assert view["company_name"] == "Test Company"
    assert view["client_name"] == "Acme Corp"
    assert [f["id"] for f in view["fields"]] == ["f1"]
