"""Schemas for forms, ticket rules and submissions."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, TypeAdapter

from helpdesk.db.enums import RuleOperator, TicketPriority


# =============================================================================
# Field descriptors (tagged on ``type``)
# =============================================================================

class FormFieldOption(BaseModel):
    label: str
    value: str


class FormFieldValidation(BaseModel):
    pattern: str | None = None
    message: str | None = None


class _FormFieldBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, max_length=100)
    label: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    placeholder: str | None = None
    required: bool = False
    order: int = 0


class TextFormField(_FormFieldBase):
    type: Literal["text", "email", "phone", "textarea"]
    max_length: int | None = Field(
        None, ge=1, validation_alias=AliasChoices("max_length", "maxLength")
    )
    validation: FormFieldValidation | None = None


class NumericFormField(_FormFieldBase):
    type: Literal["number", "rating"]
    min: float | None = None
    max: float | None = None


class ChoiceFormField(_FormFieldBase):
    type: Literal["select", "radio", "multiselect"]
    options: list[FormFieldOption] = Field(..., min_length=1)


class CheckboxFormField(_FormFieldBase):
    type: Literal["checkbox"]
    # With options the value is a list of option values, otherwise a boolean.
    options: list[FormFieldOption] = Field(default_factory=list)


FormField = Annotated[
    Union[TextFormField, NumericFormField, ChoiceFormField, CheckboxFormField],
    Field(discriminator="type"),
]

form_fields_adapter = TypeAdapter(list[FormField])


# =============================================================================
# Settings and ticket rules
# =============================================================================

class FormSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    allow_multiple_submissions: bool = True
    require_authentication: bool = False
    collect_contact_info: bool = True
    confirmation_message: str | None = None
    redirect_url: str | None = Field(None, max_length=1000)
    notify_on_submission: bool = False
    notification_emails: list[EmailStr] = Field(default_factory=list)


class TicketRule(BaseModel):
    """Condition on one field plus the ticket to open when it matches."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str = ""
    field_id: str = Field(..., min_length=1)
    operator: RuleOperator
    value: bool | int | float | str
    create_ticket: bool = True
    ticket_subject: str | None = Field(
        None,
        max_length=500,
        validation_alias=AliasChoices("ticket_subject", "ticket_subject_template"),
    )
    ticket_priority: TicketPriority | None = None
    assign_to_membership_id: UUID | None = Field(
        None, validation_alias=AliasChoices("assign_to_membership_id", "assign_to")
    )


ticket_rules_adapter = TypeAdapter(list[TicketRule])


# =============================================================================
# Form CRUD
# =============================================================================

class FormCreate(BaseModel):
    client_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: str | None = None
    fields: list[FormField] = Field(default_factory=list)
    settings: FormSettings = Field(default_factory=FormSettings)
    ticket_rules: list[TicketRule] = Field(default_factory=list)


class FormUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    slug: str | None = Field(None, min_length=1, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: str | None = None
    fields: list[FormField] | None = None
    settings: FormSettings | None = None
    ticket_rules: list[TicketRule] | None = None


class FormPublishRequest(BaseModel):
    is_published: bool


class FormRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    name: str
    slug: str
    description: str | None = None
    fields: list[dict[str, Any]]
    settings: dict[str, Any]
    ticket_rules: list[dict[str, Any]]
    is_published: bool
    created_at: datetime
    updated_at: datetime


class FormListResponse(BaseModel):
    items: list[FormRead]
    total: int
    page: int
    per_page: int
    pages: int


class FormPublicRead(BaseModel):
    """Public view of a published form; ticket rules are never exposed."""
    form_id: UUID
    name: str
    description: str | None = None
    company_name: str
    client_name: str
    fields: list[dict[str, Any]]
    require_authentication: bool
    collect_contact_info: bool


# =============================================================================
# Submissions
# =============================================================================

class FormSubmitRequest(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)
    submitter_name: str | None = Field(None, max_length=255)
    submitter_email: EmailStr | None = None
    description: str | None = Field(None, max_length=10000)
    external_id: str | None = Field(None, max_length=255)
    external_type: str | None = Field(None, max_length=50)


class FormSubmissionResult(BaseModel):
    success: bool = True
    submission_id: UUID
    ticket_created: bool
    ticket_id: UUID | None = None
    message: str
    redirect_url: str | None = None


class FormSubmissionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    form_id: UUID
    submitted_by_email: str
    submitted_by_name: str
    submitted_by_customer_portal_access_id: UUID | None = None
    submitted_by_membership_id: UUID | None = None
    data: dict[str, Any]
    description: str | None = None
    external_id: str | None = None
    external_type: str | None = None
    ticket_id: UUID | None = None
    ticket_created: bool
    submitted_at: datetime


class FormSubmissionListResponse(BaseModel):
    items: list[FormSubmissionRead]
    total: int
    page: int
    per_page: int
    pages: int


class SubmissionTicketCreate(BaseModel):
    subject: str | None = Field(None, max_length=255)
    priority: TicketPriority | None = None
