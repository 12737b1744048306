"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    Staff membership roles within a company.

    - OWNER: created the company, full control
    - ADMIN: manages clients, SLA policies, integrations, forms
    - AGENT: works tickets
    """
    OWNER = "owner"
    ADMIN = "admin"
    AGENT = "agent"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


ROLES_CAN_ADMINISTER = {Role.OWNER, Role.ADMIN}


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_RANK = {
    TicketPriority.LOW.value: 0,
    TicketPriority.MEDIUM.value: 1,
    TicketPriority.HIGH.value: 2,
    TicketPriority.URGENT.value: 3,
}


class RuleOperator(str, Enum):
    """Comparison operators available to form ticket rules."""
    EQ = "eq"
    NEQ = "neq"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    CONTAINS = "contains"


class FormFieldType(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    NUMBER = "number"
    PHONE = "phone"
    TEXTAREA = "textarea"
    SELECT = "select"
    MULTISELECT = "multiselect"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    RATING = "rating"


class ExternalType(str, Enum):
    """Origin markers stored in ``tickets.external_type``."""
    FORM_SUBMISSION = "form_submission"
    GMAIL_THREAD = "gmail_thread"


class ApiKeyPermission(str, Enum):
    """Scopes grantable to a company API key. ``*`` grants all of them."""
    TICKETS_READ = "tickets:read"
    TICKETS_CREATE = "tickets:create"
    TICKETS_UPDATE = "tickets:update"
    COMMENTS_READ = "comments:read"
    COMMENTS_CREATE = "comments:create"
    ALL = "*"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_
