"""Ticket rule evaluation for form submissions.

A form carries an ordered list of ticket rules. Each rule compares one
submitted field against a literal; the first rule that matches *and* asks for
a ticket produces a ticket draft. Everything here is pure: no database access,
no clock, no exceptions escaping to the caller. A rule that cannot be
evaluated simply does not match.

Submitted JSON values are lifted into a small tagged value model so the
coercions each operator applies are explicit:

    operator        coercion
    --------        --------
    eq / neq        loose equality: same kind compares directly, otherwise both
                    sides are parsed as numbers ("3" == 3 is true)
    lt lte gt gte   both sides parsed as numbers the way JavaScript's Number()
                    does (blank text is 0); unparseable -> no match
    contains        case-insensitive substring on the text form of both sides

List values (multiselect, checkbox groups) match ``eq``/``contains`` when any
element matches; ``neq`` is the negation of ``eq``; numeric operators never
match a list.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Union
from uuid import UUID

from pydantic import ValidationError

from helpdesk.db.enums import ExternalType, RuleOperator, TicketPriority, TicketStatus
from helpdesk.schemas.forms import TicketRule

logger = logging.getLogger(__name__)

SUBJECT_MAX_LENGTH = 255
DEFAULT_SUBJECT_PREFIX = "Form submission: "
CUSTOMER_NAME_PLACEHOLDER = "{{customer_name}}"


# =============================================================================
# Value model
# =============================================================================

@dataclass(frozen=True)
class StringValue:
    text: str


@dataclass(frozen=True)
class NumberValue:
    number: float


@dataclass(frozen=True)
class BoolValue:
    flag: bool


@dataclass(frozen=True)
class ListValue:
    items: tuple["FieldValue", ...]


@dataclass(frozen=True)
class MissingValue:
    pass


FieldValue = Union[StringValue, NumberValue, BoolValue, ListValue, MissingValue]

MISSING = MissingValue()


def lift(raw: Any) -> FieldValue:
    """Lift a decoded JSON value into the tagged value model."""
    if raw is None:
        return MISSING
    # bool is a subclass of int, so it must be checked first
    if isinstance(raw, bool):
        return BoolValue(raw)
    if isinstance(raw, (int, float)):
        try:
            return NumberValue(float(raw))
        except OverflowError:
            return NumberValue(math.inf if raw > 0 else -math.inf)
    if isinstance(raw, str):
        return StringValue(raw)
    if isinstance(raw, (list, tuple)):
        return ListValue(tuple(lift(item) for item in raw))
    return StringValue(str(raw))


_DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_RADIX_RE = re.compile(r"0([xX][0-9a-fA-F]+|[oO][0-7]+|[bB][01]+)")
_RADIX_BASES = {"x": 16, "o": 8, "b": 2}


def parse_number(text: str) -> float:
    """
    Numeric reading of submitted text, following JavaScript's ``Number()``.

    Blank text is 0. Accepts decimal and exponent notation, signed
    ``Infinity`` and unsigned 0x/0o/0b literals. Anything else, including
    ``inf``, ``nan`` and ``1_000``, is NaN.
    """
    text = text.strip()
    if not text:
        return 0.0
    if text in ("Infinity", "+Infinity"):
        return math.inf
    if text == "-Infinity":
        return -math.inf
    if _DECIMAL_RE.fullmatch(text):
        return float(text)
    radix = _RADIX_RE.fullmatch(text)
    if radix:
        digits = radix.group(1)
        number = int(digits[1:], _RADIX_BASES[digits[0].lower()])
        try:
            return float(number)
        except OverflowError:
            return math.inf
    return math.nan


def to_number(value: FieldValue) -> float:
    """Numeric reading of a value; NaN when it has none."""
    if isinstance(value, NumberValue):
        return value.number
    if isinstance(value, BoolValue):
        return 1.0 if value.flag else 0.0
    if isinstance(value, StringValue):
        return parse_number(value.text)
    return math.nan


def _format_number(number: float) -> str:
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "Infinity" if number > 0 else "-Infinity"
    if number.is_integer():
        return str(int(number))
    return repr(number)


def as_text(value: FieldValue) -> str:
    """Text form of a value, as used by ``contains`` and subject templates."""
    if isinstance(value, StringValue):
        return value.text
    if isinstance(value, NumberValue):
        return _format_number(value.number)
    if isinstance(value, BoolValue):
        return "true" if value.flag else "false"
    if isinstance(value, ListValue):
        return ", ".join(as_text(item) for item in value.items)
    return ""


# =============================================================================
# Operators
# =============================================================================

def loose_equals(left: FieldValue, right: FieldValue) -> bool:
    if isinstance(left, MissingValue) or isinstance(right, MissingValue):
        return False
    if isinstance(left, ListValue):
        return any(loose_equals(item, right) for item in left.items)
    if isinstance(right, ListValue):
        return False
    if isinstance(left, StringValue) and isinstance(right, StringValue):
        return left.text == right.text
    if isinstance(left, BoolValue) and isinstance(right, BoolValue):
        return left.flag == right.flag
    return to_number(left) == to_number(right)


def _compare(left: FieldValue, right: FieldValue, op: str) -> bool:
    if isinstance(left, ListValue):
        return False
    a = to_number(left)
    b = to_number(right)
    if math.isnan(a) or math.isnan(b):
        return False
    if op == RuleOperator.LT.value:
        return a < b
    if op == RuleOperator.LTE.value:
        return a <= b
    if op == RuleOperator.GT.value:
        return a > b
    return a >= b


def _contains(left: FieldValue, right: FieldValue) -> bool:
    if isinstance(left, MissingValue):
        return False
    if isinstance(left, ListValue):
        return any(_contains(item, right) for item in left.items)
    return as_text(right).lower() in as_text(left).lower()


_VALUE_TYPES = (StringValue, NumberValue, BoolValue, ListValue, MissingValue)
_NUMERIC_OPERATORS = {
    RuleOperator.LT.value,
    RuleOperator.LTE.value,
    RuleOperator.GT.value,
    RuleOperator.GTE.value,
}


class _RuleLike(Protocol):
    operator: Any
    value: Any


def evaluate(rule: _RuleLike, field_value: Any) -> bool:
    """
    Decide whether ``rule`` matches a submitted field value.

    ``field_value`` is the raw decoded JSON value (``None`` when the field was
    not submitted). Unknown operators never match.
    """
    op = getattr(rule.operator, "value", rule.operator)
    left = field_value if isinstance(field_value, _VALUE_TYPES) else lift(field_value)
    right = lift(rule.value)

    if op == RuleOperator.EQ.value:
        return loose_equals(left, right)
    if op == RuleOperator.NEQ.value:
        return not loose_equals(left, right)
    if op in _NUMERIC_OPERATORS:
        return _compare(left, right, op)
    if op == RuleOperator.CONTAINS.value:
        return _contains(left, right)
    return False


# =============================================================================
# Ticket drafts
# =============================================================================

@dataclass(frozen=True)
class TicketDraft:
    """Everything needed to insert a ticket for a matched submission."""
    company_id: UUID
    client_id: UUID | None
    subject: str
    description: str
    priority: str
    status: str
    customer_email: str
    customer_name: str
    assigned_to_membership_id: UUID | None
    assigned_to_customer_portal_access_id: UUID | None
    external_id: str
    external_type: str
    created_by_membership_id: UUID | None = None


@dataclass(frozen=True)
class RuleMatch:
    rule: TicketRule
    draft: TicketDraft


class _SubmissionLike(Protocol):
    id: UUID
    company_id: UUID
    data: dict
    description: str | None
    submitted_by_email: str
    submitted_by_name: str
    submitted_by_customer_portal_access_id: UUID | None


class _FormLike(Protocol):
    name: str
    company_id: UUID
    client_id: UUID


def render_subject(template: str, data: dict[str, Any], customer_name: str) -> str:
    """
    Substitute ``{{key}}`` placeholders from submitted data, then
    ``{{customer_name}}`` from the submitter. Unknown placeholders stay as-is.
    """
    subject = template
    for key, raw in data.items():
        subject = subject.replace("{{" + str(key) + "}}", as_text(lift(raw)))
    subject = subject.replace(CUSTOMER_NAME_PLACEHOLDER, customer_name)
    return subject[:SUBJECT_MAX_LENGTH]


def default_description(submitter_name: str) -> str:
    return (
        f"Form submission from {submitter_name}. "
        "View the form submission details for more information."
    )


def build_ticket_draft(
    rule: TicketRule,
    submission: _SubmissionLike,
    form: _FormLike,
) -> TicketDraft | None:
    """Ticket to create for a matched rule, or None when the rule opts out."""
    if not rule.create_ticket:
        return None

    template = rule.ticket_subject or f"{DEFAULT_SUBJECT_PREFIX}{form.name}"
    subject = render_subject(template, submission.data or {}, submission.submitted_by_name)

    if rule.assign_to_membership_id is not None:
        staff_assignee = rule.assign_to_membership_id
        portal_assignee = None
    else:
        staff_assignee = None
        portal_assignee = submission.submitted_by_customer_portal_access_id

    priority = rule.ticket_priority or TicketPriority.MEDIUM
    return TicketDraft(
        company_id=form.company_id,
        client_id=form.client_id,
        subject=subject,
        description=submission.description or default_description(submission.submitted_by_name),
        priority=getattr(priority, "value", priority),
        status=TicketStatus.OPEN.value,
        customer_email=submission.submitted_by_email,
        customer_name=submission.submitted_by_name,
        assigned_to_membership_id=staff_assignee,
        assigned_to_customer_portal_access_id=portal_assignee,
        external_id=str(submission.id),
        external_type=ExternalType.FORM_SUBMISSION.value,
    )


def select_ticket_draft(
    rules: Iterable[TicketRule],
    submission: _SubmissionLike,
    form: _FormLike,
    known_field_ids: set[str],
) -> RuleMatch | None:
    """
    Walk rules in stored order and return the first that matches and yields a
    draft. Rules pointing at fields no longer on the form never match; a
    matching rule with ``create_ticket`` off does not stop the walk.
    """
    data = submission.data or {}
    for rule in rules:
        if rule.field_id not in known_field_ids:
            continue
        if not evaluate(rule, data.get(rule.field_id)):
            continue
        draft = build_ticket_draft(rule, submission, form)
        if draft is not None:
            return RuleMatch(rule=rule, draft=draft)
    return None


def load_rules(raw_rules: Iterable[Any]) -> list[TicketRule]:
    """Parse stored rule documents; malformed entries are skipped."""
    rules: list[TicketRule] = []
    for index, raw in enumerate(raw_rules or []):
        try:
            rules.append(TicketRule.model_validate(raw))
        except ValidationError:
            logger.warning("ticket_rule_invalid_skipped", extra={"rule_index": index})
    return rules
