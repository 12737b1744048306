"""SLA policy service - policy CRUD, policy resolution, breach flags, metrics."""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from helpdesk.core.errors import NotFoundError
from helpdesk.db.enums import TicketPriority, TicketStatus
from helpdesk.db.models import SlaPolicy, Ticket
from helpdesk.utils.datetime_utils import as_utc, utcnow


logger = logging.getLogger(__name__)

RESOLVED_STATUSES = {TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value}


def list_policies(db: Session, company_id: UUID, client_id: UUID | None) -> list[SlaPolicy]:
    query = db.query(SlaPolicy).filter(SlaPolicy.company_id == company_id)
    if client_id is None:
        query = query.filter(SlaPolicy.client_id.is_(None))
    else:
        query = query.filter(SlaPolicy.client_id == client_id)
    return query.order_by(SlaPolicy.created_at.asc()).all()


def get_policy(db: Session, company_id: UUID, policy_id: UUID) -> SlaPolicy | None:
    return (
        db.query(SlaPolicy)
        .filter(SlaPolicy.company_id == company_id, SlaPolicy.id == policy_id)
        .first()
    )


def _clear_other_defaults(db: Session, policy: SlaPolicy) -> None:
    query = db.query(SlaPolicy).filter(
        SlaPolicy.company_id == policy.company_id,
        SlaPolicy.is_default.is_(True),
        SlaPolicy.id != policy.id,
    )
    if policy.client_id is None:
        query = query.filter(SlaPolicy.client_id.is_(None))
    else:
        query = query.filter(SlaPolicy.client_id == policy.client_id)
    for other in query.all():
        other.is_default = False


def create_policy(
    db: Session,
    *,
    company_id: UUID,
    client_id: UUID | None,
    name: str,
    priority: str,
    response_time_minutes: int,
    resolution_time_minutes: int,
    is_default: bool = False,
) -> SlaPolicy:
    """Create a policy. Marking it default unsets the previous default in the same scope."""
    policy = SlaPolicy(
        company_id=company_id,
        client_id=client_id,
        name=name,
        priority=priority,
        response_time_minutes=response_time_minutes,
        resolution_time_minutes=resolution_time_minutes,
        is_default=is_default,
    )
    db.add(policy)
    db.flush()
    if is_default:
        _clear_other_defaults(db, policy)
    db.commit()
    db.refresh(policy)
    return policy


def update_policy(db: Session, policy: SlaPolicy, **changes) -> SlaPolicy:
    for key, value in changes.items():
        if value is not None:
            setattr(policy, key, value)
    if changes.get("is_default"):
        _clear_other_defaults(db, policy)
    db.commit()
    db.refresh(policy)
    return policy


def delete_policy(db: Session, company_id: UUID, policy_id: UUID) -> None:
    policy = get_policy(db, company_id, policy_id)
    if not policy:
        raise NotFoundError("SLA policy not found")
    db.query(Ticket).filter(Ticket.sla_policy_id == policy.id).update(
        {Ticket.sla_policy_id: None}, synchronize_session=False
    )
    db.delete(policy)
    db.commit()


def resolve_policy(
    db: Session,
    company_id: UUID,
    client_id: UUID | None,
    priority: str,
) -> SlaPolicy | None:
    """
    Pick the policy for a new ticket.

    Order: client policy for the priority, client default, company default.
    """
    base = db.query(SlaPolicy).filter(SlaPolicy.company_id == company_id)
    if client_id is not None:
        client_policies = base.filter(SlaPolicy.client_id == client_id)
        match = (
            client_policies.filter(SlaPolicy.priority == priority)
            .order_by(SlaPolicy.created_at.asc())
            .first()
        )
        if match:
            return match
        match = client_policies.filter(SlaPolicy.is_default.is_(True)).first()
        if match:
            return match
    return (
        base.filter(SlaPolicy.client_id.is_(None), SlaPolicy.is_default.is_(True))
        .first()
    )


def refresh_breaches(ticket: Ticket, now: datetime | None = None) -> bool:
    """
    Recompute breach flags from the attached policy.

    A response breach is a first response later than the target (or none yet
    with the deadline passed); resolution likewise. Returns True if any flag
    changed.
    """
    policy = ticket.sla_policy
    if policy is None:
        return False
    now = now or utcnow()
    created = as_utc(ticket.created_at)
    response_due = created + timedelta(minutes=policy.response_time_minutes)
    resolution_due = created + timedelta(minutes=policy.resolution_time_minutes)

    responded = as_utc(ticket.first_response_at)
    response_breach = responded > response_due if responded else now > response_due
    resolved = as_utc(ticket.resolved_at)
    resolution_breach = resolved > resolution_due if resolved else now > resolution_due

    changed = (
        response_breach != ticket.sla_response_breach
        or resolution_breach != ticket.sla_resolution_breach
    )
    ticket.sla_response_breach = response_breach
    ticket.sla_resolution_breach = resolution_breach
    return changed


def _hours_between(start: datetime, end: datetime) -> float:
    return (as_utc(end) - as_utc(start)).total_seconds() / 3600


def compute_sla_metrics(tickets: list[Ticket]) -> dict:
    """
    Compliance and timing figures for a set of tickets.

    Response compliance is over all tickets; resolution compliance is over
    resolved/closed tickets. Percentages and hours are rounded to 1 decimal.
    """
    total = len(tickets)
    resolved = [t for t in tickets if t.status in RESOLVED_STATUSES]

    response_ok = [
        t for t in tickets
        if t.first_response_at and t.sla_policy_id and not t.sla_response_breach
    ]
    resolution_ok = [
        t for t in resolved
        if t.resolved_at and t.sla_policy_id and not t.sla_resolution_breach
    ]

    response_hours = [
        _hours_between(t.created_at, t.first_response_at) for t in tickets if t.first_response_at
    ]
    resolution_hours = [
        _hours_between(t.created_at, t.resolved_at) for t in resolved if t.resolved_at
    ]

    return {
        "total_tickets": total,
        "resolved_tickets": len(resolved),
        "response_sla_compliance": round(len(response_ok) / total * 100, 1) if total else 0.0,
        "resolution_sla_compliance": (
            round(len(resolution_ok) / len(resolved) * 100, 1) if resolved else 0.0
        ),
        "avg_response_time_hours": (
            round(sum(response_hours) / len(response_hours), 1) if response_hours else 0.0
        ),
        "avg_resolution_time_hours": (
            round(sum(resolution_hours) / len(resolution_hours), 1) if resolution_hours else 0.0
        ),
        "status_breakdown": {
            s.value: sum(1 for t in tickets if t.status == s.value) for s in TicketStatus
        },
        "priority_breakdown": {
            p.value: sum(1 for t in tickets if t.priority == p.value) for p in TicketPriority
        },
    }


def get_sla_metrics(db: Session, company_id: UUID, client_id: UUID) -> dict:
    tickets = (
        db.query(Ticket)
        .filter(Ticket.company_id == company_id, Ticket.client_id == client_id)
        .all()
    )
    return compute_sla_metrics(tickets)
