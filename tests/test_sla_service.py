"""Tests for SLA policy resolution, breach flags and metrics."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from sqlalchemy.orm import Session

from helpdesk.services import client_service, sla_service


def _policy(db, company, client=None, priority="medium", default=False, name="P"):
    return sla_service.create_policy(
        db,
        company_id=company.id,
        client_id=client.id if client else None,
        name=name,
        priority=priority,
        response_time_minutes=60,
        resolution_time_minutes=480,
        is_default=default,
    )


def test_resolution_order(db: Session, company, client_org):
    other = client_service.create_client(db, company_id=company.id, name="Globex")
    company_default = _policy(db, company, default=True, name="company")
    client_default = _policy(db, company, client_org, priority="low", default=True, name="client default")
    client_urgent = _policy(db, company, client_org, priority="urgent", name="client urgent")

    assert sla_service.resolve_policy(db, company.id, client_org.id, "urgent").id == client_urgent.id
    assert sla_service.resolve_policy(db, company.id, client_org.id, "high").id == client_default.id
    assert sla_service.resolve_policy(db, company.id, other.id, "high").id == company_default.id
    assert sla_service.resolve_policy(db, company.id, None, "high").id == company_default.id


def test_one_default_per_scope(db: Session, company, client_org):
    first = _policy(db, company, client_org, default=True, name="first")
    second = _policy(db, company, client_org, default=True, name="second")
    company_wide = _policy(db, company, default=True, name="company")

    db.refresh(first)
    db.refresh(second)
    db.refresh(company_wide)
    assert first.is_default is False
    assert second.is_default is True
    assert company_wide.is_default is True


def _ticket(created, first_response=None, resolved=None, status="open", priority="medium"):
    policy = SimpleNamespace(response_time_minutes=60, resolution_time_minutes=240)
    return SimpleNamespace(
        sla_policy=policy,
        sla_policy_id="p",
        created_at=created,
        first_response_at=first_response,
        resolved_at=resolved,
        status=status,
        priority=priority,
        sla_response_breach=False,
        sla_resolution_breach=False,
    )


def test_breach_flags():
    created = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
    on_time = _ticket(created, first_response=created + timedelta(minutes=30))
    assert sla_service.refresh_breaches(on_time, now=created + timedelta(hours=1)) is False
    assert on_time.sla_response_breach is False

    late = _ticket(created, first_response=created + timedelta(minutes=90))
    assert sla_service.refresh_breaches(late, now=created + timedelta(hours=2)) is True
    assert late.sla_response_breach is True
    assert late.sla_resolution_breach is False

    silent = _ticket(created)
    sla_service.refresh_breaches(silent, now=created + timedelta(hours=5))
    assert silent.sla_response_breach is True
    assert silent.sla_resolution_breach is True


def test_no_policy_no_flags():
    ticket = SimpleNamespace(sla_policy=None)
    assert sla_service.refresh_breaches(ticket) is False


def test_metrics():
    created = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
    tickets = [
        _ticket(created, first_response=created + timedelta(hours=1), resolved=created + timedelta(hours=3), status="resolved"),
        _ticket(created, first_response=created + timedelta(hours=2), status="open", priority="high"),
    ]
    tickets[1].sla_response_breach = True

    metrics = sla_service.compute_sla_metrics(tickets)

    assert metrics["total_tickets"] == 2
    assert metrics["resolved_tickets"] == 1
    assert metrics["response_sla_compliance"] == 50.0
    assert metrics["resolution_sla_compliance"] == 100.0
    assert metrics["avg_response_time_hours"] == 1.5
    assert metrics["avg_resolution_time_hours"] == 3.0
    assert metrics["status_breakdown"]["resolved"] == 1
    assert metrics["priority_breakdown"]["high"] == 1


def test_metrics_empty():
    metrics = sla_service.compute_sla_metrics([])
    assert metrics["total_tickets"] == 0
    assert metrics["response_sla_compliance"] == 0.0
