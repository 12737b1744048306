"""Client, SLA policy and portal-access management (staff)."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_current_session, get_db, require_admin, require_csrf_header
from helpdesk.core.errors import HelpdeskError, NotFoundError
from helpdesk.core.http import raise_http
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.clients import (
    ClientCreate,
    ClientRead,
    ClientUpdate,
    PortalAccessCreate,
    PortalAccessRead,
    SlaMetricsResponse,
    SlaPolicyCreate,
    SlaPolicyRead,
    SlaPolicyUpdate,
)
from helpdesk.services import client_service, portal_service, sla_service

router = APIRouter(tags=["clients"])


# =============================================================================
# Clients
# =============================================================================

@router.get("/clients", response_model=list[ClientRead])
def list_clients(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    clients = client_service.list_clients(db, session.company_id, include_inactive=include_inactive)
    return [ClientRead.model_validate(c) for c in clients]


@router.post("/clients", response_model=ClientRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_client(
    data: ClientCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        client = client_service.create_client(
            db,
            company_id=session.company_id,
            name=data.name,
            slug=data.slug,
            email_domains=data.email_domains,
            description=data.description,
            portal_enabled=data.portal_enabled,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return ClientRead.model_validate(client)


@router.get("/clients/{client_id}", response_model=ClientRead)
def get_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        client = client_service.require_client(db, session.company_id, client_id)
    except HelpdeskError as exc:
        raise_http(exc)
    return ClientRead.model_validate(client)


@router.patch("/clients/{client_id}", response_model=ClientRead, dependencies=[Depends(require_csrf_header)])
def update_client(
    client_id: UUID,
    data: ClientUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        client = client_service.require_client(db, session.company_id, client_id)
        client = client_service.update_client(db, client, **data.model_dump(exclude_unset=True))
    except HelpdeskError as exc:
        raise_http(exc)
    return ClientRead.model_validate(client)


@router.delete("/clients/{client_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def delete_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        client = client_service.require_client(db, session.company_id, client_id)
    except HelpdeskError as exc:
        raise_http(exc)
    client_service.delete_client(db, client)


@router.get("/clients/{client_id}/sla-metrics", response_model=SlaMetricsResponse)
def client_sla_metrics(
    client_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        client_service.require_client(db, session.company_id, client_id)
    except HelpdeskError as exc:
        raise_http(exc)
    return SlaMetricsResponse(**sla_service.get_sla_metrics(db, session.company_id, client_id))


# =============================================================================
# SLA policies
# =============================================================================

def _create_policy(db: Session, session: UserSession, client_id: UUID | None, data: SlaPolicyCreate):
    try:
        if client_id is not None:
            client_service.require_client(db, session.company_id, client_id)
        policy = sla_service.create_policy(
            db,
            company_id=session.company_id,
            client_id=client_id,
            name=data.name,
            priority=data.priority.value,
            response_time_minutes=data.response_time_minutes,
            resolution_time_minutes=data.resolution_time_minutes,
            is_default=data.is_default,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return SlaPolicyRead.model_validate(policy)


@router.get("/sla-policies", response_model=list[SlaPolicyRead])
def list_company_policies(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Company-wide policies (no client)."""
    return [SlaPolicyRead.model_validate(p) for p in sla_service.list_policies(db, session.company_id, None)]


@router.post("/sla-policies", response_model=SlaPolicyRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_company_policy(
    data: SlaPolicyCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    return _create_policy(db, session, None, data)


@router.get("/clients/{client_id}/sla-policies", response_model=list[SlaPolicyRead])
def list_client_policies(
    client_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        client_service.require_client(db, session.company_id, client_id)
    except HelpdeskError as exc:
        raise_http(exc)
    policies = sla_service.list_policies(db, session.company_id, client_id)
    return [SlaPolicyRead.model_validate(p) for p in policies]


@router.post(
    "/clients/{client_id}/sla-policies",
    response_model=SlaPolicyRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_client_policy(
    client_id: UUID,
    data: SlaPolicyCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    return _create_policy(db, session, client_id, data)


@router.patch("/sla-policies/{policy_id}", response_model=SlaPolicyRead, dependencies=[Depends(require_csrf_header)])
def update_policy(
    policy_id: UUID,
    data: SlaPolicyUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    policy = sla_service.get_policy(db, session.company_id, policy_id)
    if not policy:
        raise_http(NotFoundError("SLA policy not found"))
    policy = sla_service.update_policy(db, policy, **data.model_dump(mode="json", exclude_unset=True))
    return SlaPolicyRead.model_validate(policy)


@router.delete("/sla-policies/{policy_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def delete_policy(
    policy_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        sla_service.delete_policy(db, session.company_id, policy_id)
    except HelpdeskError as exc:
        raise_http(exc)


# =============================================================================
# Portal access
# =============================================================================

@router.get("/clients/{client_id}/portal-access", response_model=list[PortalAccessRead])
def list_portal_access(
    client_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return [
        PortalAccessRead.model_validate(a)
        for a in portal_service.list_access(db, session.company_id, client_id)
    ]


@router.post(
    "/clients/{client_id}/portal-access",
    response_model=PortalAccessRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def grant_portal_access(
    client_id: UUID,
    data: PortalAccessCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        access = portal_service.grant_access(
            db,
            company_id=session.company_id,
            client_id=client_id,
            email=data.email,
            name=data.name,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return PortalAccessRead.model_validate(access)


@router.delete(
    "/clients/{client_id}/portal-access/{access_id}",
    response_model=PortalAccessRead,
    dependencies=[Depends(require_csrf_header)],
)
def revoke_portal_access(
    client_id: UUID,
    access_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    try:
        access = portal_service.revoke_access(db, session.company_id, access_id)
    except HelpdeskError as exc:
        raise_http(exc)
    return PortalAccessRead.model_validate(access)
