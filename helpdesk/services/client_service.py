"""Client service - customer organisations served by a company."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from helpdesk.core.errors import BadRequestError, ConflictError, NotFoundError
from helpdesk.db.models import Client
from helpdesk.utils.normalization import normalize_domain, slugify


logger = logging.getLogger(__name__)


def normalize_domains(domains: list[str] | None) -> list[str]:
    """Lowercase, strip ``@`` and de-duplicate while preserving order."""
    result: list[str] = []
    for raw in domains or []:
        domain = normalize_domain(raw)
        if domain and domain not in result:
            result.append(domain)
    return result


def get_client(db: Session, company_id: UUID, client_id: UUID) -> Client | None:
    return (
        db.query(Client)
        .filter(Client.company_id == company_id, Client.id == client_id)
        .first()
    )


def get_client_by_slug(db: Session, company_id: UUID, slug: str) -> Client | None:
    return (
        db.query(Client)
        .filter(Client.company_id == company_id, Client.slug == slug)
        .first()
    )


def require_client(db: Session, company_id: UUID, client_id: UUID) -> Client:
    client = get_client(db, company_id, client_id)
    if not client:
        raise NotFoundError("Client not found")
    return client


def list_clients(db: Session, company_id: UUID, include_inactive: bool = False) -> list[Client]:
    query = db.query(Client).filter(Client.company_id == company_id)
    if not include_inactive:
        query = query.filter(Client.is_active.is_(True))
    return query.order_by(Client.name.asc()).all()


def create_client(
    db: Session,
    *,
    company_id: UUID,
    name: str,
    slug: str | None = None,
    email_domains: list[str] | None = None,
    description: str | None = None,
    portal_enabled: bool = False,
) -> Client:
    slug = slug or slugify(name)
    if not slug:
        raise BadRequestError("Client slug cannot be empty", field="slug")
    if get_client_by_slug(db, company_id, slug):
        raise ConflictError(f"Client with slug '{slug}' already exists")

    client = Client(
        company_id=company_id,
        name=name.strip(),
        slug=slug,
        email_domains=normalize_domains(email_domains),
        description=description,
        portal_enabled=portal_enabled,
    )
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def update_client(db: Session, client: Client, **changes) -> Client:
    """Apply a partial update. Keys with value None are ignored."""
    slug = changes.pop("slug", None)
    if slug and slug != client.slug:
        if get_client_by_slug(db, client.company_id, slug):
            raise ConflictError(f"Client with slug '{slug}' already exists")
        client.slug = slug

    domains = changes.pop("email_domains", None)
    if domains is not None:
        client.email_domains = normalize_domains(domains)

    for key, value in changes.items():
        if value is not None:
            setattr(client, key, value)

    db.commit()
    db.refresh(client)
    return client


def delete_client(db: Session, client: Client) -> None:
    db.delete(client)
    db.commit()


def build_domain_map(db: Session, company_id: UUID) -> dict[str, Client]:
    """
    Map each lowercased email domain to its active client.

    When two clients claim the same domain the one created first wins.
    """
    domain_map: dict[str, Client] = {}
    clients = (
        db.query(Client)
        .filter(Client.company_id == company_id, Client.is_active.is_(True))
        .order_by(Client.created_at.asc())
        .all()
    )
    for client in clients:
        for domain in client.email_domains or []:
            normalized = normalize_domain(domain)
            if normalized and normalized not in domain_map:
                domain_map[normalized] = client
    return domain_map
