"""Company service - tenant bootstrap and staff membership lookups."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from helpdesk.core.errors import BadRequestError, ConflictError, NotFoundError
from helpdesk.db.enums import ROLES_CAN_ADMINISTER, Role
from helpdesk.db.models import Company, Membership, User
from helpdesk.utils.normalization import is_valid_slug, normalize_email


logger = logging.getLogger(__name__)


def get_company_by_id(db: Session, company_id: UUID) -> Company | None:
    return db.query(Company).filter(Company.id == company_id).first()


def get_company_by_slug(db: Session, slug: str) -> Company | None:
    return db.query(Company).filter(Company.slug == slug).first()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def get_or_create_user(
    db: Session,
    email: str,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """Find a staff user by email or create one (flushes, does not commit)."""
    user = get_user_by_email(db, email)
    if user:
        return user
    user = User(email=normalize_email(email), first_name=first_name, last_name=last_name)
    db.add(user)
    db.flush()
    return user


def create_company(
    db: Session,
    *,
    name: str,
    slug: str,
    owner_email: str,
    owner_first_name: str | None = None,
    owner_last_name: str | None = None,
    size: str | None = None,
) -> tuple[Company, Membership]:
    """
    Create a company together with its owner membership.

    Raises:
        BadRequestError: slug format invalid
        ConflictError: slug already taken
    """
    slug = slug.strip().lower()
    if not is_valid_slug(slug):
        raise BadRequestError("Slug must be lowercase letters, digits and hyphens", field="slug")
    if get_company_by_slug(db, slug):
        raise ConflictError(f"Company with slug '{slug}' already exists")

    company = Company(name=name.strip(), slug=slug, size=size)
    db.add(company)
    db.flush()

    owner = get_or_create_user(db, owner_email, owner_first_name, owner_last_name)
    membership = Membership(user_id=owner.id, company_id=company.id, role=Role.OWNER.value)
    db.add(membership)
    db.commit()
    db.refresh(company)
    db.refresh(membership)
    logger.info("company_created", extra={"company_id": str(company.id)})
    return company, membership


def get_active_membership(db: Session, company_id: UUID, user_id: UUID) -> Membership | None:
    """Active membership of an active user in a company."""
    return (
        db.query(Membership)
        .join(User, User.id == Membership.user_id)
        .filter(
            Membership.company_id == company_id,
            Membership.user_id == user_id,
            Membership.is_active.is_(True),
            User.is_active.is_(True),
        )
        .first()
    )


def get_membership(db: Session, company_id: UUID, membership_id: UUID) -> Membership | None:
    return (
        db.query(Membership)
        .filter(Membership.company_id == company_id, Membership.id == membership_id)
        .first()
    )


def require_active_membership(db: Session, company_id: UUID, membership_id: UUID) -> Membership:
    """Membership must exist in the company and be active, else NotFoundError."""
    membership = get_membership(db, company_id, membership_id)
    if not membership or not membership.is_active:
        raise NotFoundError("Team member not found")
    return membership


def list_memberships(db: Session, company_id: UUID, active_only: bool = True) -> list[Membership]:
    query = db.query(Membership).filter(Membership.company_id == company_id)
    if active_only:
        query = query.filter(Membership.is_active.is_(True))
    return query.order_by(Membership.joined_at.asc()).all()


def add_member(
    db: Session,
    *,
    company_id: UUID,
    email: str,
    role: Role = Role.AGENT,
    first_name: str | None = None,
    last_name: str | None = None,
) -> Membership:
    """Add a staff user to a company (creating the user if needed)."""
    user = get_or_create_user(db, email, first_name, last_name)
    existing = (
        db.query(Membership)
        .filter(Membership.company_id == company_id, Membership.user_id == user.id)
        .first()
    )
    if existing:
        raise ConflictError("User is already a member of this company")
    membership = Membership(user_id=user.id, company_id=company_id, role=role.value)
    db.add(membership)
    db.commit()
    db.refresh(membership)
    return membership


def find_admin_membership(db: Session, company_id: UUID) -> Membership | None:
    """Earliest-joined active owner/admin; used as creator for system tickets."""
    return (
        db.query(Membership)
        .filter(
            Membership.company_id == company_id,
            Membership.is_active.is_(True),
            Membership.role.in_([r.value for r in ROLES_CAN_ADMINISTER]),
        )
        .order_by(Membership.joined_at.asc())
        .first()
    )
