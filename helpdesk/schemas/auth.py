"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from helpdesk.db.enums import ApiKeyPermission, Role


class UserSession(BaseModel):
    """
    Staff session context for authenticated requests.

    Returned by the get_current_session dependency; carries the company the
    request is scoped to and the caller's membership in it.
    """
    user_id: UUID
    company_id: UUID
    membership_id: UUID
    role: Role
    email: str
    display_name: str


class PortalSession(BaseModel):
    """Customer portal session context (one client portal)."""
    portal_access_id: UUID
    company_id: UUID
    client_id: UUID
    email: str
    name: str | None = None


class ViewerContext(BaseModel):
    """Optional identity of whoever is calling a public endpoint."""
    user_id: UUID | None = None
    portal_access_id: UUID | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None or self.portal_access_id is not None


class ApiKeyContext(BaseModel):
    """Caller identity for the public API: one company API key."""
    api_key_id: UUID
    company_id: UUID
    permissions: list[str]

    def allows(self, permission: str) -> bool:
        return permission in self.permissions or ApiKeyPermission.ALL.value in self.permissions
