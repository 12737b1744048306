"""Domain errors raised by the service layer.

Routers translate these into HTTP responses; services never import FastAPI.
"""


class HelpdeskError(Exception):
    """Base exception for helpdesk domain errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(HelpdeskError):
    """Entity missing, or not visible to the caller's tenant."""

    pass


class UnauthorizedError(HelpdeskError):
    """Authentication is required or failed."""

    pass


class ForbiddenError(HelpdeskError):
    """Authenticated, but not allowed."""

    pass


class BadRequestError(HelpdeskError, ValueError):
    """Input failed validation."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ConflictError(HelpdeskError):
    """Uniqueness or single-assignment violation."""

    pass
