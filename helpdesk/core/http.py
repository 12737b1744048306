"""Translate service-layer domain errors into HTTP errors."""

from typing import NoReturn

from fastapi import HTTPException

from helpdesk.core.errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    HelpdeskError,
    NotFoundError,
    UnauthorizedError,
)


STATUS_BY_ERROR: dict[type[HelpdeskError], int] = {
    NotFoundError: 404,
    UnauthorizedError: 401,
    ForbiddenError: 403,
    BadRequestError: 400,
    ConflictError: 409,
}


def status_for(exc: HelpdeskError) -> int:
    for error_type, status_code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


def raise_http(exc: HelpdeskError) -> NoReturn:
    """Re-raise a domain error as an HTTPException (400-family)."""
    if isinstance(exc, BadRequestError) and exc.field:
        raise HTTPException(
            status_code=400, detail={"message": exc.message, "field": exc.field}
        ) from exc
    raise HTTPException(status_code=status_for(exc), detail=exc.message) from exc
