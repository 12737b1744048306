"""Page/per_page pagination shared by list endpoints."""

from dataclasses import dataclass

from fastapi import Query
from sqlalchemy.orm import Query as SQLAlchemyQuery


DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


@dataclass(frozen=True)
class PaginationParams:
    page: int = 1
    per_page: int = DEFAULT_PER_PAGE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


def get_pagination(
    page: int = Query(1, ge=1),
    per_page: int = Query(DEFAULT_PER_PAGE, ge=1, le=MAX_PER_PAGE),
) -> PaginationParams:
    return PaginationParams(page=page, per_page=per_page)


def page_count(total: int, per_page: int) -> int:
    """Number of pages needed for ``total`` rows (0 when there are none)."""
    if per_page <= 0:
        return 0
    return -(-total // per_page)


def paginate_query(query: SQLAlchemyQuery, pagination: PaginationParams) -> tuple[list, int]:
    """Run ``query`` for one page. Returns (rows, total rows before paging)."""
    total = query.count()
    rows = query.offset(pagination.offset).limit(pagination.per_page).all()
    return rows, total
