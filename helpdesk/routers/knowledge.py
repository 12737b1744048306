"""Knowledge base article management (staff)."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_current_session, get_db, require_csrf_header
from helpdesk.core.errors import HelpdeskError
from helpdesk.core.http import raise_http
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.knowledge import ArticleCreate, ArticleRead, ArticleUpdate
from helpdesk.services import knowledge_service
from helpdesk.utils.pagination import PaginationParams, get_pagination

router = APIRouter(prefix="/knowledge", tags=["knowledge"])


@router.get("", response_model=list[ArticleRead])
def list_articles(
    search: str | None = Query(None, max_length=200),
    published_only: bool = False,
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    items, _ = knowledge_service.list_articles(
        db, session.company_id, pagination, search=search, published_only=published_only
    )
    return [ArticleRead.model_validate(a) for a in items]


@router.post("", response_model=ArticleRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_article(
    data: ArticleCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        article = knowledge_service.create_article(
            db,
            company_id=session.company_id,
            title=data.title,
            content=data.content,
            author_membership_id=session.membership_id,
            is_published=data.is_published,
            is_public=data.is_public,
            tags=data.tags,
        )
    except HelpdeskError as exc:
        raise_http(exc)
    return ArticleRead.model_validate(article)


@router.get("/slug/{slug}", response_model=ArticleRead)
def get_article_by_slug(
    slug: str,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        article = knowledge_service.get_article_by_slug(db, session.company_id, slug)
    except HelpdeskError as exc:
        raise_http(exc)
    return ArticleRead.model_validate(article)


@router.get("/{article_id}", response_model=ArticleRead)
def get_article(
    article_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        article = knowledge_service.require_article(db, session.company_id, article_id)
    except HelpdeskError as exc:
        raise_http(exc)
    return ArticleRead.model_validate(article)


@router.patch("/{article_id}", response_model=ArticleRead, dependencies=[Depends(require_csrf_header)])
def update_article(
    article_id: UUID,
    data: ArticleUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        article = knowledge_service.require_article(db, session.company_id, article_id)
        article = knowledge_service.update_article(db, article, **data.model_dump(exclude_unset=True))
    except HelpdeskError as exc:
        raise_http(exc)
    return ArticleRead.model_validate(article)


@router.delete("/{article_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def delete_article(
    article_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        article = knowledge_service.require_article(db, session.company_id, article_id)
    except HelpdeskError as exc:
        raise_http(exc)
    knowledge_service.delete_article(db, article)
