"""Knowledge base service - articles, publishing, search and view counts."""

from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from helpdesk.core.errors import BadRequestError, NotFoundError
from helpdesk.db.models import KnowledgeBaseArticle
from helpdesk.utils.normalization import slugify
from helpdesk.utils.pagination import PaginationParams, paginate_query


def _unique_slug(db: Session, company_id: UUID, title: str, exclude_id: UUID | None = None) -> str:
    base = slugify(title)
    if not base:
        raise BadRequestError("Title must contain letters or digits", field="title")
    slug = base
    suffix = 2
    while True:
        query = db.query(KnowledgeBaseArticle.id).filter(
            KnowledgeBaseArticle.company_id == company_id,
            KnowledgeBaseArticle.slug == slug,
        )
        if exclude_id is not None:
            query = query.filter(KnowledgeBaseArticle.id != exclude_id)
        if query.first() is None:
            return slug
        slug = f"{base}-{suffix}"
        suffix += 1


def create_article(
    db: Session,
    *,
    company_id: UUID,
    title: str,
    content: str,
    author_membership_id: UUID | None,
    is_published: bool = False,
    is_public: bool = True,
    tags: list[str] | None = None,
) -> KnowledgeBaseArticle:
    article = KnowledgeBaseArticle(
        company_id=company_id,
        title=title,
        slug=_unique_slug(db, company_id, title),
        content=content,
        author_membership_id=author_membership_id,
        is_published=is_published,
        is_public=is_public,
        tags=list(tags or []),
    )
    db.add(article)
    db.commit()
    db.refresh(article)
    return article


def get_article(db: Session, company_id: UUID, article_id: UUID) -> KnowledgeBaseArticle | None:
    return (
        db.query(KnowledgeBaseArticle)
        .filter(KnowledgeBaseArticle.company_id == company_id, KnowledgeBaseArticle.id == article_id)
        .first()
    )


def require_article(db: Session, company_id: UUID, article_id: UUID) -> KnowledgeBaseArticle:
    article = get_article(db, company_id, article_id)
    if not article:
        raise NotFoundError("Article not found")
    return article


def get_article_by_slug(db: Session, company_id: UUID, slug: str) -> KnowledgeBaseArticle:
    """Staff lookup by slug, drafts included."""
    article = (
        db.query(KnowledgeBaseArticle)
        .filter(KnowledgeBaseArticle.company_id == company_id, KnowledgeBaseArticle.slug == slug)
        .first()
    )
    if not article:
        raise NotFoundError("Article not found")
    return article


def update_article(db: Session, article: KnowledgeBaseArticle, **changes) -> KnowledgeBaseArticle:
    """Partial update. A new title re-derives the slug."""
    title = changes.pop("title", None)
    if title is not None and title != article.title:
        article.title = title
        article.slug = _unique_slug(db, article.company_id, title, exclude_id=article.id)
    for key, value in changes.items():
        if value is not None:
            setattr(article, key, value)
    db.commit()
    db.refresh(article)
    return article


def delete_article(db: Session, article: KnowledgeBaseArticle) -> None:
    db.delete(article)
    db.commit()


def list_articles(
    db: Session,
    company_id: UUID,
    pagination: PaginationParams,
    search: str | None = None,
    published_only: bool = False,
    public_only: bool = False,
) -> tuple[list[KnowledgeBaseArticle], int]:
    query = db.query(KnowledgeBaseArticle).filter(KnowledgeBaseArticle.company_id == company_id)
    if published_only:
        query = query.filter(KnowledgeBaseArticle.is_published.is_(True))
    if public_only:
        query = query.filter(KnowledgeBaseArticle.is_public.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(KnowledgeBaseArticle.title.ilike(pattern), KnowledgeBaseArticle.content.ilike(pattern))
        )
    query = query.order_by(KnowledgeBaseArticle.updated_at.desc(), KnowledgeBaseArticle.id.asc())
    return paginate_query(query, pagination)


def list_public_articles(
    db: Session,
    company_id: UUID,
    pagination: PaginationParams,
    search: str | None = None,
) -> tuple[list[KnowledgeBaseArticle], int]:
    """Portal listing: published and public only."""
    return list_articles(
        db, company_id, pagination, search=search, published_only=True, public_only=True
    )


def view_public_article(db: Session, company_id: UUID, slug: str) -> KnowledgeBaseArticle:
    """Fetch a portal-visible article by slug and count the view."""
    article = (
        db.query(KnowledgeBaseArticle)
        .filter(
            KnowledgeBaseArticle.company_id == company_id,
            KnowledgeBaseArticle.slug == slug,
            KnowledgeBaseArticle.is_published.is_(True),
            KnowledgeBaseArticle.is_public.is_(True),
        )
        .first()
    )
    if not article:
        raise NotFoundError("Article not found")
    article.view_count = (article.view_count or 0) + 1
    db.commit()
    db.refresh(article)
    return article
