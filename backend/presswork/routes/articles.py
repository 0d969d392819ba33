from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, audit
from ..rbac import can_user_edit_article, can_user_review
from ..responses import PageParams, page_params, pagination, success

router = APIRouter(prefix="/api/articles", tags=["articles"])

ARTICLE_STATUSES = {"draft", "published", "archived"}


def _get_article(db: Session, article_id: UUID) -> models.Article:
    article = db.get(models.Article, article_id)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


def _can_view(db: Session, article: models.Article, user: models.User) -> bool:
    if article.status == "published" or can_user_edit_article(db, article, user.id):
        return True
    submissions = db.query(models.ArticleSubmission).filter(
        models.ArticleSubmission.article_id == article.id
    )
    return any(can_user_review(db, s, user.id) for s in submissions)


@router.post("/", status_code=201)
async def create_article(
    payload: schemas.ArticleCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    article = models.Article(
        author_id=user.id,
        title=payload.title,
        subtitle=payload.subtitle,
        content=payload.content,
        featured_image_url=payload.featured_image_url,
        tags=payload.tags,
        status="draft",
    )
    db.add(article)
    db.flush()
    audit.log_action(db, user.id, "article.created", "article", article.id)
    db.commit()
    db.refresh(article)
    return success(schemas.ArticleOut.model_validate(article), "Article created successfully")


@router.get("/")
async def list_my_articles(
    status: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    query = db.query(models.Article).filter(models.Article.author_id == user.id)
    if status:
        if status not in ARTICLE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Unknown article status '{status}'")
        query = query.filter(models.Article.status == status)
    query = query.order_by(models.Article.updated_at.desc())
    total = query.count()
    items = query.offset(params.offset).limit(params.limit).all()
    return success(
        [schemas.ArticleOut.model_validate(a) for a in items],
        pagination=pagination(total, params),
    )


@router.get("/{article_id}")
async def get_article(
    article_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    article = _get_article(db, article_id)
    if not _can_view(db, article, user):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return success(schemas.ArticleOut.model_validate(article))


@router.put("/{article_id}")
async def update_article(
    article_id: UUID,
    payload: schemas.ArticleUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    article = _get_article(db, article_id)
    if not can_user_edit_article(db, article, user.id):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    changes = payload.model_dump(exclude_unset=True)
    if "title" in changes and not changes["title"]:
        raise HTTPException(status_code=400, detail="Title cannot be empty")
    if "content" in changes and changes["content"] is None:
        raise HTTPException(status_code=400, detail="Content cannot be null")
    for key, value in changes.items():
        setattr(article, key, value)
    article.last_edited_by = user.id
    article.last_edited_at = datetime.now(timezone.utc)
    audit.log_action(
        db, user.id, "article.updated", "article", article.id, {"fields": sorted(changes)}
    )
    db.commit()
    db.refresh(article)
    return success(schemas.ArticleOut.model_validate(article), "Article updated successfully")
