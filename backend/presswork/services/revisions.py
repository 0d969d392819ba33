"""Article revision snapshots, history and block-level comparison."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from difflib import SequenceMatcher
from typing import Any, Mapping
from uuid import UUID

import sqlalchemy as sa
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import audit, models
from ..rbac import can_user_edit_article
from ..responses import PageParams

logger = logging.getLogger(__name__)

# purpose: append-only article history with deterministic comparisons and restores
# status: active

SNAPSHOT_FIELDS = ("title", "subtitle", "content", "featured_image_url", "tags")

_BLOCK_SPLIT = re.compile(r"\n\s*\n|</(?:p|h[1-6]|li|blockquote|pre|figure)>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_WORD = re.compile(r"\w+", re.UNICODE)

_INVERSE_TAG = {"added": "removed", "removed": "added"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_article(db: Session, article_id: UUID) -> models.Article:
    article = db.get(models.Article, article_id)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


def _require_editor_access(db: Session, article: models.Article, user: models.User) -> None:
    if not can_user_edit_article(db, article, user.id):
        raise HTTPException(status_code=403, detail="Insufficient permissions")


def normalise_snapshot(data: Mapping[str, Any]) -> dict[str, Any]:
    title = data.get("title")
    content = data.get("content")
    if not isinstance(title, str) or not title.strip() or not isinstance(content, str):
        raise HTTPException(status_code=400, detail="Revision data must include title and content")
    tags = data.get("tags") or []
    if not isinstance(tags, list):
        raise HTTPException(status_code=400, detail="Revision tags must be a list")
    return {
        "title": title,
        "subtitle": data.get("subtitle"),
        "content": content,
        "featured_image_url": data.get("featured_image_url"),
        "tags": [str(tag) for tag in tags],
    }


def create_revision(
    db: Session,
    article_id: UUID,
    data: Mapping[str, Any],
    user: models.User,
    change_summary: str | None = None,
    is_major: bool = False,
) -> models.ArticleRevision:
    """Store an immutable snapshot as the article's next revision number."""

    article = get_article(db, article_id)
    _require_editor_access(db, article, user)
    snapshot = normalise_snapshot(data)

    current = (
        db.query(sa.func.max(models.ArticleRevision.revision_number))
        .filter(models.ArticleRevision.article_id == article_id)
        .scalar()
    )
    number = (current or 0) + 1
    now = _utcnow()
    revision = models.ArticleRevision(
        article_id=article_id,
        revision_number=number,
        revision_data=snapshot,
        change_summary=change_summary,
        is_major=bool(is_major),
        created_by=user.id,
        created_at=now,
    )
    db.add(revision)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Another revision was saved concurrently; retry")

    article.revision_count = number
    article.last_edited_by = user.id
    article.last_edited_at = now
    audit.log_action(
        db, user.id, "revision.created", "article", article_id,
        {"revision_number": number, "is_major": bool(is_major)},
    )
    logger.info("article %s revision %d created by %s", article_id, number, user.id)
    return revision


def get_revision(db: Session, article_id: UUID, revision_number: int) -> models.ArticleRevision:
    revision = (
        db.query(models.ArticleRevision)
        .filter(
            models.ArticleRevision.article_id == article_id,
            models.ArticleRevision.revision_number == revision_number,
        )
        .first()
    )
    if revision is None:
        raise HTTPException(status_code=404, detail=f"Revision #{revision_number} not found")
    return revision


def revision_stats(db: Session, article_id: UUID) -> dict[str, Any]:
    rev = models.ArticleRevision
    row = (
        db.query(
            sa.func.count(rev.id),
            sa.func.sum(sa.case((rev.is_major.is_(True), 1), else_=0)),
            sa.func.count(sa.distinct(rev.created_by)),
            sa.func.min(rev.created_at),
            sa.func.max(rev.created_at),
        )
        .filter(rev.article_id == article_id)
        .one()
    )
    total, major, contributors, first, last = row
    return {
        "total_revisions": total or 0,
        "major_revisions": major or 0,
        "unique_contributors": contributors or 0,
        "first_revision": first,
        "last_revision": last,
    }


def article_contributors(db: Session, article_id: UUID) -> list[dict[str, Any]]:
    rev = models.ArticleRevision
    rows = (
        db.query(
            models.User.id,
            models.User.username,
            models.User.full_name,
            sa.func.count(rev.id).label("revision_count"),
            sa.func.max(rev.created_at).label("last_contribution"),
        )
        .join(rev, rev.created_by == models.User.id)
        .filter(rev.article_id == article_id)
        .group_by(models.User.id, models.User.username, models.User.full_name)
        .order_by(sa.desc("revision_count"), sa.desc("last_contribution"))
        .all()
    )
    return [
        {
            "id": user_id,
            "username": username,
            "full_name": full_name,
            "revision_count": count,
            "last_contribution": last,
        }
        for user_id, username, full_name, count, last in rows
    ]


def list_revisions(
    db: Session, article_id: UUID, user: models.User, params: PageParams
) -> tuple[list[models.ArticleRevision], int, dict[str, Any], list[dict[str, Any]]]:
    article = get_article(db, article_id)
    _require_editor_access(db, article, user)
    query = (
        db.query(models.ArticleRevision)
        .filter(models.ArticleRevision.article_id == article_id)
        .order_by(models.ArticleRevision.revision_number.desc())
    )
    total = query.count()
    items = query.offset(params.offset).limit(params.limit).all()
    return items, total, revision_stats(db, article_id), article_contributors(db, article_id)


def split_blocks(content: str | None) -> list[str]:
    """Split article content into paragraph blocks, dropping empty ones."""

    if not content:
        return []
    blocks = []
    for part in _BLOCK_SPLIT.split(content):
        text = part.strip()
        if _TAG.sub("", text).strip():
            blocks.append(text)
    return blocks


def word_count(content: str | None) -> int:
    if not content:
        return 0
    return len(_WORD.findall(_TAG.sub(" ", content)))


def diff_blocks(old: str | None, new: str | None) -> dict[str, Any]:
    """Block-level diff of ``old`` -> ``new`` with added/removed change tags."""

    a = split_blocks(old)
    b = split_blocks(new)
    matcher = SequenceMatcher(None, a, b, autojunk=False)
    changes: list[dict[str, Any]] = []
    unchanged = 0
    for opcode, i1, i2, j1, j2 in matcher.get_opcodes():
        if opcode == "equal":
            unchanged += i2 - i1
            continue
        if opcode in ("replace", "delete"):
            changes.extend({"tag": "removed", "text": block} for block in a[i1:i2])
        if opcode in ("replace", "insert"):
            changes.extend({"tag": "added", "text": block} for block in b[j1:j2])
    return {
        "blocks": changes,
        "summary": {
            "added": sum(1 for c in changes if c["tag"] == "added"),
            "removed": sum(1 for c in changes if c["tag"] == "removed"),
            "unchanged": unchanged,
            "word_count_change": word_count(new) - word_count(old),
        },
    }


def _invert(diff: dict[str, Any]) -> dict[str, Any]:
    summary = diff["summary"]
    return {
        "blocks": [{"tag": _INVERSE_TAG[c["tag"]], "text": c["text"]} for c in diff["blocks"]],
        "summary": {
            "added": summary["removed"],
            "removed": summary["added"],
            "unchanged": summary["unchanged"],
            "word_count_change": -summary["word_count_change"],
        },
    }


def compare_revisions(
    db: Session, article_id: UUID, from_number: int, to_number: int, user: models.User
) -> dict[str, Any]:
    """Compare two revisions of an article.

    The diff is always computed from the lower to the higher revision number
    and inverted for a reversed request, so swapping the arguments yields the
    same blocks with opposite tags.
    """

    article = get_article(db, article_id)
    _require_editor_access(db, article, user)
    source = get_revision(db, article_id, from_number)
    target = get_revision(db, article_id, to_number)

    older, newer = (source, target) if from_number <= to_number else (target, source)
    older_data = older.revision_data or {}
    newer_data = newer.revision_data or {}
    diff = diff_blocks(older_data.get("content"), newer_data.get("content"))
    if from_number > to_number:
        diff = _invert(diff)

    from_data = source.revision_data or {}
    to_data = target.revision_data or {}
    return {
        "article_id": article_id,
        "from_revision": source,
        "to_revision": target,
        "changes": {
            field: from_data.get(field) != to_data.get(field) for field in SNAPSHOT_FIELDS
        },
        "diff": diff,
    }


def restore_to_revision(
    db: Session, article_id: UUID, revision_number: int, user: models.User
) -> tuple[models.Article, models.ArticleRevision]:
    """Copy an old snapshot back into the article and record it as a new major revision."""

    article = get_article(db, article_id)
    _require_editor_access(db, article, user)
    revision = get_revision(db, article_id, revision_number)
    snapshot = normalise_snapshot(revision.revision_data or {})

    article.title = snapshot["title"]
    article.subtitle = snapshot["subtitle"]
    article.content = snapshot["content"]
    article.featured_image_url = snapshot["featured_image_url"]
    article.tags = list(snapshot["tags"])
    restored = create_revision(
        db,
        article_id,
        snapshot,
        user,
        change_summary=f"Restored to revision #{revision_number}",
        is_major=True,
    )
    logger.info("article %s restored to revision %d by %s", article_id, revision_number, user.id)
    return article, restored
