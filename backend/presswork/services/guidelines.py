"""Publication writing guidelines and article compliance checks."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .. import audit, models, schemas
from ..rbac import PublicationRole, require_permission

logger = logging.getLogger(__name__)

# purpose: per-publication writing rules shown to writers and checked against drafts
# status: active

CATEGORIES: dict[str, dict[str, str]] = {
    "writing_style": {
        "name": "Writing Style",
        "description": "Guidelines about tone, voice, and writing style",
    },
    "content_policy": {
        "name": "Content Policy",
        "description": "Rules about what content is acceptable",
    },
    "submission_process": {
        "name": "Submission Process",
        "description": "How to submit articles and what to expect",
    },
    "formatting": {
        "name": "Formatting",
        "description": "Guidelines for formatting articles",
    },
    "general": {
        "name": "General",
        "description": "General guidelines and information",
    },
}

DEFAULT_GUIDELINES: tuple[dict[str, Any], ...] = (
    {
        "title": "Writing Style Guidelines",
        "content": (
            "Please maintain a professional and engaging tone throughout your articles. "
            "Use clear, concise language and avoid jargon unless necessary. "
            "Write in active voice when possible."
        ),
        "category": "writing_style",
        "is_required": True,
        "display_order": 1,
    },
    {
        "title": "Content Standards",
        "content": (
            "All content must be original and properly attributed. "
            "Ensure your articles provide value to readers and align with our "
            "publication's mission and values."
        ),
        "category": "content_policy",
        "is_required": True,
        "display_order": 1,
    },
    {
        "title": "Submission Process",
        "content": (
            "Submit your articles through the publication dashboard. "
            "Include a compelling title, subtitle, and relevant tags. "
            "Articles will be reviewed within 7 days."
        ),
        "category": "submission_process",
        "is_required": False,
        "display_order": 1,
    },
    {
        "title": "Formatting Requirements",
        "content": (
            "Use proper headings (H2, H3) to structure your content. "
            "Include a featured image when relevant. "
            "Keep paragraphs concise and use bullet points for lists."
        ),
        "category": "formatting",
        "is_required": False,
        "display_order": 1,
    },
)

MIN_TITLE_LENGTH = 10
MIN_CONTENT_LENGTH = 300
MAX_AVG_SENTENCE_LENGTH = 200
PREVIEW_LENGTH = 100

_TAG = re.compile(r"<[^>]+>")


def strip_tags(text: str | None) -> str:
    return _TAG.sub("", text or "")


def _get_publication(db: Session, publication_id: UUID) -> models.Publication:
    publication = db.get(models.Publication, publication_id)
    if publication is None:
        raise HTTPException(status_code=404, detail="Publication not found")
    return publication


def get_guideline(db: Session, guideline_id: UUID) -> models.PublicationGuideline:
    guideline = db.get(models.PublicationGuideline, guideline_id)
    if guideline is None:
        raise HTTPException(status_code=404, detail="Guideline not found")
    return guideline


def _ordered(db: Session, publication_id: UUID):
    return db.query(models.PublicationGuideline).filter(
        models.PublicationGuideline.publication_id == publication_id
    ).order_by(
        models.PublicationGuideline.category,
        models.PublicationGuideline.display_order.asc(),
        models.PublicationGuideline.title.asc(),
    )


def list_guidelines(
    db: Session, publication_id: UUID, category: str | None = None
) -> list[models.PublicationGuideline]:
    _get_publication(db, publication_id)
    if category is not None and category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Unknown guideline category '{category}'")
    query = _ordered(db, publication_id)
    if category is not None:
        query = query.filter(models.PublicationGuideline.category == category)
    return query.all()


def group_by_category(
    guidelines: Iterable[models.PublicationGuideline],
) -> dict[str, list[models.PublicationGuideline]]:
    grouped: dict[str, list[models.PublicationGuideline]] = {}
    for guideline in guidelines:
        grouped.setdefault(guideline.category, []).append(guideline)
    return grouped


def writer_summary(db: Session, publication_id: UUID) -> dict[str, Any]:
    """Counts and required-guideline previews for writers preparing a submission."""

    grouped = group_by_category(_ordered(db, publication_id).all())
    summary: dict[str, Any] = {
        "total_guidelines": 0,
        "required_guidelines": 0,
        "categories": {},
        "key_points": [],
    }
    for category, items in grouped.items():
        summary["categories"][category] = len(items)
        summary["total_guidelines"] += len(items)
        for guideline in items:
            if not guideline.is_required:
                continue
            summary["required_guidelines"] += 1
            summary["key_points"].append(
                {
                    "title": guideline.title,
                    "category": category,
                    "content_preview": strip_tags(guideline.content)[:PREVIEW_LENGTH] + "...",
                }
            )
    return summary


def create_guideline(
    db: Session, payload: schemas.GuidelineCreate, user: models.User
) -> models.PublicationGuideline:
    _get_publication(db, payload.publication_id)
    require_permission(db, user, payload.publication_id, PublicationRole.ADMIN)
    guideline = models.PublicationGuideline(
        publication_id=payload.publication_id,
        title=payload.title,
        content=payload.content,
        category=payload.category,
        is_required=payload.is_required,
        display_order=payload.display_order,
        created_by=user.id,
    )
    db.add(guideline)
    db.flush()
    audit.log_action(db, user.id, "guideline.created", "publication_guideline", guideline.id)
    return guideline


def update_guideline(
    db: Session, guideline_id: UUID, payload: schemas.GuidelineUpdate, user: models.User
) -> models.PublicationGuideline:
    guideline = get_guideline(db, guideline_id)
    require_permission(db, user, guideline.publication_id, PublicationRole.ADMIN)
    changes = payload.model_dump(exclude_unset=True)
    for key in ("title", "content"):
        if key in changes and not changes[key]:
            raise HTTPException(status_code=400, detail=f"Guideline {key} cannot be empty")
    for key, value in changes.items():
        setattr(guideline, key, value)
    audit.log_action(
        db, user.id, "guideline.updated", "publication_guideline", guideline.id,
        {"fields": sorted(changes)},
    )
    return guideline


def delete_guideline(db: Session, guideline_id: UUID, user: models.User) -> None:
    guideline = get_guideline(db, guideline_id)
    require_permission(db, user, guideline.publication_id, PublicationRole.ADMIN)
    audit.log_action(db, user.id, "guideline.deleted", "publication_guideline", guideline.id)
    db.delete(guideline)


def create_default_guidelines(
    db: Session, publication_id: UUID, user: models.User
) -> list[models.PublicationGuideline]:
    _get_publication(db, publication_id)
    require_permission(db, user, publication_id, PublicationRole.ADMIN)
    created = []
    for entry in DEFAULT_GUIDELINES:
        guideline = models.PublicationGuideline(publication_id=publication_id, created_by=user.id, **entry)
        db.add(guideline)
        created.append(guideline)
    db.flush()
    audit.log_action(
        db, user.id, "guideline.defaults_created", "publication", publication_id,
        {"count": len(created)},
    )
    return created


def reorder_guidelines(
    db: Session, publication_id: UUID, orders: Iterable[schemas.GuidelineOrder], user: models.User
) -> int:
    """Apply new display orders; ids from other publications are ignored."""

    _get_publication(db, publication_id)
    require_permission(db, user, publication_id, PublicationRole.ADMIN)
    updated = 0
    for order in orders:
        guideline = db.get(models.PublicationGuideline, order.id)
        if guideline is None or guideline.publication_id != publication_id:
            continue
        guideline.display_order = order.display_order
        updated += 1
    return updated


def _check(guideline: models.PublicationGuideline, article_data: Mapping[str, Any]) -> dict[str, Any]:
    check: dict[str, Any] = {
        "guideline_id": guideline.id,
        "guideline_title": guideline.title,
        "category": guideline.category,
        "passed": True,
        "score": 100,
        "recommendation": None,
    }
    title = str(article_data.get("title") or "")
    text = strip_tags(str(article_data.get("content") or ""))

    if guideline.category == "formatting":
        if len(title) < MIN_TITLE_LENGTH:
            check.update(
                passed=False,
                score=0,
                recommendation=f"Title should be at least {MIN_TITLE_LENGTH} characters long",
            )
    elif guideline.category == "content_policy":
        if len(text) < MIN_CONTENT_LENGTH:
            check.update(
                passed=False,
                score=0,
                recommendation=f"Article content should be at least {MIN_CONTENT_LENGTH} characters long",
            )
    elif guideline.category == "writing_style":
        sentences = text.split(".")
        average = len(text) / max(len(sentences), 1)
        if average > MAX_AVG_SENTENCE_LENGTH:
            check.update(
                passed=False,
                score=50,
                recommendation="Consider breaking up long sentences for better readability",
            )
    return check


def check_compliance(
    db: Session, publication_id: UUID, article_data: Mapping[str, Any]
) -> dict[str, Any]:
    _get_publication(db, publication_id)
    required = _ordered(db, publication_id).filter(models.PublicationGuideline.is_required.is_(True)).all()
    checks = [_check(guideline, article_data) for guideline in required]
    passed = sum(1 for check in checks if check["passed"])
    return {
        "overall_score": (passed / len(checks)) * 100 if checks else 100,
        "checks": checks,
        "recommendations": [check["recommendation"] for check in checks if not check["passed"]],
    }
