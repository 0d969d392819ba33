"""Publication writing templates."""

from __future__ import annotations

import copy
import logging
from typing import Any, Mapping
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .. import audit, models, schemas
from ..rbac import PublicationRole, has_permission, require_permission

logger = logging.getLogger(__name__)

# purpose: manage per-publication article templates and apply them to drafts
# status: active


def _section(kind: str, title: str, placeholder: str, required: bool, description: str) -> dict[str, Any]:
    return {
        "type": kind,
        "title": title,
        "placeholder": placeholder,
        "required": required,
        "description": description,
    }


PREDEFINED_TEMPLATES: dict[str, dict[str, Any]] = {
    "article": {
        "name": "Standard Article",
        "description": "Basic article template with introduction, body, and conclusion",
        "template_content": {
            "sections": [
                _section("introduction", "Introduction", "intro_content", True, "Brief introduction to the topic"),
                _section("body", "Main Content", "main_content", True, "Main article content"),
                _section("conclusion", "Conclusion", "conclusion_content", False, "Summary and final thoughts"),
            ],
            "formatting": {
                "max_title_length": 100,
                "min_content_length": 500,
                "required_tags": 1,
                "max_tags": 5,
            },
        },
    },
    "tutorial": {
        "name": "Tutorial/How-to",
        "description": "Step-by-step tutorial template",
        "template_content": {
            "sections": [
                _section("overview", "Overview", "overview_content", True, "What will readers learn?"),
                _section("prerequisites", "Prerequisites", "prerequisites_content", False,
                         "What readers need to know beforehand"),
                _section("steps", "Step-by-step Instructions", "steps_content", True, "Detailed instructions"),
                _section("conclusion", "Conclusion & Next Steps", "conclusion_content", False,
                         "Summary and what to do next"),
            ],
        },
    },
    "review": {
        "name": "Product/Service Review",
        "description": "Template for reviewing products or services",
        "template_content": {
            "sections": [
                _section("introduction", "Introduction", "intro_content", True, "What are you reviewing?"),
                _section("pros", "Pros", "pros_content", True, "What works well?"),
                _section("cons", "Cons", "cons_content", True, "What could be better?"),
                _section("verdict", "Final Verdict", "verdict_content", True, "Overall recommendation"),
            ],
        },
    },
}


def predefined_templates() -> dict[str, dict[str, Any]]:
    return copy.deepcopy(PREDEFINED_TEMPLATES)


def _get_publication(db: Session, publication_id: UUID) -> models.Publication:
    publication = db.get(models.Publication, publication_id)
    if publication is None:
        raise HTTPException(status_code=404, detail="Publication not found")
    return publication


def get_template(db: Session, template_id: UUID) -> models.PublicationTemplate:
    template = db.get(models.PublicationTemplate, template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


def _unset_defaults(db: Session, publication_id: UUID, keep: UUID | None = None) -> None:
    query = db.query(models.PublicationTemplate).filter(
        models.PublicationTemplate.publication_id == publication_id,
        models.PublicationTemplate.is_default.is_(True),
    )
    for template in query.all():
        if template.id != keep:
            template.is_default = False


def list_templates(
    db: Session, publication_id: UUID, user: models.User, include_inactive: bool = False
) -> list[models.PublicationTemplate]:
    _get_publication(db, publication_id)
    query = db.query(models.PublicationTemplate).filter(
        models.PublicationTemplate.publication_id == publication_id
    )
    if include_inactive:
        require_permission(db, user, publication_id, PublicationRole.ADMIN)
    else:
        query = query.filter(models.PublicationTemplate.is_active.is_(True))
    return query.order_by(
        models.PublicationTemplate.is_default.desc(), models.PublicationTemplate.name.asc()
    ).all()


def create_template(
    db: Session, payload: schemas.TemplateCreate, user: models.User
) -> models.PublicationTemplate:
    _get_publication(db, payload.publication_id)
    require_permission(db, user, payload.publication_id, PublicationRole.ADMIN)
    if payload.is_default:
        _unset_defaults(db, payload.publication_id)
    template = models.PublicationTemplate(
        publication_id=payload.publication_id,
        name=payload.name,
        description=payload.description,
        template_content=payload.template_content,
        is_default=payload.is_default,
        is_active=payload.is_active,
        created_by=user.id,
    )
    db.add(template)
    db.flush()
    audit.log_action(db, user.id, "template.created", "publication_template", template.id)
    return template


def update_template(
    db: Session, template_id: UUID, payload: schemas.TemplateUpdate, user: models.User
) -> models.PublicationTemplate:
    template = get_template(db, template_id)
    require_permission(db, user, template.publication_id, PublicationRole.ADMIN)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("is_default"):
        _unset_defaults(db, template.publication_id, keep=template.id)
    for key, value in changes.items():
        if key == "name" and not value:
            raise HTTPException(status_code=400, detail="Template name cannot be empty")
        setattr(template, key, value)
    audit.log_action(
        db, user.id, "template.updated", "publication_template", template.id,
        {"fields": sorted(changes)},
    )
    return template


def delete_template(db: Session, template_id: UUID, user: models.User) -> None:
    template = get_template(db, template_id)
    require_permission(db, user, template.publication_id, PublicationRole.ADMIN)
    audit.log_action(db, user.id, "template.deleted", "publication_template", template.id)
    db.delete(template)


def merge_template(template_content: Mapping[str, Any], article_data: Mapping[str, Any]) -> dict[str, Any]:
    """Fill section placeholders and title fields from ``article_data``."""

    merged = copy.deepcopy(dict(template_content or {}))
    for section in merged.get("sections") or []:
        placeholder = section.get("placeholder")
        if placeholder and placeholder in article_data:
            section["content"] = article_data[placeholder]
    for key in ("title", "subtitle"):
        if key in article_data:
            merged[key] = article_data[key]
    return merged


def apply_template(
    db: Session, template_id: UUID, article_data: Mapping[str, Any], user: models.User
) -> dict[str, Any]:
    template = get_template(db, template_id)
    if not has_permission(db, template.publication_id, user.id, PublicationRole.WRITER):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    structure = template.template_content or {}
    return {
        "template": schemas.TemplateOut.model_validate(template),
        "content": merge_template(structure, article_data),
        "structure": structure,
    }


def duplicate_template(
    db: Session, template_id: UUID, name: str, user: models.User
) -> models.PublicationTemplate:
    source = get_template(db, template_id)
    require_permission(db, user, source.publication_id, PublicationRole.ADMIN)
    copy_of = models.PublicationTemplate(
        publication_id=source.publication_id,
        name=name,
        description=f"{source.description or ''} (Copy)".strip(),
        template_content=copy.deepcopy(source.template_content or {}),
        is_default=False,
        is_active=True,
        created_by=user.id,
    )
    db.add(copy_of)
    db.flush()
    audit.log_action(
        db, user.id, "template.duplicated", "publication_template", copy_of.id,
        {"source_id": str(source.id)},
    )
    logger.info("template %s duplicated as %s", source.id, copy_of.id)
    return copy_of
