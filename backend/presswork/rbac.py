from __future__ import annotations

from enum import IntEnum
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import models

# purpose: resolve a user's effective role in a publication and compare capabilities
# status: active


class PublicationRole(IntEnum):
    """Publication capability ladder, ordered lowest to highest."""

    WRITER = 10
    EDITOR = 20
    ADMIN = 30
    OWNER = 40

    @classmethod
    def parse(cls, value: "PublicationRole | str | None") -> "PublicationRole | None":
        if isinstance(value, cls):
            return value
        if not value:
            return None
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            return None

    @property
    def label(self) -> str:
        return self.name.lower()


def effective_role(
    db: Session, publication_id: UUID | None, user_id: UUID | None
) -> PublicationRole | None:
    """Return the user's highest relationship to the publication, if any."""

    if publication_id is None or user_id is None:
        return None
    publication = db.get(models.Publication, publication_id)
    if publication is None:
        return None
    if publication.owner_id == user_id:
        return PublicationRole.OWNER
    membership = (
        db.query(models.PublicationMember)
        .filter(
            models.PublicationMember.publication_id == publication_id,
            models.PublicationMember.user_id == user_id,
        )
        .first()
    )
    if membership is None:
        return None
    role = PublicationRole.parse(membership.role)
    # a stored "owner" string is never honoured; ownership comes from the publication row
    if role is PublicationRole.OWNER:
        return None
    return role


def has_permission(
    db: Session,
    publication_id: UUID | None,
    user_id: UUID | None,
    minimum_role: PublicationRole | str,
) -> bool:
    """True iff the user's effective role ranks at or above ``minimum_role``.

    Unknown publications, unknown users and unparseable roles all resolve to
    ``False``; this never raises for missing rows.
    """

    required = PublicationRole.parse(minimum_role)
    if required is None:
        return False
    role = effective_role(db, publication_id, user_id)
    if role is None:
        return False
    return role >= required


def require_permission(
    db: Session,
    user: models.User,
    publication_id: UUID | None,
    minimum_role: PublicationRole | str,
    detail: str = "Insufficient permissions",
) -> None:
    if not has_permission(db, publication_id, user.id, minimum_role):
        raise HTTPException(status_code=403, detail=detail)


def can_user_review(db: Session, submission: models.ArticleSubmission, user_id: UUID) -> bool:
    """Editors and above may review; so may the submission's assigned reviewer."""

    if submission.assigned_reviewer_id is not None and submission.assigned_reviewer_id == user_id:
        return True
    return has_permission(db, submission.publication_id, user_id, PublicationRole.EDITOR)


def can_user_edit_article(db: Session, article: models.Article, user_id: UUID) -> bool:
    if article.author_id == user_id:
        return True
    if article.publication_id is None:
        return False
    return has_permission(db, article.publication_id, user_id, PublicationRole.EDITOR)


def publication_reviewers(db: Session, publication_id: UUID) -> list[UUID]:
    """Owner, admins and editors of a publication, owner first, without duplicates."""

    publication = db.get(models.Publication, publication_id)
    if publication is None:
        return []
    recipients: list[UUID] = [publication.owner_id]
    members = (
        db.query(models.PublicationMember)
        .filter(models.PublicationMember.publication_id == publication_id)
        .order_by(models.PublicationMember.joined_at)
        .all()
    )
    for member in members:
        role = PublicationRole.parse(member.role)
        if role is not None and role >= PublicationRole.EDITOR and member.user_id not in recipients:
            recipients.append(member.user_id)
    return recipients
