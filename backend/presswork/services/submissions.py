"""Submission lifecycle: the state machine that moves articles into publications."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

import sqlalchemy as sa
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import audit, models
from ..rbac import PublicationRole, can_user_review, has_permission, publication_reviewers, require_permission
from ..responses import PageParams
from .outbox import NotificationOutbox

logger = logging.getLogger(__name__)

# purpose: own every status change of an ArticleSubmission and the events it emits
# inputs: SQLAlchemy session, request-scoped outbox, acting user
# outputs: updated submissions, SubmissionEvent/AuditLog rows, queued notifications
# status: active


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SubmissionStatus.APPROVED, SubmissionStatus.REJECTED})
ACTIVE_STATUSES = frozenset(set(SubmissionStatus) - TERMINAL_STATUSES)

TRANSITIONS: Mapping[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.PENDING: frozenset(
        {
            SubmissionStatus.UNDER_REVIEW,
            SubmissionStatus.APPROVED,
            SubmissionStatus.REJECTED,
            SubmissionStatus.REVISION_REQUESTED,
        }
    ),
    SubmissionStatus.UNDER_REVIEW: frozenset(
        {
            SubmissionStatus.APPROVED,
            SubmissionStatus.REJECTED,
            SubmissionStatus.REVISION_REQUESTED,
        }
    ),
    SubmissionStatus.REVISION_REQUESTED: frozenset(
        {
            SubmissionStatus.PENDING,
            SubmissionStatus.APPROVED,
            SubmissionStatus.REJECTED,
            SubmissionStatus.REVISION_REQUESTED,
        }
    ),
    SubmissionStatus.APPROVED: frozenset(),
    SubmissionStatus.REJECTED: frozenset(),
}

_TERMINAL_VALUES = tuple(s.value for s in TERMINAL_STATUSES)
_ACTIVE_VALUES = tuple(s.value for s in ACTIVE_STATUSES)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _naive(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_status(value: str | None) -> SubmissionStatus | None:
    if value is None:
        return None
    try:
        return SubmissionStatus(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown submission status '{value}'")


def record_submission_event(
    db: Session,
    submission: models.ArticleSubmission,
    event_type: str,
    actor: models.User | None,
    from_status: str | None,
    to_status: str | None,
    notes: str | None = None,
    payload: dict[str, Any] | None = None,
) -> models.SubmissionEvent:
    """Append the next event in the submission's history."""

    latest = (
        db.query(models.SubmissionEvent)
        .filter(models.SubmissionEvent.submission_id == submission.id)
        .order_by(models.SubmissionEvent.sequence.desc())
        .first()
    )
    next_sequence = 1 if latest is None else latest.sequence + 1
    event = models.SubmissionEvent(
        submission_id=submission.id,
        sequence=next_sequence,
        event_type=event_type,
        from_status=from_status,
        to_status=to_status,
        actor_id=getattr(actor, "id", None),
        notes=notes,
        payload=payload if isinstance(payload, dict) else {},
        created_at=_utcnow(),
    )
    db.add(event)
    return event


def _compare_and_swap(
    db: Session, submission: models.ArticleSubmission, values: dict[str, Any]
) -> None:
    expected_version = submission.version
    changes = dict(values)
    changes["version"] = expected_version + 1
    changes["updated_at"] = _utcnow()
    result = db.execute(
        sa.update(models.ArticleSubmission)
        .where(
            models.ArticleSubmission.id == submission.id,
            models.ArticleSubmission.version == expected_version,
            models.ArticleSubmission.status.notin_(_TERMINAL_VALUES),
        )
        .values(**changes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "lost update on submission %s at version %s", submission.id, expected_version
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Submission was modified by another request; reload and retry",
        )
    db.refresh(submission)


def _transition(
    db: Session,
    submission: models.ArticleSubmission,
    target: SubmissionStatus,
    actor: models.User,
    event_type: str,
    notes: str | None = None,
    changes: dict[str, Any] | None = None,
) -> None:
    current = SubmissionStatus(submission.status)
    if current.is_terminal:
        raise HTTPException(status_code=400, detail=f"Submission is already {current.value}")
    if target not in TRANSITIONS[current]:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot move submission from {current.value} to {target.value}",
        )
    values = dict(changes or {})
    values["status"] = target.value
    _compare_and_swap(db, submission, values)
    record_submission_event(db, submission, event_type, actor, current.value, target.value, notes)
    audit.log_action(
        db,
        actor.id,
        f"submission.{event_type}",
        "article_submission",
        submission.id,
        {"from": current.value, "to": target.value},
    )
    logger.info(
        "submission %s moved %s -> %s by %s", submission.id, current.value, target.value, actor.id
    )


def _meta(submission: models.ArticleSubmission, **extra: Any) -> dict[str, Any]:
    meta = {
        "submission_id": str(submission.id),
        "article_id": str(submission.article_id),
        "publication_id": str(submission.publication_id),
        "action_url": f"/workflow/submissions/{submission.id}",
    }
    meta.update(extra)
    return meta


def _notify_author(
    outbox: NotificationOutbox,
    submission: models.ArticleSubmission,
    actor: models.User,
    type: str,
    title: str,
    message: str,
    **extra: Any,
) -> None:
    if submission.submitted_by == actor.id:
        return
    outbox.add(
        submission.submitted_by,
        type,
        message,
        title=title,
        related_id=submission.article_id,
        meta=_meta(submission, **extra),
    )


def get_submission(db: Session, submission_id: UUID) -> models.ArticleSubmission:
    submission = db.get(models.ArticleSubmission, submission_id)
    if submission is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    return submission


def ensure_can_view(db: Session, submission: models.ArticleSubmission, user: models.User) -> None:
    if submission.submitted_by == user.id or can_user_review(db, submission, user.id):
        return
    raise HTTPException(status_code=403, detail="Insufficient permissions")


def submit_article(
    db: Session,
    outbox: NotificationOutbox,
    article_id: UUID,
    publication_id: UUID,
    user: models.User,
) -> models.ArticleSubmission:
    publication = db.get(models.Publication, publication_id)
    if publication is None:
        raise HTTPException(status_code=404, detail="Publication not found")
    article = db.get(models.Article, article_id)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    if article.author_id != user.id:
        raise HTTPException(status_code=403, detail="Only the author can submit this article")
    require_permission(
        db, user, publication_id, PublicationRole.WRITER,
        detail="You must be a member of this publication to submit articles",
    )

    existing = (
        db.query(models.ArticleSubmission)
        .filter(
            models.ArticleSubmission.article_id == article_id,
            models.ArticleSubmission.publication_id == publication_id,
            models.ArticleSubmission.status.in_(_ACTIVE_VALUES + (SubmissionStatus.APPROVED.value,)),
        )
        .first()
    )
    if existing is not None:
        if existing.status == SubmissionStatus.APPROVED.value:
            raise HTTPException(status_code=400, detail="Article is already published in this publication")
        raise HTTPException(status_code=400, detail="Article already submitted to this publication")

    now = _utcnow()
    submission = models.ArticleSubmission(
        article_id=article_id,
        publication_id=publication_id,
        submitted_by=user.id,
        status=SubmissionStatus.PENDING.value,
        submitted_at=now,
        created_at=now,
        updated_at=now,
        version=1,
    )
    db.add(submission)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=409, detail="Article already submitted to this publication"
        )
    article.submission_id = submission.id
    record_submission_event(db, submission, "submitted", user, None, SubmissionStatus.PENDING.value)
    audit.log_action(
        db, user.id, "submission.submitted", "article_submission", submission.id,
        {"article_id": str(article_id), "publication_id": str(publication_id)},
    )
    outbox.fan_out(
        publication_reviewers(db, publication_id),
        "submission_received",
        f"New article submission: '{article.title}' for {publication.name}",
        exclude=[user.id],
        title="New submission",
        related_id=submission.article_id,
        meta=_meta(submission),
    )
    logger.info("article %s submitted to publication %s as %s", article_id, publication_id, submission.id)
    return submission


def assign_reviewer(
    db: Session,
    outbox: NotificationOutbox,
    submission_id: UUID,
    reviewer_id: UUID,
    actor: models.User,
) -> models.ArticleSubmission:
    submission = get_submission(db, submission_id)
    require_permission(db, actor, submission.publication_id, PublicationRole.ADMIN)
    if SubmissionStatus(submission.status).is_terminal:
        raise HTTPException(status_code=400, detail=f"Submission is already {submission.status}")
    reviewer = db.get(models.User, reviewer_id)
    if reviewer is None or not reviewer.is_active:
        raise HTTPException(status_code=404, detail="Reviewer not found")
    if not has_permission(db, submission.publication_id, reviewer_id, PublicationRole.WRITER):
        raise HTTPException(status_code=400, detail="Reviewer must be a member of the publication")

    previous = submission.assigned_reviewer_id
    _compare_and_swap(db, submission, {"assigned_reviewer_id": reviewer_id})
    record_submission_event(
        db, submission, "reviewer_assigned", actor, submission.status, submission.status,
        payload={
            "reviewer_id": str(reviewer_id),
            "previous_reviewer_id": str(previous) if previous else None,
        },
    )
    audit.log_action(
        db, actor.id, "submission.reviewer_assigned", "article_submission", submission.id,
        {"reviewer_id": str(reviewer_id)},
    )

    title = submission.article_title
    if reviewer_id != actor.id:
        outbox.add(
            reviewer_id,
            "review_assigned",
            f"You have been assigned to review '{title}' in {submission.publication_name}",
            title="Review assigned",
            related_id=submission.article_id,
            meta=_meta(submission),
        )
    logger.info("reviewer %s assigned to submission %s", reviewer_id, submission.id)
    return submission


def start_review(
    db: Session, outbox: NotificationOutbox, submission_id: UUID, actor: models.User
) -> models.ArticleSubmission:
    submission = get_submission(db, submission_id)
    if not can_user_review(db, submission, actor.id):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    current = SubmissionStatus(submission.status)
    if current is not SubmissionStatus.PENDING:
        raise HTTPException(status_code=400, detail=f"Only pending submissions can enter review, not {current.value}")
    _transition(
        db, submission, SubmissionStatus.UNDER_REVIEW, actor, "review_started",
        changes={"reviewed_by": actor.id},
    )
    _notify_author(
        outbox, submission, actor, "review_started", "Review started",
        f"Your article '{submission.article_title}' is now under review at {submission.publication_name}",
    )
    return submission


def approve_submission(
    db: Session,
    outbox: NotificationOutbox,
    submission_id: UUID,
    actor: models.User,
    review_notes: str | None = None,
) -> models.ArticleSubmission:
    submission = get_submission(db, submission_id)
    if not can_user_review(db, submission, actor.id):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    now = _utcnow()
    _transition(
        db, submission, SubmissionStatus.APPROVED, actor, "approved",
        notes=review_notes,
        changes={"reviewed_by": actor.id, "reviewed_at": now, "review_notes": review_notes},
    )
    article = submission.article
    article.status = "published"
    article.publication_id = submission.publication_id
    article.published_at = now
    _notify_author(
        outbox, submission, actor, "submission_approved", "Submission approved",
        f"Your article '{article.title}' has been approved and published in {submission.publication_name}",
        review_notes=review_notes,
    )
    return submission


def reject_submission(
    db: Session,
    outbox: NotificationOutbox,
    submission_id: UUID,
    actor: models.User,
    review_notes: str | None = None,
) -> models.ArticleSubmission:
    submission = get_submission(db, submission_id)
    if not can_user_review(db, submission, actor.id):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    _transition(
        db, submission, SubmissionStatus.REJECTED, actor, "rejected",
        notes=review_notes,
        changes={"reviewed_by": actor.id, "reviewed_at": _utcnow(), "review_notes": review_notes},
    )
    _notify_author(
        outbox, submission, actor, "submission_rejected", "Submission rejected",
        f"Your article '{submission.article_title}' has been rejected by {submission.publication_name}",
        review_notes=review_notes,
    )
    return submission


def request_revision(
    db: Session,
    outbox: NotificationOutbox,
    submission_id: UUID,
    actor: models.User,
    revision_notes: str | None,
) -> models.ArticleSubmission:
    notes = (revision_notes or "").strip()
    if not notes:
        raise HTTPException(status_code=400, detail="Revision notes are required")
    submission = get_submission(db, submission_id)
    if not can_user_review(db, submission, actor.id):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    _transition(
        db, submission, SubmissionStatus.REVISION_REQUESTED, actor, "revision_requested",
        notes=notes,
        changes={"reviewed_by": actor.id, "reviewed_at": _utcnow(), "revision_notes": notes},
    )
    _notify_author(
        outbox, submission, actor, "revision_requested", "Revision requested",
        f"Revision requested for your article '{submission.article_title}'",
        revision_notes=notes,
    )
    return submission


def resubmit_after_revision(
    db: Session, outbox: NotificationOutbox, submission_id: UUID, user: models.User
) -> models.ArticleSubmission:
    submission = get_submission(db, submission_id)
    if submission.submitted_by != user.id:
        raise HTTPException(status_code=403, detail="Only the submitter can resubmit")
    if submission.status != SubmissionStatus.REVISION_REQUESTED.value:
        raise HTTPException(status_code=400, detail="Submission is not awaiting revision")
    _transition(
        db, submission, SubmissionStatus.PENDING, user, "resubmitted",
        changes={"revision_notes": None},
    )
    recipients = publication_reviewers(db, submission.publication_id)
    if submission.assigned_reviewer_id is not None:
        recipients.append(submission.assigned_reviewer_id)
    outbox.fan_out(
        recipients,
        "submission_received",
        f"Article resubmitted after revision: '{submission.article_title}'",
        exclude=[user.id],
        title="Submission updated",
        related_id=submission.article_id,
        meta=_meta(submission, resubmitted=True),
    )
    return submission


def _paginate(query, params: PageParams):
    total = query.count()
    items = query.offset(params.offset).limit(params.limit).all()
    return items, total


def list_pending_submissions(
    db: Session, publication_id: UUID, user: models.User, params: PageParams
) -> tuple[list[models.ArticleSubmission], int]:
    if db.get(models.Publication, publication_id) is None:
        raise HTTPException(status_code=404, detail="Publication not found")
    require_permission(db, user, publication_id, PublicationRole.EDITOR)
    query = (
        db.query(models.ArticleSubmission)
        .filter(
            models.ArticleSubmission.publication_id == publication_id,
            models.ArticleSubmission.status.in_(_ACTIVE_VALUES),
        )
        .order_by(models.ArticleSubmission.submitted_at.asc(), models.ArticleSubmission.id)
    )
    return _paginate(query, params)


def list_under_review(
    db: Session,
    user: models.User,
    params: PageParams,
    publication_id: UUID | None = None,
    reviewer_id: UUID | None = None,
) -> tuple[list[models.ArticleSubmission], int]:
    """Submissions currently under review.

    Without a publication the caller sees only reviews assigned to them;
    filtering a publication (optionally by reviewer) requires editor rights.
    """

    query = db.query(models.ArticleSubmission).filter(
        models.ArticleSubmission.status == SubmissionStatus.UNDER_REVIEW.value
    )
    if publication_id is None:
        query = query.filter(models.ArticleSubmission.assigned_reviewer_id == user.id)
    else:
        require_permission(db, user, publication_id, PublicationRole.EDITOR)
        query = query.filter(models.ArticleSubmission.publication_id == publication_id)
        if reviewer_id is not None:
            query = query.filter(models.ArticleSubmission.assigned_reviewer_id == reviewer_id)
    query = query.order_by(models.ArticleSubmission.submitted_at.asc(), models.ArticleSubmission.id)
    return _paginate(query, params)


def list_user_submissions(
    db: Session, user: models.User, params: PageParams, status_filter: str | None = None
) -> tuple[list[models.ArticleSubmission], int]:
    query = db.query(models.ArticleSubmission).filter(
        models.ArticleSubmission.submitted_by == user.id
    )
    wanted = parse_status(status_filter)
    if wanted is not None:
        query = query.filter(models.ArticleSubmission.status == wanted.value)
    query = query.order_by(models.ArticleSubmission.submitted_at.desc(), models.ArticleSubmission.id)
    return _paginate(query, params)


def submission_history(
    db: Session, submission_id: UUID, user: models.User
) -> list[models.SubmissionEvent]:
    submission = get_submission(db, submission_id)
    ensure_can_view(db, submission, user)
    return list(submission.events)


def submission_stats(db: Session, publication_id: UUID, user: models.User) -> dict[str, Any]:
    if db.get(models.Publication, publication_id) is None:
        raise HTTPException(status_code=404, detail="Publication not found")
    require_permission(db, user, publication_id, PublicationRole.EDITOR)
    rows = (
        db.query(models.ArticleSubmission.status, sa.func.count(models.ArticleSubmission.id))
        .filter(models.ArticleSubmission.publication_id == publication_id)
        .group_by(models.ArticleSubmission.status)
        .all()
    )
    stats: dict[str, Any] = {s.value: 0 for s in SubmissionStatus}
    for value, count in rows:
        stats[value] = count
    stats["total_submissions"] = sum(count for _, count in rows)

    decided = (
        db.query(models.ArticleSubmission)
        .filter(
            models.ArticleSubmission.publication_id == publication_id,
            models.ArticleSubmission.reviewed_at.isnot(None),
            models.ArticleSubmission.submitted_at.isnot(None),
        )
        .all()
    )
    hours = [
        (_naive(s.reviewed_at) - _naive(s.submitted_at)).total_seconds() / 3600
        for s in decided
    ]
    stats["avg_review_time_hours"] = round(sum(hours) / len(hours), 2) if hours else None
    return stats
