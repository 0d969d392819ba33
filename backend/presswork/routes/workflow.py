"""Editorial workflow API: submissions, reviews, revisions, templates and guidelines."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..database import get_db
from ..responses import PageParams, page_params, pagination, success
from ..services import guidelines, revisions, submissions, templates
from ..services.outbox import NotificationOutbox, get_outbox

router = APIRouter(prefix="/api/workflow", tags=["workflow"])

# purpose: HTTP surface of the submission state machine and its supporting tools
# status: active
# depends_on: services.submissions, services.revisions, services.outbox


async def _commit(db: Session, outbox: NotificationOutbox) -> None:
    db.commit()
    await outbox.dispatch(db)


def _submission_out(submission: models.ArticleSubmission) -> schemas.SubmissionOut:
    return schemas.SubmissionOut.model_validate(submission)


def _submission_page(items, total: int, params: PageParams, message: str = "Success"):
    return success(
        [_submission_out(s) for s in items], message, pagination=pagination(total, params)
    )


@router.post("/submit-article")
async def submit_article(
    payload: schemas.SubmitArticleRequest,
    db: Session = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.submit_article(
        db, outbox, payload.article_id, payload.publication_id, user
    )
    await _commit(db, outbox)
    return success(_submission_out(submission), "Article submitted successfully")


@router.get("/pending-submissions")
async def pending_submissions(
    publication_id: UUID,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    items, total = submissions.list_pending_submissions(db, publication_id, user, params)
    return _submission_page(items, total, params)


@router.get("/under-review")
async def under_review(
    publication_id: Optional[UUID] = None,
    reviewer_id: Optional[UUID] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    items, total = submissions.list_under_review(
        db, user, params, publication_id=publication_id, reviewer_id=reviewer_id
    )
    return _submission_page(items, total, params)


@router.get("/submissions/{submission_id}")
async def get_submission(
    submission_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.get_submission(db, submission_id)
    submissions.ensure_can_view(db, submission, user)
    return success(_submission_out(submission))


@router.post("/assign-reviewer")
async def assign_reviewer(
    payload: schemas.AssignReviewerRequest,
    db: Session = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.assign_reviewer(
        db, outbox, payload.submission_id, payload.reviewer_id, user
    )
    await _commit(db, outbox)
    return success(_submission_out(submission), "Reviewer assigned successfully")


@router.post("/start-review")
async def start_review(
    payload: schemas.SubmissionRef,
    db: Session = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.start_review(db, outbox, payload.submission_id, user)
    await _commit(db, outbox)
    return success(_submission_out(submission), "Review started")


@router.post("/approve-submission")
async def approve_submission(
    payload: schemas.ReviewDecisionRequest,
    db: Session = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.approve_submission(
        db, outbox, payload.submission_id, user, payload.review_notes
    )
    await _commit(db, outbox)
    return success(_submission_out(submission), "Article approved and published successfully")


@router.post("/reject-submission")
async def reject_submission(
    payload: schemas.ReviewDecisionRequest,
    db: Session = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.reject_submission(
        db, outbox, payload.submission_id, user, payload.review_notes
    )
    await _commit(db, outbox)
    return success(_submission_out(submission), "Article rejected successfully")


@router.post("/request-revision")
async def request_revision(
    payload: schemas.RevisionRequestIn,
    db: Session = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.request_revision(
        db, outbox, payload.submission_id, user, payload.revision_notes
    )
    await _commit(db, outbox)
    return success(_submission_out(submission), "Revision requested successfully")


@router.post("/resubmit")
async def resubmit(
    payload: schemas.SubmissionRef,
    db: Session = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.resubmit_after_revision(db, outbox, payload.submission_id, user)
    await _commit(db, outbox)
    return success(_submission_out(submission), "Article resubmitted successfully")


@router.get("/my-submissions")
async def my_submissions(
    status: Optional[str] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    items, total = submissions.list_user_submissions(db, user, params, status)
    return _submission_page(items, total, params)


@router.get("/submission-history")
async def submission_history(
    submission_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    events = submissions.submission_history(db, submission_id, user)
    submission = submissions.get_submission(db, submission_id)
    return success({
        "submission": _submission_out(submission),
        "history": [schemas.SubmissionEventOut.model_validate(e) for e in events],
    })


@router.get("/submission-stats")
async def submission_stats(
    publication_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    stats = submissions.submission_stats(db, publication_id, user)
    return success(schemas.SubmissionStats(**stats))


@router.post("/create-revision")
async def create_revision(
    payload: schemas.RevisionCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    revision = revisions.create_revision(
        db,
        payload.article_id,
        payload.revision_data.model_dump(),
        user,
        change_summary=payload.change_summary,
        is_major=payload.is_major,
    )
    db.commit()
    db.refresh(revision)
    return success(schemas.RevisionOut.model_validate(revision), "Revision created successfully")


@router.get("/article-revisions")
async def article_revisions(
    article_id: UUID,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    items, total, stats, contributors = revisions.list_revisions(db, article_id, user, params)
    return success(
        {
            "revisions": [schemas.RevisionOut.model_validate(r) for r in items],
            "stats": stats,
            "contributors": contributors,
        },
        pagination=pagination(total, params),
    )


@router.get("/compare-revisions")
async def compare_revisions(
    article_id: UUID,
    from_revision: int = Query(..., ge=1, alias="from"),
    to_revision: int = Query(..., ge=1, alias="to"),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    comparison = revisions.compare_revisions(db, article_id, from_revision, to_revision, user)
    comparison["from_revision"] = schemas.RevisionOut.model_validate(comparison["from_revision"])
    comparison["to_revision"] = schemas.RevisionOut.model_validate(comparison["to_revision"])
    return success(comparison)


@router.post("/restore-revision")
async def restore_revision(
    payload: schemas.RestoreRevisionRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    article, revision = revisions.restore_to_revision(
        db, payload.article_id, payload.revision_number, user
    )
    db.commit()
    db.refresh(article)
    db.refresh(revision)
    return success(
        {
            "article": schemas.ArticleOut.model_validate(article),
            "revision": schemas.RevisionOut.model_validate(revision),
        },
        "Revision restored successfully",
    )


@router.get("/templates")
async def list_templates(
    publication_id: UUID,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    items = templates.list_templates(db, publication_id, user, include_inactive)
    return success({
        "templates": [schemas.TemplateOut.model_validate(t) for t in items],
        "predefined": templates.predefined_templates(),
    })


@router.post("/templates", status_code=201)
async def create_template(
    payload: schemas.TemplateCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    template = templates.create_template(db, payload, user)
    db.commit()
    db.refresh(template)
    return success(schemas.TemplateOut.model_validate(template), "Template created successfully")


@router.put("/templates/{template_id}")
async def update_template(
    template_id: UUID,
    payload: schemas.TemplateUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    template = templates.update_template(db, template_id, payload, user)
    db.commit()
    db.refresh(template)
    return success(schemas.TemplateOut.model_validate(template), "Template updated successfully")


@router.delete("/templates/{template_id}")
async def delete_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    templates.delete_template(db, template_id, user)
    db.commit()
    return success(message="Template deleted successfully")


@router.post("/templates/{template_id}/apply")
async def apply_template(
    template_id: UUID,
    payload: schemas.TemplateApplyRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return success(templates.apply_template(db, template_id, payload.article_data, user))


@router.post("/templates/{template_id}/duplicate", status_code=201)
async def duplicate_template(
    template_id: UUID,
    payload: schemas.TemplateDuplicateRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    template = templates.duplicate_template(db, template_id, payload.name, user)
    db.commit()
    db.refresh(template)
    return success(schemas.TemplateOut.model_validate(template), "Template duplicated successfully")


@router.get("/guidelines")
async def list_guidelines(
    publication_id: UUID,
    category: Optional[str] = None,
    grouped: bool = False,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    items = guidelines.list_guidelines(db, publication_id, None if grouped else category)
    if grouped:
        listing = {
            key: [schemas.GuidelineOut.model_validate(g) for g in values]
            for key, values in guidelines.group_by_category(items).items()
        }
    else:
        listing = [schemas.GuidelineOut.model_validate(g) for g in items]
    return success({
        "guidelines": listing,
        "summary": guidelines.writer_summary(db, publication_id),
        "categories": guidelines.CATEGORIES,
    })


@router.post("/guidelines", status_code=201)
async def create_guideline(
    payload: schemas.GuidelineCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    guideline = guidelines.create_guideline(db, payload, user)
    db.commit()
    db.refresh(guideline)
    return success(schemas.GuidelineOut.model_validate(guideline), "Guideline created successfully")


@router.post("/guidelines/create-defaults", status_code=201)
async def create_default_guidelines(
    payload: schemas.PublicationRef,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    created = guidelines.create_default_guidelines(db, payload.publication_id, user)
    db.commit()
    for guideline in created:
        db.refresh(guideline)
    return success(
        [schemas.GuidelineOut.model_validate(g) for g in created],
        "Default guidelines created successfully",
    )


@router.post("/guidelines/reorder")
async def reorder_guidelines(
    payload: schemas.GuidelineReorderRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    updated = guidelines.reorder_guidelines(db, payload.publication_id, payload.guidelines, user)
    db.commit()
    return success({"updated": updated}, "Guidelines reordered successfully")


@router.put("/guidelines/{guideline_id}")
async def update_guideline(
    guideline_id: UUID,
    payload: schemas.GuidelineUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    guideline = guidelines.update_guideline(db, guideline_id, payload, user)
    db.commit()
    db.refresh(guideline)
    return success(schemas.GuidelineOut.model_validate(guideline), "Guideline updated successfully")


@router.delete("/guidelines/{guideline_id}")
async def delete_guideline(
    guideline_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    guidelines.delete_guideline(db, guideline_id, user)
    db.commit()
    return success(message="Guideline deleted successfully")


@router.post("/check-compliance")
async def check_compliance(
    payload: schemas.ComplianceCheckRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return success(guidelines.check_compliance(db, payload.publication_id, payload.article_data))
