import uuid

import pytest
from fastapi import HTTPException

from .conftest import (
    client,
    TestingSessionLocal,
    add_member,
    create_article,
    create_publication,
    create_user,
    newsroom,
)
from presswork import models, notify
from presswork.services import outbox as outbox_service
from presswork.services import submissions
from presswork.services.outbox import NotificationOutbox


def submit(client, headers, article_id, pub_id):
    return client.post(
        "/api/workflow/submit-article",
        json={"article_id": article_id, "publication_id": pub_id},
        headers=headers,
    )


def submitted(client, people, pub_id, title="A Field Guide to Drafts"):
    _, writer = people["writer"]
    article_id = create_article(client, writer, title=title)
    resp = submit(client, writer, article_id, pub_id)
    assert resp.status_code == 200, resp.text
    return article_id, resp.json()["data"]["id"]


def notifications_for(headers, client, type=None):
    params = {"type": type} if type else {}
    resp = client.get("/api/notifications/", params=params, headers=headers)
    assert resp.status_code == 200
    return resp.json()


def test_writer_submission_notifies_publication_staff(client):
    pub_id, people = newsroom(client)
    article_id, submission_id = submitted(client, people, pub_id, title="Slow News")

    db = TestingSessionLocal()
    sub = db.get(models.ArticleSubmission, uuid.UUID(submission_id))
    assert sub.status == "pending"
    assert sub.version == 1
    article = db.get(models.Article, uuid.UUID(article_id))
    assert str(article.submission_id) == submission_id
    db.close()

    for role in ("owner", "admin", "editor"):
        received = notifications_for(people[role][1], client, "submission_received")
        assert len(received) == 1
        assert "Slow News" in received[0]["message"]
        assert received[0]["related_id"] == article_id
        assert received[0]["meta"]["submission_id"] == submission_id
    assert notifications_for(people["writer"][1], client) == []
    assert notifications_for(people["outsider"][1], client) == []
    assert len(notify.EMAIL_OUTBOX) == 3


def test_editor_approval_publishes_article(client):
    pub_id, people = newsroom(client)
    article_id, submission_id = submitted(client, people, pub_id)
    _, editor = people["editor"]

    resp = client.post(
        "/api/workflow/approve-submission",
        json={"submission_id": submission_id, "review_notes": "Great work"},
        headers=editor,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["status"] == "approved"
    assert body["data"]["review_notes"] == "Great work"
    assert body["data"]["reviewed_by"] == str(people["editor"][0])

    article = client.get(f"/api/articles/{article_id}", headers=people["writer"][1]).json()["data"]
    assert article["status"] == "published"
    assert article["publication_id"] == pub_id
    assert article["published_at"] is not None

    approved = notifications_for(people["writer"][1], client, "submission_approved")
    assert len(approved) == 1
    assert "approved and published" in approved[0]["message"]
    assert approved[0]["related_id"] == article_id
    assert approved[0]["meta"]["submission_id"] == submission_id


def test_assign_reviewer_keeps_status(client):
    pub_id, people = newsroom(client)
    article_id, submission_id = submitted(client, people, pub_id)
    editor_id, editor = people["editor"]

    resp = client.post(
        "/api/workflow/assign-reviewer",
        json={"submission_id": submission_id, "reviewer_id": str(editor_id)},
        headers=people["admin"][1],
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["assigned_reviewer_id"] == str(editor_id)
    assert data["status"] == "pending"
    assert data["version"] == 2

    assigned = notifications_for(editor, client, "review_assigned")
    assert len(assigned) == 1
    assert assigned[0]["related_id"] == article_id
    # only the reviewer hears about an assignment
    assert notifications_for(people["writer"][1], client) == []


def test_assign_reviewer_requires_admin(client):
    pub_id, people = newsroom(client)
    _, submission_id = submitted(client, people, pub_id)
    resp = client.post(
        "/api/workflow/assign-reviewer",
        json={"submission_id": submission_id, "reviewer_id": str(people["editor"][0])},
        headers=people["editor"][1],
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"

    missing = client.post(
        "/api/workflow/assign-reviewer",
        json={"submission_id": str(uuid.uuid4()), "reviewer_id": str(people["editor"][0])},
        headers=people["admin"][1],
    )
    assert missing.status_code == 404


def test_assigned_writer_can_request_revision(client):
    pub_id, people = newsroom(client)
    _, submission_id = submitted(client, people, pub_id)
    reviewer_id, reviewer = create_user()
    add_member(client, people["owner"][1], pub_id, reviewer_id, "writer")

    denied = client.post(
        "/api/workflow/request-revision",
        json={"submission_id": submission_id, "revision_notes": "Fix intro"},
        headers=reviewer,
    )
    assert denied.status_code == 403

    client.post(
        "/api/workflow/assign-reviewer",
        json={"submission_id": submission_id, "reviewer_id": str(reviewer_id)},
        headers=people["owner"][1],
    )
    resp = client.post(
        "/api/workflow/request-revision",
        json={"submission_id": submission_id, "revision_notes": "Fix intro"},
        headers=reviewer,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["status"] == "revision_requested"
    assert resp.json()["data"]["revision_notes"] == "Fix intro"
    requested = notifications_for(people["writer"][1], client, "revision_requested")
    assert requested[0]["meta"]["revision_notes"] == "Fix intro"


def test_request_revision_needs_notes(client):
    pub_id, people = newsroom(client)
    _, submission_id = submitted(client, people, pub_id)
    resp = client.post(
        "/api/workflow/request-revision",
        json={"submission_id": submission_id, "revision_notes": "   "},
        headers=people["editor"][1],
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Revision notes are required"


def test_resubmit_cycle(client):
    pub_id, people = newsroom(client)
    article_id, submission_id = submitted(client, people, pub_id)
    _, writer = people["writer"]
    client.post(
        "/api/workflow/request-revision",
        json={"submission_id": submission_id, "revision_notes": "Tighten the ending"},
        headers=people["editor"][1],
    )

    other = client.post(
        "/api/workflow/resubmit", json={"submission_id": submission_id}, headers=people["editor"][1]
    )
    assert other.status_code == 403

    first = client.post("/api/workflow/resubmit", json={"submission_id": submission_id}, headers=writer)
    assert first.status_code == 200, first.text
    data = first.json()["data"]
    assert data["id"] == submission_id
    assert data["article_id"] == article_id
    assert data["publication_id"] == pub_id
    assert data["status"] == "pending"
    assert data["revision_notes"] is None

    second = client.post("/api/workflow/resubmit", json={"submission_id": submission_id}, headers=writer)
    assert second.status_code == 400
    assert second.json()["error"]["code"] == "BAD_REQUEST"


def test_outsider_cannot_approve(client):
    pub_id, people = newsroom(client)
    _, submission_id = submitted(client, people, pub_id)
    resp = client.post(
        "/api/workflow/approve-submission",
        json={"submission_id": submission_id},
        headers=people["outsider"][1],
    )
    assert resp.status_code == 403
    db = TestingSessionLocal()
    assert db.get(models.ArticleSubmission, uuid.UUID(submission_id)).status == "pending"
    db.close()


def test_terminal_submissions_are_immutable(client):
    pub_id, people = newsroom(client)
    _, submission_id = submitted(client, people, pub_id)
    _, editor = people["editor"]
    rejected = client.post(
        "/api/workflow/reject-submission",
        json={"submission_id": submission_id, "review_notes": "Not a fit"},
        headers=editor,
    )
    assert rejected.status_code == 200

    for path, body in (
        ("/api/workflow/approve-submission", {"submission_id": submission_id}),
        ("/api/workflow/request-revision", {"submission_id": submission_id, "revision_notes": "x"}),
        ("/api/workflow/start-review", {"submission_id": submission_id}),
        ("/api/workflow/resubmit", {"submission_id": submission_id}),
    ):
        resp = client.post(path, json=body, headers=editor if "resubmit" not in path else people["writer"][1])
        assert resp.status_code == 400, path
    assign = client.post(
        "/api/workflow/assign-reviewer",
        json={"submission_id": submission_id, "reviewer_id": str(people["editor"][0])},
        headers=people["owner"][1],
    )
    assert assign.status_code == 400

    db = TestingSessionLocal()
    assert db.get(models.ArticleSubmission, uuid.UUID(submission_id)).status == "rejected"
    db.close()


def test_single_active_submission_per_pair(client):
    pub_id, people = newsroom(client)
    _, writer = people["writer"]
    article_id, submission_id = submitted(client, people, pub_id)

    duplicate = submit(client, writer, article_id, pub_id)
    assert duplicate.status_code == 400

    client.post(
        "/api/workflow/reject-submission",
        json={"submission_id": submission_id},
        headers=people["editor"][1],
    )
    again = submit(client, writer, article_id, pub_id)
    assert again.status_code == 200
    assert again.json()["data"]["id"] != submission_id

    client.post(
        "/api/workflow/approve-submission",
        json={"submission_id": again.json()["data"]["id"]},
        headers=people["editor"][1],
    )
    after_approval = submit(client, writer, article_id, pub_id)
    assert after_approval.status_code == 400

    db = TestingSessionLocal()
    statuses = sorted(
        s.status
        for s in db.query(models.ArticleSubmission).filter_by(article_id=uuid.UUID(article_id)).all()
    )
    db.close()
    assert statuses == ["approved", "rejected"]


def test_submit_validation_and_permissions(client):
    pub_id, people = newsroom(client)
    _, writer = people["writer"]
    article_id = create_article(client, writer)

    missing_fields = client.post("/api/workflow/submit-article", json={"article_id": article_id}, headers=writer)
    assert missing_fields.status_code == 400
    assert missing_fields.json()["error"]["code"] == "VALIDATION_ERROR"

    assert submit(client, writer, str(uuid.uuid4()), pub_id).status_code == 404
    assert submit(client, writer, article_id, str(uuid.uuid4())).status_code == 404
    assert submit(client, people["editor"][1], article_id, pub_id).status_code == 403

    outsider_id, outsider = people["outsider"]
    own_article = create_article(client, outsider)
    assert submit(client, outsider, own_article, pub_id).status_code == 403


def test_start_review_moves_pending_to_under_review(client):
    pub_id, people = newsroom(client)
    _, submission_id = submitted(client, people, pub_id)
    resp = client.post(
        "/api/workflow/start-review", json={"submission_id": submission_id}, headers=people["editor"][1]
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "under_review"

    again = client.post(
        "/api/workflow/start-review", json={"submission_id": submission_id}, headers=people["editor"][1]
    )
    assert again.status_code == 400

    listed = client.get(
        "/api/workflow/under-review", params={"publication_id": pub_id}, headers=people["editor"][1]
    )
    assert [s["id"] for s in listed.json()["data"]] == [submission_id]
    assert len(notifications_for(people["writer"][1], client, "review_started")) == 1


def test_pending_list_requires_editor_and_paginates(client):
    pub_id, people = newsroom(client)
    ids = [submitted(client, people, pub_id, title=f"Piece {i}")[1] for i in range(3)]

    forbidden = client.get(
        "/api/workflow/pending-submissions", params={"publication_id": pub_id}, headers=people["writer"][1]
    )
    assert forbidden.status_code == 403

    page = client.get(
        "/api/workflow/pending-submissions",
        params={"publication_id": pub_id, "page": 1, "limit": 2},
        headers=people["editor"][1],
    )
    assert page.status_code == 200
    body = page.json()
    assert [s["id"] for s in body["data"]] == ids[:2]
    assert body["pagination"]["total_items"] == 3
    assert body["pagination"]["total_pages"] == 2
    assert body["pagination"]["has_next"] is True

    too_big = client.get(
        "/api/workflow/pending-submissions",
        params={"publication_id": pub_id, "limit": 500},
        headers=people["editor"][1],
    )
    assert too_big.status_code == 400


def test_history_and_stats(client):
    pub_id, people = newsroom(client)
    _, submission_id = submitted(client, people, pub_id)
    _, editor = people["editor"]
    client.post("/api/workflow/start-review", json={"submission_id": submission_id}, headers=editor)
    client.post("/api/workflow/approve-submission", json={"submission_id": submission_id}, headers=editor)

    history = client.get(
        "/api/workflow/submission-history", params={"submission_id": submission_id}, headers=people["writer"][1]
    )
    assert history.status_code == 200
    events = history.json()["data"]["history"]
    assert [e["event_type"] for e in events] == ["submitted", "review_started", "approved"]
    assert [e["sequence"] for e in events] == [1, 2, 3]

    hidden = client.get(
        "/api/workflow/submission-history", params={"submission_id": submission_id}, headers=people["outsider"][1]
    )
    assert hidden.status_code == 403

    stats = client.get("/api/workflow/submission-stats", params={"publication_id": pub_id}, headers=editor)
    assert stats.status_code == 200
    data = stats.json()["data"]
    assert data["total_submissions"] == 1
    assert data["approved"] == 1
    assert data["avg_review_time_hours"] is not None

    mine = client.get(
        "/api/workflow/my-submissions", params={"status": "approved"}, headers=people["writer"][1]
    )
    assert [s["id"] for s in mine.json()["data"]] == [submission_id]
    bad = client.get("/api/workflow/my-submissions", params={"status": "lost"}, headers=people["writer"][1])
    assert bad.status_code == 400


def test_notification_failure_does_not_block_approval(client, monkeypatch):
    pub_id, people = newsroom(client)
    _, submission_id = submitted(client, people, pub_id)

    def broken(db, event):
        raise RuntimeError("notification store unavailable")

    monkeypatch.setattr(outbox_service, "persist_notification", broken)
    resp = client.post(
        "/api/workflow/approve-submission",
        json={"submission_id": submission_id},
        headers=people["editor"][1],
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "approved"

    db = TestingSessionLocal()
    assert db.get(models.ArticleSubmission, uuid.UUID(submission_id)).status == "approved"
    db.close()


def test_email_failure_still_stores_notification(client, monkeypatch):
    pub_id, people = newsroom(client)
    _, submission_id = submitted(client, people, pub_id)

    def broken_email(to_email, subject, message):
        raise OSError("smtp down")

    monkeypatch.setattr(notify, "send_email", broken_email)
    resp = client.post(
        "/api/workflow/reject-submission",
        json={"submission_id": submission_id},
        headers=people["editor"][1],
    )
    assert resp.status_code == 200
    assert len(notifications_for(people["writer"][1], client, "submission_rejected")) == 1


def test_stale_transition_is_rejected_with_conflict(client):
    pub_id, people = newsroom(client)
    _, submission_id = submitted(client, people, pub_id)

    db = TestingSessionLocal()
    stale = db.get(models.ArticleSubmission, uuid.UUID(submission_id))
    editor = db.get(models.User, people["editor"][0])
    assert stale.version == 1

    resp = client.post(
        "/api/workflow/request-revision",
        json={"submission_id": submission_id, "revision_notes": "More sources"},
        headers=people["editor"][1],
    )
    assert resp.status_code == 200

    with pytest.raises(HTTPException) as exc:
        submissions.approve_submission(db, NotificationOutbox(), stale.id, editor, None)
    assert exc.value.status_code == 409
    db.rollback()
    assert db.get(models.ArticleSubmission, stale.id).status == "revision_requested"
    db.close()


def test_author_acting_as_reviewer_is_not_notified(client):
    owner_id, owner = create_user()
    pub_id = create_publication(client, owner)
    article_id = create_article(client, owner)
    submission_id = submit(client, owner, article_id, pub_id).json()["data"]["id"]
    resp = client.post(
        "/api/workflow/approve-submission", json={"submission_id": submission_id}, headers=owner
    )
    assert resp.status_code == 200
    assert notifications_for(owner, client) == []
