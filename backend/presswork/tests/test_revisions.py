from .conftest import client, create_article, create_user, newsroom
from presswork.services.revisions import diff_blocks, split_blocks


def revise(client, headers, article_id, title, content, **extra):
    payload = {
        "article_id": article_id,
        "revision_data": {"title": title, "content": content, "tags": ["essay"]},
    }
    payload.update(extra)
    return client.post("/api/workflow/create-revision", json=payload, headers=headers)


def test_revision_numbers_are_sequential(client):
    _, author = create_user()
    article_id = create_article(client, author)

    numbers = []
    for i in range(3):
        resp = revise(client, author, article_id, f"Draft {i}", f"Body {i}")
        assert resp.status_code == 200, resp.text
        numbers.append(resp.json()["data"]["revision_number"])
    assert numbers == [1, 2, 3]

    article = client.get(f"/api/articles/{article_id}", headers=author).json()["data"]
    assert article["revision_count"] == 3
    assert article["last_edited_at"] is not None


def test_revision_requires_title_and_edit_rights(client):
    _, author = create_user()
    _, stranger = create_user()
    article_id = create_article(client, author)

    empty_title = revise(client, author, article_id, "", "Body")
    assert empty_title.status_code == 400

    no_content = client.post(
        "/api/workflow/create-revision",
        json={"article_id": article_id, "revision_data": {"title": "Only a title"}},
        headers=author,
    )
    assert no_content.status_code == 400
    assert no_content.json()["error"]["code"] == "VALIDATION_ERROR"

    assert revise(client, stranger, article_id, "Mine now", "Body").status_code == 403


def test_revision_history_with_stats(client):
    author_id, author = create_user()
    article_id = create_article(client, author)
    revise(client, author, article_id, "One", "a")
    revise(client, author, article_id, "Two", "b", is_major=True, change_summary="Rewrite")

    resp = client.get("/api/workflow/article-revisions", params={"article_id": article_id}, headers=author)
    assert resp.status_code == 200
    body = resp.json()
    data = body["data"]
    assert [r["revision_number"] for r in data["revisions"]] == [2, 1]
    assert data["stats"]["total_revisions"] == 2
    assert data["stats"]["major_revisions"] == 1
    assert data["stats"]["unique_contributors"] == 1
    assert data["contributors"][0]["id"] == str(author_id)
    assert data["contributors"][0]["revision_count"] == 2
    assert body["pagination"]["total_items"] == 2


def test_compare_is_symmetric(client):
    _, author = create_user()
    article_id = create_article(client, author)
    revise(client, author, article_id, "Title", "Intro.\n\nMiddle part.\n\nEnding.")
    revise(client, author, article_id, "New Title", "Intro.\n\nA better middle.\n\nEnding.\n\nPostscript here.")

    forward = client.get(
        "/api/workflow/compare-revisions",
        params={"article_id": article_id, "from": 1, "to": 2},
        headers=author,
    ).json()["data"]
    backward = client.get(
        "/api/workflow/compare-revisions",
        params={"article_id": article_id, "from": 2, "to": 1},
        headers=author,
    ).json()["data"]

    assert forward["changes"]["title"] is True
    assert forward["changes"]["tags"] is False
    assert forward["diff"]["summary"] == {
        "added": 2,
        "removed": 1,
        "unchanged": 2,
        "word_count_change": 3,
    }
    assert [b["text"] for b in forward["diff"]["blocks"]] == [b["text"] for b in backward["diff"]["blocks"]]
    flip = {"added": "removed", "removed": "added"}
    assert [flip[b["tag"]] for b in forward["diff"]["blocks"]] == [b["tag"] for b in backward["diff"]["blocks"]]
    assert backward["diff"]["summary"]["word_count_change"] == -3


def test_compare_missing_revision(client):
    _, author = create_user()
    article_id = create_article(client, author)
    revise(client, author, article_id, "Title", "Body")
    resp = client.get(
        "/api/workflow/compare-revisions",
        params={"article_id": article_id, "from": 1, "to": 9},
        headers=author,
    )
    assert resp.status_code == 404


def test_restore_appends_major_revision(client):
    _, author = create_user()
    article_id = create_article(client, author)
    revise(client, author, article_id, "Original", "First version")
    revise(client, author, article_id, "Changed", "Second version")

    resp = client.post(
        "/api/workflow/restore-revision",
        json={"article_id": article_id, "revision_number": 1},
        headers=author,
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["article"]["title"] == "Original"
    assert data["article"]["content"] == "First version"
    assert data["revision"]["revision_number"] == 3
    assert data["revision"]["is_major"] is True
    assert data["revision"]["change_summary"] == "Restored to revision #1"

    missing = client.post(
        "/api/workflow/restore-revision",
        json={"article_id": article_id, "revision_number": 7},
        headers=author,
    )
    assert missing.status_code == 404


def test_publication_editor_can_revise_published_article(client):
    pub_id, people = newsroom(client)
    _, writer = people["writer"]
    article_id = create_article(client, writer)
    sub = client.post(
        "/api/workflow/submit-article",
        json={"article_id": article_id, "publication_id": pub_id},
        headers=writer,
    ).json()["data"]
    client.post("/api/workflow/approve-submission", json={"submission_id": sub["id"]}, headers=people["editor"][1])

    resp = revise(client, people["editor"][1], article_id, "Copy edited", "Cleaner body")
    assert resp.status_code == 200
    assert revise(client, people["outsider"][1], article_id, "Nope", "Body").status_code == 403


def test_split_blocks_handles_html_paragraphs():
    assert split_blocks("<p>One</p><p>Two</p>\n\n<p> </p>") == ["<p>One", "<p>Two"]
    assert split_blocks("") == []


def test_identical_content_has_no_changes():
    diff = diff_blocks("Same.\n\nText.", "Same.\n\nText.")
    assert diff["blocks"] == []
    assert diff["summary"]["unchanged"] == 2
