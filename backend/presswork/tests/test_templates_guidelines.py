from .conftest import client, newsroom
from presswork.services.templates import merge_template, predefined_templates


def make_template(client, headers, pub_id, name, is_default=False):
    resp = client.post(
        "/api/workflow/templates",
        json={
            "publication_id": pub_id,
            "name": name,
            "description": "House style",
            "template_content": predefined_templates()["review"]["template_content"],
            "is_default": is_default,
        },
        headers=headers,
    )
    return resp


def test_templates_single_default_and_listing(client):
    pub_id, people = newsroom(client)
    admin = people["admin"][1]

    assert make_template(client, people["editor"][1], pub_id, "Nope").status_code == 403
    first = make_template(client, admin, pub_id, "Alpha", is_default=True).json()["data"]
    second = make_template(client, admin, pub_id, "Beta", is_default=True).json()["data"]

    listing = client.get("/api/workflow/templates", params={"publication_id": pub_id}, headers=people["writer"][1])
    assert listing.status_code == 200
    data = listing.json()["data"]
    assert [t["name"] for t in data["templates"]] == ["Beta", "Alpha"]
    assert [t["is_default"] for t in data["templates"]] == [True, False]
    assert set(data["predefined"]) == {"article", "tutorial", "review"}

    client.put(f"/api/workflow/templates/{first['id']}", json={"is_active": False}, headers=admin)
    active = client.get("/api/workflow/templates", params={"publication_id": pub_id}, headers=admin).json()
    assert [t["id"] for t in active["data"]["templates"]] == [second["id"]]
    everything = client.get(
        "/api/workflow/templates",
        params={"publication_id": pub_id, "include_inactive": True},
        headers=admin,
    ).json()
    assert len(everything["data"]["templates"]) == 2

    removed = client.delete(f"/api/workflow/templates/{first['id']}", headers=admin)
    assert removed.status_code == 200
    assert client.delete(f"/api/workflow/templates/{first['id']}", headers=admin).status_code == 404


def test_apply_and_duplicate_template(client):
    pub_id, people = newsroom(client)
    template = make_template(client, people["owner"][1], pub_id, "Review").json()["data"]

    applied = client.post(
        f"/api/workflow/templates/{template['id']}/apply",
        json={"article_data": {"title": "Kettle review", "pros_content": "Fast boil"}},
        headers=people["writer"][1],
    )
    assert applied.status_code == 200
    content = applied.json()["data"]["content"]
    assert content["title"] == "Kettle review"
    pros = [s for s in content["sections"] if s["placeholder"] == "pros_content"][0]
    assert pros["content"] == "Fast boil"

    copy = client.post(
        f"/api/workflow/templates/{template['id']}/duplicate",
        json={"name": "Review v2"},
        headers=people["admin"][1],
    )
    assert copy.status_code == 201
    copied = copy.json()["data"]
    assert copied["description"] == "House style (Copy)"
    assert copied["is_default"] is False
    assert copied["template_content"] == template["template_content"]


def test_merge_leaves_source_untouched():
    source = predefined_templates()["article"]["template_content"]
    merged = merge_template(source, {"intro_content": "Hello"})
    assert merged["sections"][0]["content"] == "Hello"
    assert "content" not in source["sections"][0]


def test_default_guidelines_and_summary(client):
    pub_id, people = newsroom(client)
    forbidden = client.post(
        "/api/workflow/guidelines/create-defaults", json={"publication_id": pub_id}, headers=people["editor"][1]
    )
    assert forbidden.status_code == 403

    created = client.post(
        "/api/workflow/guidelines/create-defaults", json={"publication_id": pub_id}, headers=people["admin"][1]
    )
    assert created.status_code == 201
    assert len(created.json()["data"]) == 4

    resp = client.get("/api/workflow/guidelines", params={"publication_id": pub_id}, headers=people["writer"][1])
    data = resp.json()["data"]
    summary = data["summary"]
    assert summary["total_guidelines"] == 4
    assert summary["required_guidelines"] == 2
    assert summary["categories"]["formatting"] == 1
    assert all(p["content_preview"].endswith("...") for p in summary["key_points"])
    assert all(len(p["content_preview"]) <= 103 for p in summary["key_points"])
    assert set(data["categories"]) == {
        "writing_style", "content_policy", "submission_process", "formatting", "general",
    }

    grouped = client.get(
        "/api/workflow/guidelines", params={"publication_id": pub_id, "grouped": True}, headers=people["writer"][1]
    ).json()["data"]["guidelines"]
    assert set(grouped) == {"writing_style", "content_policy", "submission_process", "formatting"}

    styled = client.get(
        "/api/workflow/guidelines",
        params={"publication_id": pub_id, "category": "formatting"},
        headers=people["writer"][1],
    ).json()["data"]["guidelines"]
    assert [g["title"] for g in styled] == ["Formatting Requirements"]


def test_guideline_crud_and_reorder(client):
    pub_id, people = newsroom(client)
    admin = people["admin"][1]
    ids = []
    for title in ("Cite sources", "Be kind"):
        resp = client.post(
            "/api/workflow/guidelines",
            json={"publication_id": pub_id, "title": title, "content": "Details", "category": "general"},
            headers=admin,
        )
        assert resp.status_code == 201
        ids.append(resp.json()["data"]["id"])

    reorder = client.post(
        "/api/workflow/guidelines/reorder",
        json={
            "publication_id": pub_id,
            "guidelines": [{"id": ids[0], "display_order": 2}, {"id": ids[1], "display_order": 1}],
        },
        headers=admin,
    )
    assert reorder.status_code == 200
    assert reorder.json()["data"]["updated"] == 2
    listed = client.get("/api/workflow/guidelines", params={"publication_id": pub_id}, headers=admin)
    assert [g["id"] for g in listed.json()["data"]["guidelines"]] == [ids[1], ids[0]]

    updated = client.put(f"/api/workflow/guidelines/{ids[0]}", json={"is_required": True}, headers=admin)
    assert updated.json()["data"]["is_required"] is True
    assert client.delete(f"/api/workflow/guidelines/{ids[1]}", headers=people["writer"][1]).status_code == 403
    assert client.delete(f"/api/workflow/guidelines/{ids[1]}", headers=admin).status_code == 200


def test_compliance_check(client):
    pub_id, people = newsroom(client)
    client.post("/api/workflow/guidelines/create-defaults", json={"publication_id": pub_id}, headers=admin_of(people))

    weak = client.post(
        "/api/workflow/check-compliance",
        json={"publication_id": pub_id, "article_data": {"title": "Hi", "content": "Too short."}},
        headers=people["writer"][1],
    ).json()["data"]
    assert [c["category"] for c in weak["checks"]] == ["content_policy", "writing_style"]
    assert weak["overall_score"] == 50
    assert weak["recommendations"] == ["Article content should be at least 300 characters long"]

    long_text = "This sentence is fine. " * 20
    strong = client.post(
        "/api/workflow/check-compliance",
        json={"publication_id": pub_id, "article_data": {"title": "A proper headline", "content": long_text}},
        headers=people["writer"][1],
    ).json()["data"]
    assert strong["overall_score"] == 100
    assert strong["recommendations"] == []


def test_compliance_without_required_guidelines_scores_full(client):
    pub_id, people = newsroom(client)
    resp = client.post(
        "/api/workflow/check-compliance",
        json={"publication_id": pub_id, "article_data": {"title": "x", "content": ""}},
        headers=people["writer"][1],
    )
    assert resp.json()["data"] == {"overall_score": 100, "checks": [], "recommendations": []}


def admin_of(people):
    return people["admin"][1]
