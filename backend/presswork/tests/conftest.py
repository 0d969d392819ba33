import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from presswork.main import app
from presswork.database import Base, get_db
from presswork import auth, models, notify, pubsub

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def clear_outbox():
    notify.EMAIL_OUTBOX.clear()
    yield
    notify.EMAIL_OUTBOX.clear()


@pytest.fixture
def client():
    # the cached redis client is bound to the event loop it was created on;
    # each TestClient runs its own loop, so start every test with a fresh one
    pubsub._redis = None
    with TestClient(app) as c:
        yield c


def create_user(email: str | None = None, username: str | None = None):
    """Insert a user directly and return ``(user_id, auth headers)``."""

    email = email or f"user-{uuid.uuid4()}@example.com"
    db = TestingSessionLocal()
    user = models.User(
        email=email,
        hashed_password="secret",
        username=username or email.split("@")[0],
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    user_id = user.id
    db.close()
    token = auth.create_access_token({"sub": email})
    return user_id, {"Authorization": f"Bearer {token}"}


def ensure_access_token(client, *, email: str | None = None, password: str = "secret"):
    """Register (or log in) through the API and return ``(token, email)``."""

    normalized_email = email or f"user-{uuid.uuid4()}@example.com"
    payload = {"email": normalized_email, "password": password}
    resp = client.post("/api/auth/register", json=payload)
    if resp.status_code == 200:
        data = resp.json()
    else:
        body = resp.json()
        if resp.status_code == 400 and body.get("error", {}).get("message") == "Email already registered":
            login_resp = client.post("/api/auth/login", json=payload)
            assert login_resp.status_code == 200, login_resp.text
            data = login_resp.json()
        else:
            raise AssertionError(f"Unexpected auth bootstrap failure for {normalized_email}: {resp.status_code} {resp.text}")
    return data["access_token"], normalized_email


def create_publication(client, headers, name: str = "The Daily Draft") -> str:
    resp = client.post("/api/publications/", json={"name": name}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["id"]


def add_member(client, headers, publication_id: str, user_id, role: str) -> None:
    resp = client.post(
        f"/api/publications/{publication_id}/members",
        json={"user_id": str(user_id), "role": role},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text


def create_article(client, headers, title: str = "A Field Guide to Drafts", content: str = "First paragraph.") -> str:
    resp = client.post(
        "/api/articles/",
        json={"title": title, "content": content, "tags": ["writing"]},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["id"]


def newsroom(client):
    """Owner, admin, editor and writer of one publication plus an outsider."""

    owner_id, owner = create_user()
    pub_id = create_publication(client, owner)
    people = {"owner": (owner_id, owner)}
    for role in ("admin", "editor", "writer"):
        user_id, headers = create_user()
        add_member(client, owner, pub_id, user_id, role)
        people[role] = (user_id, headers)
    people["outsider"] = create_user()
    return pub_id, people
