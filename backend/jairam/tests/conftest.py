import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from jairam.main import app
from jairam.database import Base, get_db
from jairam import auth, checklist, models, notify

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
def email_outbox():
    notify.EMAIL_OUTBOX.clear()
    yield notify.EMAIL_OUTBOX
    notify.EMAIL_OUTBOX.clear()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def make_user(role: str = "USER", *, email: str | None = None, first_name: str = "Test", last_name: str | None = None):
    db = TestingSessionLocal()
    user = models.User(
        email=email or f"{role.lower()}-{uuid.uuid4().hex[:10]}@example.com",
        first_name=first_name,
        last_name=last_name or role.title(),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    db.expunge(user)
    db.close()
    return user


def auth_headers(user) -> dict:
    token = auth.create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


def file_entry(category: str, name: str | None = None) -> dict:
    return {
        "category": category,
        "file_name": name or f"{category.lower()}.pdf",
        "file_url": f"https://files.example.com/{uuid.uuid4().hex}/{category.lower()}.pdf",
        "file_size": 120_000,
        "mime_type": "application/pdf",
    }


def manual_reviewer(email: str | None = None) -> dict:
    return {
        "kind": "manual",
        "title": "Dr.",
        "first_name": "Rev",
        "last_name": uuid.uuid4().hex[:6],
        "email": email or f"reviewer-{uuid.uuid4().hex[:10]}@example.com",
        "specialization": "Anaesthesiology",
        "institution": "City Hospital",
    }


def manual_co_author(email: str | None = None, **overrides) -> dict:
    entry = {
        "kind": "manual",
        "title": "Dr.",
        "first_name": "Co",
        "last_name": uuid.uuid4().hex[:6],
        "email": email or f"coauthor-{uuid.uuid4().hex[:10]}@example.com",
        "department": "Surgery",
        "country": "India",
    }
    entry.update(overrides)
    return entry


def draft_payload(**overrides) -> dict:
    payload = {
        "article_type": "Original Article",
        "title": "Early mobilisation after abdominal surgery in adults",
        "running_title": "Early mobilisation",
        "abstract": (
            "Background: early mobilisation is recommended after major surgery. "
            "Methods: we enrolled 240 adults in a prospective cohort and recorded "
            "time to first ambulation. Results: earlier ambulation shortened stay."
        ),
        "manuscript_details": {"word_count": 3200, "tables": 2, "pages": 14},
        "keywords": ["surgery", "mobilisation", "recovery"],
        "submitter_role_type": "Author",
        "is_corresponding_author": True,
        "co_authors": [],
        "suggested_reviewers": [manual_reviewer() for _ in range(3)],
        "files": [file_entry("COVER_LETTER"), file_entry("BLIND_MANUSCRIPT")],
    }
    payload.update(overrides)
    return payload


def checklist_answers(response: str = "YES") -> list[dict]:
    return [
        {"question_id": q.question_id, "category_id": c.category_id, "response": response}
        for c in checklist.declaration_categories()
        for q in c.questions
    ]


def submit_payload(**overrides) -> dict:
    payload = {
        "checklist": {"responses": checklist_answers(), "cope_compliance": True},
        "conflict_of_interest": {"has_conflict": False},
        "copyright_agreement": {"accepted": True},
        "pdf_preview_confirmed": True,
    }
    payload.update(overrides)
    return payload


def create_draft(client, headers, **overrides) -> dict:
    resp = client.post("/api/submissions/", json=draft_payload(**overrides), headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def submit_draft(client, headers, submission_id, **overrides):
    return client.post(
        f"/api/submissions/{submission_id}/submit",
        json=submit_payload(**overrides),
        headers=headers,
    )


def consent_tokens(submission_id) -> list[str | None]:
    db = TestingSessionLocal()
    try:
        rows = (
            db.query(models.CoAuthor)
            .filter(models.CoAuthor.submission_id == uuid.UUID(str(submission_id)))
            .order_by(models.CoAuthor.order)
            .all()
        )
        return [r.consent_token for r in rows]
    finally:
        db.close()


def invitation_tokens(submission_id) -> list[str | None]:
    db = TestingSessionLocal()
    try:
        rows = (
            db.query(models.SuggestedReviewer)
            .filter(models.SuggestedReviewer.submission_id == uuid.UUID(str(submission_id)))
            .order_by(models.SuggestedReviewer.position)
            .all()
        )
        return [r.invitation_token for r in rows]
    finally:
        db.close()


def submitted(client, **overrides):
    """Create and submit a manuscript; returns (author, submission json)."""

    author = make_user()
    headers = auth_headers(author)
    draft = create_draft(client, headers, **overrides)
    resp = submit_draft(client, headers, draft["id"])
    assert resp.status_code == 200, resp.text
    return author, resp.json()


def accept_and_approve(client, submission_id, editor_headers, indexes=(0, 1)):
    tokens = invitation_tokens(submission_id)
    for index in indexes:
        resp = client.post(
            f"/api/submissions/{submission_id}/reviewer-invitations/{index}",
            json={"token": tokens[index], "decision": "ACCEPT"},
        )
        assert resp.status_code == 200, resp.text
        resp = client.post(
            f"/api/submissions/{submission_id}/suggested-reviewers/{index}/approval",
            json={"approved": True},
            headers=editor_headers,
        )
        assert resp.status_code == 200, resp.text


def under_review(client, reviewers=None):
    """Submit a manuscript and move it into peer review.

    ``reviewers`` are registered users suggested by email so feedback can be
    attributed to them.
    """

    entries = [manual_reviewer(r.email) for r in reviewers] if reviewers else None
    overrides = {"suggested_reviewers": entries} if entries else {}
    author, submission = submitted(client, **overrides)
    editor = make_user("EDITOR")
    editor_headers = auth_headers(editor)
    accept_and_approve(client, submission["id"], editor_headers)
    resp = client.post(f"/api/submissions/{submission['id']}/move-to-review", headers=editor_headers)
    assert resp.status_code == 200, resp.text
    return author, editor, resp.json()
