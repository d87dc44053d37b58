import uuid

import pytest

from jairam import models
from jairam.errors import IllegalModification, ValidationError

from .conftest import (
    TestingSessionLocal,
    auth_headers,
    consent_tokens,
    create_draft,
    draft_payload,
    file_entry,
    make_user,
    manual_co_author,
    submit_draft,
    submitted,
)


def _load(db, submission_id):
    return db.get(models.Submission, uuid.UUID(str(submission_id)))


@pytest.mark.parametrize(
    "field, value",
    [
        ("title", "A completely different manuscript title"),
        ("abstract", "Rewritten abstract " * 10),
        ("keywords", ["one", "two", "three"]),
        ("has_conflict", True),
    ],
)
def test_content_is_locked_after_submission(client, field, value):
    _, submission = submitted(client)
    db = TestingSessionLocal()
    try:
        row = _load(db, submission["id"])
        setattr(row, field, value)
        with pytest.raises(IllegalModification) as exc:
            db.commit()
        assert exc.value.field == field
        db.rollback()
        assert getattr(_load(db, submission["id"]), field) != value
    finally:
        db.close()


def test_files_are_locked_after_submission(client):
    _, submission = submitted(client)
    db = TestingSessionLocal()
    try:
        row = _load(db, submission["id"])
        row.files.append(models.SubmissionFile(**file_entry("FIGURE")))
        with pytest.raises(IllegalModification) as exc:
            db.flush()
        assert exc.value.field == "files"
        db.rollback()

        row = _load(db, submission["id"])
        row.files[0].file_name = "swapped.pdf"
        with pytest.raises(IllegalModification) as exc:
            db.flush()
        assert exc.value.field == "files.file_name"
    finally:
        db.rollback()
        db.close()


def test_co_author_details_are_locked_after_submission(client):
    author = make_user()
    headers = auth_headers(author)
    draft = create_draft(client, headers, co_authors=[manual_co_author()])
    client.post(f"/api/submissions/{draft['id']}/coauthor-consent/request", headers=headers)
    resp = client.post(
        f"/api/submissions/{draft['id']}/coauthor-consent/0",
        json={"token": consent_tokens(draft["id"])[0], "decision": "ACCEPTED"},
    )
    assert resp.status_code == 200
    assert submit_draft(client, headers, draft["id"]).status_code == 200

    db = TestingSessionLocal()
    try:
        row = _load(db, draft["id"])
        row.co_authors[0].department = "Medicine"
        with pytest.raises(IllegalModification) as exc:
            db.flush()
        assert exc.value.field == "co_authors.department"
        db.rollback()

        row = _load(db, draft["id"])
        row.co_authors.pop()
        with pytest.raises(IllegalModification):
            db.flush()
    finally:
        db.rollback()
        db.close()


def test_editorial_fields_stay_writable(client):
    _, submission = submitted(client)
    admin = make_user("ADMIN")
    editor = make_user("EDITOR")
    admin_headers = auth_headers(admin)

    resp = client.put(
        f"/api/submissions/{submission['id']}/payment-status",
        json={"payment_status": True},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["payment_status"] is True

    resp = client.post(
        f"/api/submissions/{submission['id']}/assign-editor",
        json={"editor_id": str(editor.id)},
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["assigned_editor_id"] == str(editor.id)
    assert body["internal_notes"][-1]["note"] == f"Editor assigned: {editor.full_name}"

    resp = client.post(
        f"/api/submissions/{submission['id']}/notes",
        json={"note": "Plagiarism check clean", "is_confidential": False},
        headers=auth_headers(editor),
    )
    assert resp.status_code == 200
    assert resp.json()["internal_notes"][-1]["is_confidential"] is False


def test_author_cannot_patch_submitted_manuscript(client):
    author, submission = submitted(client)
    resp = client.patch(
        f"/api/submissions/{submission['id']}",
        json={"title": "Sneaky retitle of the manuscript"},
        headers=auth_headers(author),
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "FORBIDDEN"


def test_update_rejects_unknown_fields(client):
    author = make_user()
    headers = auth_headers(author)
    draft = create_draft(client, headers)
    resp = client.patch(
        f"/api/submissions/{draft['id']}", json={"status": "SUBMITTED"}, headers=headers
    )
    assert resp.status_code == 422


def test_draft_content_is_editable(client):
    author = make_user()
    headers = auth_headers(author)
    draft = create_draft(client, headers)
    resp = client.patch(
        f"/api/submissions/{draft['id']}",
        json={"title": "Early mobilisation after abdominal surgery: a cohort", "keywords": ["a1", "b2", "c3", "d4"]},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["keywords"] == ["a1", "b2", "c3", "d4"]


@pytest.mark.parametrize("field", ["title", "abstract", "article_type"])
def test_required_fields_cannot_be_cleared(client, field):
    author = make_user()
    headers = auth_headers(author)
    draft = create_draft(client, headers)
    resp = client.patch(f"/api/submissions/{draft['id']}", json={field: None}, headers=headers)
    assert resp.status_code == 422
    assert resp.json()["field"] == field

    current = client.get(f"/api/submissions/{draft['id']}", headers=headers).json()
    assert current[field] == draft[field]


def test_two_corresponding_co_authors_fail_before_persistence(client):
    author = make_user()
    headers = auth_headers(author)
    payload_co_authors = [
        manual_co_author(is_corresponding=True),
        manual_co_author(is_corresponding=True),
    ]
    resp = client.post(
        "/api/submissions/",
        json={
            **draft_payload(),
            "is_corresponding_author": False,
            "co_authors": payload_co_authors,
        },
        headers=headers,
    )
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Only one co-author can be corresponding author"

    db = TestingSessionLocal()
    try:
        emails = [c["email"] for c in payload_co_authors]
        assert db.query(models.CoAuthor).filter(models.CoAuthor.email.in_(emails)).count() == 0
    finally:
        db.close()


def test_author_and_co_author_cannot_both_be_corresponding(client):
    author = make_user()
    headers = auth_headers(author)
    draft = create_draft(client, headers)
    resp = client.patch(
        f"/api/submissions/{draft['id']}",
        json={"co_authors": [manual_co_author(is_corresponding=True)]},
        headers=headers,
    )
    assert resp.status_code == 422
    assert resp.json()["detail"] == (
        "Only one corresponding author allowed (either main author OR one co-author)"
    )


def test_corresponding_author_check_runs_on_every_flush():
    db = TestingSessionLocal()
    author = models.User(email=f"{uuid.uuid4().hex}@example.com", first_name="A", last_name="B", role="USER")
    db.add(author)
    db.flush()
    submission = models.Submission(
        author_id=author.id,
        article_type="Editorial",
        title="An editorial about editorials",
        running_title="Editorials",
        abstract="x" * 120,
        manuscript_details={"word_count": 900, "pages": 3},
        keywords=["one", "two", "three"],
        submitter_role_type="Author",
        is_corresponding_author=True,
    )
    submission.co_authors = [
        models.CoAuthor(
            first_name="C", last_name="D", email="cd@example.com", order=1, is_corresponding=True
        )
    ]
    db.add(submission)
    try:
        with pytest.raises(ValidationError):
            db.flush()
    finally:
        db.rollback()
        db.close()