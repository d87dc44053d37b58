import uuid

from jairam import directory, models

from .conftest import (
    TestingSessionLocal,
    auth_headers,
    create_draft,
    make_user,
    manual_co_author,
    manual_reviewer,
    under_review,
)


def _register(client, headers, email, role="USER"):
    return client.post(
        "/api/users/",
        json={"email": email, "first_name": "New", "last_name": "Member", "role": role},
        headers=headers,
    )


def test_read_profile(client):
    user = make_user("EDITOR", first_name="Meera")
    resp = client.get("/api/users/me", headers=auth_headers(user))
    assert resp.status_code == 200
    data = resp.json()
    assert data["email"] == user.email
    assert data["first_name"] == "Meera"
    assert data["role"] == "EDITOR"


def test_registration_links_waiting_contributors(client):
    email = f"late-{uuid.uuid4().hex[:8]}@example.com"
    author = make_user()
    draft = create_draft(
        client,
        auth_headers(author),
        co_authors=[manual_co_author(email.upper())],
        suggested_reviewers=[manual_reviewer(email)] + [manual_reviewer() for _ in range(2)],
    )

    resp = _register(client, auth_headers(make_user("ADMIN")), email)
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["user"]["email"] == email
    assert body["reconciled"] == {"co_authors": 1, "suggested_reviewers": 1, "reviewer_assignments": 0}

    detail = client.get(f"/api/submissions/{draft['id']}", headers=auth_headers(author)).json()
    assert detail["co_authors"][0]["user_id"] == body["user"]["id"]
    assert detail["suggested_reviewers"][0]["user_id"] == body["user"]["id"]


def test_registration_attaches_open_review_assignments(client):
    _, _, submission = under_review(client)
    email = submission["suggested_reviewers"][0]["email"]

    resp = _register(client, auth_headers(make_user("ADMIN")), email, role="REVIEWER")
    assert resp.status_code == 201, resp.text
    assert resp.json()["reconciled"]["reviewer_assignments"] == 1
    new_id = resp.json()["user"]["id"]

    db = TestingSessionLocal()
    try:
        row = db.get(models.Submission, uuid.UUID(submission["id"]))
        assert new_id in {str(a.reviewer_id) for a in row.reviewer_assignments}
        cycle = db.get(models.SubmissionCycle, row.current_cycle_id)
        assert new_id in cycle.reviewer_ids
    finally:
        db.close()


def test_only_admins_register_users(client):
    resp = _register(client, auth_headers(make_user("EDITOR")), "someone@example.com")
    assert resp.status_code == 403


def test_duplicate_email_is_rejected(client):
    existing = make_user()
    resp = _register(client, auth_headers(make_user("ADMIN")), existing.email)
    assert resp.status_code == 422
    assert resp.json()["field"] == "email"


def test_contact_email_follows_the_directory():
    user = make_user(email=f"current-{uuid.uuid4().hex[:8]}@example.com")
    db = TestingSessionLocal()
    try:
        linked = models.CoAuthor(user_id=user.id, email="old-address@example.com", first_name="A", last_name="B")
        manual = models.SuggestedReviewer(email="manual@example.com", first_name="C", last_name="D")
        assert directory.contact_email(db, linked) == user.email
        assert directory.contact_email(db, manual) == "manual@example.com"
    finally:
        db.close()
