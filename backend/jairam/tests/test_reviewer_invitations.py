import uuid
from datetime import datetime, timedelta, timezone

from jairam import models
from jairam.services import lifecycle

from .conftest import (
    TestingSessionLocal,
    accept_and_approve,
    auth_headers,
    invitation_tokens,
    make_user,
    manual_reviewer,
    submitted,
    under_review,
)


def _invite(client, submission_id, index, token, decision="ACCEPT"):
    return client.post(
        f"/api/submissions/{submission_id}/reviewer-invitations/{index}",
        json={"token": token, "decision": decision},
    )


def _majority(client, submission_id, headers):
    resp = client.get(f"/api/submissions/{submission_id}/reviewer-majority-status", headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_submission_sends_invitations(client, email_outbox):
    _, submission = submitted(client)
    tokens = invitation_tokens(submission["id"])
    assert len(tokens) == 3 and all(tokens)
    invitations = [m for m in email_outbox if m[1] == f"Review Invitation - {submission['submission_number']}"]
    assert len(invitations) == 3
    confirmations = [m for m in email_outbox if m[1].startswith("Submission Confirmation")]
    assert len(confirmations) == 1
    for reviewer in submission["suggested_reviewers"]:
        assert reviewer["invitation_sent_at"] is not None
        assert "invitation_token" not in reviewer


def test_majority_gate_needs_two_accepted_and_approved(client):
    _, submission = submitted(client)
    editor_headers = auth_headers(make_user("EDITOR"))
    sid = submission["id"]
    tokens = invitation_tokens(sid)

    assert _majority(client, sid, editor_headers) == {
        "can_move": False,
        "approved_reviewers": None,
        "reason": "Minimum 2 approved reviewers required",
        "current": 0,
        "required": 2,
    }

    assert _invite(client, sid, 0, tokens[0]).status_code == 200
    assert _invite(client, sid, 1, tokens[1]).status_code == 200
    # accepting alone does not approve
    assert _majority(client, sid, editor_headers)["current"] == 0

    client.post(f"/api/submissions/{sid}/suggested-reviewers/0/approval", json={"approved": True}, headers=editor_headers)
    status = _majority(client, sid, editor_headers)
    assert status["can_move"] is False
    assert status["current"] == 1

    blocked = client.post(f"/api/submissions/{sid}/move-to-review", headers=editor_headers)
    assert blocked.status_code == 409
    assert blocked.json()["detail"] == "Minimum 2 approved reviewers required"
    assert blocked.json()["current"] == 1

    client.post(f"/api/submissions/{sid}/suggested-reviewers/1/approval", json={"approved": True}, headers=editor_headers)
    status = _majority(client, sid, editor_headers)
    assert status["can_move"] is True
    assert status["approved_reviewers"] == 2


def test_declined_reviewer_does_not_count_even_when_approved(client):
    _, submission = submitted(client)
    editor_headers = auth_headers(make_user("EDITOR"))
    sid = submission["id"]
    tokens = invitation_tokens(sid)
    _invite(client, sid, 0, tokens[0])
    _invite(client, sid, 1, tokens[1], "DECLINE")
    for index in (0, 1):
        client.post(
            f"/api/submissions/{sid}/suggested-reviewers/{index}/approval",
            json={"approved": True},
            headers=editor_headers,
        )
    assert _majority(client, sid, editor_headers)["current"] == 1


def test_reviewer_response_never_sets_approval(client):
    _, submission = submitted(client)
    sid = submission["id"]
    resp = _invite(client, sid, 0, invitation_tokens(sid)[0])
    assert resp.json() == {"invitation_status": "ACCEPTED"}
    db = TestingSessionLocal()
    try:
        reviewer = (
            db.query(models.SuggestedReviewer)
            .filter(models.SuggestedReviewer.submission_id == uuid.UUID(sid))
            .filter(models.SuggestedReviewer.position == 0)
            .one()
        )
        assert reviewer.editor_approved is False
        assert reviewer.invitation_responded_at is not None
        assert reviewer.invitation_token is None
    finally:
        db.close()


def test_invitation_token_is_single_use(client):
    _, submission = submitted(client)
    sid = submission["id"]
    token = invitation_tokens(sid)[2]
    assert _invite(client, sid, 2, token, "DECLINE").status_code == 200
    again = _invite(client, sid, 2, token)
    assert again.status_code == 400
    assert again.json()["code"] == "INVALID_TOKEN"


def test_expired_invitation_token_is_rejected(client):
    _, submission = submitted(client)
    sid = submission["id"]
    token = invitation_tokens(sid)[0]

    db = TestingSessionLocal()
    row = db.query(models.SuggestedReviewer).filter(models.SuggestedReviewer.invitation_token == token).one()
    row.invitation_token_expires = datetime.now(timezone.utc) - timedelta(days=1)
    db.commit()
    db.close()

    resp = _invite(client, sid, 0, token)
    assert resp.status_code == 410
    assert resp.json()["code"] == "TOKEN_EXPIRED"

    db = TestingSessionLocal()
    try:
        row = db.query(models.SuggestedReviewer).filter(models.SuggestedReviewer.invitation_token == token).one()
        assert row.invitation_status == "PENDING"
    finally:
        db.close()


def test_only_editors_approve_reviewers(client):
    author, submission = submitted(client)
    resp = client.post(
        f"/api/submissions/{submission['id']}/suggested-reviewers/0/approval",
        json={"approved": True},
        headers=auth_headers(author),
    )
    assert resp.status_code == 403


def test_move_to_review_creates_assignments(client):
    reviewers = [make_user("REVIEWER"), make_user("REVIEWER")]
    _, submission = submitted(client, suggested_reviewers=[manual_reviewer(r.email) for r in reviewers])
    editor = make_user("EDITOR")
    headers = auth_headers(editor)
    accept_and_approve(client, submission["id"], headers)

    resp = client.post(f"/api/submissions/{submission['id']}/move-to-review", headers=headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "UNDER_REVIEW"
    assert body["internal_notes"][-1]["note"] == "Moved to peer review with 2 approved reviewers"

    db = TestingSessionLocal()
    try:
        row = db.get(models.Submission, uuid.UUID(submission["id"]))
        assert {a.reviewer_id for a in row.reviewer_assignments} == {r.id for r in reviewers}
        assert all(a.is_anonymous for a in row.reviewer_assignments)
        cycle = db.get(models.SubmissionCycle, row.current_cycle_id)
        assert sorted(cycle.reviewer_ids) == sorted(str(r.id) for r in reviewers)
    finally:
        db.close()

    listing = client.get("/api/submissions/", headers=auth_headers(reviewers[0]))
    assert [s["id"] for s in listing.json()["items"]] == [submission["id"]]


def test_gate_blocks_every_role():
    submission = models.Submission(status="SUBMITTED", author_id=uuid.uuid4())
    submission.suggested_reviewers = [
        models.SuggestedReviewer(
            first_name="R", last_name=str(i), email=f"r{i}@example.com",
            invitation_status="ACCEPTED", editor_approved=i == 0,
        )
        for i in range(2)
    ]
    assert lifecycle.can_move_to_review(submission)["can_move"] is False
    submission.suggested_reviewers[1].editor_approved = True
    assert lifecycle.can_move_to_review(submission) == {"can_move": True, "approved_reviewers": 2}


def test_majority_status_checks_role_before_lookup(client):
    author, submission = submitted(client)
    for submission_id in (submission["id"], str(uuid.uuid4())):
        resp = client.get(
            f"/api/submissions/{submission_id}/reviewer-majority-status", headers=auth_headers(author)
        )
        assert resp.status_code == 403


def test_anonymous_reviewer_gets_blinded_view(client):
    reviewers = [make_user("REVIEWER"), make_user("REVIEWER")]
    author, editor, submission = under_review(client, reviewers=reviewers)
    reviewer_headers = auth_headers(reviewers[0])

    resp = client.get(f"/api/submissions/{submission['id']}", headers=reviewer_headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert "author_id" not in body
    assert "co_authors" not in body
    assert "suggested_reviewers" not in body
    categories = {f["category"] for f in body["files"]}
    assert "BLIND_MANUSCRIPT" in categories
    assert "COVER_LETTER" not in categories

    listing = client.get("/api/submissions/", headers=reviewer_headers).json()["items"]
    assert [s["id"] for s in listing] == [submission["id"]]
    assert "author_id" not in listing[0]

    resp = client.get(f"/api/submissions/{submission['id']}/timeline", headers=reviewer_headers)
    assert resp.status_code == 403

    for user in (author, editor):
        full = client.get(f"/api/submissions/{submission['id']}", headers=auth_headers(user)).json()
        assert full["author_id"] == str(author.id)
        assert "COVER_LETTER" in {f["category"] for f in full["files"]}
