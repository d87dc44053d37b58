from datetime import datetime, timedelta, timezone
import uuid

from jairam import models, tasks

from .conftest import TestingSessionLocal, auth_headers, invitation_tokens, make_user, submitted


def _age_invitations(submission_id):
    db = TestingSessionLocal()
    rows = (
        db.query(models.SuggestedReviewer)
        .filter(models.SuggestedReviewer.submission_id == uuid.UUID(submission_id))
        .all()
    )
    for row in rows:
        row.invitation_token_expires = datetime.now(timezone.utc) - timedelta(hours=1)
    db.commit()
    db.close()


def test_beat_schedule_runs_expiry_hourly():
    entry = tasks.celery_app.conf.beat_schedule["expire-reviewer-invitations"]
    assert entry["task"] == "jairam.tasks.expire_reviewer_invitations"


def test_expiry_task_marks_stale_invitations(client, monkeypatch):
    monkeypatch.setattr(tasks, "SessionLocal", TestingSessionLocal)
    _, submission = submitted(client)
    sid = submission["id"]
    token = invitation_tokens(sid)[0]
    _age_invitations(sid)

    assert tasks.expire_reviewer_invitations.delay().get() >= 3

    editor_headers = auth_headers(make_user("EDITOR"))
    detail = client.get(f"/api/submissions/{sid}", headers=editor_headers).json()
    assert {r["invitation_status"] for r in detail["suggested_reviewers"]} == {"EXPIRED"}

    late = client.post(
        f"/api/submissions/{sid}/reviewer-invitations/0",
        json={"token": token, "decision": "ACCEPT"},
    )
    assert late.status_code == 410


def test_admin_can_trigger_expiry(client):
    _, submission = submitted(client)
    _age_invitations(submission["id"])

    denied = client.post(
        "/api/submissions/reviewer-invitations/expire", headers=auth_headers(make_user("EDITOR"))
    )
    assert denied.status_code == 403

    resp = client.post(
        "/api/submissions/reviewer-invitations/expire", headers=auth_headers(make_user("ADMIN"))
    )
    assert resp.status_code == 200
    assert resp.json()["expired"] >= 3
