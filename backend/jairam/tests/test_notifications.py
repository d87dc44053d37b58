import pytest

from jairam import models, notify

from .conftest import TestingSessionLocal, auth_headers, create_draft, make_user, submit_draft

CONTEXT = {
    "author_name": "Dr. Test Author",
    "submission_title": "Early mobilisation after abdominal surgery",
    "submission_number": "JAIRAM-2026-0001",
}


def test_notifications_wait_for_commit():
    db = TestingSessionLocal()
    try:
        db.query(models.User).first()
        notify.queue(db, "submission-confirmed", "author@example.com", CONTEXT)
        assert len(notify.pending(db)) == 1
        assert notify.EMAIL_OUTBOX == []
        db.commit()
    finally:
        db.close()
    assert notify.EMAIL_OUTBOX == [
        (
            "author@example.com",
            "Submission Confirmation - JAIRAM-2026-0001",
            notify.render("submission-confirmed", CONTEXT)[1],
        )
    ]


def test_rollback_discards_queued_notifications():
    db = TestingSessionLocal()
    try:
        db.query(models.User).first()
        notify.queue(db, "submission-confirmed", "author@example.com", CONTEXT)
        db.rollback()
        assert notify.pending(db) == []
    finally:
        db.close()
    assert notify.EMAIL_OUTBOX == []


def test_unknown_kind_is_rejected():
    db = TestingSessionLocal()
    try:
        with pytest.raises(ValueError):
            notify.queue(db, "newsletter", "author@example.com", {})
    finally:
        db.close()
    with pytest.raises(ValueError):
        notify.render("newsletter", {})


def test_delivery_failure_does_not_fail_the_request(client, monkeypatch):
    def broken_send(to_email, subject, message):
        raise ConnectionError("smtp down")

    monkeypatch.setattr(notify, "send_email", broken_send)
    headers = auth_headers(make_user())
    draft = create_draft(client, headers)
    resp = submit_draft(client, headers, draft["id"])
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "SUBMITTED"
    assert notify.EMAIL_OUTBOX == []
