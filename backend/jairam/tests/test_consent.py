import uuid
from datetime import datetime, timedelta, timezone

import pytest

from jairam import models
from jairam.errors import InvalidToken, TokenExpired, ValidationError
from jairam.services import consent

from .conftest import (
    TestingSessionLocal,
    auth_headers,
    consent_tokens,
    create_draft,
    make_user,
    manual_co_author,
    submit_draft,
)


def _draft_with_co_authors(client, count=2):
    author = make_user()
    headers = auth_headers(author)
    draft = create_draft(client, headers, co_authors=[manual_co_author() for _ in range(count)])
    return author, headers, draft


def _respond(client, submission_id, index, token, decision="ACCEPTED"):
    return client.post(
        f"/api/submissions/{submission_id}/coauthor-consent/{index}",
        json={"token": token, "decision": decision},
    )


def test_request_issues_one_token_per_pending_co_author(client, email_outbox):
    _, headers, draft = _draft_with_co_authors(client)
    resp = client.post(f"/api/submissions/{draft['id']}/coauthor-consent/request", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"issued": 2}

    tokens = consent_tokens(draft["id"])
    assert all(t and len(t) == 64 for t in tokens)
    assert len(set(tokens)) == 2
    assert len(email_outbox) == 2
    to, subject, body = email_outbox[0]
    assert to == draft["co_authors"][0]["email"]
    assert subject == f"Co-Author Consent Request - {draft['title']}"
    assert f"/submissions/{draft['id']}/coauthor-consent/0?token={tokens[0]}" in body


def test_consent_token_is_single_use(client):
    _, headers, draft = _draft_with_co_authors(client, count=1)
    client.post(f"/api/submissions/{draft['id']}/coauthor-consent/request", headers=headers)
    token = consent_tokens(draft["id"])[0]

    first = _respond(client, draft["id"], 0, token)
    assert first.status_code == 200
    assert first.json() == {"consent_status": "ACCEPTED"}

    again = _respond(client, draft["id"], 0, token, "REJECTED")
    assert again.status_code == 400
    assert again.json()["code"] == "INVALID_TOKEN"

    status = client.get(f"/api/submissions/{draft['id']}/coauthor-consent-status", headers=headers)
    assert status.json() == {
        "total": 1,
        "pending": 0,
        "accepted": 1,
        "rejected": 0,
        "is_complete": True,
    }


def test_wrong_or_missing_token_is_invalid(client):
    _, headers, draft = _draft_with_co_authors(client, count=1)
    client.post(f"/api/submissions/{draft['id']}/coauthor-consent/request", headers=headers)
    assert _respond(client, draft["id"], 0, "0" * 64).status_code == 400
    assert _respond(client, draft["id"], 0, "").status_code == 400
    assert _respond(client, draft["id"], 5, "0" * 64).status_code == 404


def test_expired_consent_token_leaves_state_unchanged(client):
    _, headers, draft = _draft_with_co_authors(client, count=1)
    client.post(f"/api/submissions/{draft['id']}/coauthor-consent/request", headers=headers)
    token = consent_tokens(draft["id"])[0]

    db = TestingSessionLocal()
    row = db.query(models.CoAuthor).filter(models.CoAuthor.consent_token == token).one()
    row.consent_token_expires = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()
    db.close()

    resp = _respond(client, draft["id"], 0, token)
    assert resp.status_code == 410
    assert resp.json()["code"] == "TOKEN_EXPIRED"
    status = client.get(f"/api/submissions/{draft['id']}/coauthor-consent-status", headers=headers)
    assert status.json()["pending"] == 1


def test_outstanding_consent_blocks_submission(client):
    _, headers, draft = _draft_with_co_authors(client)
    client.post(f"/api/submissions/{draft['id']}/coauthor-consent/request", headers=headers)
    tokens = consent_tokens(draft["id"])
    _respond(client, draft["id"], 0, tokens[0])

    resp = submit_draft(client, headers, draft["id"])
    assert resp.status_code == 422
    assert resp.json()["missing_item"] == "coauthor_consent"

    _respond(client, draft["id"], 1, tokens[1], "REJECTED")
    resp = submit_draft(client, headers, draft["id"])
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "SUBMITTED"


def test_only_the_author_requests_consent(client):
    _, _, draft = _draft_with_co_authors(client, count=1)
    stranger = make_user()
    resp = client.post(
        f"/api/submissions/{draft['id']}/coauthor-consent/request", headers=auth_headers(stranger)
    )
    assert resp.status_code == 403


def test_verify_token_rules():
    now = datetime.now(timezone.utc)
    token, expires = consent.generate_token(now)
    assert expires - now == timedelta(days=7)
    consent.verify_token(token, expires, token, label="consent", now=now)
    with pytest.raises(InvalidToken):
        consent.verify_token(None, None, token, label="consent")
    with pytest.raises(InvalidToken):
        consent.verify_token(token, expires, token[::-1], label="consent")
    with pytest.raises(TokenExpired) as exc:
        consent.verify_token(token, expires, token, label="consent", now=expires + timedelta(seconds=1))
    assert str(exc.value) == "The consent token has expired"


def test_unknown_decision_is_rejected():
    db = TestingSessionLocal()
    try:
        with pytest.raises(ValidationError):
            consent.process_coauthor_consent(db, uuid.uuid4(), 0, "x", "MAYBE")
    finally:
        db.close()
