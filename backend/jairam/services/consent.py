from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, directory, models, notify, rbac
from ..database import flush_or_conflict
from ..errors import InvalidToken, NotFound, TokenExpired, ValidationError
from ..models import as_utc
from .lifecycle import coauthor_consent_status, load_submission

# purpose: single-use tokens for co-author consent
# status: active

logger = logging.getLogger(__name__)

TOKEN_TTL = timedelta(days=7)
CONSENT_DECISIONS = ("ACCEPTED", "REJECTED")


def generate_token(now: datetime | None = None) -> tuple[str, datetime]:
    now = now or datetime.now(timezone.utc)
    return secrets.token_hex(32), now + TOKEN_TTL


def verify_token(
    stored: str | None,
    expires: datetime | None,
    supplied: str | None,
    *,
    label: str,
    now: datetime | None = None,
) -> None:
    """Raise unless ``supplied`` matches a live stored token.

    Missing, consumed or mismatched tokens are ``InvalidToken``; a matching
    token past its expiry is ``TokenExpired``.
    """

    if not stored or not expires or not supplied:
        raise InvalidToken(f"Invalid or already used {label} token")
    if not secrets.compare_digest(stored, supplied):
        raise InvalidToken(f"Invalid or already used {label} token")
    now = now or datetime.now(timezone.utc)
    if as_utc(expires) < now:
        raise TokenExpired(f"The {label} token has expired")


def _consent_link(submission: models.Submission, index: int, token: str) -> str:
    return f"{notify.FRONTEND_URL}/submissions/{submission.id}/coauthor-consent/{index}?token={token}"


def request_coauthor_consent(db: Session, submission: models.Submission, actor: models.User) -> int:
    """Issue fresh consent tokens to every co-author still PENDING."""

    rbac.require_author(submission, actor)
    now = datetime.now(timezone.utc)
    issued = 0
    for index, co_author in enumerate(submission.co_authors):
        if co_author.consent_status != "PENDING":
            continue
        token, expires = generate_token(now)
        co_author.consent_token = token
        co_author.consent_token_expires = expires
        notify.queue(
            db,
            "consent-request",
            directory.contact_email(db, co_author),
            {
                "co_author_name": co_author.display_name,
                "author_name": submission.author.full_name,
                "submission_title": submission.title,
                "consent_link": _consent_link(submission, index, token),
                "expires_at": expires.strftime("%Y-%m-%d %H:%M UTC"),
            },
        )
        issued += 1
    flush_or_conflict(db)
    audit.log_action(
        db, actor.id, "request_coauthor_consent", "submission", submission.id, {"issued": issued}
    )
    logger.info("Issued %s consent request(s) for submission %s", issued, submission.id)
    return issued


def process_coauthor_consent(
    db: Session,
    submission_id: UUID,
    co_author_index: int,
    token: str | None,
    decision: str,
) -> models.CoAuthor:
    if decision not in CONSENT_DECISIONS:
        raise ValidationError(f"Invalid consent decision: {decision}", field="decision")
    submission = load_submission(db, submission_id, for_update=True)
    if co_author_index < 0 or co_author_index >= len(submission.co_authors):
        raise NotFound("Co-author not found in this submission")
    co_author = submission.co_authors[co_author_index]

    verify_token(co_author.consent_token, co_author.consent_token_expires, token, label="consent")

    co_author.consent_status = decision
    co_author.consent_date = datetime.now(timezone.utc)
    co_author.consent_token = None
    co_author.consent_token_expires = None
    flush_or_conflict(db)
    audit.log_action(
        db,
        co_author.user_id,
        "coauthor_consent",
        "submission",
        submission.id,
        {"co_author_index": co_author_index, "decision": decision},
    )
    logger.info("Co-author %s of submission %s %s consent", co_author_index, submission.id, decision)
    return co_author


def check_coauthor_consent_status(submission: models.Submission) -> dict:
    return coauthor_consent_status(submission)
