"""Reviewer invitations, editorial approval and the move into peer review."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, directory, models, notify, rbac, schemas
from ..database import flush_or_conflict
from ..errors import NotFound, ValidationError
from ..models import as_utc
from .consent import generate_token, verify_token
from .cycles import ensure_initial_cycle
from .field_lock import apply_editorial_update
from .lifecycle import approved_reviewers, check_transition, load_submission, transition_status

# purpose: reviewer majority gate and invitation token handling
# status: active

logger = logging.getLogger(__name__)

REVIEW_DUE = timedelta(days=30)
INVITATION_RESPONSES = {"ACCEPT": "ACCEPTED", "DECLINE": "DECLINED"}


def _invitation_link(submission: models.Submission, index: int, token: str) -> str:
    return f"{notify.FRONTEND_URL}/submissions/{submission.id}/reviewer-invitation/{index}?token={token}"


def issue_reviewer_invitations(db: Session, submission: models.Submission) -> int:
    """Send invitation tokens to every suggested reviewer still PENDING."""

    now = datetime.now(timezone.utc)
    issued = 0
    for index, reviewer in enumerate(submission.suggested_reviewers):
        if reviewer.invitation_status != "PENDING":
            continue
        token, expires = generate_token(now)
        reviewer.invitation_token = token
        reviewer.invitation_token_expires = expires
        reviewer.invitation_sent_at = now
        notify.queue(
            db,
            "invitation-sent",
            directory.contact_email(db, reviewer),
            {
                "reviewer_name": reviewer.display_name,
                "submission_number": submission.submission_number,
                "submission_title": submission.title,
                "article_type": submission.article_type,
                "invitation_link": _invitation_link(submission, index, token),
                "expires_at": expires.strftime("%Y-%m-%d %H:%M UTC"),
            },
        )
        issued += 1
    return issued


def respond_to_reviewer_invitation(
    db: Session,
    submission_id: UUID,
    reviewer_index: int,
    token: str | None,
    decision: str,
) -> models.SuggestedReviewer:
    if decision not in INVITATION_RESPONSES:
        raise ValidationError(f"Invalid invitation response: {decision}", field="decision")
    submission = load_submission(db, submission_id, for_update=True)
    if reviewer_index < 0 or reviewer_index >= len(submission.suggested_reviewers):
        raise NotFound("Suggested reviewer not found in this submission")
    reviewer = submission.suggested_reviewers[reviewer_index]

    verify_token(reviewer.invitation_token, reviewer.invitation_token_expires, token, label="invitation")

    reviewer.invitation_status = INVITATION_RESPONSES[decision]
    reviewer.invitation_responded_at = datetime.now(timezone.utc)
    reviewer.invitation_token = None
    reviewer.invitation_token_expires = None
    flush_or_conflict(db)
    audit.log_action(
        db,
        reviewer.user_id,
        "reviewer_invitation_response",
        "submission",
        submission.id,
        {"reviewer_index": reviewer_index, "decision": reviewer.invitation_status},
    )
    return reviewer


def set_reviewer_approval(
    db: Session,
    submission: models.Submission,
    reviewer_index: int,
    actor: models.User,
    approved: bool,
) -> models.SuggestedReviewer:
    rbac.require_editorial(actor)
    if reviewer_index < 0 or reviewer_index >= len(submission.suggested_reviewers):
        raise NotFound("Suggested reviewer not found in this submission")
    reviewer = submission.suggested_reviewers[reviewer_index]
    reviewer.editor_approved = approved
    flush_or_conflict(db)
    audit.log_action(
        db,
        actor.id,
        "reviewer_approval",
        "submission",
        submission.id,
        {"reviewer_index": reviewer_index, "approved": approved},
    )
    return reviewer


def expire_stale_invitations(db: Session, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    pending = (
        db.query(models.SuggestedReviewer)
        .filter(models.SuggestedReviewer.invitation_status == "PENDING")
        .filter(models.SuggestedReviewer.invitation_token_expires.isnot(None))
        .all()
    )
    expired = 0
    for reviewer in pending:
        if as_utc(reviewer.invitation_token_expires) < now:
            reviewer.invitation_status = "EXPIRED"
            expired += 1
    flush_or_conflict(db)
    if expired:
        logger.info("Expired %s reviewer invitation(s)", expired)
    return expired


def move_to_review(db: Session, submission_id: UUID, actor: models.User) -> models.Submission:
    rbac.require_editorial(actor)
    submission = load_submission(db, submission_id, for_update=True)
    check_transition(submission, "UNDER_REVIEW", actor)

    now = datetime.now(timezone.utc)
    approved = approved_reviewers(submission)
    existing = {a.suggested_reviewer_id: a for a in submission.reviewer_assignments}
    for reviewer in approved:
        assignment = existing.get(reviewer.id)
        if assignment is not None:
            assignment.reviewer_id = assignment.reviewer_id or reviewer.user_id
            assignment.due_date = now + REVIEW_DUE
            assignment.status = "PENDING"
            continue
        submission.reviewer_assignments.append(
            models.ReviewerAssignment(
                reviewer_id=reviewer.user_id,
                suggested_reviewer_id=reviewer.id,
                assigned_date=now,
                due_date=now + REVIEW_DUE,
                status="PENDING",
                is_anonymous=True,
            )
        )
    apply_editorial_update(
        submission,
        schemas.EditorialUpdate(
            internal_note=f"Moved to peer review with {len(approved)} approved reviewers"
        ),
        actor,
    )
    cycle = ensure_initial_cycle(db, submission)
    cycle.reviewer_ids = [str(r.user_id) for r in approved if r.user_id]
    flush_or_conflict(db)

    transition_status(db, submission, "UNDER_REVIEW", actor)
    audit.log_action(
        db, actor.id, "move_to_review", "submission", submission.id, {"reviewers": len(approved)}
    )
    return submission
