"""Submission status state machine."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

import sqlalchemy as sa
from prometheus_client import Counter
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import audit, models, rbac
from ..database import flush_or_conflict
from ..errors import (
    ConcurrentModification,
    IncompleteSubmission,
    InvalidTransition,
    NotFound,
    ValidationError,
)

# purpose: guard every submission status change and stamp lifecycle bookkeeping
# status: active

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS = Counter(
    "submission_status_transitions_total",
    "Submission status transitions",
    ["from_status", "to_status"],
)

ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "DRAFT": ("SUBMITTED",),
    "SUBMITTED": ("UNDER_REVIEW",),
    "UNDER_REVIEW": ("REVISION_REQUESTED", "PROVISIONALLY_ACCEPTED", "REJECTED"),
    "REVISION_REQUESTED": ("SUBMITTED",),
    "PROVISIONALLY_ACCEPTED": ("ACCEPTED",),
    "ACCEPTED": (),
    "REJECTED": (),
}

MIN_APPROVED_REVIEWERS = 2
SUBMISSION_NUMBER_PREFIX = "JAIRAM"


def load_submission(db: Session, submission_id: UUID, *, for_update: bool = False) -> models.Submission:
    query = db.query(models.Submission).filter(models.Submission.id == submission_id)
    if for_update:
        query = query.with_for_update()
    submission = query.first()
    if not submission:
        raise NotFound("Submission not found")
    return submission


def can_transition(current: str, new_status: str) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(current, ())


def approved_reviewers(submission: models.Submission) -> list[models.SuggestedReviewer]:
    return [
        r
        for r in submission.suggested_reviewers
        if r.invitation_status == "ACCEPTED" and r.editor_approved
    ]


def can_move_to_review(submission: models.Submission) -> dict:
    approved = approved_reviewers(submission)
    if len(approved) < MIN_APPROVED_REVIEWERS:
        return {
            "can_move": False,
            "reason": f"Minimum {MIN_APPROVED_REVIEWERS} approved reviewers required",
            "current": len(approved),
            "required": MIN_APPROVED_REVIEWERS,
        }
    return {"can_move": True, "approved_reviewers": len(approved)}


def coauthor_consent_status(submission: models.Submission) -> dict:
    statuses = [c.consent_status for c in submission.co_authors]
    pending = statuses.count("PENDING")
    return {
        "total": len(statuses),
        "pending": pending,
        "accepted": statuses.count("ACCEPTED"),
        "rejected": statuses.count("REJECTED"),
        "is_complete": pending == 0,
    }


def check_submission_preconditions(submission: models.Submission) -> None:
    """Raise ``IncompleteSubmission`` for the first missing declaration."""

    checklist = submission.checklist
    if not checklist:
        raise IncompleteSubmission("Checklist is required before submission", missing_item="checklist")
    if checklist.get("cope_compliance") is not True:
        raise IncompleteSubmission("COPE compliance certification is required", missing_item="cope_compliance")
    if not checklist.get("responses"):
        raise IncompleteSubmission("Checklist responses are required", missing_item="checklist_responses")
    if not isinstance(submission.has_conflict, bool):
        raise IncompleteSubmission("Conflict of Interest declaration is required", missing_item="conflict_of_interest")
    if submission.copyright_accepted is not True:
        raise IncompleteSubmission("Copyright agreement must be accepted", missing_item="copyright_agreement")
    if submission.copyright_accepted_at is None:
        raise IncompleteSubmission("Copyright acceptance timestamp missing", missing_item="copyright_accepted_at")
    if submission.pdf_preview_confirmed is not True:
        raise IncompleteSubmission("PDF preview confirmation is required", missing_item="pdf_preview_confirmed")


def check_corresponding_author(submission: models.Submission) -> None:
    corresponding = [c for c in submission.co_authors if c.is_corresponding]
    if submission.is_corresponding_author and corresponding:
        raise ValidationError(
            "Only one corresponding author allowed (either main author OR one co-author)",
            field="is_corresponding",
        )
    if len(corresponding) > 1:
        raise ValidationError("Only one co-author can be corresponding author", field="is_corresponding")


def has_corresponding_author(submission: models.Submission) -> bool:
    return bool(submission.is_corresponding_author) or any(c.is_corresponding for c in submission.co_authors)


def next_submission_number(db: Session, year: int | None = None) -> str:
    """Reserve the next ``JAIRAM-<year>-<seq>`` value from the per-year counter row."""

    year = year or datetime.now(timezone.utc).year
    counter = models.SubmissionCounter
    result = db.execute(
        sa.update(counter)
        .where(counter.year == year)
        .values(last_value=counter.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        value = db.execute(sa.select(counter.last_value).where(counter.year == year)).scalar_one()
    else:
        db.add(counter(year=year, last_value=1))
        try:
            db.flush()
        except IntegrityError as exc:
            raise ConcurrentModification(
                "Another submission reserved the first number of the year; retry"
            ) from exc
        value = 1
    return f"{SUBMISSION_NUMBER_PREFIX}-{year}-{value:04d}"


def check_transition(submission: models.Submission, new_status: str, actor: models.User) -> None:
    """Validate a status change without applying it."""

    current = submission.status
    if not can_transition(current, new_status):
        raise InvalidTransition(
            f"Invalid status transition from {current} to {new_status}",
            current_status=current,
            requested_status=new_status,
        )

    if new_status == "SUBMITTED":
        rbac.require_author(submission, actor)
        check_submission_preconditions(submission)
        if current == "DRAFT" and not coauthor_consent_status(submission)["is_complete"]:
            raise IncompleteSubmission(
                "All co-authors must respond to the consent request before submission",
                missing_item="coauthor_consent",
            )
    else:
        rbac.require_editorial(actor)

    if new_status == "UNDER_REVIEW":
        gate = can_move_to_review(submission)
        if not gate["can_move"]:
            raise InvalidTransition(gate["reason"], current=gate["current"], required=gate["required"])
    if new_status == "ACCEPTED" and not submission.payment_status:
        raise IncompleteSubmission(
            "Payment must be completed before final acceptance", missing_item="payment_status"
        )


def transition_status(
    db: Session,
    submission: models.Submission,
    new_status: str,
    actor: models.User,
) -> models.Submission:
    current = submission.status
    check_transition(submission, new_status, actor)

    now = datetime.now(timezone.utc)
    if new_status == "SUBMITTED" and not submission.submission_number:
        submission.submission_number = next_submission_number(db, now.year)
        submission.submitted_at = now
    elif new_status == "ACCEPTED":
        submission.accepted_at = now
    elif new_status == "REJECTED":
        submission.rejected_at = now

    submission.status = new_status
    flush_or_conflict(db)

    STATUS_TRANSITIONS.labels(current, new_status).inc()
    audit.log_action(
        db,
        actor.id,
        "status_transition",
        "submission",
        submission.id,
        {"from": current, "to": new_status},
    )
    logger.info(
        "Submission %s moved %s -> %s by %s",
        submission.submission_number or submission.id,
        current,
        new_status,
        actor.email,
    )
    return submission
