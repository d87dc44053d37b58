"""Revision cycles: editor and technical editor decisions, reviewer feedback."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import audit, directory, models, notify, rbac, schemas
from ..database import flush_or_conflict
from ..errors import (
    DecisionLimitExceeded,
    FeedbackConflict,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from .field_lock import apply_editorial_update
from .lifecycle import load_submission, transition_status

# purpose: per-round editorial activity bounded by the decision cap
# status: active

logger = logging.getLogger(__name__)

MAX_EDITOR_DECISIONS = 4
DECISION_TYPES = ("REVISION", "ACCEPT", "REJECT")
DECISION_STAGES = ("INITIAL_SCREENING", "POST_TECH_EDITOR", "POST_REVIEWER", "FINAL_DECISION")
TECH_DECISIONS = ("ACCEPT", "REJECT")
DECIDABLE_STATUSES = ("SUBMITTED", "UNDER_REVIEW")

# decision -> (submission status, cycle status) while under review
DECISION_OUTCOMES = {
    "REVISION": ("REVISION_REQUESTED", "REVISION_REQUESTED"),
    "ACCEPT": ("PROVISIONALLY_ACCEPTED", "COMPLETED"),
    "REJECT": ("REJECTED", "COMPLETED"),
}


@dataclass(slots=True)
class DecisionResult:
    submission: models.Submission
    cycle: models.SubmissionCycle
    status_changed: bool

    @property
    def decisions_remaining(self) -> int:
        return MAX_EDITOR_DECISIONS - self.cycle.decision_number


@dataclass(slots=True)
class TechDecisionResult:
    submission: models.Submission
    cycle: models.SubmissionCycle
    decision: str
    note: str


def get_current_cycle(db: Session, submission: models.Submission) -> models.SubmissionCycle:
    cycle = db.get(models.SubmissionCycle, submission.current_cycle_id) if submission.current_cycle_id else None
    if cycle is None:
        raise NotFound("Submission has no active cycle")
    return cycle


def list_cycles(db: Session, submission_id: UUID) -> list[models.SubmissionCycle]:
    return (
        db.query(models.SubmissionCycle)
        .filter(models.SubmissionCycle.submission_id == submission_id)
        .order_by(models.SubmissionCycle.cycle_number.asc())
        .all()
    )


def _new_cycle(db: Session, submission: models.Submission, number: int) -> models.SubmissionCycle:
    cycle = models.SubmissionCycle(
        id=uuid.uuid4(),
        submission_id=submission.id,
        cycle_number=number,
        status="IN_PROGRESS",
        reviewer_ids=[],
        decision_number=0,
    )
    db.add(cycle)
    submission.current_cycle_id = cycle.id
    return cycle


def ensure_initial_cycle(db: Session, submission: models.Submission) -> models.SubmissionCycle:
    if submission.current_cycle_id:
        return get_current_cycle(db, submission)
    return _new_cycle(db, submission, 1)


def open_next_cycle(db: Session, submission: models.Submission) -> models.SubmissionCycle:
    latest = (
        db.query(func.max(models.SubmissionCycle.cycle_number))
        .filter(models.SubmissionCycle.submission_id == submission.id)
        .scalar()
    )
    return _new_cycle(db, submission, (latest or 0) + 1)


def make_editor_decision(
    db: Session,
    submission_id: UUID,
    actor: models.User,
    decision: str,
    decision_stage: str,
    remarks: str | None = None,
    attachments: list[str] | None = None,
) -> DecisionResult:
    if decision not in DECISION_TYPES:
        raise ValidationError(f"Invalid decision: {decision}", field="decision")
    if decision_stage not in DECISION_STAGES:
        raise ValidationError(f"Invalid decision stage: {decision_stage}", field="decision_stage")

    submission = load_submission(db, submission_id, for_update=True)
    rbac.require_deciding_editor(submission, actor)
    if submission.status not in DECIDABLE_STATUSES:
        raise InvalidTransition(
            f"Editor decisions cannot be recorded while the submission is {submission.status}",
            current_status=submission.status,
        )

    cycle = ensure_initial_cycle(db, submission)
    if cycle.decision_number >= MAX_EDITOR_DECISIONS:
        raise DecisionLimitExceeded(
            f"Maximum of {MAX_EDITOR_DECISIONS} editor decisions per cycle reached",
            decision_number=cycle.decision_number,
        )

    now = datetime.now(timezone.utc)
    cycle.decision_type = decision
    cycle.decision_stage = decision_stage
    cycle.decision_reason = remarks
    cycle.decision_number = cycle.decision_number + 1
    cycle.decided_at = now
    cycle.decided_by_id = actor.id
    cycle.editor_attachment_refs = list(attachments or [])

    status_changed = False
    if submission.status == "UNDER_REVIEW":
        new_status, cycle.status = DECISION_OUTCOMES[decision]
        flush_or_conflict(db)
        transition_status(db, submission, new_status, actor)
        status_changed = True
        notify.queue(
            db,
            "decision-made",
            submission.author.email,
            {
                "author_name": submission.author.full_name,
                "submission_number": submission.submission_number,
                "decision": decision,
                "new_status": new_status,
                "remarks": remarks,
            },
        )
    else:
        flush_or_conflict(db)

    audit.log_action(
        db,
        actor.id,
        "editor_decision",
        "submission",
        submission.id,
        {
            "decision": decision,
            "decision_stage": decision_stage,
            "decision_number": cycle.decision_number,
            "cycle_number": cycle.cycle_number,
        },
    )
    logger.info(
        "Editor decision %s (%s/%s) on %s",
        decision,
        cycle.decision_number,
        MAX_EDITOR_DECISIONS,
        submission.submission_number,
    )
    return DecisionResult(submission=submission, cycle=cycle, status_changed=status_changed)


def assign_technical_editor(
    db: Session,
    submission_id: UUID,
    actor: models.User,
    technical_editor_id: UUID,
) -> models.TechnicalEditorAssignment:
    rbac.require_editorial(actor)
    submission = load_submission(db, submission_id, for_update=True)
    if submission.status == "DRAFT":
        raise InvalidTransition(
            "Technical editors can only be assigned after submission", current_status=submission.status
        )
    editor = directory.find_by_id(db, technical_editor_id)
    if editor is None:
        raise NotFound("Technical editor not found")
    if editor.role != "TECHNICAL_EDITOR":
        raise ValidationError("User is not a technical editor", field="technical_editor_id")

    existing = rbac.technical_editor_assignment(submission, editor)
    if existing is not None:
        return existing

    assignment = models.TechnicalEditorAssignment(technical_editor_id=editor.id, status="PENDING")
    submission.technical_editor_assignments.append(assignment)
    apply_editorial_update(
        submission,
        schemas.EditorialUpdate(internal_note=f"Technical editor assigned: {editor.full_name}"),
        actor,
    )
    cycle = ensure_initial_cycle(db, submission)
    cycle.technical_editor_id = editor.id
    flush_or_conflict(db)
    audit.log_action(
        db,
        actor.id,
        "assign_technical_editor",
        "submission",
        submission.id,
        {"technical_editor_id": str(editor.id)},
    )
    return assignment


def make_technical_editor_decision(
    db: Session,
    submission_id: UUID,
    actor: models.User,
    decision: str,
    remarks: str | None = None,
    attachments: list[str] | None = None,
) -> TechDecisionResult:
    if decision not in TECH_DECISIONS:
        raise ValidationError(f"Invalid technical editor decision: {decision}", field="decision")
    submission = load_submission(db, submission_id, for_update=True)
    assignment = rbac.technical_editor_assignment(submission, actor)
    if assignment is None and not actor.is_admin:
        raise PermissionDenied("Only an assigned technical editor can review this submission")
    if submission.status in ("DRAFT", "ACCEPTED", "REJECTED"):
        raise InvalidTransition(
            f"Technical review is not possible while the submission is {submission.status}",
            current_status=submission.status,
        )

    cycle = get_current_cycle(db, submission)
    cycle.tech_reviewer_id = actor.id
    cycle.tech_decision = decision
    cycle.tech_remarks = remarks
    cycle.tech_attachment_refs = list(attachments or [])
    cycle.tech_reviewed_at = datetime.now(timezone.utc)
    if assignment is not None:
        assignment.status = "COMPLETED"
    flush_or_conflict(db)
    audit.log_action(
        db,
        actor.id,
        "tech_editor_decision",
        "submission",
        submission.id,
        {"decision": decision, "cycle_number": cycle.cycle_number},
    )
    note = (
        f"Technical review recorded as {decision}. "
        "The editor will consider it when making the editorial decision."
    )
    return TechDecisionResult(submission=submission, cycle=cycle, decision=decision, note=note)


def submit_reviewer_feedback(
    db: Session,
    submission_id: UUID,
    actor: models.User,
    remarks: str,
    attachments: list[str] | None = None,
    replace: bool = False,
) -> models.ReviewerFeedback:
    submission = load_submission(db, submission_id)
    assignment = rbac.reviewer_assignment(submission, actor)
    if assignment is None:
        raise PermissionDenied("Only an assigned reviewer can submit feedback")
    if submission.status != "UNDER_REVIEW":
        raise InvalidTransition(
            "Reviewer feedback can only be submitted while the submission is under review",
            current_status=submission.status,
        )

    cycle = get_current_cycle(db, submission)
    feedback = (
        db.query(models.ReviewerFeedback)
        .filter(
            models.ReviewerFeedback.cycle_id == cycle.id,
            models.ReviewerFeedback.reviewer_id == actor.id,
        )
        .first()
    )
    now = datetime.now(timezone.utc)
    if feedback is not None:
        if not replace:
            raise FeedbackConflict(
                "Feedback already submitted for this cycle", feedback_id=str(feedback.id)
            )
        feedback.remarks = remarks
        feedback.attachment_refs = list(attachments or [])
        feedback.updated_at = now
    else:
        feedback = models.ReviewerFeedback(
            cycle_id=cycle.id,
            reviewer_id=actor.id,
            remarks=remarks,
            attachment_refs=list(attachments or []),
            submitted_at=now,
        )
        db.add(feedback)
    assignment.status = "COMPLETED"
    try:
        db.flush()
    except IntegrityError as exc:
        raise FeedbackConflict("Feedback already submitted for this cycle") from exc
    audit.log_action(
        db,
        actor.id,
        "reviewer_feedback",
        "submission",
        submission.id,
        {"cycle_number": cycle.cycle_number, "replaced": replace and feedback.updated_at is not None},
    )
    return feedback
