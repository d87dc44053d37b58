"""Submission workflow API routes."""

# purpose: expose the manuscript submission lifecycle over HTTP
# status: active
# depends_on: jairam.services.submissions, jairam.services.cycles, jairam.services.reviewers

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from .. import models, rbac, schemas
from ..auth import get_current_user
from ..database import commit_or_conflict, get_db
from ..services import consent, cycles, reviewers, submissions, versions
from ..services.lifecycle import can_move_to_review, load_submission

router = APIRouter(prefix="/api/submissions", tags=["submissions"])


def _list_item(submission: models.Submission, user: models.User):
    if rbac.is_blinded_reviewer(submission, user):
        return schemas.BlindedSubmissionOut.model_validate(submission)
    return schemas.SubmissionOut.model_validate(submission)


def _out(submission: models.Submission, user: models.User):
    if user.is_editorial:
        return schemas.EditorialSubmissionOut.model_validate(submission)
    return _list_item(submission, user)


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_submission(
    payload: schemas.SubmissionCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.create_submission(db, user, payload)
    commit_or_conflict(db)
    return _out(submission, user)


@router.get("/", response_model=schemas.SubmissionListOut)
def list_submissions(
    status: Optional[schemas.SubmissionStatus] = None,
    article_type: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = Query("submitted_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    items, total = submissions.list_submissions(
        db,
        user,
        status=status,
        article_type=article_type,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return schemas.SubmissionListOut(
        items=[_list_item(s, user) for s in items],
        total=total,
        page=page,
        limit=limit,
        pages=submissions.page_count(total, limit),
    )


@router.post("/revisions", response_model=schemas.RevisionOut, status_code=status.HTTP_201_CREATED)
def submit_revision(
    payload: schemas.RevisionSubmit,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = submissions.submit_revision(db, user, payload)
    commit_or_conflict(db)
    return schemas.RevisionOut(
        submission=schemas.SubmissionOut.model_validate(result.submission),
        cycle=schemas.CycleOut.model_validate(result.cycle),
        version=schemas.VersionOut.model_validate(result.version),
    )


@router.post("/reviewer-invitations/expire", response_model=schemas.ExpiredInvitationsOut)
def expire_reviewer_invitations(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    rbac.require_admin(user)
    expired = reviewers.expire_stale_invitations(db)
    commit_or_conflict(db)
    return {"expired": expired}


@router.get("/{submission_id}")
def get_submission(
    submission_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _out(submissions.get_submission(db, submission_id, user), user)


@router.patch("/{submission_id}", response_model=schemas.SubmissionOut)
def update_submission(
    submission_id: UUID,
    update: schemas.SubmissionUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.update_submission(db, submission_id, user, update)
    commit_or_conflict(db)
    return submission


@router.post("/{submission_id}/submit", response_model=schemas.SubmissionOut)
def submit_manuscript(
    submission_id: UUID,
    payload: schemas.SubmitManuscriptRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.submit_manuscript(db, submission_id, user, payload, _client_ip(request))
    commit_or_conflict(db)
    return submission


@router.post("/{submission_id}/status")
def update_status(
    submission_id: UUID,
    payload: schemas.StatusUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.update_status(db, submission_id, user, payload.status, payload.comment)
    commit_or_conflict(db)
    return _out(submission, user)


@router.put("/{submission_id}/payment-status")
def update_payment_status(
    submission_id: UUID,
    payload: schemas.PaymentStatusUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.update_payment_status(
        db, submission_id, user, payload.payment_status, payload.note
    )
    commit_or_conflict(db)
    return _out(submission, user)


@router.post("/{submission_id}/assign-editor")
def assign_editor(
    submission_id: UUID,
    payload: schemas.AssignEditorRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.assign_editor(db, submission_id, user, payload.editor_id)
    commit_or_conflict(db)
    return _out(submission, user)


@router.post("/{submission_id}/assign-technical-editor")
def assign_technical_editor(
    submission_id: UUID,
    payload: schemas.AssignTechnicalEditorRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    assignment = cycles.assign_technical_editor(db, submission_id, user, payload.technical_editor_id)
    commit_or_conflict(db)
    return {
        "id": str(assignment.id),
        "technical_editor_id": str(assignment.technical_editor_id),
        "status": assignment.status,
    }


@router.post("/{submission_id}/notes")
def add_internal_note(
    submission_id: UUID,
    payload: schemas.InternalNoteCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.add_internal_note(db, submission_id, user, payload.note, payload.is_confidential)
    commit_or_conflict(db)
    return _out(submission, user)


@router.post("/{submission_id}/coauthor-consent/request")
def request_coauthor_consent(
    submission_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = load_submission(db, submission_id, for_update=True)
    issued = consent.request_coauthor_consent(db, submission, user)
    commit_or_conflict(db)
    return {"issued": issued}


@router.post("/{submission_id}/coauthor-consent/{co_author_index}")
def process_coauthor_consent(
    submission_id: UUID,
    co_author_index: int,
    payload: schemas.ConsentDecision,
    db: Session = Depends(get_db),
):
    co_author = consent.process_coauthor_consent(
        db, submission_id, co_author_index, payload.token, payload.decision
    )
    commit_or_conflict(db)
    return {"consent_status": co_author.consent_status}


@router.get("/{submission_id}/coauthor-consent-status", response_model=schemas.ConsentStatusOut)
def coauthor_consent_status(
    submission_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = submissions.get_submission(db, submission_id, user)
    return consent.check_coauthor_consent_status(submission)


@router.post("/{submission_id}/reviewer-invitations/{reviewer_index}")
def respond_to_reviewer_invitation(
    submission_id: UUID,
    reviewer_index: int,
    payload: schemas.InvitationResponse,
    db: Session = Depends(get_db),
):
    reviewer = reviewers.respond_to_reviewer_invitation(
        db, submission_id, reviewer_index, payload.token, payload.decision
    )
    commit_or_conflict(db)
    return {"invitation_status": reviewer.invitation_status}


@router.post(
    "/{submission_id}/suggested-reviewers/{reviewer_index}/approval",
    response_model=schemas.SuggestedReviewerOut,
)
def set_reviewer_approval(
    submission_id: UUID,
    reviewer_index: int,
    payload: schemas.ReviewerApproval,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = load_submission(db, submission_id, for_update=True)
    reviewer = reviewers.set_reviewer_approval(db, submission, reviewer_index, user, payload.approved)
    commit_or_conflict(db)
    return reviewer


@router.get("/{submission_id}/reviewer-majority-status", response_model=schemas.ReviewerMajorityOut)
def reviewer_majority_status(
    submission_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    rbac.require_editorial(user)
    submission = load_submission(db, submission_id)
    return can_move_to_review(submission)


@router.post("/{submission_id}/move-to-review")
def move_to_review(
    submission_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = reviewers.move_to_review(db, submission_id, user)
    commit_or_conflict(db)
    return _out(submission, user)


@router.post("/{submission_id}/editor-decision", response_model=schemas.DecisionOut)
def make_editor_decision(
    submission_id: UUID,
    payload: schemas.EditorDecisionRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = cycles.make_editor_decision(
        db,
        submission_id,
        user,
        payload.decision,
        payload.decision_stage,
        payload.remarks,
        payload.attachments,
    )
    commit_or_conflict(db)
    return schemas.DecisionOut(
        submission_id=result.submission.id,
        status=result.submission.status,
        status_changed=result.status_changed,
        decision_number=result.cycle.decision_number,
        decisions_remaining=result.decisions_remaining,
        cycle=schemas.CycleOut.model_validate(result.cycle),
    )


@router.post("/{submission_id}/tech-editor-decision", response_model=schemas.TechDecisionOut)
def make_technical_editor_decision(
    submission_id: UUID,
    payload: schemas.TechEditorDecisionRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = cycles.make_technical_editor_decision(
        db, submission_id, user, payload.decision, payload.remarks, payload.attachments
    )
    commit_or_conflict(db)
    return schemas.TechDecisionOut(
        submission_id=result.submission.id,
        decision=result.decision,
        note=result.note,
        cycle=schemas.CycleOut.model_validate(result.cycle),
    )


@router.post(
    "/{submission_id}/reviewer-feedback",
    response_model=schemas.FeedbackOut,
    status_code=status.HTTP_201_CREATED,
)
def submit_reviewer_feedback(
    submission_id: UUID,
    payload: schemas.ReviewerFeedbackCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    feedback = cycles.submit_reviewer_feedback(
        db, submission_id, user, payload.remarks, payload.attachments, payload.replace
    )
    commit_or_conflict(db)
    return feedback


@router.post("/{submission_id}/versions/{version_number}/remarks", response_model=schemas.VersionOut)
def add_version_remark(
    submission_id: UUID,
    version_number: int,
    payload: schemas.VersionRemarkCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    submission = load_submission(db, submission_id)
    version = versions.add_version_remark(db, submission, version_number, user, payload.remark)
    commit_or_conflict(db)
    return version


@router.get("/{submission_id}/timeline", response_model=schemas.TimelineOut)
def get_submission_timeline(
    submission_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return submissions.get_submission_timeline(db, submission_id, user)
