"""Submission orchestration: drafts, submission, revisions and editorial actions."""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from .. import audit, checklist, directory, models, notify, rbac, schemas
from ..database import flush_or_conflict
from ..errors import IncompleteSubmission, InvalidTransition, NotFound, PermissionDenied, ValidationError
from . import cycles, field_lock, reviewers, versions
from .lifecycle import check_transition, has_corresponding_author, load_submission, transition_status

# purpose: entry points for every submission operation exposed over HTTP
# status: active

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = ("DRAFT", "REVISION_REQUESTED")
SORTABLE_FIELDS = ("submitted_at", "created_at", "updated_at", "title", "submission_number", "status")
FILE_ORDER = ("BLIND_MANUSCRIPT", "COVER_LETTER", "FIGURE", "TABLE", "SUPPLEMENTARY")
# set only by cycles.make_editor_decision
DECISION_STATUSES = frozenset(status for status, _ in cycles.DECISION_OUTCOMES.values())
REQUIRED_FIELDS = (
    "article_type",
    "title",
    "running_title",
    "abstract",
    "keywords",
    "manuscript_details",
    "is_corresponding_author",
)
_SIMPLE_FIELDS = (
    "article_type",
    "title",
    "running_title",
    "abstract",
    "keywords",
    "iec_approval",
    "prospero_registration",
    "trial_registration",
    "is_corresponding_author",
)


@dataclass(slots=True)
class RevisionResult:
    submission: models.Submission
    cycle: models.SubmissionCycle
    version: models.ManuscriptVersion


def _build_co_author(db: Session, author: models.User, item, order: int) -> models.CoAuthor:
    if isinstance(item, schemas.RegisteredCoAuthorIn):
        user = directory.find_by_id(db, item.user_id)
        if user is None:
            raise NotFound("Co-author user not found")
        co_author = models.CoAuthor(
            user_id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            source="DATABASE_SEARCH",
        )
    else:
        linked = directory.find_by_email(db, item.email)
        co_author = models.CoAuthor(
            user_id=linked.id if linked else None,
            title=item.title,
            first_name=item.first_name,
            last_name=item.last_name,
            email=item.email.lower(),
            phone_number=item.phone_number,
            department=item.department,
            country=item.country,
            orcid=item.orcid,
            source="MANUAL_ENTRY",
        )
    if co_author.email.lower() == author.email.lower():
        raise ValidationError("The submitting author cannot also be listed as a co-author", field="co_authors")
    co_author.order = order
    co_author.is_corresponding = item.is_corresponding
    co_author.consent_status = "PENDING"
    return co_author


def _build_reviewer(db: Session, item, position: int) -> models.SuggestedReviewer:
    if isinstance(item, schemas.RegisteredReviewerIn):
        user = directory.find_by_id(db, item.user_id)
        if user is None:
            raise NotFound("Suggested reviewer not found")
        reviewer = models.SuggestedReviewer(
            user_id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            source="DATABASE_SEARCH",
        )
    else:
        linked = directory.find_by_email(db, item.email)
        reviewer = models.SuggestedReviewer(
            user_id=linked.id if linked else None,
            title=item.title,
            first_name=item.first_name,
            last_name=item.last_name,
            email=item.email.lower(),
            source="MANUAL_ENTRY",
        )
    reviewer.position = position
    reviewer.specialization = item.specialization
    reviewer.institution = item.institution
    reviewer.country = item.country
    reviewer.invitation_status = "PENDING"
    reviewer.editor_approved = False
    return reviewer


def _build_file(item: schemas.FileIn) -> models.SubmissionFile:
    return models.SubmissionFile(**item.model_dump())


def _check_role_type(author: models.User, role_type: str) -> None:
    if author.is_admin:
        return
    if models.SUBMITTER_ROLE_TYPES.get(role_type) != author.role:
        raise ValidationError(
            f"Submitter role type '{role_type}' does not match your account role",
            field="submitter_role_type",
        )


def create_submission(db: Session, author: models.User, payload: schemas.SubmissionCreate) -> models.Submission:
    _check_role_type(author, payload.submitter_role_type)
    submission = models.Submission(
        id=uuid.uuid4(),
        author_id=author.id,
        article_type=payload.article_type,
        title=payload.title,
        running_title=payload.running_title,
        abstract=payload.abstract,
        manuscript_details=payload.manuscript_details.model_dump(),
        keywords=list(payload.keywords),
        iec_approval=payload.iec_approval,
        prospero_registration=payload.prospero_registration,
        trial_registration=payload.trial_registration,
        submitter_role_type=payload.submitter_role_type,
        is_corresponding_author=payload.is_corresponding_author,
        status="DRAFT",
        payment_status=False,
        pdf_preview_confirmed=False,
        internal_notes=[],
    )
    submission.co_authors = [
        _build_co_author(db, author, item, order) for order, item in enumerate(payload.co_authors, start=1)
    ]
    submission.suggested_reviewers = [
        _build_reviewer(db, item, position) for position, item in enumerate(payload.suggested_reviewers)
    ]
    submission.files = [_build_file(item) for item in payload.files]
    db.add(submission)
    flush_or_conflict(db)
    audit.log_action(db, author.id, "create_submission", "submission", submission.id)
    logger.info("Draft %s created by %s", submission.id, author.email)
    return submission


def get_submission(db: Session, submission_id: UUID, actor: models.User) -> models.Submission:
    submission = load_submission(db, submission_id)
    rbac.require_view(submission, actor)
    return submission


def update_submission(
    db: Session,
    submission_id: UUID,
    actor: models.User,
    update: schemas.SubmissionUpdate,
) -> models.Submission:
    submission = load_submission(db, submission_id, for_update=True)
    rbac.require_author(submission, actor, allow_admin=False)
    if submission.status not in EDITABLE_STATUSES:
        raise PermissionDenied(f"Submission cannot be edited while {submission.status}")

    data = update.model_dump(exclude_unset=True)
    cleared = next((name for name in REQUIRED_FIELDS if name in data and data[name] is None), None)
    if cleared:
        raise ValidationError(f"{cleared} cannot be cleared", field=cleared)
    for name in _SIMPLE_FIELDS:
        if name in data:
            setattr(submission, name, data[name])
    if update.manuscript_details is not None:
        submission.manuscript_details = update.manuscript_details.model_dump()
    if update.co_authors is not None:
        submission.co_authors = [
            _build_co_author(db, submission.author, item, order)
            for order, item in enumerate(update.co_authors, start=1)
        ]
    if update.suggested_reviewers is not None:
        submission.suggested_reviewers = [
            _build_reviewer(db, item, position) for position, item in enumerate(update.suggested_reviewers)
        ]
    if update.files is not None:
        submission.files = [_build_file(item) for item in update.files]

    flush_or_conflict(db)
    audit.log_action(
        db, actor.id, "update_submission", "submission", submission.id, {"fields": sorted(data)}
    )
    return submission


def _version_file_refs(submission: models.Submission) -> list[dict]:
    ordered = sorted(submission.files, key=lambda f: FILE_ORDER.index(f.category))
    return [versions.file_ref(f) for f in ordered]


def submit_manuscript(
    db: Session,
    submission_id: UUID,
    actor: models.User,
    payload: schemas.SubmitManuscriptRequest,
    ip_address: str | None = None,
) -> models.Submission:
    submission = load_submission(db, submission_id, for_update=True)
    rbac.require_author(submission, actor, allow_admin=False)
    if submission.status != "DRAFT":
        raise InvalidTransition(
            "This manuscript has already been submitted", current_status=submission.status
        )
    if not has_corresponding_author(submission):
        raise ValidationError(
            "Please designate a corresponding author (either yourself or one co-author)",
            field="is_corresponding_author",
        )
    if submission.cover_letter is None:
        raise IncompleteSubmission("Cover letter is required", missing_item="cover_letter")
    if submission.blind_manuscript_file is None:
        raise IncompleteSubmission("Blind manuscript file is required", missing_item="blind_manuscript")

    field_lock.apply_submit_request(submission, payload, ip_address)
    check_transition(submission, "SUBMITTED", actor)
    result = checklist.validate_responses(
        submission.checklist["responses"], submission.checklist["cope_compliance"]
    )
    if not result.is_valid:
        raise IncompleteSubmission(
            result.error,
            missing_item="checklist_responses",
            missing_questions=result.missing_questions,
        )

    transition_status(db, submission, "SUBMITTED", actor)

    cycle = cycles.ensure_initial_cycle(db, submission)
    versions.create_version(db, submission, cycle, actor, _version_file_refs(submission))
    reviewers.issue_reviewer_invitations(db, submission)
    flush_or_conflict(db)

    notify.queue(
        db,
        "submission-confirmed",
        actor.email,
        {
            "author_name": actor.full_name,
            "submission_number": submission.submission_number,
            "submission_title": submission.title,
        },
    )
    audit.log_action(
        db,
        actor.id,
        "submit_manuscript",
        "submission",
        submission.id,
        {"submission_number": submission.submission_number},
    )
    return submission


def submit_revision(db: Session, actor: models.User, payload: schemas.RevisionSubmit) -> RevisionResult:
    submission = load_submission(db, payload.submission_id, for_update=True)
    rbac.require_author(submission, actor)
    if submission.status != "REVISION_REQUESTED":
        raise InvalidTransition(
            "Revisions can only be submitted after a revision was requested",
            current_status=submission.status,
        )
    check_transition(submission, "SUBMITTED", actor)

    cycle = cycles.open_next_cycle(db, submission)
    version = versions.create_version(
        db,
        submission,
        cycle,
        actor,
        [versions.file_ref(f) for f in payload.files],
        remark=payload.remarks,
    )
    flush_or_conflict(db)
    transition_status(db, submission, "SUBMITTED", actor)
    audit.log_action(
        db,
        actor.id,
        "submit_revision",
        "submission",
        submission.id,
        {"cycle_number": cycle.cycle_number, "version_number": version.version_number},
    )
    return RevisionResult(submission=submission, cycle=cycle, version=version)


def list_submissions(
    db: Session,
    actor: models.User,
    *,
    status: str | None = None,
    article_type: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "submitted_at",
    sort_order: str = "desc",
) -> tuple[list[models.Submission], int]:
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort by {sort_by}", field="sort_by")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be 'asc' or 'desc'", field="sort_order")
    if page < 1 or not 1 <= limit <= 100:
        raise ValidationError("page must be >= 1 and limit between 1 and 100", field="page")

    Submission = models.Submission
    query = db.query(Submission)
    if not actor.is_admin:
        own = Submission.author_id == actor.id
        if actor.role == "REVIEWER":
            scope = Submission.reviewer_assignments.any(models.ReviewerAssignment.reviewer_id == actor.id)
        elif actor.role == "TECHNICAL_EDITOR":
            scope = Submission.technical_editor_assignments.any(
                models.TechnicalEditorAssignment.technical_editor_id == actor.id
            )
        elif actor.role == "EDITOR":
            scope = Submission.assigned_editor_id == actor.id
        else:
            scope = Submission.co_authors.any(
                and_(models.CoAuthor.user_id == actor.id, models.CoAuthor.consent_status == "ACCEPTED")
            )
        query = query.filter(or_(own, scope))
    if status:
        query = query.filter(Submission.status == status)
    if article_type:
        query = query.filter(Submission.article_type == article_type)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Submission.title.ilike(pattern), Submission.abstract.ilike(pattern)))

    total = query.count()
    column = getattr(Submission, sort_by)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    items = query.order_by(ordering, Submission.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return items, total


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def update_status(
    db: Session,
    submission_id: UUID,
    actor: models.User,
    new_status: str,
    comment: str | None = None,
) -> models.Submission:
    rbac.require_editorial(actor)
    if new_status == "SUBMITTED":
        raise InvalidTransition(
            "Submissions enter SUBMITTED only through the submit and revisions endpoints",
            requested_status=new_status,
        )
    if new_status in DECISION_STATUSES:
        raise InvalidTransition(
            f"{new_status} is set by recording an editor decision",
            requested_status=new_status,
        )
    if new_status == "UNDER_REVIEW":
        submission = reviewers.move_to_review(db, submission_id, actor)
    else:
        submission = load_submission(db, submission_id, for_update=True)
        check_transition(submission, new_status, actor)
    if comment:
        field_lock.apply_editorial_update(
            submission,
            schemas.EditorialUpdate(internal_note=f"Status updated to {new_status}: {comment}"),
            actor,
        )
        flush_or_conflict(db)
    if submission.status != new_status:
        transition_status(db, submission, new_status, actor)
    return submission


def update_payment_status(
    db: Session,
    submission_id: UUID,
    actor: models.User,
    payment_status: bool,
    note: str | None = None,
) -> models.Submission:
    rbac.require_editorial(actor)
    submission = load_submission(db, submission_id, for_update=True)
    label = "PAID" if payment_status else "UNPAID"
    field_lock.apply_editorial_update(
        submission,
        schemas.EditorialUpdate(
            payment_status=payment_status,
            internal_note=f"Payment status updated to {label}" + (f": {note}" if note else ""),
        ),
        actor,
    )
    flush_or_conflict(db)
    audit.log_action(
        db, actor.id, "update_payment_status", "submission", submission.id, {"payment_status": payment_status}
    )
    return submission


def assign_editor(db: Session, submission_id: UUID, actor: models.User, editor_id: UUID) -> models.Submission:
    rbac.require_admin(actor)
    submission = load_submission(db, submission_id, for_update=True)
    editor = directory.find_by_id(db, editor_id)
    if editor is None:
        raise NotFound("Editor not found")
    if not editor.is_editorial:
        raise ValidationError("User is not an editor", field="editor_id")
    field_lock.apply_editorial_update(
        submission,
        schemas.EditorialUpdate(
            assigned_editor_id=editor.id,
            internal_note=f"Editor assigned: {editor.full_name}",
        ),
        actor,
    )
    flush_or_conflict(db)
    audit.log_action(
        db, actor.id, "assign_editor", "submission", submission.id, {"editor_id": str(editor.id)}
    )
    return submission


def add_internal_note(
    db: Session,
    submission_id: UUID,
    actor: models.User,
    note: str,
    is_confidential: bool = True,
) -> models.Submission:
    rbac.require_editorial(actor)
    submission = load_submission(db, submission_id, for_update=True)
    field_lock.apply_editorial_update(
        submission,
        schemas.EditorialUpdate(internal_note=note, note_is_confidential=is_confidential),
        actor,
    )
    flush_or_conflict(db)
    audit.log_action(db, actor.id, "add_internal_note", "submission", submission.id)
    return submission


def get_submission_timeline(db: Session, submission_id: UUID, actor: models.User) -> dict[str, Any]:
    submission = get_submission(db, submission_id, actor)
    if rbac.is_blinded_reviewer(submission, actor):
        raise PermissionDenied("The review history is not available to anonymous reviewers")
    return {
        "submission_id": submission.id,
        "status": submission.status,
        "cycles": cycles.list_cycles(db, submission.id),
        "versions": versions.list_versions(db, submission.id),
        "events": audit.history(db, submission.id) if actor.is_editorial else [],
    }
