"""Write-locking of submitted manuscripts.

Once a submission leaves DRAFT its content is frozen. Mutating operations go
through narrow DTOs (``SubmitManuscriptRequest``, ``EditorialUpdate``,
``SubmissionUpdate``) that only carry legal fields, and a ``before_flush`` hook
rejects anything else that reaches the session. Two allow-lists apply:

* a flush that changes ``status`` may write the declarations collected at
  submission time plus system bookkeeping;
* any other flush may only write editorial fields (payment, notes,
  assignments).

Co-author rows may only change consent state and their directory link;
suggested reviewers may only change invitation state, approval and directory
link outside a status change; files never change.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.orm import Session

from .. import models, schemas
from ..checklist import CURRENT_CHECKLIST
from ..errors import IllegalModification
from .lifecycle import check_corresponding_author

# purpose: persistence-level backstop for the post-submission field lock
# status: active

logger = logging.getLogger(__name__)

_BOOKKEEPING = frozenset({"submission_number", "accepted_at", "rejected_at", "updated_at", "version"})

TRANSITION_FIELDS = frozenset(
    {
        "checklist",
        "has_conflict",
        "conflict_details",
        "copyright_accepted",
        "copyright_accepted_at",
        "copyright_ip_address",
        "pdf_preview_confirmed",
        "suggested_reviewers",
        "status",
        "submitted_at",
        "current_cycle_id",
    }
) | _BOOKKEEPING

POST_SUBMISSION_FIELDS = frozenset(
    {
        "payment_status",
        "internal_notes",
        "assigned_editor_id",
        "assigned_editor_date",
        "assigned_editor",
        "reviewer_assignments",
        "technical_editor_assignments",
        "accepted_at",
        "rejected_at",
        "status",
        "current_cycle_id",
    }
) | _BOOKKEEPING

CO_AUTHOR_MUTABLE = frozenset(
    {"consent_status", "consent_date", "consent_token", "consent_token_expires", "user_id", "user"}
)
REVIEWER_MUTABLE = frozenset(
    {
        "invitation_status",
        "invitation_token",
        "invitation_token_expires",
        "invitation_sent_at",
        "invitation_responded_at",
        "editor_approved",
        "user_id",
        "user",
    }
)


def changed_fields(obj) -> set[str]:
    state = sa.inspect(obj)
    return {attr.key for attr in state.attrs if attr.history.has_changes()}


def is_locked(submission: models.Submission | None) -> bool:
    if submission is None:
        return False
    state = sa.inspect(submission)
    return state.has_identity and submission.status != "DRAFT"


def is_status_change(submission: models.Submission) -> bool:
    return sa.inspect(submission).attrs.status.history.has_changes()


def allowed_fields(submission: models.Submission) -> frozenset[str]:
    return TRANSITION_FIELDS if is_status_change(submission) else POST_SUBMISSION_FIELDS


def _first_illegal(changed: Iterable[str], allowed: frozenset[str]) -> str | None:
    return next((f for f in sorted(changed) if f not in allowed), None)


def check_submission(submission: models.Submission) -> None:
    if not is_locked(submission):
        return
    illegal = _first_illegal(changed_fields(submission), allowed_fields(submission))
    if illegal:
        raise IllegalModification(illegal)


def _parent(session: Session, child) -> models.Submission | None:
    if child.submission is not None:
        return child.submission
    if child.submission_id is None:
        return None
    return session.get(models.Submission, child.submission_id)


def check_child(session: Session, child, *, is_new: bool = False, is_deleted: bool = False) -> None:
    parent = _parent(session, child)
    if not is_locked(parent):
        return
    if isinstance(child, models.CoAuthor):
        collection, mutable, structural_ok = "co_authors", CO_AUTHOR_MUTABLE, False
    elif isinstance(child, models.SuggestedReviewer):
        collection, mutable = "suggested_reviewers", REVIEWER_MUTABLE
        structural_ok = is_status_change(parent)
    else:
        collection, mutable, structural_ok = "files", frozenset(), False

    if is_new or is_deleted:
        if not structural_ok:
            raise IllegalModification(collection)
        return
    if structural_ok:
        return
    illegal = _first_illegal(changed_fields(child), mutable)
    if illegal:
        raise IllegalModification(f"{collection}.{illegal}")


_CHILD_TYPES = (models.CoAuthor, models.SuggestedReviewer, models.SubmissionFile)


@event.listens_for(Session, "before_flush")
def enforce_submission_invariants(session: Session, flush_context, instances) -> None:
    touched: dict[int, models.Submission] = {}

    for obj in session.dirty:
        if isinstance(obj, models.Submission):
            if session.is_modified(obj):
                check_submission(obj)
            touched[id(obj)] = obj
        elif isinstance(obj, _CHILD_TYPES) and session.is_modified(obj):
            check_child(session, obj)
            parent = _parent(session, obj)
            if parent is not None:
                touched[id(parent)] = parent

    for obj in session.new:
        if isinstance(obj, models.Submission):
            touched[id(obj)] = obj
        elif isinstance(obj, _CHILD_TYPES):
            check_child(session, obj, is_new=True)
            parent = _parent(session, obj)
            if parent is not None:
                touched[id(parent)] = parent

    for obj in session.deleted:
        if isinstance(obj, models.Submission) and obj.status != "DRAFT":
            raise IllegalModification("status")
        if isinstance(obj, _CHILD_TYPES):
            check_child(session, obj, is_deleted=True)

    for submission in touched.values():
        check_corresponding_author(submission)


def apply_submit_request(
    submission: models.Submission,
    payload: schemas.SubmitManuscriptRequest,
    ip_address: str | None = None,
) -> None:
    """Copy submission-time declarations onto the draft."""

    now = datetime.now(timezone.utc)
    if payload.checklist is not None:
        submission.checklist = {
            "checklist_version": CURRENT_CHECKLIST.version,
            "responses": [r.model_dump() for r in payload.checklist.responses],
            "cope_compliance": payload.checklist.cope_compliance,
            "completed_at": now.isoformat(),
        }
    if payload.conflict_of_interest is not None:
        submission.has_conflict = payload.conflict_of_interest.has_conflict
        submission.conflict_details = payload.conflict_of_interest.conflict_details
    if payload.copyright_agreement is not None:
        agreement = payload.copyright_agreement
        submission.copyright_accepted = agreement.accepted
        if agreement.accepted:
            submission.copyright_accepted_at = agreement.accepted_at or now
            submission.copyright_ip_address = ip_address
        else:
            submission.copyright_accepted_at = None
    submission.pdf_preview_confirmed = payload.pdf_preview_confirmed


def apply_editorial_update(
    submission: models.Submission,
    update: schemas.EditorialUpdate,
    actor: models.User,
) -> None:
    now = datetime.now(timezone.utc)
    if update.payment_status is not None:
        submission.payment_status = update.payment_status
    if update.assigned_editor_id is not None:
        submission.assigned_editor_id = update.assigned_editor_id
        submission.assigned_editor_date = now
    if update.internal_note:
        submission.internal_notes = [
            *(submission.internal_notes or []),
            {
                "note": update.internal_note,
                "added_by": str(actor.id),
                "added_at": now.isoformat(),
                "is_confidential": update.note_is_confidential,
            },
        ]
