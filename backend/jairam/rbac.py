from __future__ import annotations

from . import models
from .errors import PermissionDenied

# purpose: role and ownership checks for submission workflow operations
# status: active


def require_editorial(user: models.User) -> None:
    if not user.is_editorial:
        raise PermissionDenied("Editor or admin role required")


def require_admin(user: models.User) -> None:
    if not user.is_admin:
        raise PermissionDenied("Admin role required")


def is_author(submission: models.Submission, user: models.User) -> bool:
    return submission.author_id == user.id


def require_author(submission: models.Submission, user: models.User, *, allow_admin: bool = True) -> None:
    if is_author(submission, user):
        return
    if allow_admin and user.is_admin:
        return
    raise PermissionDenied("Only the submitting author can perform this action")


def require_deciding_editor(submission: models.Submission, user: models.User) -> None:
    """Admins always decide; editors only when unassigned or assigned to them."""

    if user.is_admin:
        return
    if user.role != "EDITOR":
        raise PermissionDenied("Only editors can record editorial decisions")
    if submission.assigned_editor_id and submission.assigned_editor_id != user.id:
        raise PermissionDenied("Only the assigned editor can record decisions for this submission")


def technical_editor_assignment(
    submission: models.Submission, user: models.User
) -> models.TechnicalEditorAssignment | None:
    return next(
        (a for a in submission.technical_editor_assignments if a.technical_editor_id == user.id),
        None,
    )


def reviewer_assignment(
    submission: models.Submission, user: models.User
) -> models.ReviewerAssignment | None:
    return next(
        (a for a in submission.reviewer_assignments if a.reviewer_id == user.id),
        None,
    )


def can_view_submission(submission: models.Submission, user: models.User) -> bool:
    if user.is_editorial or is_author(submission, user):
        return True
    if any(
        c.user_id == user.id and c.consent_status == "ACCEPTED"
        for c in submission.co_authors
    ):
        return True
    if reviewer_assignment(submission, user) is not None:
        return True
    return technical_editor_assignment(submission, user) is not None


def require_view(submission: models.Submission, user: models.User) -> None:
    if not can_view_submission(submission, user):
        raise PermissionDenied("You do not have access to this submission")


def is_blinded_reviewer(submission: models.Submission, user: models.User) -> bool:
    """True when ``user`` sees the submission only through an anonymous review assignment."""

    if user.is_editorial or is_author(submission, user):
        return False
    if any(c.user_id == user.id and c.consent_status == "ACCEPTED" for c in submission.co_authors):
        return False
    if technical_editor_assignment(submission, user) is not None:
        return False
    assignment = reviewer_assignment(submission, user)
    return assignment is not None and assignment.is_anonymous
