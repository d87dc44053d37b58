"""User directory lookups and contributor reconciliation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconciliationResult:
    co_authors: int = 0
    suggested_reviewers: int = 0
    reviewer_assignments: int = 0


def find_by_id(db: Session, user_id: UUID) -> models.User | None:
    return db.get(models.User, user_id)


def find_by_email(db: Session, email: str) -> models.User | None:
    return (
        db.query(models.User)
        .filter(func.lower(models.User.email) == email.strip().lower())
        .first()
    )


def contact_email(db: Session, contributor: models.CoAuthor | models.SuggestedReviewer) -> str:
    """Registered contributors are reached at their current directory address."""

    identity = contributor.identity
    if isinstance(identity, models.RegisteredContributor):
        user = find_by_id(db, identity.user_id)
        if user is not None:
            return user.email
    return identity.email


def register_user(db: Session, payload: schemas.UserCreate) -> tuple[models.User, ReconciliationResult]:
    """Create a directory entry and link any contributor rows waiting on its email."""

    if find_by_email(db, payload.email):
        raise ValidationError("Email already registered", field="email")
    user = models.User(
        email=payload.email.lower(),
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=payload.role,
    )
    db.add(user)
    db.flush()
    result = reconcile_contributors(db, user)
    return user, result


def reconcile_contributors(db: Session, user: models.User) -> ReconciliationResult:
    """Attach unregistered co-authors and suggested reviewers matching ``user.email``."""

    email = user.email.strip().lower()
    result = ReconciliationResult()

    co_authors = (
        db.query(models.CoAuthor)
        .filter(models.CoAuthor.user_id.is_(None))
        .filter(func.lower(models.CoAuthor.email) == email)
        .all()
    )
    for co_author in co_authors:
        co_author.user_id = user.id
        result.co_authors += 1

    reviewers = (
        db.query(models.SuggestedReviewer)
        .filter(models.SuggestedReviewer.user_id.is_(None))
        .filter(func.lower(models.SuggestedReviewer.email) == email)
        .all()
    )
    for reviewer in reviewers:
        reviewer.user_id = user.id
        result.suggested_reviewers += 1

    if reviewers:
        assignments = (
            db.query(models.ReviewerAssignment)
            .filter(models.ReviewerAssignment.reviewer_id.is_(None))
            .filter(models.ReviewerAssignment.suggested_reviewer_id.in_([r.id for r in reviewers]))
            .all()
        )
        for assignment in assignments:
            assignment.reviewer_id = user.id
            result.reviewer_assignments += 1
            submission = assignment.submission
            if submission.current_cycle_id:
                cycle = db.get(models.SubmissionCycle, submission.current_cycle_id)
                if cycle and str(user.id) not in cycle.reviewer_ids:
                    cycle.reviewer_ids = [*cycle.reviewer_ids, str(user.id)]

    if result.co_authors or result.suggested_reviewers:
        logger.info(
            "Reconciled %s co-author(s) and %s reviewer(s) for %s",
            result.co_authors,
            result.suggested_reviewers,
            email,
        )
    return result
