from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy import event, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import audit, models, rbac
from ..errors import ConcurrentModification, IllegalModification, NotFound, PermissionDenied, ValidationError

# purpose: append-only manuscript file sets, one per revision cycle
# status: active

logger = logging.getLogger(__name__)


def file_ref(item) -> dict:
    return {
        "category": item.category,
        "file_name": item.file_name,
        "file_url": item.file_url,
        "file_size": item.file_size,
        "mime_type": item.mime_type,
    }


def _remark_entry(user: models.User, text: str) -> dict:
    return {
        "remark": text,
        "added_by": str(user.id),
        "role": user.role,
        "added_at": datetime.now(timezone.utc).isoformat(),
    }


def next_version_number(db: Session, submission_id: UUID) -> int:
    latest = (
        db.query(func.max(models.ManuscriptVersion.version_number))
        .filter(models.ManuscriptVersion.submission_id == submission_id)
        .scalar()
    )
    return (latest or 0) + 1


def create_version(
    db: Session,
    submission: models.Submission,
    cycle: models.SubmissionCycle,
    uploader: models.User,
    file_refs: Iterable[dict],
    remark: str | None = None,
) -> models.ManuscriptVersion:
    refs = list(file_refs)
    if not refs:
        raise ValidationError("A manuscript version needs at least one file", field="files")
    remarks = [_remark_entry(uploader, remark)] if remark else []
    version = models.ManuscriptVersion(
        id=uuid.uuid4(),
        submission_id=submission.id,
        cycle_id=cycle.id,
        version_number=next_version_number(db, submission.id),
        file_refs=refs,
        remarks=remarks,
        uploaded_by_id=uploader.id,
        uploader_role=uploader.role,
    )
    db.add(version)
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConcurrentModification(
            "Another revision was uploaded at the same time; reload and retry"
        ) from exc
    cycle.manuscript_version_id = version.id
    logger.info("Created version %s for submission %s", version.version_number, submission.id)
    return version


def list_versions(db: Session, submission_id: UUID) -> list[models.ManuscriptVersion]:
    return (
        db.query(models.ManuscriptVersion)
        .filter(models.ManuscriptVersion.submission_id == submission_id)
        .order_by(models.ManuscriptVersion.version_number.asc())
        .all()
    )


def get_version(db: Session, submission_id: UUID, version_number: int) -> models.ManuscriptVersion:
    version = (
        db.query(models.ManuscriptVersion)
        .filter(
            models.ManuscriptVersion.submission_id == submission_id,
            models.ManuscriptVersion.version_number == version_number,
        )
        .first()
    )
    if version is None:
        raise NotFound(f"Version {version_number} not found")
    return version


def add_version_remark(
    db: Session,
    submission: models.Submission,
    version_number: int,
    actor: models.User,
    remark: str,
) -> models.ManuscriptVersion:
    if not (actor.is_editorial or rbac.technical_editor_assignment(submission, actor)):
        raise PermissionDenied("Only editorial staff can annotate manuscript versions")
    version = get_version(db, submission.id, version_number)
    version.remarks = [*(version.remarks or []), _remark_entry(actor, remark)]
    db.flush()
    audit.log_action(
        db,
        actor.id,
        "version_remark",
        "submission",
        submission.id,
        {"version_number": version_number},
    )
    return version


@event.listens_for(Session, "before_flush")
def keep_versions_append_only(session: Session, flush_context, instances) -> None:
    for obj in session.deleted:
        if isinstance(obj, models.ManuscriptVersion):
            raise IllegalModification("manuscript_version")
    for obj in session.dirty:
        if not isinstance(obj, models.ManuscriptVersion):
            continue
        state = sa.inspect(obj)
        for attr in state.attrs:
            history = attr.history
            if not history.has_changes():
                continue
            if attr.key != "remarks":
                raise IllegalModification(f"manuscript_version.{attr.key}")
            before = history.deleted[0] if history.deleted else []
            after = history.added[0] if history.added else []
            if list(after[: len(before)]) != list(before):
                raise IllegalModification("manuscript_version.remarks")
