import uuid
from dataclasses import dataclass
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


USER_ROLES = ("USER", "ADMIN", "EDITOR", "TECHNICAL_EDITOR", "REVIEWER")
EDITORIAL_ROLES = ("EDITOR", "ADMIN")

SUBMISSION_STATUSES = (
    "DRAFT",
    "SUBMITTED",
    "UNDER_REVIEW",
    "REVISION_REQUESTED",
    "PROVISIONALLY_ACCEPTED",
    "ACCEPTED",
    "REJECTED",
)

ARTICLE_TYPES = (
    "Original Article",
    "Case Report",
    "Case Series",
    "Meta-Analysis",
    "Review Article / Systematic Review",
    "Editorial",
    "Clinical Trial",
)

SUBMITTER_ROLE_TYPES = {
    "Author": "USER",
    "Editor": "EDITOR",
    "Technical Editor": "TECHNICAL_EDITOR",
    "Reviewer": "REVIEWER",
}

FILE_CATEGORIES = ("COVER_LETTER", "BLIND_MANUSCRIPT", "FIGURE", "TABLE", "SUPPLEMENTARY")


@dataclass(frozen=True)
class RegisteredContributor:
    """Co-author or reviewer backed by a directory account."""

    user_id: uuid.UUID
    email: str


@dataclass(frozen=True)
class UnregisteredContributor:
    """Manual entry awaiting reconciliation when the person registers."""

    email: str
    first_name: str
    last_name: str


ContributorIdentity = RegisteredContributor | UnregisteredContributor


class _ContributorMixin:
    @property
    def identity(self) -> ContributorIdentity:
        if self.user_id is not None:
            return RegisteredContributor(user_id=self.user_id, email=self.email)
        return UnregisteredContributor(
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
        )

    @property
    def display_name(self) -> str:
        return f"{self.title or ''} {self.first_name} {self.last_name}".strip()


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="USER")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    @property
    def is_editorial(self) -> bool:
        return self.role in EDITORIAL_ROLES


class SubmissionCounter(Base):
    __tablename__ = "submission_counters"
    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)


class Submission(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        sa.Index("ix_submissions_author_status", "author_id", "status"),
        sa.Index("ix_submissions_editor_status", "assigned_editor_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_number = Column(String, unique=True, index=True)

    article_type = Column(String, nullable=False, index=True)
    title = Column(String(500), nullable=False)
    running_title = Column(String(50), nullable=False)
    abstract = Column(Text, nullable=False)
    manuscript_details = Column(JSON, nullable=False, default=dict)
    keywords = Column(JSON, nullable=False, default=list)
    iec_approval = Column(JSON)
    prospero_registration = Column(JSON)
    trial_registration = Column(JSON)

    author_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    is_corresponding_author = Column(Boolean, nullable=False, default=False)
    submitter_role_type = Column(String, nullable=False)

    status = Column(String, nullable=False, default="DRAFT", index=True)
    payment_status = Column(Boolean, nullable=False, default=False)

    checklist = Column(JSON)
    has_conflict = Column(Boolean, nullable=True)
    conflict_details = Column(Text)
    copyright_accepted = Column(Boolean, nullable=True)
    copyright_accepted_at = Column(DateTime(timezone=True))
    copyright_ip_address = Column(String)
    pdf_preview_confirmed = Column(Boolean, nullable=False, default=False)

    assigned_editor_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    assigned_editor_date = Column(DateTime(timezone=True))
    internal_notes = Column(JSON, nullable=False, default=list)

    # not a foreign key: cycles reference submissions, this only points back
    current_cycle_id = Column(UUID(as_uuid=True), index=True)

    submitted_at = Column(DateTime(timezone=True), index=True)
    accepted_at = Column(DateTime(timezone=True))
    rejected_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    author = relationship("User", foreign_keys=[author_id])
    assigned_editor = relationship("User", foreign_keys=[assigned_editor_id])
    co_authors = relationship(
        "CoAuthor",
        back_populates="submission",
        order_by="CoAuthor.order",
        cascade="all, delete-orphan",
    )
    suggested_reviewers = relationship(
        "SuggestedReviewer",
        back_populates="submission",
        order_by="SuggestedReviewer.position",
        cascade="all, delete-orphan",
    )
    files = relationship(
        "SubmissionFile",
        back_populates="submission",
        order_by="SubmissionFile.uploaded_at",
        cascade="all, delete-orphan",
    )
    reviewer_assignments = relationship(
        "ReviewerAssignment", back_populates="submission", cascade="all, delete-orphan"
    )
    technical_editor_assignments = relationship(
        "TechnicalEditorAssignment", back_populates="submission", cascade="all, delete-orphan"
    )

    def files_in(self, category: str) -> list["SubmissionFile"]:
        return [item for item in self.files if item.category == category]

    @property
    def cover_letter(self) -> "SubmissionFile | None":
        found = self.files_in("COVER_LETTER")
        return found[0] if found else None

    @property
    def blind_manuscript_file(self) -> "SubmissionFile | None":
        found = self.files_in("BLIND_MANUSCRIPT")
        return found[0] if found else None


class CoAuthor(_ContributorMixin, Base):
    __tablename__ = "submission_coauthors"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(
        UUID(as_uuid=True), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    title = Column(String)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    phone_number = Column(String)
    department = Column(String)
    country = Column(String)
    orcid = Column(String)
    order = Column("author_order", Integer, nullable=False)
    is_corresponding = Column(Boolean, nullable=False, default=False)
    consent_status = Column(String, nullable=False, default="PENDING")
    consent_date = Column(DateTime(timezone=True))
    consent_token = Column(String)
    consent_token_expires = Column(DateTime(timezone=True))
    source = Column(String, nullable=False, default="MANUAL_ENTRY")

    submission = relationship("Submission", back_populates="co_authors")
    user = relationship("User")


class SuggestedReviewer(_ContributorMixin, Base):
    __tablename__ = "suggested_reviewers"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(
        UUID(as_uuid=True), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    position = Column(Integer, nullable=False, default=0)
    title = Column(String)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    specialization = Column(String)
    institution = Column(String)
    country = Column(String)
    source = Column(String, nullable=False, default="MANUAL_ENTRY")
    invitation_status = Column(String, nullable=False, default="PENDING")
    invitation_token = Column(String)
    invitation_token_expires = Column(DateTime(timezone=True))
    invitation_sent_at = Column(DateTime(timezone=True))
    invitation_responded_at = Column(DateTime(timezone=True))
    editor_approved = Column(Boolean, nullable=False, default=False)

    submission = relationship("Submission", back_populates="suggested_reviewers")
    user = relationship("User")


class SubmissionFile(Base):
    __tablename__ = "submission_files"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(
        UUID(as_uuid=True), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category = Column(String, nullable=False)
    file_name = Column(String(255), nullable=False)
    file_url = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String, nullable=False)
    description = Column(String(500))
    uploaded_at = Column(DateTime(timezone=True), default=_utcnow)
    is_temporary = Column(Boolean, nullable=False, default=True)

    submission = relationship("Submission", back_populates="files")


class ReviewerAssignment(Base):
    __tablename__ = "reviewer_assignments"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(
        UUID(as_uuid=True), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reviewer_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    suggested_reviewer_id = Column(UUID(as_uuid=True), ForeignKey("suggested_reviewers.id"), nullable=True)
    assigned_date = Column(DateTime(timezone=True), default=_utcnow)
    due_date = Column(DateTime(timezone=True))
    status = Column(String, nullable=False, default="PENDING")
    is_anonymous = Column(Boolean, nullable=False, default=True)

    submission = relationship("Submission", back_populates="reviewer_assignments")
    reviewer = relationship("User")
    suggested_reviewer = relationship("SuggestedReviewer")


class TechnicalEditorAssignment(Base):
    __tablename__ = "technical_editor_assignments"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(
        UUID(as_uuid=True), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    technical_editor_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    assigned_date = Column(DateTime(timezone=True), default=_utcnow)
    status = Column(String, nullable=False, default="PENDING")

    submission = relationship("Submission", back_populates="technical_editor_assignments")
    technical_editor = relationship("User")


class SubmissionCycle(Base):
    __tablename__ = "submission_cycles"
    __table_args__ = (
        sa.UniqueConstraint("submission_id", "cycle_number", name="uq_submission_cycle_number"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(
        UUID(as_uuid=True), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cycle_number = Column(Integer, nullable=False, default=1)
    # plain column: versions reference cycles, this only points back
    manuscript_version_id = Column(UUID(as_uuid=True))

    technical_editor_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), index=True)
    reviewer_ids = Column(JSON, nullable=False, default=list)

    decision_type = Column(String)
    decision_reason = Column(Text)
    decision_stage = Column(String)
    decision_number = Column(Integer, nullable=False, default=0)
    decided_at = Column(DateTime(timezone=True))
    decided_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    editor_attachment_refs = Column(JSON, nullable=False, default=list)

    tech_reviewer_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    tech_decision = Column(String)
    tech_remarks = Column(Text)
    tech_attachment_refs = Column(JSON, nullable=False, default=list)
    tech_reviewed_at = Column(DateTime(timezone=True))

    status = Column(String, nullable=False, default="IN_PROGRESS")
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    submission = relationship("Submission", foreign_keys=[submission_id])
    technical_editor = relationship("User", foreign_keys=[technical_editor_id])
    feedback = relationship(
        "ReviewerFeedback",
        back_populates="cycle",
        order_by="ReviewerFeedback.submitted_at",
        cascade="all, delete-orphan",
    )


class ReviewerFeedback(Base):
    __tablename__ = "reviewer_feedback"
    __table_args__ = (
        sa.UniqueConstraint("cycle_id", "reviewer_id", name="uq_reviewer_feedback_per_cycle"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cycle_id = Column(
        UUID(as_uuid=True), ForeignKey("submission_cycles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reviewer_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    remarks = Column(Text, nullable=False)
    attachment_refs = Column(JSON, nullable=False, default=list)
    submitted_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True))

    cycle = relationship("SubmissionCycle", back_populates="feedback")
    reviewer = relationship("User")


class ManuscriptVersion(Base):
    __tablename__ = "manuscript_versions"
    __table_args__ = (
        sa.UniqueConstraint("submission_id", "version_number", name="uq_manuscript_version_number"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(
        UUID(as_uuid=True), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cycle_id = Column(UUID(as_uuid=True), ForeignKey("submission_cycles.id"), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    file_refs = Column(JSON, nullable=False)
    remarks = Column(JSON, nullable=False, default=list)
    uploaded_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    uploader_role = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    cycle = relationship("SubmissionCycle")
    uploaded_by = relationship("User")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
