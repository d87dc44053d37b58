"""Create submission workflow tables."""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: str | Sequence[str] | None = None
branch_labels = None
depends_on = None


def _submission_fk() -> sa.Column:
    return sa.Column(
        "submission_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="USER"),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "submission_counters",
        sa.Column("year", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("year"),
    )

    op.create_table(
        "submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("submission_number", sa.String(), nullable=True),
        sa.Column("article_type", sa.String(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("running_title", sa.String(length=50), nullable=False),
        sa.Column("abstract", sa.Text(), nullable=False),
        sa.Column("manuscript_details", sa.JSON(), nullable=False),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("iec_approval", sa.JSON(), nullable=True),
        sa.Column("prospero_registration", sa.JSON(), nullable=True),
        sa.Column("trial_registration", sa.JSON(), nullable=True),
        sa.Column("author_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("is_corresponding_author", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("submitter_role_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="DRAFT"),
        sa.Column("payment_status", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("checklist", sa.JSON(), nullable=True),
        sa.Column("has_conflict", sa.Boolean(), nullable=True),
        sa.Column("conflict_details", sa.Text(), nullable=True),
        sa.Column("copyright_accepted", sa.Boolean(), nullable=True),
        sa.Column("copyright_accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("copyright_ip_address", sa.String(), nullable=True),
        sa.Column("pdf_preview_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("assigned_editor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assigned_editor_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("internal_notes", sa.JSON(), nullable=False),
        sa.Column("current_cycle_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_submissions_submission_number", "submissions", ["submission_number"], unique=True)
    op.create_index("ix_submissions_article_type", "submissions", ["article_type"])
    op.create_index("ix_submissions_status", "submissions", ["status"])
    op.create_index("ix_submissions_current_cycle_id", "submissions", ["current_cycle_id"])
    op.create_index("ix_submissions_submitted_at", "submissions", ["submitted_at"])
    op.create_index("ix_submissions_author_status", "submissions", ["author_id", "status"])
    op.create_index("ix_submissions_editor_status", "submissions", ["assigned_editor_id", "status"])

    op.create_table(
        "submission_coauthors",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        _submission_fk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("phone_number", sa.String(), nullable=True),
        sa.Column("department", sa.String(), nullable=True),
        sa.Column("country", sa.String(), nullable=True),
        sa.Column("orcid", sa.String(), nullable=True),
        sa.Column("author_order", sa.Integer(), nullable=False),
        sa.Column("is_corresponding", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("consent_status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("consent_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("consent_token", sa.String(), nullable=True),
        sa.Column("consent_token_expires", sa.DateTime(timezone=True), nullable=True),
        sa.Column("source", sa.String(), nullable=False, server_default="MANUAL_ENTRY"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_submission_coauthors_submission_id", "submission_coauthors", ["submission_id"])
    op.create_index("ix_submission_coauthors_user_id", "submission_coauthors", ["user_id"])
    op.create_index("ix_submission_coauthors_email", "submission_coauthors", ["email"])

    op.create_table(
        "suggested_reviewers",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        _submission_fk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("specialization", sa.String(), nullable=True),
        sa.Column("institution", sa.String(), nullable=True),
        sa.Column("country", sa.String(), nullable=True),
        sa.Column("source", sa.String(), nullable=False, server_default="MANUAL_ENTRY"),
        sa.Column("invitation_status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("invitation_token", sa.String(), nullable=True),
        sa.Column("invitation_token_expires", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invitation_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invitation_responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("editor_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_suggested_reviewers_submission_id", "suggested_reviewers", ["submission_id"])
    op.create_index("ix_suggested_reviewers_user_id", "suggested_reviewers", ["user_id"])
    op.create_index("ix_suggested_reviewers_email", "suggested_reviewers", ["email"])

    op.create_table(
        "submission_files",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        _submission_fk(),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_url", sa.String(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_temporary", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_submission_files_submission_id", "submission_files", ["submission_id"])

    op.create_table(
        "reviewer_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        _submission_fk(),
        sa.Column("reviewer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "suggested_reviewer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("suggested_reviewers.id"),
            nullable=True,
        ),
        sa.Column("assigned_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reviewer_assignments_submission_id", "reviewer_assignments", ["submission_id"])
    op.create_index("ix_reviewer_assignments_reviewer_id", "reviewer_assignments", ["reviewer_id"])

    op.create_table(
        "technical_editor_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        _submission_fk(),
        sa.Column(
            "technical_editor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("assigned_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_technical_editor_assignments_submission_id", "technical_editor_assignments", ["submission_id"]
    )
    op.create_index(
        "ix_technical_editor_assignments_technical_editor_id",
        "technical_editor_assignments",
        ["technical_editor_id"],
    )

    op.create_table(
        "submission_cycles",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        _submission_fk(),
        sa.Column("cycle_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("manuscript_version_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("technical_editor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reviewer_ids", sa.JSON(), nullable=False),
        sa.Column("decision_type", sa.String(), nullable=True),
        sa.Column("decision_reason", sa.Text(), nullable=True),
        sa.Column("decision_stage", sa.String(), nullable=True),
        sa.Column("decision_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_by_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("editor_attachment_refs", sa.JSON(), nullable=False),
        sa.Column("tech_reviewer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("tech_decision", sa.String(), nullable=True),
        sa.Column("tech_remarks", sa.Text(), nullable=True),
        sa.Column("tech_attachment_refs", sa.JSON(), nullable=False),
        sa.Column("tech_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="IN_PROGRESS"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("submission_id", "cycle_number", name="uq_submission_cycle_number"),
    )
    op.create_index("ix_submission_cycles_submission_id", "submission_cycles", ["submission_id"])
    op.create_index("ix_submission_cycles_technical_editor_id", "submission_cycles", ["technical_editor_id"])

    op.create_table(
        "reviewer_feedback",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "cycle_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("submission_cycles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("reviewer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=False),
        sa.Column("attachment_refs", sa.JSON(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("cycle_id", "reviewer_id", name="uq_reviewer_feedback_per_cycle"),
    )
    op.create_index("ix_reviewer_feedback_cycle_id", "reviewer_feedback", ["cycle_id"])

    op.create_table(
        "manuscript_versions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        _submission_fk(),
        sa.Column("cycle_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("submission_cycles.id"), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("file_refs", sa.JSON(), nullable=False),
        sa.Column("remarks", sa.JSON(), nullable=False),
        sa.Column("uploaded_by_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("uploader_role", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("submission_id", "version_number", name="uq_manuscript_version_number"),
    )
    op.create_index("ix_manuscript_versions_submission_id", "manuscript_versions", ["submission_id"])
    op.create_index("ix_manuscript_versions_cycle_id", "manuscript_versions", ["cycle_id"])
    op.create_index("ix_manuscript_versions_uploaded_by_id", "manuscript_versions", ["uploaded_by_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("target_type", sa.String(), nullable=True),
        sa.Column("target_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_index("ix_manuscript_versions_uploaded_by_id", table_name="manuscript_versions")
    op.drop_index("ix_manuscript_versions_cycle_id", table_name="manuscript_versions")
    op.drop_index("ix_manuscript_versions_submission_id", table_name="manuscript_versions")
    op.drop_table("manuscript_versions")
    op.drop_index("ix_reviewer_feedback_cycle_id", table_name="reviewer_feedback")
    op.drop_table("reviewer_feedback")
    op.drop_index("ix_submission_cycles_technical_editor_id", table_name="submission_cycles")
    op.drop_index("ix_submission_cycles_submission_id", table_name="submission_cycles")
    op.drop_table("submission_cycles")
    op.drop_index(
        "ix_technical_editor_assignments_technical_editor_id", table_name="technical_editor_assignments"
    )
    op.drop_index("ix_technical_editor_assignments_submission_id", table_name="technical_editor_assignments")
    op.drop_table("technical_editor_assignments")
    op.drop_index("ix_reviewer_assignments_reviewer_id", table_name="reviewer_assignments")
    op.drop_index("ix_reviewer_assignments_submission_id", table_name="reviewer_assignments")
    op.drop_table("reviewer_assignments")
    op.drop_index("ix_submission_files_submission_id", table_name="submission_files")
    op.drop_table("submission_files")
    op.drop_index("ix_suggested_reviewers_email", table_name="suggested_reviewers")
    op.drop_index("ix_suggested_reviewers_user_id", table_name="suggested_reviewers")
    op.drop_index("ix_suggested_reviewers_submission_id", table_name="suggested_reviewers")
    op.drop_table("suggested_reviewers")
    op.drop_index("ix_submission_coauthors_email", table_name="submission_coauthors")
    op.drop_index("ix_submission_coauthors_user_id", table_name="submission_coauthors")
    op.drop_index("ix_submission_coauthors_submission_id", table_name="submission_coauthors")
    op.drop_table("submission_coauthors")
    op.drop_index("ix_submissions_editor_status", table_name="submissions")
    op.drop_index("ix_submissions_author_status", table_name="submissions")
    op.drop_index("ix_submissions_submitted_at", table_name="submissions")
    op.drop_index("ix_submissions_current_cycle_id", table_name="submissions")
    op.drop_index("ix_submissions_status", table_name="submissions")
    op.drop_index("ix_submissions_article_type", table_name="submissions")
    op.drop_index("ix_submissions_submission_number", table_name="submissions")
    op.drop_table("submissions")
    op.drop_table("submission_counters")
    op.drop_table("users")
