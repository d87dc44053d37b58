from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

MAX_FILE_SIZE = 25 * 1024 * 1024
ORCID_PATTERN = r"^\d{4}-\d{4}-\d{4}-\d{4}$"

ArticleType = Literal[
    "Original Article",
    "Case Report",
    "Case Series",
    "Meta-Analysis",
    "Review Article / Systematic Review",
    "Editorial",
    "Clinical Trial",
]
SubmissionStatus = Literal[
    "DRAFT",
    "SUBMITTED",
    "UNDER_REVIEW",
    "REVISION_REQUESTED",
    "PROVISIONALLY_ACCEPTED",
    "ACCEPTED",
    "REJECTED",
]
UserRole = Literal["USER", "ADMIN", "EDITOR", "TECHNICAL_EDITOR", "REVIEWER"]
SubmitterRoleType = Literal["Author", "Editor", "Technical Editor", "Reviewer"]
FileCategory = Literal["COVER_LETTER", "BLIND_MANUSCRIPT", "FIGURE", "TABLE", "SUPPLEMENTARY"]
Keyword = Annotated[str, Field(min_length=2, max_length=50)]


class UserCreate(BaseModel):
    email: EmailStr
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    role: UserRole = "USER"


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    first_name: str
    last_name: str
    role: str
    is_active: bool = True
    model_config = ConfigDict(from_attributes=True)


class ReconciliationOut(BaseModel):
    co_authors: int = 0
    suggested_reviewers: int = 0
    reviewer_assignments: int = 0


class UserRegistrationOut(BaseModel):
    user: UserOut
    reconciled: ReconciliationOut


class ManuscriptDetails(BaseModel):
    word_count: int = Field(ge=0)
    black_white_figures: int = Field(0, ge=0)
    color_figures: int = Field(0, ge=0)
    tables: int = Field(0, ge=0)
    pages: int = Field(ge=1)


class RegisteredCoAuthorIn(BaseModel):
    kind: Literal["registered"]
    user_id: UUID
    is_corresponding: bool = False


class ManualCoAuthorIn(BaseModel):
    kind: Literal["manual"]
    title: Literal["Dr.", "Prof.", "Mr.", "Mrs."]
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    phone_number: Optional[str] = None
    department: Optional[str] = None
    country: Optional[str] = None
    orcid: Optional[str] = Field(None, pattern=ORCID_PATTERN)
    is_corresponding: bool = False


CoAuthorIn = Annotated[Union[RegisteredCoAuthorIn, ManualCoAuthorIn], Field(discriminator="kind")]


class RegisteredReviewerIn(BaseModel):
    kind: Literal["registered"]
    user_id: UUID
    specialization: Optional[str] = None
    institution: Optional[str] = None
    country: Optional[str] = None


class ManualReviewerIn(BaseModel):
    kind: Literal["manual"]
    title: Optional[str] = None
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    specialization: Optional[str] = None
    institution: Optional[str] = None
    country: Optional[str] = None


ReviewerIn = Annotated[Union[RegisteredReviewerIn, ManualReviewerIn], Field(discriminator="kind")]


class FileIn(BaseModel):
    category: FileCategory
    file_name: str = Field(min_length=1, max_length=255)
    file_url: str = Field(min_length=1)
    file_size: int = Field(gt=0, le=MAX_FILE_SIZE)
    mime_type: str
    description: Optional[str] = Field(None, max_length=500)


class FileOut(FileIn):
    id: UUID
    uploaded_at: Optional[datetime] = None
    is_temporary: bool
    model_config = ConfigDict(from_attributes=True)


class SubmissionCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    article_type: ArticleType
    title: str = Field(min_length=10, max_length=500)
    running_title: str = Field(min_length=1, max_length=50)
    abstract: str = Field(min_length=100, max_length=2500)
    manuscript_details: ManuscriptDetails
    keywords: List[Keyword] = Field(min_length=3, max_length=6)
    iec_approval: Optional[Dict[str, Any]] = None
    prospero_registration: Optional[Dict[str, Any]] = None
    trial_registration: Optional[Dict[str, Any]] = None
    submitter_role_type: SubmitterRoleType = "Author"
    is_corresponding_author: bool = False
    co_authors: List[CoAuthorIn] = Field(default_factory=list)
    suggested_reviewers: List[ReviewerIn] = Field(default_factory=list)
    files: List[FileIn] = Field(default_factory=list)


class SubmissionUpdate(BaseModel):
    """Content edits an author may make while a submission is still editable."""

    model_config = ConfigDict(extra="forbid")

    article_type: Optional[ArticleType] = None
    title: Optional[str] = Field(None, min_length=10, max_length=500)
    running_title: Optional[str] = Field(None, min_length=1, max_length=50)
    abstract: Optional[str] = Field(None, min_length=100, max_length=2500)
    manuscript_details: Optional[ManuscriptDetails] = None
    keywords: Optional[List[Keyword]] = Field(None, min_length=3, max_length=6)
    iec_approval: Optional[Dict[str, Any]] = None
    prospero_registration: Optional[Dict[str, Any]] = None
    trial_registration: Optional[Dict[str, Any]] = None
    is_corresponding_author: Optional[bool] = None
    co_authors: Optional[List[CoAuthorIn]] = None
    suggested_reviewers: Optional[List[ReviewerIn]] = None
    files: Optional[List[FileIn]] = None


class ChecklistResponseIn(BaseModel):
    question_id: str
    category_id: str
    response: Literal["YES", "NO", "N/A"]


class ChecklistIn(BaseModel):
    responses: List[ChecklistResponseIn] = Field(default_factory=list)
    cope_compliance: bool = False


class ConflictOfInterestIn(BaseModel):
    has_conflict: Optional[bool] = None
    conflict_details: Optional[str] = None

    @model_validator(mode="after")
    def require_details_when_conflicted(self):
        if self.has_conflict and not (self.conflict_details or "").strip():
            raise ValueError("conflict_details required when has_conflict is true")
        return self


class CopyrightAgreementIn(BaseModel):
    accepted: bool = False
    accepted_at: Optional[datetime] = None


class SubmitManuscriptRequest(BaseModel):
    """The only fields that may be written while a draft becomes SUBMITTED."""

    model_config = ConfigDict(extra="forbid")

    checklist: Optional[ChecklistIn] = None
    conflict_of_interest: Optional[ConflictOfInterestIn] = None
    copyright_agreement: Optional[CopyrightAgreementIn] = None
    pdf_preview_confirmed: bool = False


class EditorialUpdate(BaseModel):
    """Fields editorial staff may change after submission."""

    model_config = ConfigDict(extra="forbid")

    payment_status: Optional[bool] = None
    assigned_editor_id: Optional[UUID] = None
    internal_note: Optional[str] = Field(None, min_length=1, max_length=5000)
    note_is_confidential: bool = True


class StatusUpdate(BaseModel):
    status: SubmissionStatus
    comment: Optional[str] = Field(None, max_length=5000)


class PaymentStatusUpdate(BaseModel):
    payment_status: bool
    note: Optional[str] = Field(None, max_length=5000)


class AssignEditorRequest(BaseModel):
    editor_id: UUID


class AssignTechnicalEditorRequest(BaseModel):
    technical_editor_id: UUID


class InternalNoteCreate(BaseModel):
    note: str = Field(min_length=1, max_length=5000)
    is_confidential: bool = True


class ConsentDecision(BaseModel):
    token: str
    decision: Literal["ACCEPTED", "REJECTED"]


class InvitationResponse(BaseModel):
    token: str
    decision: Literal["ACCEPT", "DECLINE"]


class ReviewerApproval(BaseModel):
    approved: bool = True


class RevisionSubmit(BaseModel):
    model_config = ConfigDict(extra="forbid")

    submission_id: UUID
    files: List[FileIn] = Field(min_length=1)
    remarks: Optional[str] = Field(None, min_length=10, max_length=5000)


class EditorDecisionRequest(BaseModel):
    decision: str
    decision_stage: str
    remarks: Optional[str] = Field(None, max_length=5000)
    attachments: List[str] = Field(default_factory=list)


class TechEditorDecisionRequest(BaseModel):
    decision: str
    remarks: Optional[str] = Field(None, max_length=5000)
    attachments: List[str] = Field(default_factory=list)


class ReviewerFeedbackCreate(BaseModel):
    remarks: str = Field(min_length=10, max_length=5000)
    attachments: List[str] = Field(default_factory=list)
    replace: bool = False


class VersionRemarkCreate(BaseModel):
    remark: str = Field(min_length=1, max_length=5000)


class CoAuthorOut(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    title: Optional[str] = None
    first_name: str
    last_name: str
    email: str
    department: Optional[str] = None
    country: Optional[str] = None
    orcid: Optional[str] = None
    order: int
    is_corresponding: bool
    consent_status: str
    consent_date: Optional[datetime] = None
    source: str
    model_config = ConfigDict(from_attributes=True)


class SuggestedReviewerOut(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    position: int
    title: Optional[str] = None
    first_name: str
    last_name: str
    email: str
    specialization: Optional[str] = None
    institution: Optional[str] = None
    country: Optional[str] = None
    source: str
    invitation_status: str
    invitation_sent_at: Optional[datetime] = None
    invitation_responded_at: Optional[datetime] = None
    editor_approved: bool
    model_config = ConfigDict(from_attributes=True)


class SubmissionOut(BaseModel):
    id: UUID
    submission_number: Optional[str] = None
    article_type: str
    title: str
    running_title: str
    abstract: str
    manuscript_details: Dict[str, Any]
    keywords: List[str]
    iec_approval: Optional[Dict[str, Any]] = None
    prospero_registration: Optional[Dict[str, Any]] = None
    trial_registration: Optional[Dict[str, Any]] = None
    author_id: UUID
    is_corresponding_author: bool
    submitter_role_type: str
    status: str
    payment_status: bool
    checklist: Optional[Dict[str, Any]] = None
    has_conflict: Optional[bool] = None
    conflict_details: Optional[str] = None
    copyright_accepted: Optional[bool] = None
    copyright_accepted_at: Optional[datetime] = None
    pdf_preview_confirmed: bool
    assigned_editor_id: Optional[UUID] = None
    assigned_editor_date: Optional[datetime] = None
    current_cycle_id: Optional[UUID] = None
    submitted_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int
    co_authors: List[CoAuthorOut] = Field(default_factory=list)
    suggested_reviewers: List[SuggestedReviewerOut] = Field(default_factory=list)
    files: List[FileOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class EditorialSubmissionOut(SubmissionOut):
    internal_notes: List[Dict[str, Any]] = Field(default_factory=list)


class BlindedSubmissionOut(BaseModel):
    """What an anonymous reviewer may see: no author identity, no cover letter."""

    id: UUID
    submission_number: Optional[str] = None
    article_type: str
    title: str
    running_title: str
    abstract: str
    manuscript_details: Dict[str, Any]
    keywords: List[str]
    status: str
    current_cycle_id: Optional[UUID] = None
    submitted_at: Optional[datetime] = None
    files: List[FileOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)

    @field_validator("files")
    @classmethod
    def drop_cover_letter(cls, files: List[FileOut]) -> List[FileOut]:
        return [f for f in files if f.category != "COVER_LETTER"]


class SubmissionListOut(BaseModel):
    items: List[Union[SubmissionOut, BlindedSubmissionOut]]
    total: int
    page: int
    limit: int
    pages: int


class ConsentStatusOut(BaseModel):
    total: int
    pending: int
    accepted: int
    rejected: int
    is_complete: bool


class ReviewerMajorityOut(BaseModel):
    can_move: bool
    approved_reviewers: Optional[int] = None
    reason: Optional[str] = None
    current: Optional[int] = None
    required: Optional[int] = None


class FeedbackOut(BaseModel):
    id: UUID
    reviewer_id: UUID
    remarks: str
    attachment_refs: List[str]
    submitted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class CycleOut(BaseModel):
    id: UUID
    cycle_number: int
    manuscript_version_id: Optional[UUID] = None
    technical_editor_id: Optional[UUID] = None
    reviewer_ids: List[str]
    decision_type: Optional[str] = None
    decision_reason: Optional[str] = None
    decision_stage: Optional[str] = None
    decision_number: int
    decided_at: Optional[datetime] = None
    tech_decision: Optional[str] = None
    tech_remarks: Optional[str] = None
    tech_reviewed_at: Optional[datetime] = None
    status: str
    feedback: List[FeedbackOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class VersionOut(BaseModel):
    id: UUID
    cycle_id: UUID
    version_number: int
    file_refs: List[Dict[str, Any]]
    remarks: List[Dict[str, Any]]
    uploaded_by_id: UUID
    uploader_role: str
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class DecisionOut(BaseModel):
    submission_id: UUID
    status: str
    status_changed: bool
    decision_number: int
    decisions_remaining: int
    cycle: CycleOut


class TechDecisionOut(BaseModel):
    submission_id: UUID
    decision: str
    note: str
    cycle: CycleOut


class RevisionOut(BaseModel):
    submission: SubmissionOut
    cycle: CycleOut
    version: VersionOut


class TimelineEventOut(BaseModel):
    action: str
    user_id: Optional[UUID] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TimelineOut(BaseModel):
    submission_id: UUID
    status: str
    cycles: List[CycleOut]
    versions: List[VersionOut]
    events: List[TimelineEventOut] = Field(default_factory=list)


class ExpiredInvitationsOut(BaseModel):
    expired: int
