"""Author declaration checklist catalog (version 1.0.0)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

# purpose: fixed declaration questions consulted when a manuscript is submitted
# status: active


@dataclass(frozen=True)
class ChecklistQuestion:
    question_id: str
    question_text: str
    order: int
    question_number: int | None = None
    response_type: str = "YES_NO_NA"
    required: bool = True
    help_text: str | None = None


@dataclass(frozen=True)
class ChecklistCategory:
    category_id: str
    category_name: str
    order: int
    questions: tuple[ChecklistQuestion, ...]
    is_separate_certification: bool = False
    description: str | None = None


@dataclass(frozen=True)
class Checklist:
    version: str
    effective_from: str
    description: str
    categories: tuple[ChecklistCategory, ...]


@dataclass(slots=True)
class ChecklistValidation:
    is_valid: bool
    missing_questions: list[dict[str, str]] = field(default_factory=list)
    error: str | None = None


CHECKLIST_V1_0_0 = Checklist(
    version="1.0.0",
    effective_from="2026-01-01",
    description="Manuscript Submission Declaration Checklist",
    categories=(
        ChecklistCategory(
            category_id="ORIGINALITY_AND_AUTHORSHIP",
            category_name="ORIGINALITY & AUTHORSHIP",
            order=1,
            questions=(
                ChecklistQuestion("OA_001", "The manuscript is original, unpublished, and not under review elsewhere.", 1, 1),
                ChecklistQuestion("OA_002", "The work does not involve plagiarism, data fabrication, falsification, or redundant publication.", 2, 2),
                ChecklistQuestion("OA_003", "All authors meet ICMJE authorship criteria.", 3, 3),
                ChecklistQuestion("OA_004", "All authors have reviewed and approved the final version of the manuscript.", 4, 4),
                ChecklistQuestion("OA_005", "The sequence of authorship has been mutually agreed upon by all authors.", 5, 5),
            ),
        ),
        ChecklistCategory(
            category_id="ETHICAL_APPROVAL_AND_HUMAN_RESEARCH_COMPLIANCE",
            category_name="ETHICAL APPROVAL & HUMAN RESEARCH COMPLIANCE",
            order=2,
            questions=(
                ChecklistQuestion("EA_001", "Institutional Ethics Committee (IEC)/IRB approval was obtained prior to study initiation.", 1, 6),
                ChecklistQuestion("EA_002", "The Ethics Approval Number is clearly mentioned in the manuscript.", 2, 7),
                ChecklistQuestion("EA_003", "The study was conducted in accordance with the Declaration of Helsinki (latest revision).", 3, 8),
                ChecklistQuestion("EA_004", "Written informed consent was obtained from all participants.", 4, 9),
                ChecklistQuestion("EA_005", "Written consent for publication of identifiable data/images was obtained (where applicable).", 5, 10),
                ChecklistQuestion("EA_006", "The study complies with CPCSEA / ARRIVE / relevant international animal guidelines.", 6, 11),
                ChecklistQuestion("EA_007", "Confidentiality, anonymity, and data protection standards were strictly maintained.", 7, 12),
            ),
        ),
        ChecklistCategory(
            category_id="TRANSPARENCY_AND_REPORTING_STANDARDS",
            category_name="TRANSPARENCY & REPORTING STANDARDS",
            order=3,
            questions=(
                ChecklistQuestion("TR_001", "Conflict of Interest statement is clearly disclosed.", 1, 13),
                ChecklistQuestion("TR_002", "Funding sources and financial disclosures are declared.", 2, 14),
                ChecklistQuestion("TR_003", "Data Availability Statement is included.", 3, 15),
                ChecklistQuestion("TR_004", "Statistical analysis methods are appropriately described.", 4, 16),
                ChecklistQuestion(
                    "TR_005",
                    "The manuscript adheres to JAIRAM formatting and reporting guidelines (CONSORT/STROBE/PRISMA where applicable).",
                    5,
                    17,
                ),
            ),
        ),
        ChecklistCategory(
            category_id="COPE_PUBLICATION_ETHICS_COMPLIANCE_CERTIFICATION",
            category_name="COPE PUBLICATION ETHICS COMPLIANCE CERTIFICATION",
            order=4,
            is_separate_certification=True,
            description="Separate certification checkbox shown at end of checklist",
            questions=(
                ChecklistQuestion(
                    "COPE_001",
                    "I confirm full compliance with COPE standards.",
                    1,
                    response_type="CHECKBOX",
                    help_text="Committee on Publication Ethics (COPE) provides guidance on publication ethics.",
                ),
            ),
        ),
    ),
)

CURRENT_CHECKLIST = CHECKLIST_V1_0_0


def _response_value(item: Any) -> str | None:
    if isinstance(item, Mapping):
        return item.get("response")
    return getattr(item, "response", None)


def _response_question(item: Any) -> str | None:
    if isinstance(item, Mapping):
        return item.get("question_id")
    return getattr(item, "question_id", None)


def _answered_ids(responses: Iterable[Any]) -> set[str]:
    return {_response_question(r) for r in responses if _response_value(r)}


def all_questions(checklist: Checklist = CURRENT_CHECKLIST) -> list[tuple[ChecklistCategory, ChecklistQuestion]]:
    return [(category, question) for category in checklist.categories for question in category.questions]


def declaration_categories(checklist: Checklist = CURRENT_CHECKLIST) -> list[ChecklistCategory]:
    return [c for c in checklist.categories if not c.is_separate_certification]


def validate_responses(
    responses: Iterable[Any],
    cope_compliance: bool,
    checklist: Checklist = CURRENT_CHECKLIST,
) -> ChecklistValidation:
    """Check that every required YES/NO/N/A question has an answer and COPE is certified.

    ``responses`` may be dicts or pydantic models carrying ``question_id`` and
    ``response``.
    """

    answered = _answered_ids(list(responses))
    missing = [
        {"question_id": q.question_id, "question_text": q.question_text}
        for _, q in all_questions(checklist)
        if q.required and q.response_type != "CHECKBOX" and q.question_id not in answered
    ]
    if missing:
        return ChecklistValidation(
            is_valid=False,
            missing_questions=missing,
            error="Please answer all required checklist questions",
        )
    if not cope_compliance:
        return ChecklistValidation(is_valid=False, error="COPE compliance certification is required")
    return ChecklistValidation(is_valid=True)


def completion_status(responses: Iterable[Any], checklist: Checklist = CURRENT_CHECKLIST) -> list[dict[str, Any]]:
    answered = _answered_ids(list(responses))
    status = []
    for category in checklist.categories:
        done = sum(1 for q in category.questions if q.question_id in answered)
        status.append(
            {
                "category_id": category.category_id,
                "category_name": category.category_name,
                "total": len(category.questions),
                "answered": done,
                "is_complete": done == len(category.questions),
            }
        )
    return status


def progress(responses: Iterable[Any], checklist: Checklist = CURRENT_CHECKLIST) -> dict[str, int]:
    answered = _answered_ids(list(responses))
    questions = [q for _, q in all_questions(checklist) if q.response_type != "CHECKBOX"]
    done = sum(1 for q in questions if q.question_id in answered)
    return {
        "total": len(questions),
        "answered": done,
        "percentage": round(done * 100 / len(questions)),
    }


def catalog_payload(checklist: Checklist = CURRENT_CHECKLIST) -> dict[str, Any]:
    """Serialize the catalog for the checklist endpoint."""

    return {
        "version": checklist.version,
        "effective_from": checklist.effective_from,
        "description": checklist.description,
        "categories": [
            {
                "category_id": c.category_id,
                "category_name": c.category_name,
                "order": c.order,
                "is_separate_certification": c.is_separate_certification,
                "description": c.description,
                "questions": [
                    {
                        "question_id": q.question_id,
                        "question_number": q.question_number,
                        "question_text": q.question_text,
                        "response_type": q.response_type,
                        "required": q.required,
                        "order": q.order,
                        "help_text": q.help_text,
                    }
                    for q in c.questions
                ],
            }
            for c in checklist.categories
        ],
    }
