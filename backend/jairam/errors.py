"""Domain errors raised by the submission workflow.

Services raise these synchronously and never swallow them; the HTTP layer maps
each one to a status code through a single exception handler in ``main``.
"""

from __future__ import annotations

from typing import Any

# purpose: shared error taxonomy for the submission lifecycle core
# status: active


class SubmissionWorkflowError(Exception):
    """Base class carrying the HTTP mapping and optional structured details."""

    status_code: int = 400
    code: str = "SUBMISSION_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        payload.update(self.details)
        return payload


class ValidationError(SubmissionWorkflowError):
    status_code = 422
    code = "VALIDATION_ERROR"


class InvalidTransition(SubmissionWorkflowError):
    status_code = 409
    code = "INVALID_TRANSITION"


class IncompleteSubmission(SubmissionWorkflowError):
    status_code = 422
    code = "INCOMPLETE_SUBMISSION"

    def __init__(self, message: str, *, missing_item: str, **details: Any) -> None:
        super().__init__(message, missing_item=missing_item, **details)
        self.missing_item = missing_item


class IllegalModification(SubmissionWorkflowError):
    status_code = 409
    code = "ILLEGAL_MODIFICATION"

    def __init__(self, field: str) -> None:
        super().__init__(
            f"Modification of field '{field}' is not allowed after submission",
            field=field,
        )
        self.field = field


class InvalidToken(SubmissionWorkflowError):
    status_code = 400
    code = "INVALID_TOKEN"


class TokenExpired(SubmissionWorkflowError):
    status_code = 410
    code = "TOKEN_EXPIRED"


class DecisionLimitExceeded(SubmissionWorkflowError):
    status_code = 409
    code = "DECISION_LIMIT_EXCEEDED"


class PermissionDenied(SubmissionWorkflowError):
    status_code = 403
    code = "FORBIDDEN"


class ConcurrentModification(SubmissionWorkflowError):
    status_code = 409
    code = "CONCURRENT_MODIFICATION"


class FeedbackConflict(SubmissionWorkflowError):
    status_code = 409
    code = "FEEDBACK_ALREADY_SUBMITTED"


class NotFound(SubmissionWorkflowError):
    status_code = 404
    code = "NOT_FOUND"
