"""Workflow error taxonomy, each class carrying the HTTP status it maps to."""

from typing import Optional


class WorkflowError(Exception):
    status_code = 400
    code = "workflow_error"

    def __init__(self, message: str, entity: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.entity = entity


class ValidationError(WorkflowError):
    """Malformed input: missing field, self-connection, foreign bench id."""

    status_code = 400
    code = "validation_error"


class JobNotOpen(ValidationError):
    code = "job_not_open"


class NotFound(WorkflowError):
    status_code = 404
    code = "not_found"


class Forbidden(WorkflowError):
    status_code = 403
    code = "forbidden"


class InvalidTransition(WorkflowError):
    status_code = 409
    code = "invalid_transition"


class InvitationExpired(InvalidTransition):
    status_code = 410
    code = "invitation_expired"


class DuplicateExists(WorkflowError):
    """A uniqueness invariant would be violated; ``existing_id`` names the winner."""

    status_code = 409
    code = "duplicate_exists"

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        existing_id: Optional[str] = None,
    ):
        super().__init__(message, entity)
        self.existing_id = existing_id


class DuplicateApplication(DuplicateExists):
    code = "duplicate_application"


class DuplicateInvite(DuplicateExists):
    code = "duplicate_invite"
