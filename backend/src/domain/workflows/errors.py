"""Workflow engine error taxonomy.

Every expected business condition is raised as one of these; the API layer
maps ``code``/``http_status`` to a response. None of them is transient, so
none of them is retried.
"""

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base class for workflow business errors."""

    code = "workflow_error"
    http_status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(WorkflowError):
    """Referenced template, document or instance does not exist."""
    code = "not_found"
    http_status = 404


class ConflictError(WorkflowError):
    """Business rule violation (duplicate active run, inactive template)."""
    code = "conflict"
    http_status = 409


class InvalidStateError(WorkflowError):
    """Operation not valid for the instance's current status or step."""
    code = "invalid_state"
    http_status = 409


class ForbiddenError(WorkflowError):
    """Actor lacks authority over the step or instance."""
    code = "forbidden"
    http_status = 403


class InvalidInputError(WorkflowError):
    """Malformed request (empty step list, unsupported action)."""
    code = "invalid_input"
    http_status = 400
