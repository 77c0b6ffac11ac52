"""Unit tests for the workflow error taxonomy"""

import pytest

from domain.workflows import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    WorkflowError,
)


@pytest.mark.parametrize(
    "error_class,code,http_status",
    [
        (NotFoundError, "not_found", 404),
        (ConflictError, "conflict", 409),
        (InvalidStateError, "invalid_state", 409),
        (ForbiddenError, "forbidden", 403),
        (InvalidInputError, "invalid_input", 400),
    ],
)
def test_error_codes_and_statuses(error_class, code, http_status):
    error = error_class("nope")

    assert isinstance(error, WorkflowError)
    assert error.code == code
    assert error.http_status == http_status


def test_envelope_without_details():
    error = ConflictError("A workflow is already running for this document")

    assert error.to_dict() == {
        "error": "conflict",
        "message": "A workflow is already running for this document",
    }
    assert str(error) == "A workflow is already running for this document"


def test_envelope_with_details():
    error = InvalidStateError("Workflow is at step 2, not step 1", details={"current_step": 2})

    assert error.to_dict()["details"] == {"current_step": 2}
