"""Workflows domain module - approval state machine, value objects, ports"""

from .errors import (
    WorkflowError,
    NotFoundError,
    ConflictError,
    InvalidStateError,
    ForbiddenError,
    InvalidInputError,
)
from .models import (
    StepDefinition,
    parse_step_definitions,
    TemplateSnapshot,
    DocumentRef,
    PendingTask,
    StepHistoryEntry,
    InstanceSummary,
    WorkflowHistory,
)
from .status import (
    WorkflowStatus,
    StepAction,
    StateTransitionError,
    validate_transition,
    can_transition,
    is_terminal,
    Running,
    Approved,
    Rejected,
    Cancelled,
    Position,
    position_of,
)

__all__ = [
    "WorkflowError",
    "NotFoundError",
    "ConflictError",
    "InvalidStateError",
    "ForbiddenError",
    "InvalidInputError",
    "StepDefinition",
    "parse_step_definitions",
    "TemplateSnapshot",
    "DocumentRef",
    "PendingTask",
    "StepHistoryEntry",
    "InstanceSummary",
    "WorkflowHistory",
    "WorkflowStatus",
    "StepAction",
    "StateTransitionError",
    "validate_transition",
    "can_transition",
    "is_terminal",
    "Running",
    "Approved",
    "Rejected",
    "Cancelled",
    "Position",
    "position_of",
]
