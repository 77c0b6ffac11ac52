"""Workflow instance state machine.

State Flow:
    IN_PROGRESS(step n) → IN_PROGRESS(step n + 1)    approve, more steps remain
    IN_PROGRESS(step n) → APPROVED                   approve on the last step
    IN_PROGRESS(step n) → REJECTED                   reject on any step
    IN_PROGRESS(step n) → CANCELLED                  initiator or admin cancels

Terminal States: APPROVED, REJECTED, CANCELLED
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Union


class WorkflowStatus(str, Enum):
    """Workflow instance status enumeration."""
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class StepAction(str, Enum):
    """Decision recorded on a completed step."""
    APPROVE = "approve"
    REJECT = "reject"


ALLOWED_TRANSITIONS: Dict[WorkflowStatus, List[WorkflowStatus]] = {
    WorkflowStatus.IN_PROGRESS: [
        WorkflowStatus.IN_PROGRESS,
        WorkflowStatus.APPROVED,
        WorkflowStatus.REJECTED,
        WorkflowStatus.CANCELLED,
    ],
    WorkflowStatus.APPROVED: [],  # Terminal state
    WorkflowStatus.REJECTED: [],  # Terminal state
    WorkflowStatus.CANCELLED: [],  # Terminal state
}

TERMINAL_STATUSES = frozenset(
    status for status, allowed in ALLOWED_TRANSITIONS.items() if not allowed
)


class StateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


def validate_transition(current_status: WorkflowStatus, new_status: WorkflowStatus) -> None:
    """Validate that a state transition is allowed.

    Args:
        current_status: Current instance status
        new_status: Target status to transition to

    Raises:
        StateTransitionError: If transition is not allowed
    """
    if not can_transition(current_status, new_status):
        allowed = ALLOWED_TRANSITIONS.get(current_status, [])
        raise StateTransitionError(
            f"Invalid transition: {current_status.value} -> {new_status.value}. "
            f"Allowed transitions from {current_status.value}: "
            f"{[s.value for s in allowed]}"
        )


def can_transition(current_status: WorkflowStatus, new_status: WorkflowStatus) -> bool:
    """Check if a state transition is allowed without raising exception."""
    return new_status in ALLOWED_TRANSITIONS.get(current_status, [])


def is_terminal(status: WorkflowStatus) -> bool:
    return status in TERMINAL_STATUSES


# Instance position. A running instance carries its 1-based step index;
# terminal positions carry none, so a step index on a finished run cannot
# be expressed.

@dataclass(frozen=True)
class Running:
    step: int

    def __post_init__(self):
        if self.step < 1:
            raise ValueError(f"Step index is 1-based, got {self.step}")

    @property
    def status(self) -> WorkflowStatus:
        return WorkflowStatus.IN_PROGRESS

    def advance(self) -> "Running":
        return Running(self.step + 1)


@dataclass(frozen=True)
class Approved:
    @property
    def status(self) -> WorkflowStatus:
        return WorkflowStatus.APPROVED


@dataclass(frozen=True)
class Rejected:
    @property
    def status(self) -> WorkflowStatus:
        return WorkflowStatus.REJECTED


@dataclass(frozen=True)
class Cancelled:
    @property
    def status(self) -> WorkflowStatus:
        return WorkflowStatus.CANCELLED


Position = Union[Running, Approved, Rejected, Cancelled]

_TERMINAL_POSITIONS = {
    WorkflowStatus.APPROVED: Approved(),
    WorkflowStatus.REJECTED: Rejected(),
    WorkflowStatus.CANCELLED: Cancelled(),
}


def position_of(status: Union[WorkflowStatus, str], current_step: Optional[int]) -> Position:
    """Build the position value for a persisted (status, current_step) pair.

    Raises:
        ValueError: If the status is unknown or a running instance has no step
    """
    status = WorkflowStatus(status)
    if status is WorkflowStatus.IN_PROGRESS:
        if current_step is None:
            raise ValueError("Running instance without a current step")
        return Running(current_step)
    return _TERMINAL_POSITIONS[status]
