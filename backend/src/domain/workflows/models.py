"""Workflow domain value objects and read models.

These are plain dataclasses so the engine, the ports and the tests can
exchange them without touching the ORM.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from .errors import InvalidInputError
from .status import WorkflowStatus


@dataclass(frozen=True)
class StepDefinition:
    """One position of a template: a step name bound to one assignee."""
    name: str
    assignee_id: int

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidInputError("Step name must be a non-empty string")
        if isinstance(self.assignee_id, bool) or not isinstance(self.assignee_id, int):
            raise InvalidInputError(f"Step '{self.name}' needs an integer assignee id")

    def to_dict(self) -> dict:
        return {"name": self.name, "assignee_id": self.assignee_id}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StepDefinition":
        """Build from stored JSON. Accepts ``assigneeId`` as written by older clients."""
        assignee = data.get("assignee_id", data.get("assigneeId"))
        return cls(name=data.get("name"), assignee_id=assignee)


def parse_step_definitions(raw_steps: Optional[Iterable[Any]]) -> Tuple[StepDefinition, ...]:
    """Validate and freeze an ordered step list.

    Raises:
        InvalidInputError: If the list is missing, empty, or holds a malformed entry
    """
    if raw_steps is None:
        raise InvalidInputError("At least one workflow step is required")

    steps: List[StepDefinition] = []
    for raw in raw_steps:
        if isinstance(raw, StepDefinition):
            steps.append(raw)
        elif isinstance(raw, Mapping):
            steps.append(StepDefinition.from_dict(raw))
        else:
            raise InvalidInputError(f"Unsupported step definition: {raw!r}")

    if not steps:
        raise InvalidInputError("At least one workflow step is required")
    return tuple(steps)


@dataclass(frozen=True)
class TemplateSnapshot:
    """What the engine needs from a template when starting a run."""
    id: int
    uuid: UUID
    name: str
    steps: Tuple[StepDefinition, ...]
    is_active: bool


@dataclass(frozen=True)
class DocumentRef:
    """What the engine needs from a document record."""
    id: int
    uuid: UUID
    title: str
    status: str
    owner_id: int
    is_archived: bool = False


@dataclass(frozen=True)
class PendingTask:
    """One open step assigned to a user, with enough context to render it."""
    step_id: int
    step_number: int
    step_name: str
    instance_id: int
    instance_uuid: UUID
    workflow_name: str
    document_id: int
    document_uuid: UUID
    document_title: str
    document_file_type: Optional[str]
    started_by_id: int
    started_by_name: str
    assigned_at: datetime


@dataclass(frozen=True)
class StepHistoryEntry:
    step_number: int
    step_name: str
    assigned_to_id: int
    assigned_to_name: Optional[str]
    action: Optional[str]
    comment: Optional[str]
    completed_by_id: Optional[int]
    completed_by_name: Optional[str]
    completed_at: Optional[datetime]
    created_at: datetime


@dataclass(frozen=True)
class InstanceSummary:
    id: int
    uuid: UUID
    workflow_name: str
    document_id: int
    document_uuid: UUID
    document_title: str
    status: WorkflowStatus
    current_step: Optional[int]
    total_steps: int
    started_by_id: int
    started_by_name: Optional[str]
    started_at: datetime
    completed_at: Optional[datetime]


@dataclass(frozen=True)
class WorkflowHistory:
    instance: InstanceSummary
    steps: Sequence[StepHistoryEntry] = field(default_factory=tuple)
