"""Pydantic schemas for workflow endpoints"""

from datetime import datetime
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from domain.workflows import WorkflowStatus


class StepDefinitionIn(BaseModel):
    """One step of a template as submitted by a client.

    ``assigneeId`` is accepted alongside ``assignee_id``.
    """
    name: str = Field(..., min_length=1, max_length=200)
    assignee_id: int = Field(..., alias="assigneeId")

    class Config:
        populate_by_name = True


class StepDefinitionOut(BaseModel):
    name: str
    assignee_id: int


class TemplateCreate(BaseModel):
    """Request schema for creating a workflow template (POST /workflows)."""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category_id: Optional[int] = None
    # Emptiness is checked by the template service so it surfaces as invalid_input
    steps: List[StepDefinitionIn]

    class Config:
        json_schema_extra = {
            "example": {
                "name": "2-step approval",
                "description": "Review then final sign-off",
                "steps": [
                    {"name": "Review", "assignee_id": 2},
                    {"name": "Final Sign-off", "assignee_id": 3},
                ],
            }
        }


class TemplateActiveUpdate(BaseModel):
    is_active: bool


class TemplateResponse(BaseModel):
    """Schema for workflow template response"""
    id: int
    uuid: UUID
    name: str
    description: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    steps: List[StepDefinitionOut]
    is_active: bool
    created_by: int
    created_by_name: Optional[str] = None
    usage_count: Optional[int] = None
    created_at: Optional[datetime] = None


class WorkflowStart(BaseModel):
    """Request schema for POST /workflows/start. Ids may be numeric or UUIDs."""
    template_id: Union[int, UUID]
    document_id: Union[int, UUID]


class StepProcess(BaseModel):
    """Request schema for processing the current step.

    ``action`` is validated by the engine so that unsupported values are
    reported as invalid_input rather than a schema error.
    """
    action: str
    comment: Optional[str] = Field(None, max_length=5000)
    expected_step: Optional[int] = Field(None, ge=1)


class InstanceResponse(BaseModel):
    """Schema for a workflow instance after a transition"""
    id: int
    uuid: UUID
    template_id: int
    document_id: int
    status: str
    current_step: Optional[int] = None
    total_steps: int
    started_by: int
    started_at: datetime
    completed_at: Optional[datetime] = None


class PendingTaskResponse(BaseModel):
    step_id: int
    step_number: int
    step_name: str
    instance_id: int
    instance_uuid: UUID
    workflow_name: str
    document_id: int
    document_uuid: UUID
    document_title: str
    document_file_type: Optional[str] = None
    started_by_id: int
    started_by_name: str
    assigned_at: datetime

    class Config:
        from_attributes = True


class StepHistoryResponse(BaseModel):
    step_number: int
    step_name: str
    assigned_to_id: int
    assigned_to_name: Optional[str] = None
    action: Optional[str] = None
    comment: Optional[str] = None
    completed_by_id: Optional[int] = None
    completed_by_name: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class InstanceSummaryResponse(BaseModel):
    id: int
    uuid: UUID
    workflow_name: str
    document_id: int
    document_uuid: UUID
    document_title: str
    status: WorkflowStatus
    current_step: Optional[int] = None
    total_steps: int
    started_by_id: int
    started_by_name: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WorkflowHistoryResponse(BaseModel):
    instance: InstanceSummaryResponse
    steps: List[StepHistoryResponse]

    class Config:
        from_attributes = True
