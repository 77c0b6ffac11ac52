"""Workflow API endpoints

Templates, workflow runs, task lists and history. Business failures raised
by the engine are rendered by the WorkflowError handler in main.
"""

import logging
from typing import List, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from auth.dependencies import get_current_user, require_template_editor
from dependencies import get_template_service, get_workflow_engine
from domain.workflows import Running
from models.user import User
from models.workflow import WorkflowInstance, WorkflowTemplate
from .engine import WorkflowEngine
from .schemas import (
    InstanceResponse,
    InstanceSummaryResponse,
    PendingTaskResponse,
    StepProcess,
    TemplateActiveUpdate,
    TemplateCreate,
    TemplateResponse,
    WorkflowHistoryResponse,
    WorkflowStart,
)
from .templates import TemplateService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["workflows"])


def _template_response(template: WorkflowTemplate, usage_count: Optional[int] = None) -> TemplateResponse:
    return TemplateResponse(
        id=template.id,
        uuid=template.uuid,
        name=template.name,
        description=template.description,
        category_id=template.category_id,
        category_name=template.category.name if template.category else None,
        steps=[step.to_dict() for step in template.step_definitions],
        is_active=template.is_active,
        created_by=template.created_by,
        created_by_name=template.creator.full_name if template.creator else None,
        usage_count=usage_count,
        created_at=template.created_at,
    )


def _instance_response(instance: WorkflowInstance) -> InstanceResponse:
    position = instance.position
    return InstanceResponse(
        id=instance.id,
        uuid=instance.uuid,
        template_id=instance.template_id,
        document_id=instance.document_id,
        status=position.status.value,
        current_step=position.step if isinstance(position, Running) else None,
        total_steps=instance.total_steps,
        started_by=instance.started_by,
        started_at=instance.started_at,
        completed_at=instance.completed_at,
    )


# ============================================================================
# Templates
# ============================================================================

@router.get("", response_model=List[TemplateResponse])
def list_templates(
    category_id: Optional[int] = Query(None),
    active: Optional[bool] = Query(None),
    service: TemplateService = Depends(get_template_service),
    current_user: User = Depends(get_current_user),
):
    """List workflow templates ordered by name, with usage counts."""
    return [
        _template_response(listing.template, listing.usage_count)
        for listing in service.list_templates(category_id=category_id, active=active)
    ]


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(
    payload: TemplateCreate,
    service: TemplateService = Depends(get_template_service),
    current_user: User = Depends(require_template_editor),
):
    """Create a workflow template (template editor roles only).

    Raises:
        InvalidInputError 400: Empty step list, unknown assignee or category
    """
    template = service.create_template(
        name=payload.name,
        description=payload.description,
        category_id=payload.category_id,
        steps=[step.model_dump() for step in payload.steps],
        creator_id=current_user.id,
    )
    return _template_response(template, usage_count=0)


@router.get("/tasks/my", response_model=List[PendingTaskResponse])
def my_tasks(
    engine: WorkflowEngine = Depends(get_workflow_engine),
    current_user: User = Depends(get_current_user),
):
    """Open steps assigned to the current user, newest first."""
    return engine.my_pending_tasks(current_user.id)


@router.get("/{template_id}", response_model=TemplateResponse)
def get_template(
    template_id: Union[int, UUID],
    service: TemplateService = Depends(get_template_service),
    current_user: User = Depends(get_current_user),
):
    """Fetch one template by numeric id or UUID."""
    return _template_response(service.get_template(template_id))


@router.patch("/{template_id}/active", response_model=TemplateResponse)
def set_template_active(
    template_id: Union[int, UUID],
    payload: TemplateActiveUpdate,
    service: TemplateService = Depends(get_template_service),
    current_user: User = Depends(require_template_editor),
):
    """Activate or deactivate a template. Running instances are not affected."""
    template = service.set_template_active(template_id, payload.is_active, current_user.id)
    return _template_response(template)


# ============================================================================
# Workflow runs
# ============================================================================

@router.post("/start", response_model=InstanceResponse, status_code=status.HTTP_201_CREATED)
def start_workflow(
    payload: WorkflowStart,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    current_user: User = Depends(get_current_user),
):
    """Start a workflow on a document.

    Raises:
        NotFoundError 404: Template or document does not exist
        ConflictError 409: Template inactive or a workflow already running
    """
    instance = engine.start_workflow(payload.template_id, payload.document_id, current_user.id)
    return _instance_response(instance)


@router.post("/instances/{instance_id}/process", response_model=InstanceResponse)
def process_step(
    instance_id: Union[int, UUID],
    payload: StepProcess,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    current_user: User = Depends(get_current_user),
):
    """Approve or reject the current step.

    Raises:
        NotFoundError 404: Instance does not exist
        InvalidStateError 409: Instance finished or step already completed
        ForbiddenError 403: Caller is not the assignee and holds no override
        InvalidInputError 400: Unsupported action
    """
    instance = engine.process_step(
        instance_id,
        actor_id=current_user.id,
        action=payload.action,
        comment=payload.comment,
        expected_step=payload.expected_step,
    )
    return _instance_response(instance)


@router.post("/instances/{instance_id}/cancel", response_model=InstanceResponse)
def cancel_workflow(
    instance_id: Union[int, UUID],
    engine: WorkflowEngine = Depends(get_workflow_engine),
    current_user: User = Depends(get_current_user),
):
    """Cancel a running workflow (initiator or administrator)."""
    instance = engine.cancel_workflow(instance_id, current_user.id)
    return _instance_response(instance)


@router.get("/instances/{instance_id}", response_model=InstanceResponse)
def get_instance(
    instance_id: Union[int, UUID],
    engine: WorkflowEngine = Depends(get_workflow_engine),
    current_user: User = Depends(get_current_user),
):
    """Fetch one workflow instance by numeric id or UUID."""
    return _instance_response(engine.get_instance(instance_id))


@router.get("/instances/{instance_id}/history", response_model=WorkflowHistoryResponse)
def workflow_history(
    instance_id: Union[int, UUID],
    engine: WorkflowEngine = Depends(get_workflow_engine),
    current_user: User = Depends(get_current_user),
):
    """Instance summary and every reached step in step order."""
    return WorkflowHistoryResponse.model_validate(engine.get_history(instance_id))


@router.get("/documents/{document_id}/instances", response_model=List[InstanceSummaryResponse])
def document_instances(
    document_id: Union[int, UUID],
    engine: WorkflowEngine = Depends(get_workflow_engine),
    current_user: User = Depends(get_current_user),
):
    """All workflow runs of a document, newest first."""
    return [InstanceSummaryResponse.model_validate(s) for s in engine.list_document_instances(document_id)]
