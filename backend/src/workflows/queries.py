"""Read-side queries over workflow instances and steps."""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from domain.workflows import InstanceSummary, PendingTask, WorkflowStatus, position_of, Running
from models.document import Document
from models.user import User
from models.workflow import WorkflowInstance, WorkflowStep, WorkflowTemplate


def pending_tasks_for(db: Session, user_id: int) -> List[PendingTask]:
    """Open steps assigned to ``user_id`` on running instances, newest first.

    A step record left open on a finished instance never appears: the
    instance status filter hides it even though ``completed_at`` is null.
    """
    initiator = aliased(User)
    query = (
        select(WorkflowStep, WorkflowInstance, WorkflowTemplate, Document, initiator)
        .join(WorkflowInstance, WorkflowStep.instance_id == WorkflowInstance.id)
        .join(WorkflowTemplate, WorkflowInstance.template_id == WorkflowTemplate.id)
        .join(Document, WorkflowInstance.document_id == Document.id)
        .join(initiator, WorkflowInstance.started_by == initiator.id)
        .where(
            WorkflowStep.assigned_to == user_id,
            WorkflowStep.completed_at.is_(None),
            WorkflowInstance.status == WorkflowStatus.IN_PROGRESS.value,
        )
        .order_by(WorkflowStep.created_at.desc(), WorkflowStep.id.desc())
    )

    tasks = []
    for step, instance, template, document, started_by in db.execute(query):
        tasks.append(
            PendingTask(
                step_id=step.id,
                step_number=step.step_number,
                step_name=step.step_name,
                instance_id=instance.id,
                instance_uuid=instance.uuid,
                workflow_name=template.name,
                document_id=document.id,
                document_uuid=document.uuid,
                document_title=document.title,
                document_file_type=document.file_type,
                started_by_id=started_by.id,
                started_by_name=started_by.full_name,
                assigned_at=step.created_at,
            )
        )
    return tasks


def summarize_instance(instance: WorkflowInstance) -> InstanceSummary:
    position = position_of(instance.status, instance.current_step)
    initiator: Optional[User] = instance.initiator
    return InstanceSummary(
        id=instance.id,
        uuid=instance.uuid,
        workflow_name=instance.template.name,
        document_id=instance.document.id,
        document_uuid=instance.document.uuid,
        document_title=instance.document.title,
        status=position.status,
        current_step=position.step if isinstance(position, Running) else None,
        total_steps=instance.total_steps,
        started_by_id=instance.started_by,
        started_by_name=initiator.full_name if initiator else None,
        started_at=instance.started_at,
        completed_at=instance.completed_at,
    )


def instances_for_document(db: Session, document_id: int) -> List[InstanceSummary]:
    """Every run of a document, most recently started first."""
    query = (
        select(WorkflowInstance)
        .where(WorkflowInstance.document_id == document_id)
        .order_by(WorkflowInstance.started_at.desc(), WorkflowInstance.id.desc())
    )
    return [summarize_instance(instance) for instance in db.execute(query).scalars()]
