"""Step ledger: creation, guarded completion and replay of step records.

A step record is created when an instance enters the step and completed at
most once. Completion is a conditional UPDATE on ``completed_at IS NULL``,
so two actors racing on the same step cannot both succeed even where the
database ignores row locks.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, aliased

from domain.workflows import (
    InvalidStateError,
    StepAction,
    StepDefinition,
    StepHistoryEntry,
)
from models.user import User
from models.workflow import WorkflowInstance, WorkflowStep

logger = logging.getLogger(__name__)


class StepLedger:
    """Owns the workflow_step table for the engine."""

    def __init__(self, db: Session):
        self.db = db

    def open_step(
        self,
        instance: WorkflowInstance,
        step_number: int,
        definition: StepDefinition,
        at: datetime,
    ) -> WorkflowStep:
        """Record that ``instance`` has reached ``step_number``.

        Name and assignee are copied from ``definition``. A second record for
        the same (instance, step) fails on the unique constraint at flush.
        """
        record = WorkflowStep(
            instance_id=instance.id,
            step_number=step_number,
            step_name=definition.name,
            assigned_to=definition.assignee_id,
            created_at=at,
        )
        self.db.add(record)
        self.db.flush()

        logger.debug(
            f"Opened step {step_number} ('{definition.name}') on instance {instance.id}",
            extra={"instance_id": instance.id, "step_number": step_number, "user_id": definition.assignee_id},
        )
        return record

    def pending_step(
        self,
        instance_id: int,
        step_number: int,
        for_update: bool = False,
    ) -> Optional[WorkflowStep]:
        """Return the open record for (instance, step), or None."""
        query = select(WorkflowStep).where(
            WorkflowStep.instance_id == instance_id,
            WorkflowStep.step_number == step_number,
            WorkflowStep.completed_at.is_(None),
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(query).scalar_one_or_none()

    def complete_step(
        self,
        record: WorkflowStep,
        actor_id: int,
        action: StepAction,
        comment: Optional[str],
        at: datetime,
    ) -> WorkflowStep:
        """Stamp the decision on an open step record.

        Raises:
            InvalidStateError: If the record was completed by someone else first
        """
        result = self.db.execute(
            update(WorkflowStep)
            .where(WorkflowStep.id == record.id, WorkflowStep.completed_at.is_(None))
            .values(
                action=StepAction(action).value,
                comment=comment,
                completed_by=actor_id,
                completed_at=at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError(
                f"Step {record.step_number} has already been completed",
                details={"step_number": record.step_number},
            )

        self.db.refresh(record)
        return record

    def history(self, instance_id: int) -> List[StepHistoryEntry]:
        """Replay the reached steps of an instance in step order."""
        assignee = aliased(User)
        completer = aliased(User)
        query = (
            select(WorkflowStep, assignee, completer)
            .join(assignee, WorkflowStep.assigned_to == assignee.id)
            .outerjoin(completer, WorkflowStep.completed_by == completer.id)
            .where(WorkflowStep.instance_id == instance_id)
            .order_by(WorkflowStep.step_number.asc())
        )

        entries = []
        for step, assigned_user, completing_user in self.db.execute(query):
            entries.append(
                StepHistoryEntry(
                    step_number=step.step_number,
                    step_name=step.step_name,
                    assigned_to_id=step.assigned_to,
                    assigned_to_name=assigned_user.full_name if assigned_user else None,
                    action=step.action,
                    comment=step.comment,
                    completed_by_id=step.completed_by,
                    completed_by_name=completing_user.full_name if completing_user else None,
                    completed_at=step.completed_at,
                    created_at=step.created_at,
                )
            )
        return entries
