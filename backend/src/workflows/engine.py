"""Workflow instance engine.

Creates, advances and terminates runs of a template against one document.
Each operation is a single check-then-write unit:

    1. re-read the instance (and its open step) with a locking read
    2. validate preconditions against the fresh state
    3. write step completion, instance position and document status
    4. commit

Notifications and activity entries are delivered only after the commit and
are best-effort: a failure there is logged and counted, never raised.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import run_in_transaction
from domain.workflows import (
    Approved,
    Cancelled,
    ConflictError,
    DocumentRef,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    PendingTask,
    Position,
    Rejected,
    Running,
    StateTransitionError,
    StepAction,
    WorkflowError,
    WorkflowHistory,
    WorkflowStatus,
    InstanceSummary,
    validate_transition,
)
from domain.workflows.ports import (
    ActivityLoggerPort,
    DocumentStorePort,
    Identifier,
    NotifierPort,
    OverridePolicy,
    TemplateStorePort,
)
from models.workflow import WorkflowInstance
from observability.metrics import (
    side_effect_failures_total,
    workflow_rejected_operations_total,
    workflow_transitions_total,
)
from .ledger import StepLedger
from .projection import DocumentStatusProjector, Notice, WorkflowNotices
from .queries import instances_for_document, pending_tasks_for, summarize_instance
from .stores import identifier_clause

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Metric label for each position a processed step can lead to
_PROCESS_TRANSITIONS = {Running: "advance", Approved: "approve", Rejected: "reject"}


@dataclass
class _Outcome:
    """Result of a committed unit of work plus what to deliver afterwards."""
    instance: WorkflowInstance
    document: DocumentRef
    position: Position
    notices: List[Notice] = field(default_factory=list)
    activity_details: dict = field(default_factory=dict)


class WorkflowEngine:
    """Runs approval workflows over the injected collaborators.

    Args:
        db: Session the engine's own tables are written through
        documents: Document record store
        templates: Template store (read-only)
        notifier: Notification delivery, called after commit
        activity: Activity trail, called after commit
        override_policy: Decides who may act on steps and runs not their own
        clock: Source of timestamps
    """

    def __init__(
        self,
        db: Session,
        documents: DocumentStorePort,
        templates: TemplateStorePort,
        notifier: NotifierPort,
        activity: ActivityLoggerPort,
        override_policy: OverridePolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.documents = documents
        self.templates = templates
        self.notifier = notifier
        self.activity = activity
        self.override_policy = override_policy
        self.clock = clock
        self.ledger = StepLedger(db)
        self.projector = DocumentStatusProjector(documents)
        self.notices = WorkflowNotices()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start_workflow(
        self,
        template_id: Identifier,
        document_id: Identifier,
        initiator_id: int,
    ) -> WorkflowInstance:
        """Start a run of ``template_id`` against ``document_id``.

        The template's steps are copied onto the instance, step 1 is opened
        and the document moves to ``pending``.

        Raises:
            NotFoundError: Template or document does not exist
            ConflictError: Template inactive, document archived, or a run is
                already in progress for the document
        """
        def work() -> _Outcome:
            template = self.templates.get_template(template_id)
            if template is None:
                raise NotFoundError(f"Workflow template {template_id} not found")
            if not template.is_active:
                raise ConflictError(f"Workflow template '{template.name}' is not active")

            # Row lock on the document serializes concurrent starts
            document = self.documents.get_document(document_id, for_update=True)
            if document is None:
                raise NotFoundError(f"Document {document_id} not found")
            if document.is_archived:
                raise ConflictError("Archived documents cannot enter a workflow")
            if self._active_instance_id(document.id) is not None:
                raise ConflictError("A workflow is already running for this document")

            now = self.clock()
            position = Running(1)
            instance = WorkflowInstance(
                template_id=template.id,
                document_id=document.id,
                status=position.status.value,
                current_step=position.step,
                step_snapshot=[step.to_dict() for step in template.steps],
                started_by=initiator_id,
                started_at=now,
            )
            self.db.add(instance)
            try:
                self.db.flush()
            except IntegrityError as e:
                # Lost the race on the active-document index
                raise ConflictError("A workflow is already running for this document") from e

            first = template.steps[0]
            self.ledger.open_step(instance, position.step, first, now)
            self.projector.started(document)

            return _Outcome(
                instance=instance,
                document=document,
                position=position,
                notices=[self.notices.task_assigned(first.assignee_id, document, first.name)],
                activity_details={
                    "template_id": template.id,
                    "template_name": template.name,
                    "document_id": document.id,
                    "total_steps": len(template.steps),
                },
            )

        outcome = self._transact("start", work)
        self._after_commit(outcome, initiator_id, "workflow_start", "start")
        return outcome.instance

    def process_step(
        self,
        instance_id: Identifier,
        actor_id: int,
        action: Union[StepAction, str],
        comment: Optional[str] = None,
        expected_step: Optional[int] = None,
    ) -> WorkflowInstance:
        """Approve or reject the current step of a running instance.

        Args:
            instance_id: Numeric id or UUID of the instance
            actor_id: User completing the step
            action: ``approve`` or ``reject``
            comment: Optional free-text comment stored on the step
            expected_step: Step the caller believes is current; a mismatch
                fails instead of acting on a step the caller never saw

        Raises:
            NotFoundError: Instance does not exist
            InvalidInputError: Unsupported action
            InvalidStateError: Instance finished, stale expected_step, or no
                open step (including losing a race to another actor)
            ForbiddenError: Actor is neither the assignee nor an override holder
        """
        def work() -> _Outcome:
            try:
                decision = StepAction(action)
            except ValueError:
                raise InvalidInputError(
                    f"Unsupported action '{action}'. Expected one of: approve, reject"
                )

            instance = self._load_instance(instance_id, for_update=True)
            position = self._require_running(instance)
            if expected_step is not None and expected_step != position.step:
                raise InvalidStateError(
                    f"Workflow is at step {position.step}, not step {expected_step}",
                    details={"current_step": position.step, "expected_step": expected_step},
                )

            record = self.ledger.pending_step(instance.id, position.step, for_update=True)
            if record is None:
                raise InvalidStateError(f"No pending step found for step {position.step}")
            self._require_authority(record.assigned_to, actor_id, "You are not assigned to this step")

            now = self.clock()
            self.ledger.complete_step(record, actor_id, decision, comment, now)

            if decision is StepAction.REJECT:
                target: Position = Rejected()
            elif position.step < instance.total_steps:
                target = position.advance()
            else:
                target = Approved()
            self._move(instance, target, now)

            document = self._document_of(instance)
            if isinstance(target, Running):
                definition = instance.step_definition(target.step)
                self.ledger.open_step(instance, target.step, definition, now)
                notices = [self.notices.task_assigned(definition.assignee_id, document, definition.name)]
            else:
                self.projector.finished(document, target)
                if isinstance(target, Rejected):
                    notices = [self.notices.rejected(instance.started_by, document, record.step_name, comment)]
                else:
                    notices = [self.notices.completed(instance.started_by, document)]

            return _Outcome(
                instance=instance,
                document=document,
                position=target,
                notices=notices,
                activity_details={
                    "step_number": record.step_number,
                    "step_name": record.step_name,
                    "comment": comment,
                    "result": target.status.value,
                },
            )

        outcome = self._transact("process", work)
        transition = _PROCESS_TRANSITIONS[type(outcome.position)]
        action_name = "workflow_reject" if isinstance(outcome.position, Rejected) else "workflow_approve"
        self._after_commit(outcome, actor_id, action_name, transition)
        return outcome.instance

    def cancel_workflow(self, instance_id: Identifier, actor_id: int) -> WorkflowInstance:
        """Cancel a running instance and return its document to ``draft``.

        Raises:
            NotFoundError: Instance does not exist
            InvalidStateError: Instance already finished
            ForbiddenError: Actor is neither the initiator nor an override holder
        """
        def work() -> _Outcome:
            instance = self._load_instance(instance_id, for_update=True)
            position = self._require_running(instance)
            self._require_authority(
                instance.started_by,
                actor_id,
                "Only the initiator or an administrator can cancel this workflow",
            )

            now = self.clock()
            pending = self.ledger.pending_step(instance.id, position.step)
            target = Cancelled()
            self._move(instance, target, now)

            document = self._document_of(instance)
            self.projector.finished(document, target)

            assignees = [pending.assigned_to] if pending is not None else []
            return _Outcome(
                instance=instance,
                document=document,
                position=target,
                notices=self.notices.cancelled(assignees, document),
                activity_details={"cancelled_at_step": position.step},
            )

        outcome = self._transact("cancel", work)
        self._after_commit(outcome, actor_id, "workflow_cancel", "cancel")
        return outcome.instance

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_instance(self, instance_id: Identifier) -> WorkflowInstance:
        return self._load_instance(instance_id)

    def get_history(self, instance_id: Identifier) -> WorkflowHistory:
        """Instance summary plus every reached step, ordered by step number."""
        instance = self._load_instance(instance_id)
        return WorkflowHistory(
            instance=summarize_instance(instance),
            steps=tuple(self.ledger.history(instance.id)),
        )

    def my_pending_tasks(self, user_id: int) -> List[PendingTask]:
        return pending_tasks_for(self.db, user_id)

    def list_document_instances(self, document_id: Identifier) -> List[InstanceSummary]:
        document = self.documents.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return instances_for_document(self.db, document.id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transact(self, operation: str, work: Callable[[], _Outcome]) -> _Outcome:
        try:
            return run_in_transaction(self.db, work)
        except WorkflowError as e:
            workflow_rejected_operations_total.labels(operation=operation, error=e.code).inc()
            logger.info(f"Workflow {operation} refused ({e.code}): {e.message}")
            raise

    def _load_instance(self, instance_id: Identifier, for_update: bool = False) -> WorkflowInstance:
        clause = identifier_clause(WorkflowInstance, instance_id)
        instance = None
        if clause is not None:
            query = select(WorkflowInstance).where(clause)
            if for_update:
                # A locking read must not be answered from the identity map
                query = query.with_for_update().execution_options(populate_existing=True)
            instance = self.db.execute(query).scalar_one_or_none()
        if instance is None:
            raise NotFoundError(f"Workflow instance {instance_id} not found")
        return instance

    def _active_instance_id(self, document_id: int) -> Optional[int]:
        query = select(WorkflowInstance.id).where(
            WorkflowInstance.document_id == document_id,
            WorkflowInstance.status == WorkflowStatus.IN_PROGRESS.value,
        )
        return self.db.execute(query).scalars().first()

    def _require_running(self, instance: WorkflowInstance) -> Running:
        position = instance.position
        if not isinstance(position, Running):
            raise InvalidStateError(
                f"Workflow is already {position.status.value}",
                details={"status": position.status.value},
            )
        return position

    def _require_authority(self, owner_id: int, actor_id: int, message: str) -> None:
        if owner_id == actor_id:
            return
        if self.override_policy.can_override_workflow_step(actor_id):
            logger.info(
                "Workflow action taken under administrative override",
                extra={"user_id": actor_id},
            )
            return
        raise ForbiddenError(message)

    def _document_of(self, instance: WorkflowInstance) -> DocumentRef:
        document = self.documents.get_document(instance.document_id)
        if document is None:
            raise NotFoundError(f"Document {instance.document_id} not found")
        return document

    def _move(self, instance: WorkflowInstance, target: Position, at: datetime) -> None:
        """Persist the instance's move to ``target`` if the row still holds its position.

        Raises:
            InvalidStateError: The transition table forbids the move, or the
                instance moved since it was read
        """
        current = instance.position
        try:
            validate_transition(current.status, target.status)
        except StateTransitionError as e:
            raise InvalidStateError(str(e), details={"status": current.status.value}) from e

        values = {"status": target.status.value}
        if isinstance(target, Running):
            values["current_step"] = target.step
        else:
            values["completed_at"] = at

        result = self.db.execute(
            update(WorkflowInstance)
            .where(
                WorkflowInstance.id == instance.id,
                WorkflowInstance.status == WorkflowStatus.IN_PROGRESS.value,
                WorkflowInstance.current_step == current.step,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError(f"Workflow moved past step {current.step} concurrently")
        self.db.refresh(instance)

    def _after_commit(self, outcome: _Outcome, actor_id: int, action: str, transition: str) -> None:
        instance = outcome.instance
        workflow_transitions_total.labels(transition=transition).inc()
        logger.info(
            f"Workflow {instance.id} -> {outcome.position.status.value} ({transition})",
            extra={
                "instance_id": instance.id,
                "document_id": outcome.document.id,
                "user_id": actor_id,
                "step_number": outcome.position.step if isinstance(outcome.position, Running) else None,
            },
        )

        for notice in outcome.notices:
            self._deliver(notice)

        try:
            self.activity.log_activity(
                actor_id=actor_id,
                action=action,
                entity_type="workflow",
                entity_id=instance.id,
                entity_name=outcome.document.title,
                details=outcome.activity_details,
            )
        except Exception:
            side_effect_failures_total.labels(kind="activity_log").inc()
            logger.warning(
                f"Activity '{action}' for workflow {instance.id} was not recorded",
                exc_info=True,
                extra={"instance_id": instance.id},
            )

    def _deliver(self, notice: Notice) -> None:
        try:
            self.notifier.notify(
                user_id=notice.user_id,
                type=notice.type,
                title=notice.title,
                message=notice.message,
                link=notice.link,
            )
        except Exception:
            side_effect_failures_total.labels(kind="notification").inc()
            logger.warning(
                f"Notification '{notice.type}' to user {notice.user_id} was not delivered",
                exc_info=True,
                extra={"user_id": notice.user_id},
            )
