"""Projection of workflow transitions onto documents and users.

``DocumentStatusProjector`` writes the document's review status inside the
same transaction as the transition. ``WorkflowNotices`` only builds the
notification messages; the engine delivers them after commit.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from domain.documents import DocumentStatus, can_transition
from domain.workflows import DocumentRef, Position, WorkflowStatus, is_terminal
from domain.workflows.ports import DocumentStorePort

logger = logging.getLogger(__name__)


# Document status written when an instance enters each status
_DOCUMENT_STATUS_FOR = {
    WorkflowStatus.IN_PROGRESS: DocumentStatus.PENDING,
    WorkflowStatus.APPROVED: DocumentStatus.APPROVED,
    WorkflowStatus.REJECTED: DocumentStatus.REJECTED,
    WorkflowStatus.CANCELLED: DocumentStatus.DRAFT,
}


def document_status_for(status: WorkflowStatus) -> DocumentStatus:
    return _DOCUMENT_STATUS_FOR[WorkflowStatus(status)]


class DocumentStatusProjector:
    """Keeps document.status in step with the instance that governs it."""

    def __init__(self, documents: DocumentStorePort):
        self.documents = documents

    def started(self, document: DocumentRef) -> DocumentStatus:
        return self._project(document, WorkflowStatus.IN_PROGRESS)

    def finished(self, document: DocumentRef, position: Position) -> DocumentStatus:
        """Project a terminal position. Advancing between steps writes nothing."""
        if not is_terminal(position.status):
            raise ValueError("Only terminal positions change the document status")
        return self._project(document, position.status)

    def _project(self, document: DocumentRef, status: WorkflowStatus) -> DocumentStatus:
        target = document_status_for(status)
        try:
            current = DocumentStatus(document.status)
        except ValueError:
            current = None
        if current is None or not can_transition(current, target):
            logger.warning(
                f"Document {document.id} moves from unexpected status '{document.status}' to '{target.value}'",
                extra={"document_id": document.id},
            )
        self.documents.set_document_status(document.id, target)
        return target


@dataclass(frozen=True)
class Notice:
    """A notification waiting to be delivered after commit."""
    user_id: int
    type: str
    title: str
    message: str
    link: Optional[str] = None


def document_link(document: DocumentRef) -> str:
    return f"/documents/{document.uuid}"


class WorkflowNotices:
    """Builds the user notifications for each transition."""

    TASK = "workflow_task"
    REJECTED = "workflow_rejected"
    COMPLETED = "workflow_completed"
    CANCELLED = "workflow_cancelled"

    def task_assigned(self, assignee_id: int, document: DocumentRef, step_name: str) -> Notice:
        return Notice(
            user_id=assignee_id,
            type=self.TASK,
            title="New approval task",
            message=f'You have a new approval task "{step_name}" for the document "{document.title}"',
            link=document_link(document),
        )

    def rejected(
        self,
        initiator_id: int,
        document: DocumentRef,
        step_name: str,
        comment: Optional[str],
    ) -> Notice:
        message = f'The document "{document.title}" was rejected at step "{step_name}"'
        if comment:
            message += f": {comment}"
        return Notice(
            user_id=initiator_id,
            type=self.REJECTED,
            title="Document rejected",
            message=message,
            link=document_link(document),
        )

    def completed(self, initiator_id: int, document: DocumentRef) -> Notice:
        return Notice(
            user_id=initiator_id,
            type=self.COMPLETED,
            title="Document approved",
            message=f'The document "{document.title}" has been approved',
            link=document_link(document),
        )

    def cancelled(self, assignee_ids: List[int], document: DocumentRef) -> List[Notice]:
        return [
            Notice(
                user_id=assignee_id,
                type=self.CANCELLED,
                title="Approval task cancelled",
                message=f'The approval workflow for the document "{document.title}" was cancelled',
                link=document_link(document),
            )
            for assignee_id in assignee_ids
        ]
