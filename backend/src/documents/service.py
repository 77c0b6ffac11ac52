"""Document resubmission.

After a rejection the owner resubmits the document: its status returns to
``draft`` so it can be edited and sent through a new workflow. No workflow
instance is touched; the rejected run stays in the history as it is.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from database import run_in_transaction
from domain.documents import DocumentStatus, can_transition
from domain.workflows import ForbiddenError, InvalidStateError, NotFoundError
from domain.workflows.ports import ActivityLoggerPort, Identifier, OverridePolicy
from models.document import Document
from workflows.stores import SqlDocumentStore

logger = logging.getLogger(__name__)


def resubmit_document(
    db: Session,
    document_id: Identifier,
    actor_id: int,
    override_policy: OverridePolicy,
    activity: Optional[ActivityLoggerPort] = None,
) -> Document:
    """Move a rejected document back to draft.

    Args:
        db: Database session
        document_id: Numeric id or UUID of the document
        actor_id: User asking for the resubmission
        override_policy: Lets administrators resubmit documents they do not own
        activity: Activity trail, written after commit

    Returns:
        The updated document

    Raises:
        NotFoundError: Document does not exist
        ForbiddenError: Actor neither owns the document nor holds the override
        InvalidStateError: Document is not rejected
    """
    store = SqlDocumentStore(db)

    def work() -> Document:
        document = store.load(document_id, for_update=True)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        if document.owner_id != actor_id and not override_policy.can_override_workflow_step(actor_id):
            raise ForbiddenError("Only the document owner can resubmit it")

        current = DocumentStatus(document.status)
        if current is not DocumentStatus.REJECTED or not can_transition(current, DocumentStatus.DRAFT):
            raise InvalidStateError(
                f"Only rejected documents can be resubmitted (status is '{current.value}')",
                details={"status": current.value},
            )

        store.set_document_status(document.id, DocumentStatus.DRAFT)
        return document

    document = run_in_transaction(db, work)
    logger.info(
        f"Document {document.id} resubmitted as draft",
        extra={"document_id": document.id, "user_id": actor_id},
    )

    if activity is not None:
        try:
            activity.log_activity(
                actor_id=actor_id,
                action="document_resubmit",
                entity_type="document",
                entity_id=document.id,
                entity_name=document.title,
                details={"status": DocumentStatus.DRAFT.value},
            )
        except Exception:
            logger.warning(
                f"Activity 'document_resubmit' for document {document.id} was not recorded",
                exc_info=True,
            )
    return document
