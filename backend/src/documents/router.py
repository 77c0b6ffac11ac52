"""Document review endpoints"""

from typing import Union
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user
from database import get_db
from dependencies import get_activity_logger, get_override_policy
from domain.workflows.ports import ActivityLoggerPort, OverridePolicy
from models.user import User
from .service import resubmit_document

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("/{document_id}/resubmit")
def resubmit(
    document_id: Union[int, UUID],
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    override_policy: OverridePolicy = Depends(get_override_policy),
    activity: ActivityLoggerPort = Depends(get_activity_logger),
):
    """Return a rejected document to draft so it can be edited and resubmitted.

    Raises:
        NotFoundError 404: Document does not exist
        ForbiddenError 403: Caller does not own the document
        InvalidStateError 409: Document is not rejected
    """
    document = resubmit_document(db, document_id, current_user.id, override_policy, activity)
    return {"message": "Document resubmitted", "document": document.to_dict()}
