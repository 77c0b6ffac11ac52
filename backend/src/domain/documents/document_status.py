"""DocumentStatus state machine for the document review lifecycle.

State flow:
    DRAFT → PENDING → APPROVED | REJECTED
    PENDING → DRAFT (workflow cancelled)
    REJECTED → DRAFT (owner resubmits for editing)

ARCHIVED is orthogonal and set by the archiving feature, never by the
workflow engine.
"""

from enum import Enum
from typing import Dict, List


class DocumentStatus(str, Enum):
    """Document review status enum"""
    DRAFT = "draft"          # Editable, no review running
    PENDING = "pending"      # A workflow instance is in progress
    APPROVED = "approved"    # Last workflow approved it
    REJECTED = "rejected"    # Last workflow rejected it
    ARCHIVED = "archived"    # Archived elsewhere


# State transition rules for transitions driven by the workflow engine
ALLOWED_TRANSITIONS: Dict[DocumentStatus, List[DocumentStatus]] = {
    DocumentStatus.DRAFT: [DocumentStatus.PENDING],
    DocumentStatus.PENDING: [
        DocumentStatus.APPROVED,
        DocumentStatus.REJECTED,
        DocumentStatus.DRAFT,
    ],
    DocumentStatus.APPROVED: [DocumentStatus.PENDING],  # A new review may be started
    DocumentStatus.REJECTED: [DocumentStatus.DRAFT, DocumentStatus.PENDING],
    DocumentStatus.ARCHIVED: [],
}


def can_transition(from_status: DocumentStatus, to_status: DocumentStatus) -> bool:
    """Validate if status transition is allowed

    Args:
        from_status: Current document status
        to_status: Target document status

    Returns:
        True if transition is allowed, False otherwise

    Examples:
        >>> can_transition(DocumentStatus.DRAFT, DocumentStatus.PENDING)
        True
        >>> can_transition(DocumentStatus.ARCHIVED, DocumentStatus.PENDING)
        False
    """
    return to_status in ALLOWED_TRANSITIONS.get(from_status, [])


def get_allowed_transitions(from_status: DocumentStatus) -> List[DocumentStatus]:
    """Get list of allowed next statuses"""
    return ALLOWED_TRANSITIONS.get(from_status, [])
