"""Documents domain module - document review status management"""

from .document_status import (
    DocumentStatus,
    can_transition,
    get_allowed_transitions,
    ALLOWED_TRANSITIONS,
)

__all__ = [
    "DocumentStatus",
    "can_transition",
    "get_allowed_transitions",
    "ALLOWED_TRANSITIONS",
]
