"""Activity logging service.

Provides a centralized interface for writing append-only activity entries.
Workflow events logged here:
- workflow_create, workflow_toggle
- workflow_start, workflow_approve, workflow_reject, workflow_cancel
- document_resubmit

Activity logging is best-effort: a failed write is rolled back and logged,
never propagated to the operation that triggered it.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from domain.workflows.ports import ActivityLoggerPort
from models.activity_log import ActivityLog
from observability.metrics import side_effect_failures_total

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    action: str,
    entity_type: str,
    actor_id: Optional[int] = None,
    entity_id: Optional[int] = None,
    entity_name: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> ActivityLog:
    """Create an activity log entry in the current transaction.

    All parameters are stored as-is. This function does not validate action
    names or entity types.

    Args:
        db: Database session
        action: Event action (e.g., "workflow_start")
        entity_type: Type of entity affected (e.g., "workflow", "document")
        actor_id: User who performed the action (None for system events)
        entity_id: ID of affected entity
        entity_name: Display name of the affected entity
        details: Additional context as JSON
        ip_address: Client IP address
        user_agent: Client User-Agent header

    Returns:
        ActivityLog: The created entry (flushed, not committed)
    """
    entry = ActivityLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    db.add(entry)
    db.flush()  # Get ID without committing transaction

    return entry


class DatabaseActivityLogger(ActivityLoggerPort):
    """ActivityLoggerPort adapter writing to the activity_log table.

    Each entry is committed on its own, after the transition it describes
    has been committed, so a failure here cannot undo the transition.
    """

    def __init__(self, db: Session, ip_address: Optional[str] = None, user_agent: Optional[str] = None):
        self.db = db
        self.ip_address = ip_address
        self.user_agent = user_agent

    def log_activity(
        self,
        actor_id: Optional[int],
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        entity_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            log_activity(
                self.db,
                action=action,
                entity_type=entity_type,
                actor_id=actor_id,
                entity_id=entity_id,
                entity_name=entity_name,
                details=details,
                ip_address=self.ip_address,
                user_agent=self.user_agent,
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            side_effect_failures_total.labels(kind="activity_log").inc()
            logger.error(
                f"Failed to record activity '{action}' on {entity_type} {entity_id}",
                exc_info=True,
                extra={"user_id": actor_id},
            )
