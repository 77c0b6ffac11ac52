"""Notification persistence and delivery.

``DatabaseNotifier`` is the NotifierPort adapter used by the workflow engine.
Delivery is best-effort: each notification is committed on its own and a
storage failure is rolled back, logged and counted instead of raised.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from domain.workflows import NotFoundError
from domain.workflows.ports import NotifierPort
from models.notification import Notification
from observability.metrics import side_effect_failures_total

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    user_id: int,
    type: str,
    title: str,
    message: str,
    link: Optional[str] = None,
) -> Notification:
    """Add a notification to the current transaction (flushed, not committed)."""
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        link=link,
        is_read=False,
    )
    db.add(notification)
    db.flush()
    return notification


class DatabaseNotifier(NotifierPort):
    """NotifierPort adapter writing to the notification table."""

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: int,
        type: str,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> None:
        try:
            create_notification(self.db, user_id, type, title, message, link)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            side_effect_failures_total.labels(kind="notification").inc()
            logger.error(
                f"Failed to store '{type}' notification",
                exc_info=True,
                extra={"user_id": user_id},
            )


def list_notifications(
    db: Session,
    user_id: int,
    unread_only: bool = False,
    limit: int = 50,
) -> List[Notification]:
    """Notifications of one user, newest first."""
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    return list(db.execute(query).scalars())


def mark_read(db: Session, notification_id: int, user_id: int) -> Notification:
    """Mark one of the user's notifications as read and commit.

    Raises:
        NotFoundError: No such notification for this user
    """
    notification = db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    ).scalar_one_or_none()
    if notification is None:
        raise NotFoundError(f"Notification {notification_id} not found")

    if not notification.is_read:
        notification.is_read = True
        db.commit()
        db.refresh(notification)
    return notification
