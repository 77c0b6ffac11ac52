"""SQLAlchemy Models for DocFlow"""

from .base import Base
from .user import User
from .category import Category
from .document import Document
from .workflow import WorkflowTemplate, WorkflowInstance, WorkflowStep
from .notification import Notification
from .activity_log import ActivityLog

__all__ = [
    "Base",
    "User",
    "Category",
    "Document",
    "WorkflowTemplate",
    "WorkflowInstance",
    "WorkflowStep",
    "Notification",
    "ActivityLog",
]
