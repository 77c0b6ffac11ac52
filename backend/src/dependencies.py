"""Global FastAPI dependencies wiring the workflow engine's collaborators.

This module provides:
- get_override_policy: Admin override decided by WORKFLOW_ADMIN_ROLES
- get_activity_logger: Activity trail stamped with the caller's IP and agent
- get_notifier: Database-backed notification delivery
- get_workflow_engine / get_template_service: Per-request service objects

Side-effect adapters get their own session so that a failed notification or
activity write can never disturb the transition's unit of work.
"""

from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from audit.service import DatabaseActivityLogger
from auth.roles import RoleOverridePolicy
from config import get_settings
from database import SessionLocal, get_db
from domain.workflows.ports import ActivityLoggerPort, NotifierPort, OverridePolicy
from notifications.service import DatabaseNotifier
from workflows.engine import WorkflowEngine
from workflows.stores import SqlDocumentStore, SqlTemplateStore
from workflows.templates import TemplateService


def get_side_effect_db() -> Generator[Session, None, None]:
    """Separate session for best-effort writes made after a commit."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_override_policy(db: Session = Depends(get_db)) -> OverridePolicy:
    return RoleOverridePolicy(db, get_settings().WORKFLOW_ADMIN_ROLES)


def get_activity_logger(
    request: Request,
    db: Session = Depends(get_side_effect_db),
) -> ActivityLoggerPort:
    return DatabaseActivityLogger(
        db,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_notifier(db: Session = Depends(get_side_effect_db)) -> NotifierPort:
    return DatabaseNotifier(db)


def get_workflow_engine(
    db: Session = Depends(get_db),
    notifier: NotifierPort = Depends(get_notifier),
    activity: ActivityLoggerPort = Depends(get_activity_logger),
    override_policy: OverridePolicy = Depends(get_override_policy),
) -> WorkflowEngine:
    """Build the engine for one request.

    Example:
        @router.post("/start")
        def start(engine: WorkflowEngine = Depends(get_workflow_engine)):
            ...
    """
    return WorkflowEngine(
        db=db,
        documents=SqlDocumentStore(db),
        templates=SqlTemplateStore(db),
        notifier=notifier,
        activity=activity,
        override_policy=override_policy,
    )


def get_template_service(
    db: Session = Depends(get_db),
    activity: ActivityLoggerPort = Depends(get_activity_logger),
) -> TemplateService:
    return TemplateService(db, activity)
