"""Workflow template store: creation, lookup, listing and activation.

Templates are written only here; the engine reads them through
``SqlTemplateStore`` and never mutates them. Deactivating a template stops
new runs from starting and leaves running instances untouched.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from database import run_in_transaction
from domain.workflows import InvalidInputError, NotFoundError, parse_step_definitions
from domain.workflows.ports import ActivityLoggerPort, Identifier
from models.category import Category
from models.user import User
from models.workflow import WorkflowInstance, WorkflowTemplate
from .stores import identifier_clause

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateListing:
    """A template together with how many runs were ever started from it."""
    template: WorkflowTemplate
    usage_count: int


class TemplateService:
    """Template management for privileged users."""

    def __init__(self, db: Session, activity: ActivityLoggerPort):
        self.db = db
        self.activity = activity

    def create_template(
        self,
        name: str,
        steps: Iterable[Any],
        creator_id: int,
        description: Optional[str] = None,
        category_id: Optional[int] = None,
    ) -> WorkflowTemplate:
        """Create a template from an ordered step list.

        Raises:
            InvalidInputError: Empty name or step list, malformed step, unknown
                assignee or category
        """
        def work() -> WorkflowTemplate:
            if not name or not name.strip():
                raise InvalidInputError("Template name is required")
            definitions = parse_step_definitions(steps)

            assignee_ids = {step.assignee_id for step in definitions}
            known = set(
                self.db.execute(
                    select(User.id).where(User.id.in_(assignee_ids), User.is_active.is_(True))
                ).scalars()
            )
            missing = sorted(assignee_ids - known)
            if missing:
                raise InvalidInputError(
                    f"Unknown or inactive assignee(s): {', '.join(str(m) for m in missing)}",
                    details={"assignee_ids": missing},
                )
            if category_id is not None and self.db.get(Category, category_id) is None:
                raise InvalidInputError(f"Category {category_id} does not exist")

            template = WorkflowTemplate(
                name=name.strip(),
                description=description,
                category_id=category_id,
                steps=[step.to_dict() for step in definitions],
                is_active=True,
                created_by=creator_id,
            )
            self.db.add(template)
            self.db.flush()
            return template

        template = run_in_transaction(self.db, work)
        logger.info(
            f"Workflow template '{template.name}' created with {len(template.steps)} step(s)",
            extra={"template_id": template.id, "user_id": creator_id},
        )
        self._record(creator_id, "workflow_create", template, {"step_count": len(template.steps)})
        return template

    def get_template(self, template_id: Identifier) -> WorkflowTemplate:
        """Fetch a template by numeric id or UUID.

        Raises:
            NotFoundError: No such template
        """
        clause = identifier_clause(WorkflowTemplate, template_id)
        template = None
        if clause is not None:
            template = self.db.execute(select(WorkflowTemplate).where(clause)).scalar_one_or_none()
        if template is None:
            raise NotFoundError(f"Workflow template {template_id} not found")
        return template

    def list_templates(
        self,
        category_id: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> List[TemplateListing]:
        """List templates by name, each with its instance count."""
        usage = func.count(WorkflowInstance.id)
        query = (
            select(WorkflowTemplate, usage)
            .outerjoin(WorkflowInstance, WorkflowInstance.template_id == WorkflowTemplate.id)
            .group_by(WorkflowTemplate.id)
            .order_by(WorkflowTemplate.name.asc(), WorkflowTemplate.id.asc())
        )
        if category_id is not None:
            query = query.where(WorkflowTemplate.category_id == category_id)
        if active is not None:
            query = query.where(WorkflowTemplate.is_active.is_(active))

        return [TemplateListing(template=t, usage_count=count) for t, count in self.db.execute(query)]

    def set_template_active(self, template_id: Identifier, active: bool, actor_id: int) -> WorkflowTemplate:
        """Toggle whether new runs may start from a template."""
        def work() -> WorkflowTemplate:
            template = self.get_template(template_id)
            template.is_active = active
            self.db.flush()
            return template

        template = run_in_transaction(self.db, work)
        logger.info(
            f"Workflow template {template.id} {'activated' if active else 'deactivated'}",
            extra={"template_id": template.id, "user_id": actor_id},
        )
        self._record(actor_id, "workflow_toggle", template, {"is_active": active})
        return template

    def _record(self, actor_id: int, action: str, template: WorkflowTemplate, details: dict) -> None:
        try:
            self.activity.log_activity(
                actor_id=actor_id,
                action=action,
                entity_type="workflow_template",
                entity_id=template.id,
                entity_name=template.name,
                details=details,
            )
        except Exception:
            logger.warning(
                f"Activity '{action}' for template {template.id} was not recorded",
                exc_info=True,
            )
