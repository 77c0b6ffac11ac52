"""User roles and the workflow authorization policy for DocFlow.

Roles (stored as TEXT on the user row):
- ADMIN: Everything, including acting on any workflow step or run
- MANAGER: Template management
- USER: Owns documents, starts workflows, completes assigned steps

The admin override (acting on a step assigned to someone else, cancelling
a run one did not start) is decided by ``RoleOverridePolicy`` from the
configured WORKFLOW_ADMIN_ROLES, not by comparing role names in the engine.
"""

from typing import Iterable, Optional

from sqlalchemy.orm import Session

from domain.workflows.ports import OverridePolicy
from models.user import User


def role_in(role: Optional[str], allowed: Iterable[str]) -> bool:
    return role is not None and role.upper() in {r.upper() for r in allowed}


class RoleOverridePolicy(OverridePolicy):
    """Grants the workflow override to active users holding one of ``admin_roles``."""

    def __init__(self, db: Session, admin_roles: Iterable[str]):
        self.db = db
        self.admin_roles = tuple(admin_roles)

    def can_override_workflow_step(self, actor_id: int) -> bool:
        user = self.db.get(User, actor_id)
        if user is None or not user.is_active:
            return False
        return role_in(user.role, self.admin_roles)

