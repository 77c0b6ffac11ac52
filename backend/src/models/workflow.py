"""Workflow SQLAlchemy models

WorkflowTemplate holds the ordered step definitions, WorkflowInstance one
run of a template against a document, WorkflowStep the append-only record
of each step the run has reached.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text

from domain.workflows import (
    StepDefinition,
    WorkflowStatus,
    parse_step_definitions,
    position_of,
)
from .base import Base, PortableJSONB


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowTemplate(Base):
    """Reusable named definition of an ordered approval step sequence.

    ``steps`` is stored as a JSON list of ``{"name", "assignee_id"}``
    objects; use ``step_definitions`` to read it as value objects. The
    engine never mutates templates.
    """
    __tablename__ = "workflow_template"
    __table_args__ = (
        Index("ix_workflow_template_category_id", "category_id"),
        CheckConstraint(
            "jsonb_array_length(steps) >= 1", name="ck_workflow_template_steps_not_empty"
        ).ddl_if(dialect="postgresql"),
        CheckConstraint(
            "json_array_length(steps) >= 1", name="ck_workflow_template_steps_not_empty"
        ).ddl_if(dialect="sqlite"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(Uuid, nullable=False, unique=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(Integer, ForeignKey("category.id", ondelete="SET NULL"), nullable=True)
    steps = Column(PortableJSONB, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Integer, ForeignKey("user.id", ondelete="RESTRICT"), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    category = relationship("Category")
    creator = relationship("User")
    instances = relationship("WorkflowInstance", back_populates="template")

    @property
    def step_definitions(self) -> tuple:
        return parse_step_definitions(self.steps)

    def to_dict(self):
        return {
            "id": self.id,
            "uuid": str(self.uuid),
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "steps": [step.to_dict() for step in self.step_definitions],
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class WorkflowInstance(Base):
    """One execution of a template against a specific document.

    ``step_snapshot`` holds the template steps copied at start; later steps
    are created from it, so template edits never reach a running instance.
    At most one instance per document may be ``in_progress``; the partial
    unique index enforces that at the storage level as well.
    """
    __tablename__ = "workflow_instance"
    __table_args__ = (
        Index("ix_workflow_instance_document_id", "document_id"),
        Index("ix_workflow_instance_template_id", "template_id"),
        Index(
            "uq_workflow_instance_active_document",
            "document_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
        CheckConstraint(
            "status IN ('in_progress', 'approved', 'rejected', 'cancelled')",
            name="ck_workflow_instance_status",
        ),
        CheckConstraint("current_step >= 1", name="ck_workflow_instance_current_step"),
        CheckConstraint(
            "(status = 'in_progress') = (completed_at IS NULL)",
            name="ck_workflow_instance_completed_at",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(Uuid, nullable=False, unique=True, default=uuid.uuid4)
    template_id = Column(Integer, ForeignKey("workflow_template.id", ondelete="RESTRICT"), nullable=False)
    document_id = Column(Integer, ForeignKey("document.id", ondelete="RESTRICT"), nullable=False)
    status = Column(Text, nullable=False, default=WorkflowStatus.IN_PROGRESS.value)
    current_step = Column(Integer, nullable=False, default=1)
    step_snapshot = Column(PortableJSONB, nullable=False)
    started_by = Column(Integer, ForeignKey("user.id", ondelete="RESTRICT"), nullable=False)
    started_at = Column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    completed_at = Column(TIMESTAMP(timezone=True), nullable=True)

    # Relationships
    template = relationship("WorkflowTemplate", back_populates="instances")
    document = relationship("Document")
    initiator = relationship("User")
    steps = relationship(
        "WorkflowStep",
        back_populates="instance",
        order_by="WorkflowStep.step_number",
    )

    @property
    def position(self):
        return position_of(self.status, self.current_step)

    @property
    def snapshot_steps(self) -> tuple:
        return parse_step_definitions(self.step_snapshot)

    @property
    def total_steps(self) -> int:
        return len(self.step_snapshot or [])

    def step_definition(self, step_number: int) -> StepDefinition:
        """Return the snapshotted definition for a 1-based step number."""
        return self.snapshot_steps[step_number - 1]


class WorkflowStep(Base):
    """StepRecord: assignment and eventual completion of one reached step.

    Created lazily when the instance enters the step; completed at most
    once. Name and assignee are copies, not references to the template.
    """
    __tablename__ = "workflow_step"
    __table_args__ = (
        UniqueConstraint("instance_id", "step_number", name="uq_workflow_step_instance_number"),
        Index("ix_workflow_step_assigned_open", "assigned_to", "completed_at"),
        CheckConstraint(
            "action IS NULL OR action IN ('approve', 'reject')",
            name="ck_workflow_step_action",
        ),
        CheckConstraint("step_number >= 1", name="ck_workflow_step_number"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    instance_id = Column(Integer, ForeignKey("workflow_instance.id", ondelete="RESTRICT"), nullable=False)
    step_number = Column(Integer, nullable=False)
    step_name = Column(Text, nullable=False)
    assigned_to = Column(Integer, ForeignKey("user.id", ondelete="RESTRICT"), nullable=False)
    action = Column(Text, nullable=True)
    comment = Column(Text, nullable=True)
    completed_by = Column(Integer, ForeignKey("user.id", ondelete="RESTRICT"), nullable=True)
    completed_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    # Relationships
    instance = relationship("WorkflowInstance", back_populates="steps")
    assignee = relationship("User", foreign_keys=[assigned_to])
    completer = relationship("User", foreign_keys=[completed_by])
