"""Document SQLAlchemy model

Document is the record routed through approval workflows. Only the fields
the workflow engine reads or writes are mapped here: identity, title,
owner and review status.
"""

import enum
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from domain.documents import DocumentStatus
from .base import Base


class Document(Base):
    """Document model.

    ``status`` mirrors the outcome of the most recent workflow instance
    (draft/pending/approved/rejected) and is written by the workflow
    engine's status projector.
    """
    __tablename__ = "document"
    __table_args__ = (
        Index("ix_document_owner_id", "owner_id"),
        Index("ix_document_status", "status"),
        CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'rejected', 'archived')",
            name="ck_document_status",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(Uuid, nullable=False, unique=True, default=uuid.uuid4)
    title = Column(Text, nullable=False)
    file_type = Column(Text, nullable=True)
    owner_id = Column(Integer, ForeignKey("user.id", ondelete="RESTRICT"), nullable=False)
    category_id = Column(Integer, ForeignKey("category.id", ondelete="SET NULL"), nullable=True)
    status = Column(Text, nullable=False, default=DocumentStatus.DRAFT.value)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    owner = relationship("User")
    category = relationship("Category")

    def to_dict(self):
        """Convert document to dictionary representation"""
        return {
            "id": self.id,
            "uuid": str(self.uuid),
            "title": self.title,
            "file_type": self.file_type,
            "owner_id": self.owner_id,
            "category_id": self.category_id,
            "status": self.status.value if isinstance(self.status, enum.Enum) else self.status,
            "is_archived": self.is_archived,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
