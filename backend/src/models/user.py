"""User SQLAlchemy model"""

import re
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, Text, Uuid
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import validates
from sqlalchemy.sql import func

from .base import Base


class User(Base):
    """User model representing authenticated DocFlow users.

    Users own documents, start workflows, and are bound to template steps
    as assignees. The role drives template management rights and the
    workflow override policy.
    """
    __tablename__ = "user"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(Uuid, nullable=False, unique=True, default=uuid.uuid4)
    email = Column(Text, nullable=False, unique=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    role = Column(Text, nullable=False, server_default="USER")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "role IN ('ADMIN', 'MANAGER', 'USER')",
            name='ck_user_role'
        ),
    )

    @validates('email')
    def validate_email(self, key, value):
        """Basic email format validation"""
        if not re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', value):
            raise ValueError("Invalid email format")
        return value.lower()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self):
        """Convert user to dictionary representation"""
        return {
            "id": self.id,
            "uuid": str(self.uuid),
            "email": self.email,
            "name": self.full_name,
            "role": self.role,
            "is_active": self.is_active,
        }
