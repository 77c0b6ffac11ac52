"""Category SQLAlchemy model"""

from sqlalchemy import Column, Integer, Text

from .base import Base


class Category(Base):
    """Document category. Templates may be associated with one."""
    __tablename__ = "category"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True)
    description = Column(Text, nullable=True)
