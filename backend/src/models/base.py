"""Declarative base and shared column types for DocFlow models"""

from sqlalchemy import JSON, MetaData, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

# Unnamed unique constraints and indexes get the names the migrations use,
# e.g. uq_user_email. Check constraints are always named explicitly.
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
}


class PortableJSONB(TypeDecorator):
    """JSONB on PostgreSQL, plain JSON elsewhere (SQLite test databases).

    Step lists live in these columns; the ``json_array_length`` checks on
    them are written per dialect.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))
