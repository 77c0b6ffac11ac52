"""Workflow engine ports (interfaces) following Hexagonal Architecture.

The engine owns workflow instances and step records. Everything else it
touches (documents, templates, notification delivery, activity logging,
the admin override policy) is reached through these narrow interfaces.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union
from uuid import UUID

from domain.documents import DocumentStatus
from .models import DocumentRef, TemplateSnapshot

Identifier = Union[int, str, UUID]


class DocumentStorePort(ABC):
    """Read/write access to the document record."""

    @abstractmethod
    def get_document(self, document_id: Identifier, for_update: bool = False) -> Optional[DocumentRef]:
        """Load a document by numeric id or UUID.

        Args:
            document_id: Numeric id or UUID
            for_update: Take a row lock for the rest of the transaction

        Returns:
            DocumentRef or None if absent
        """
        pass

    @abstractmethod
    def set_document_status(self, document_id: int, status: DocumentStatus) -> None:
        """Write the document's review status inside the current transaction."""
        pass


class TemplateStorePort(ABC):
    """Read-only access to workflow templates."""

    @abstractmethod
    def get_template(self, template_id: Identifier) -> Optional[TemplateSnapshot]:
        """Load a template by numeric id or UUID, or None if absent."""
        pass


class NotifierPort(ABC):
    """Best-effort user notification delivery."""

    @abstractmethod
    def notify(
        self,
        user_id: int,
        type: str,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> None:
        pass


class ActivityLoggerPort(ABC):
    """Best-effort activity trail."""

    @abstractmethod
    def log_activity(
        self,
        actor_id: Optional[int],
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        entity_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        pass


class OverridePolicy(ABC):
    """Decides whether an actor may act on steps and runs that are not theirs."""

    @abstractmethod
    def can_override_workflow_step(self, actor_id: int) -> bool:
        pass
