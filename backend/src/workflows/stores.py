"""SQLAlchemy adapters for the workflow engine's collaborator ports.

Both stores accept a numeric id or a UUID (as UUID or string) wherever an
identifier is taken, the way clients address records by either.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from domain.documents import DocumentStatus
from domain.workflows import DocumentRef, TemplateSnapshot
from domain.workflows.ports import DocumentStorePort, Identifier, TemplateStorePort
from models.document import Document
from models.workflow import WorkflowTemplate


def identifier_clause(model, value: Identifier):
    """Build a WHERE clause matching ``model`` by numeric id or UUID.

    Returns None when ``value`` is neither, so callers can treat it as not found.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return model.id == value
    if isinstance(value, UUID):
        return model.uuid == value
    if isinstance(value, str):
        candidate = value.strip()
        if candidate.isdigit():
            return model.id == int(candidate)
        try:
            return model.uuid == UUID(candidate)
        except ValueError:
            return None
    return None


def to_document_ref(document: Document) -> DocumentRef:
    return DocumentRef(
        id=document.id,
        uuid=document.uuid,
        title=document.title,
        status=document.status,
        owner_id=document.owner_id,
        is_archived=bool(document.is_archived),
    )


class SqlDocumentStore(DocumentStorePort):
    """DocumentStorePort over the document table."""

    def __init__(self, db: Session):
        self.db = db

    def load(self, document_id: Identifier, for_update: bool = False) -> Optional[Document]:
        clause = identifier_clause(Document, document_id)
        if clause is None:
            return None
        query = select(Document).where(clause)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalar_one_or_none()

    def get_document(self, document_id: Identifier, for_update: bool = False) -> Optional[DocumentRef]:
        document = self.load(document_id, for_update=for_update)
        return to_document_ref(document) if document else None

    def set_document_status(self, document_id: int, status: DocumentStatus) -> None:
        document = self.db.get(Document, document_id)
        if document is None:
            raise LookupError(f"Document {document_id} vanished during status update")
        document.status = DocumentStatus(status).value
        self.db.flush()


class SqlTemplateStore(TemplateStorePort):
    """TemplateStorePort over the workflow_template table."""

    def __init__(self, db: Session):
        self.db = db

    def load(self, template_id: Identifier) -> Optional[WorkflowTemplate]:
        clause = identifier_clause(WorkflowTemplate, template_id)
        if clause is None:
            return None
        return self.db.execute(select(WorkflowTemplate).where(clause)).scalar_one_or_none()

    def get_template(self, template_id: Identifier) -> Optional[TemplateSnapshot]:
        template = self.load(template_id)
        if template is None:
            return None
        return TemplateSnapshot(
            id=template.id,
            uuid=template.uuid,
            name=template.name,
            steps=template.step_definitions,
            is_active=bool(template.is_active),
        )
