"""Pytest fixtures for workflow engine testing.

Provides reusable test fixtures for:
- A fresh SQLite database schema per test
- Users playing the workflow roles (initiator, two approvers, outsider, admin)
- A document and a two-step template
- A WorkflowEngine wired with recording collaborators
- Authenticated test clients with JWT tokens

Usage:
    def test_start(engine, two_step_template, document, initiator):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)
        assert instance.current_step == 1
"""

import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional

# Set environment variables BEFORE any imports to ensure they take effect
# A file database lets tests open several connections to the same data
_test_db_path = Path(tempfile.gettempdir()) / f"docflow_test_{os.getpid()}.db"
if "DATABASE_URL" not in os.environ:
    os.environ["DATABASE_URL"] = f"sqlite:///{_test_db_path}"

if "JWT_SECRET" not in os.environ:
    os.environ["JWT_SECRET"] = "test-jwt-secret-key-256-bits-minimum-length-required-for-security"

os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("DB_LOCK_RETRIES", "0")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from database import SessionLocal, engine as test_engine, get_db as database_get_db
from models import Base, Document, User, WorkflowTemplate
from auth.jwt import create_access_token
from auth.roles import RoleOverridePolicy
from domain.workflows.ports import ActivityLoggerPort, NotifierPort
from workflows.engine import WorkflowEngine
from workflows.stores import SqlDocumentStore, SqlTemplateStore

TestingSessionLocal = SessionLocal


class RecordingNotifier(NotifierPort):
    """Keeps every notification in memory."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def notify(self, user_id, type, title, message, link=None):
        self.sent.append(
            {"user_id": user_id, "type": type, "title": title, "message": message, "link": link}
        )

    def types_for(self, user_id: int) -> List[str]:
        return [n["type"] for n in self.sent if n["user_id"] == user_id]


class RecordingActivityLogger(ActivityLoggerPort):
    """Keeps every activity entry in memory."""

    def __init__(self):
        self.entries: List[Dict[str, Any]] = []

    def log_activity(self, actor_id, action, entity_type, entity_id, entity_name=None, details=None):
        self.entries.append(
            {
                "actor_id": actor_id,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "entity_name": entity_name,
                "details": details,
            }
        )

    @property
    def actions(self) -> List[str]:
        return [e["action"] for e in self.entries]


class FailingNotifier(NotifierPort):
    def notify(self, user_id, type, title, message, link=None):
        raise ConnectionError("notification backend unavailable")


class FailingActivityLogger(ActivityLoggerPort):
    def log_activity(self, actor_id, action, entity_type, entity_id, entity_name=None, details=None):
        raise ConnectionError("activity backend unavailable")


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    Each test gets a clean database state.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


def _create_user(db_session: Session, email: str, first_name: str, last_name: str, role: str = "USER") -> User:
    user = User(email=email, first_name=first_name, last_name=last_name, role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def admin_user(db_session: Session) -> User:
    """Create an ADMIN user (holds the workflow override)."""
    return _create_user(db_session, "admin@test.com", "Ada", "Admin", role="ADMIN")


@pytest.fixture(scope="function")
def manager_user(db_session: Session) -> User:
    """Create a MANAGER user (template editor, no override)."""
    return _create_user(db_session, "manager@test.com", "Max", "Manager", role="MANAGER")


@pytest.fixture(scope="function")
def initiator(db_session: Session) -> User:
    """User C: owns the document and starts workflows."""
    return _create_user(db_session, "carol@test.com", "Carol", "Owner")


@pytest.fixture(scope="function")
def reviewer(db_session: Session) -> User:
    """User A: assignee of the Review step."""
    return _create_user(db_session, "alice@test.com", "Alice", "Reviewer")


@pytest.fixture(scope="function")
def signer(db_session: Session) -> User:
    """User B: assignee of the Final Sign-off step."""
    return _create_user(db_session, "bob@test.com", "Bob", "Signer")


@pytest.fixture(scope="function")
def outsider(db_session: Session) -> User:
    """User D: neither assignee nor admin."""
    return _create_user(db_session, "dave@test.com", "Dave", "Outsider")


@pytest.fixture(scope="function")
def document(db_session: Session, initiator: User) -> Document:
    doc = Document(title="Supplier contract", file_type="pdf", owner_id=initiator.id)
    db_session.add(doc)
    db_session.commit()
    db_session.refresh(doc)
    return doc


@pytest.fixture(scope="function")
def make_template(db_session: Session, admin_user: User) -> Callable[..., WorkflowTemplate]:
    """Factory creating a template from ``(step name, user)`` pairs."""
    def _make(name: str, steps, is_active: bool = True) -> WorkflowTemplate:
        template = WorkflowTemplate(
            name=name,
            steps=[{"name": step_name, "assignee_id": user.id} for step_name, user in steps],
            is_active=is_active,
            created_by=admin_user.id,
        )
        db_session.add(template)
        db_session.commit()
        db_session.refresh(template)
        return template

    return _make


@pytest.fixture(scope="function")
def two_step_template(make_template, reviewer: User, signer: User) -> WorkflowTemplate:
    return make_template("2-step approval", [("Review", reviewer), ("Final Sign-off", signer)])


@pytest.fixture(scope="function")
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(scope="function")
def activity() -> RecordingActivityLogger:
    return RecordingActivityLogger()


def build_engine_for(
    db_session: Session,
    notifier: Optional[NotifierPort] = None,
    activity: Optional[ActivityLoggerPort] = None,
    override_roles=("ADMIN",),
) -> WorkflowEngine:
    return WorkflowEngine(
        db=db_session,
        documents=SqlDocumentStore(db_session),
        templates=SqlTemplateStore(db_session),
        notifier=notifier or RecordingNotifier(),
        activity=activity or RecordingActivityLogger(),
        override_policy=RoleOverridePolicy(db_session, override_roles),
    )


@pytest.fixture(scope="function")
def engine_factory() -> Callable[..., WorkflowEngine]:
    """Build extra engines (other sessions, failing collaborators, other policies)."""
    return build_engine_for


@pytest.fixture(scope="function")
def engine(db_session: Session, notifier: RecordingNotifier, activity: RecordingActivityLogger) -> WorkflowEngine:
    """WorkflowEngine with recording notifier and activity logger."""
    return build_engine_for(db_session, notifier, activity)


@pytest.fixture(scope="function")
def client_for(db_session: Session) -> Generator[Callable[[User], TestClient], None, None]:
    """Factory returning a TestClient authenticated as the given user."""
    from main import app
    from dependencies import get_side_effect_db

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[database_get_db] = override_get_db
    app.dependency_overrides[get_side_effect_db] = override_get_db

    def _client(user: User) -> TestClient:
        token = create_access_token(user_id=user.id, role=user.role, email=user.email)
        client = TestClient(app)
        client.headers = {"Authorization": f"Bearer {token}"}
        return client

    yield _client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Unauthenticated test client."""
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[database_get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def other_session(db_session: Session) -> Generator[Session, None, None]:
    """A second session on the same database, standing in for a concurrent request."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()


@pytest.fixture(scope="function")
def failing_activity_logger() -> FailingActivityLogger:
    return FailingActivityLogger()
