"""
Pytest configuration and fixtures for HomeworkHelper backend tests.

Provides:
- Test database setup/teardown
- FastAPI test client
- Fake Firebase tokens for student, other student and admin identities
- Question fixtures
- OpenAI mock for answer generation tests
"""

import pytest
import os
from typing import Any, Dict, Generator, List
from datetime import datetime, timedelta
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///./test_homework_helper.db"
os.environ["OPENAI_API_KEY"] = "test-key-not-real"
os.environ["FIREBASE_PROJECT_ID"] = "homework-helper-test"
os.environ["AI_MAX_RETRIES"] = "0"
os.environ.pop("SENTRY_DSN", None)

from homework_helper.main import app, settings as app_settings
from homework_helper.database import Base, get_db
from homework_helper.dependencies import auth as auth_module
from homework_helper.errors import UnauthenticatedError
from homework_helper.models.models import Question
from homework_helper.utils import openai_client as openai_module

from tests.helpers import ADMIN_ID, OTHER_STUDENT_ID, STUDENT_ID, make_question
from tests.mocks import MockOpenAIClient


# Test database setup
TEST_DATABASE_URL = "sqlite:///./test_homework_helper.db"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False}
)


# pysqlite defers BEGIN and ignores SAVEPOINT semantics on its own; hand
# transaction control to SQLAlchemy so the per-test rollback undoes commits
@event.listens_for(test_engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(test_engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database tables once per test session"""
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()
    if os.path.exists("./test_homework_helper.db"):
        os.remove("./test_homework_helper.db")


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Provide a database session for each test, rolled back afterwards.

    Commits and rollbacks made by the code under test act on a savepoint
    inside the outer test transaction.
    """
    connection = test_engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Provide FastAPI test client with database override"""
    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close - let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# =========================================================================
# Identity Fixtures
# =========================================================================

FAKE_TOKENS: Dict[str, Dict[str, Any]] = {
    "student-token": {"sub": STUDENT_ID, "email": "student@example.com"},
    "other-student-token": {"sub": OTHER_STUDENT_ID, "email": "other@example.com"},
    "admin-token": {"sub": ADMIN_ID, "email": "admin@example.com", "admin": True},
}


@pytest.fixture(autouse=True)
def fake_firebase(monkeypatch):
    """Replace Firebase signature checks with a fixed token table"""
    def verify(token: str, settings) -> Dict[str, Any]:
        claims = FAKE_TOKENS.get(token)
        if claims is None:
            raise UnauthenticatedError("Invalid or expired token")
        return dict(claims)

    monkeypatch.setattr(auth_module, "verify_firebase_token", verify)
    yield verify


@pytest.fixture
def student_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer student-token"}


@pytest.fixture
def other_student_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer other-student-token"}


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer admin-token"}


@pytest.fixture
def open_mode(monkeypatch):
    """Run the app as if FIREBASE_PROJECT_ID were not configured"""
    monkeypatch.setattr(app_settings, "firebase_project_id", None)
    yield


# =========================================================================
# Question Fixtures
# =========================================================================

@pytest.fixture
def test_question(db: Session) -> Question:
    return make_question(db, id="test-question-123")


@pytest.fixture
def seed_question(db: Session) -> Question:
    """A seed row: no asker, stored upvotes, empty ledger"""
    return make_question(
        db,
        id="seed-question-1",
        text="What are Calculus Derivatives?",
        subject="Math",
        topic="Calculus Derivatives",
        answer="A derivative measures the rate of change of a function.",
        ai_response="A derivative measures the rate of change of a function.",
        asked_by=None,
        ask_count=250,
        upvotes=75,
        accuracy_rating=78,
    )


@pytest.fixture
def dashboard_questions(db: Session) -> List[Question]:
    """A mix of recent and old questions across subjects for aggregation tests"""
    now = datetime.utcnow()
    old = now - timedelta(days=60)
    rows = [
        dict(text="How do I take the derivative of x^2?", subject="Math", topic="Calculus Derivatives",
             asked_by="s1", ask_count=4, accuracy_rating=80, asked_at=now, created_at=now),
        dict(text="Derivative of sin(x)?", subject="Math", topic="calculus derivatives",
             asked_by="s2", ask_count=2, accuracy_rating=90, asked_at=now, created_at=now),
        dict(text="What is a derivative in finance?", subject="History", topic="Derivatives markets",
             asked_by="s2", ask_count=1, asked_at=now, created_at=now),
        dict(text="How do I solve quadratic equations?", subject="Math", topic="Algebra",
             asked_by="s3", ask_count=3, asked_at=now, created_at=now),
        dict(text="Old derivative question", subject="Math", topic="Calculus Derivatives",
             asked_by="s4", ask_count=9, accuracy_rating=10, asked_at=old, created_at=old),
        dict(text="What is a verb?", subject="English", topic="Grammar",
             asked_by=None, ask_count=120, upvotes=35, asked_at=now, created_at=now),
        dict(text="Unanswered question", subject="Science", topic="Chemistry",
             asked_by="s5", answer=None, ai_response=None, asked_at=now, created_at=now),
    ]
    return [make_question(db, **row) for row in rows]


# =========================================================================
# Mock Fixtures
# =========================================================================

@pytest.fixture
def mock_openai(monkeypatch) -> Generator[MockOpenAIClient, None, None]:
    """Mock OpenAI API calls for testing without API costs"""
    mock_client = MockOpenAIClient()

    # Every AnswerService builds its client through the factory on first use
    monkeypatch.setattr(openai_module, "create_openai_client", lambda *args, **kwargs: mock_client)
    yield mock_client
