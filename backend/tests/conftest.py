import os

# Settings are read at import time: point the app at a throwaway database and
# keep the maintenance loops off before anything from hockey is imported.
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["BACKGROUND_TASKS_ENABLED"] = "false"
os.environ["PUSH_ENABLED"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from hockey.database import get_session  # noqa: E402
from hockey.main import app  # noqa: E402
from hockey.services.notification_service import PushNotificationService, set_push_service  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables created per test and dropped afterwards
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(autouse=True)
def push_service():
    """Fresh dry-run push service per test; notifications are still recorded."""
    service = PushNotificationService()
    set_push_service(service)
    yield service
    set_push_service(None)


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on freshly created tables"""
    # Register every table BEFORE create_all
    import hockey.models  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="engine")
def engine_fixture(session: Session):
    """The shared test engine, for jobs that open their own sessions"""
    return test_engine


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
