import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from timetrack.db import Base, get_db
from timetrack.main import app
from timetrack.models import User
from timetrack.notifier import get_notifier
from timetrack.security import hash_password

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class RecordingNotifier:
    """Keeps every published event for assertions."""

    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []

    def publish(self, room, event, payload):
        self.events.append((room, event, payload))

    def names(self) -> list[str]:
        return [event for _, event, _ in self.events]


@pytest.fixture
def db_session():
    """Fresh schema per test on a shared in-memory SQLite connection."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(db_session, notifier):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    def _register(email="alice@example.com", password="secret123", **extra) -> dict:
        payload = {"name": "Alice", "email": email, "password": password, **extra}
        response = client.post("/auth/register", json=payload)
        assert response.status_code == 201, response.text
        return response.json()

    return _register


@pytest.fixture
def auth_headers(register):
    body = register(defaultHourlyRate=20)
    return {"Authorization": f"Bearer {body['accessToken']}"}


@pytest.fixture
def other_headers(register):
    body = register(email="bob@example.com")
    return {"Authorization": f"Bearer {body['accessToken']}"}


@pytest.fixture
def user(db_session):
    record = User(
        name="Test User",
        email="test@example.com",
        password_hash=hash_password("secret123"),
        default_hourly_rate=20.0,
    )
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record
