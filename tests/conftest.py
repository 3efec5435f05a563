"""Shared test fixtures."""
import os
import tempfile

_STATE_DIR = tempfile.mkdtemp(prefix="timekeeper-tests-")
os.environ["DB_PATH"] = os.path.join(_STATE_DIR, "import.sqlite3")
os.environ["TIMER_STATE_DIR"] = os.path.join(_STATE_DIR, "timer")

from datetime import datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from timekeeper import config
from timekeeper.database import Base, get_db
from timekeeper.main import app

TEST_PASSWORD = "secret123"


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.sqlite3'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def timer_dir(tmp_path, monkeypatch):
    path = tmp_path / "timer"
    monkeypatch.setattr(config, "TIMER_STATE_DIR", str(path))
    return path


@pytest.fixture
def app_db(session_factory, timer_dir):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides.clear()


def signup(client, role="employee", email=None, name=None):
    email = email or f"{role}@example.com"
    response = client.post(
        "/signup",
        data={
            "name": name or role.capitalize(),
            "email": email,
            "password": TEST_PASSWORD,
            "confirm_password": TEST_PASSWORD,
            "role": role,
        },
        follow_redirects=False,
    )
    assert response.status_code == 303
    return client


@pytest.fixture
def client(app_db):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def employee(app_db):
    with TestClient(app) as test_client:
        yield signup(test_client, "employee")


@pytest.fixture
def admin(app_db):
    with TestClient(app) as test_client:
        yield signup(test_client, "admin")


def make_entry(start, duration=3600, billable=True, project_id=None, user_id="u1", entry_id=None):
    """A lightweight stand-in for a stored time entry."""
    return SimpleNamespace(
        id=entry_id or f"e-{start}",
        user_id=user_id,
        project_id=project_id,
        start_time=start,
        duration=duration,
        is_billable=billable,
    )


NOW = datetime(2024, 1, 10, 15, 0)  # a Wednesday
