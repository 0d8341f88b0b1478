"""Pytest fixtures — file-backed SQLite database per test, plus API helpers."""
import os

# The app's own engine is built at import time; keep it away from the dev database.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from decisions.database import Base, get_db
from decisions.main import app

# Import all models so they register with Base.metadata
from decisions.models.event import Event, EventOption, EventResponse  # noqa: F401
from decisions.models.poll import Poll, PollOption, PollVote          # noqa: F401
from decisions.models.decision_mutation import DecisionMutation       # noqa: F401


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    """FastAPI TestClient with the database dependency overridden to use SQLite."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers: create aggregates via the API, return the JSON response dict
# ---------------------------------------------------------------------------
DEFAULT_OPTIONS = [
    {"option_type": "datetime", "value": "Friday 7pm"},
    {"option_type": "datetime", "value": "Saturday 6pm"},
    {"option_type": "location", "value": "Luigi's"},
    {"option_type": "location", "value": "Taco Place"},
]


def create_test_event(client: TestClient, creator_id: str = "alice", chat_id: str = "chat-1",
                      title: str = "Dinner", options: list = None, **extra) -> dict:
    """Helper — POST /api/events and return response JSON."""
    payload = {
        "chat_id": chat_id,
        "creator_id": creator_id,
        "title": title,
        "event_type": "meal",
        "options": DEFAULT_OPTIONS if options is None else options,
    }
    payload.update(extra)
    resp = client.post("/api/events/", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_poll(client: TestClient, creator_id: str = "alice", chat_id: str = "chat-1",
                     question: str = "Pizza or sushi?", options: list = None,
                     member_count: int = None) -> dict:
    """Helper — POST /api/polls and return response JSON."""
    resp = client.post("/api/polls/", json={
        "chat_id": chat_id,
        "creator_id": creator_id,
        "question": question,
        "options": options or ["Pizza", "Sushi"],
        "member_count": member_count,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def option_ids(event: dict, option_type: str) -> list:
    return [o["option_id"] for o in event["options"] if o["option_type"] == option_type]
