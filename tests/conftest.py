"""Pytest configuration and fixtures."""
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_FORMAT", "text")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base, get_db
from app.main import app
from app.middleware.rate_limit import rate_limiter
from app.models import Category, Item, User
from app.routers.recommendations import get_http_client

# Use in-memory SQLite for tests
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session, monkeypatch):
    """Create a test client with overridden database dependency."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    # The app engine points at a separate empty database
    monkeypatch.setattr("app.main.run_startup_validation", lambda: None)
    rate_limiter.reset()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    rate_limiter.reset()


@pytest.fixture(scope="function")
def no_env_keys(monkeypatch):
    """Remove environment API keys so only stored and user keys apply."""
    from app.settings import settings

    monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", None)
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "GOOGLE_API_KEY", None)
    monkeypatch.setattr(settings, "LLM_PROVIDER", "anthropic")


@pytest.fixture(scope="function")
def mock_vendor():
    """
    Build an httpx client whose requests go to a handler function.

    The handler receives each httpx.Request and returns an httpx.Response.
    Sent requests are collected on ``factory.requests``.
    """
    def factory(handler):
        def record(request: httpx.Request) -> httpx.Response:
            factory.requests.append(request)
            return handler(request)

        return httpx.AsyncClient(transport=httpx.MockTransport(record))

    factory.requests = []
    return factory


@pytest.fixture(scope="function")
def claude_reply():
    """Build a Claude Messages API reply body."""
    def build(text, input_tokens=0, output_tokens=0):
        return {
            "id": "msg_test",
            "type": "message",
            "role": "assistant",
            "model": "claude-sonnet-4-20250514",
            "content": [{"type": "text", "text": text}],
            "stop_reason": "end_turn",
            "stop_sequence": None,
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
        }

    return build


@pytest.fixture(scope="function")
def use_http_client():
    """Route the API's vendor calls through a given client."""
    def install(http_client):
        app.dependency_overrides[get_http_client] = lambda: http_client

    yield install
    app.dependency_overrides.pop(get_http_client, None)


@pytest.fixture(scope="function")
def test_user(db_session):
    """Create a regular test user."""
    user = User(email="test@example.com", personality_mode="balanced", user_goal="moving")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def other_user(db_session):
    """Create a second user."""
    user = User(email="other@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def categories(db_session):
    """Seed the default category vocabulary."""
    rows = [
        Category(slug="clothing", name="Clothing", sort_order=1),
        Category(slug="books", name="Books", sort_order=2),
        Category(slug="electronics", name="Electronics", sort_order=3),
        Category(slug="kitchen", name="Kitchen Items", sort_order=4),
        Category(slug="other", name="Other", sort_order=99, is_default=True),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture(scope="function")
def make_item(db_session):
    """Factory for items."""
    def factory(user, **kwargs):
        fields = {"name": "Old sweater", "category": "clothing"}
        fields.update(kwargs)
        item = Item(user_id=user.id, **fields)
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item

    return factory


@pytest.fixture(scope="function")
def test_item(make_item, test_user):
    """An item with a full set of answers."""
    return make_item(
        test_user,
        name="Bread maker",
        category="kitchen",
        user_notes="Never use it, just taking up space",
        answers={
            "usage": "no",
            "sentimental": "none",
            "condition": "good",
            "value": "medium",
            "replaceability": "easy",
            "space": "no",
        },
    )
