"""Pytest configuration and shared fixtures."""
import os

os.environ.setdefault("ANTHROPIC_API_KEY", "test-key-fake")

import pytest
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from shared.models.entities import Base
# Import all models to ensure they are registered with Base.metadata
from shared.models.entities import *
from features.ai_lessons.models.database import *
from features.ai_lessons.services.seed_data import seed_lesson_defaults
from database import get_db
from main import app


@pytest.fixture(scope="function")
def db_session():
    """
    Create a test database session with in-memory SQLite.

    This fixture creates a fresh database for each test function,
    ensuring test isolation.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(engine)


@pytest.fixture
def seeded_db(db_session):
    """Session with the default assessment types and material constraints loaded."""
    seed_lesson_defaults(db_session)
    db_session.commit()
    return db_session


@pytest.fixture
def client(db_session):
    """Create a test client for the FastAPI app, bound to the test session."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def mock_llm():
    """LLMService stand-in returning a plain-text lesson."""
    llm = Mock()
    llm.provider = "anthropic"
    llm.model_id = "claude-sonnet-4-5"
    llm.call.return_value = {
        "output_text": "Title: Short Vowel Adventure\nAll materials included on the worksheet - just print!",
        "reasoning": None,
        "parsed": None,
    }
    return llm

