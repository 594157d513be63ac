import os

# must be set before quizproctor.core.config is imported
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SEED_DEFAULTS"] = "false"
os.environ["CACHE_BACKEND"] = "local"
os.environ["APP_SECRET"] = "test-secret"
os.environ["ALLOWED_EMAIL_DOMAIN"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import random

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from quizproctor.core.auth import create_token
from quizproctor.core.cache import LocalCache, session_cache, variant_cache
from quizproctor.core.database import get_db, init_db
from quizproctor.models.domain import Question
from quizproctor.store.quiz_store import QuizStore
from quizproctor.store.proctoring_store import ProctoringStore
from quizproctor.services.proctoring import ProctoringSessionManager


@pytest.fixture
def engine():
    engine = create_engine("sqlite+pysqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def quiz_store(db):
    return QuizStore(db)


@pytest.fixture
def proctoring_store(db):
    return ProctoringStore(db)


@pytest.fixture
def cache():
    return LocalCache("test:session", ttl=60)


@pytest.fixture
def manager(proctoring_store, cache):
    return ProctoringSessionManager(proctoring_store, cache)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture(autouse=True)
def clear_module_caches():
    session_cache.clear()
    variant_cache.clear()
    yield


@pytest.fixture
def client(session_factory):
    from quizproctor.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # no context manager: the lifespan (create_all against DATABASE_URL, seeding) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_token('tester', ['admin'])}"}


def make_question(text="What is 2 + 2?", options=("3", "4", "5", "22"), correct=1, difficulty="medium"):
    return Question.model_validate({"question": text, "options": list(options), "correct": correct, "difficulty": difficulty})


@pytest.fixture
def javascript_quiz(quiz_store):
    """The seeded JavaScript quiz: five four-option questions."""
    from quizproctor.services.seed import DEFAULT_QUIZZES
    quiz_def = DEFAULT_QUIZZES[0]
    return quiz_store.create_quiz(
        quiz_id=quiz_def["id"], name=quiz_def["name"], description=quiz_def["description"],
        questions=[Question.model_validate(q) for q in quiz_def["questions"]], is_custom=False,
    )
