"""
Shared fixtures: a fresh in-memory SQLite database per test, built from the
ORM metadata, and a TestClient wired to it.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, build_engine, get_db
from app.main import app
from app.models import db_models  # noqa: F401
from app.services.editing import JourneyService

from factories import JOURNEY_START, make_client


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client_record(db):
    """A client whose journey started at JOURNEY_START."""
    return make_client(db, journey_started_at=JOURNEY_START)


@pytest.fixture
def pages(db, client_record):
    """The four default journey pages of client_record (page 1 active)."""
    return JourneyService(db).create_journey(client_record.id)


@pytest.fixture
def page(pages):
    return pages[0]


@pytest.fixture
def api(session_factory):
    """
    TestClient against the in-memory database.

    The lifespan is not entered, so the default database is never touched.
    Seed data through `seed` before issuing requests: the StaticPool shares
    one connection, so no other session may hold a transaction open while a
    request runs.
    """
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seed(session_factory):
    """Run a callable in its own committed session and return its result."""
    def _seed(fn):
        session = session_factory()
        try:
            result = fn(session)
            session.commit()
            return result
        finally:
            session.close()
    return _seed
