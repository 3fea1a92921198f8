"""
Shared fixtures: one in-memory SQLite database per test, a session bound to
it, and a FastAPI TestClient whose get_db dependency uses the same database.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from credit_timeline.database import Base, build_engine, get_db
from credit_timeline.models import db_models  # noqa: F401 - registers tables


@pytest.fixture
def engine():
    # StaticPool: every session shares the single in-memory connection
    db_engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=db_engine)
    yield db_engine
    Base.metadata.drop_all(bind=db_engine)
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    from credit_timeline.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # Not used as a context manager: the lifespan would create the default database
    yield TestClient(app)
    app.dependency_overrides.clear()
