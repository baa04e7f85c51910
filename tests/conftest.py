"""
Pytest fixtures for the test suite.

Data-layer tests use an in-memory SQLite engine and a session that rolls back
after each test, so tests do not affect each other. Web tests run the real app
against a throwaway SQLite file (the app uses several threads, which an
in-memory database would not survive).
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path

_TMP_DIR = Path(tempfile.mkdtemp(prefix="exprsec-tests-"))
os.environ["EXPRSEC_DB_URL"] = f"sqlite:///{_TMP_DIR / 'app.db'}"

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from exprsec.security.authentication import Authentication  # noqa: E402
from exprsec.security.handler import SecurityExpressionHandler  # noqa: E402
from exprsec.security.method import MethodSecurityInterceptor  # noqa: E402


IN_MEMORY_DB = "sqlite:///:memory:"


@pytest.fixture
def engine():
    """Private in-memory identity and document store, one per test."""
    return create_engine(IN_MEMORY_DB, connect_args={"check_same_thread": False}, poolclass=StaticPool)


@pytest.fixture
def tables(engine):
    """Users, authorities and documents created on the per-test store."""
    from exprsec.db.base import Base
    import exprsec.models.documents  # noqa: F401
    import exprsec.models.security  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """Session inside an outer transaction that is discarded when the test ends."""
    with tables.connect() as connection:
        outer = connection.begin()
        session = Session(bind=connection, autoflush=False)
        try:
            yield session
        finally:
            session.close()
            outer.rollback()


@pytest.fixture
def session_factory(tables):
    """sessionmaker over the in-memory engine, for services that open their own sessions."""
    return sessionmaker(bind=tables, autocommit=False, autoflush=False, expire_on_commit=False, class_=Session)


@pytest.fixture
def seeded_session_factory(session_factory):
    from exprsec.db.init_db import seed

    with session_factory() as db:
        seed(db)
    return session_factory


@pytest.fixture
def alice():
    return Authentication.of("alice", {"ROLE_ADMIN"})


@pytest.fixture
def bob():
    return Authentication.of("bob", {"ROLE_USER"})


@pytest.fixture
def anonymous():
    return Authentication.anonymous_user()


@pytest.fixture
def handler():
    return SecurityExpressionHandler()


@pytest.fixture
def interceptor(handler):
    return MethodSecurityInterceptor(handler)


@pytest.fixture
def client():
    """
    TestClient over a freshly seeded app database.

    Users: 1 alice (admin), 2 bob (user), 3 carol (staff + audit:read), 4 dave (inactive).
    """
    from fastapi.testclient import TestClient

    from exprsec.db.base import Base
    from exprsec.db.session import engine as app_engine
    from exprsec.main import create_app

    Base.metadata.drop_all(bind=app_engine)
    with TestClient(create_app()) as test_client:
        yield test_client
