"""Shared fixtures: in-memory database, sessions and an API client bound to them."""

from typing import Dict

import pytest
from fastapi.testclient import TestClient

import workforce_sync.models  # noqa: F401  (registers every table)
from workforce_sync.api.sync_jobs import get_scheduling_client
from workforce_sync.database.database import build_session_factory, create_engine_for_url, get_db, session_scope
from workforce_sync.main import app
from workforce_sync.models.base import Base
from workforce_sync.tests.factories import Route, build_fake_platform, json_route


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine_for_url("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def session(session_factory):
    """Database session for service tests."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def platform_routes() -> Dict[str, Route]:
    """Routes answered by the fake scheduling platform behind the API client."""
    return {
        "/api/employees": json_route([]),
        "/api/assignments": json_route([]),
        "/api/absences": json_route([]),
    }


@pytest.fixture
def client(session_factory, platform_routes):
    """
    Test client wired to the in-memory database.

    Seed through the ``session`` fixture and commit before issuing
    requests; every request runs in its own committed session.
    """

    def override_get_db():
        with session_scope(session_factory) as db:
            yield db

    def override_scheduling_client():
        with build_fake_platform(platform_routes) as platform:
            yield platform

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduling_client] = override_scheduling_client
    yield TestClient(app)
    app.dependency_overrides.clear()
