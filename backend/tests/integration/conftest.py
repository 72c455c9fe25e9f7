"""
Integration Test Fixtures

Runs the FastAPI application with its real lifespan (tables, event bus,
listeners) against the SQLite test database configured in the parent
conftest.py.

Statistics and recommendations are written by the event bus after the
response. Leaving the TestClient context runs the shutdown path, which drains
the bus, so tests that check asynchronous effects open a second client.

Note: learnpath.main imports are kept inside fixtures because they require
environment variables that are set up in the parent conftest.py.
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def app():
    from learnpath.main import app

    return app


@pytest.fixture
def test_client(app, catalog) -> Generator[TestClient, None, None]:
    """Client with the app started; the catalog is seeded first."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers(catalog) -> dict[str, str]:
    return {"X-User-Id": str(catalog.user_id)}

