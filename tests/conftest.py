"""
Pytest Configuration for Fleet Accounting Tests

Fixtures live in tests/fixtures and are pulled in here so every test module
sees them without imports.
"""

import logging

import pytest

# Import all fixtures
from tests.fixtures.accounting_fixtures import *  # noqa
from tests.fixtures.database_fixtures import *  # noqa


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Keep test output readable."""
    logging.getLogger("fleet_accounting").setLevel(logging.WARNING)
    yield


@pytest.fixture
def test_client(orchestrator):
    """API client wired to the in-memory orchestrator."""
    from fastapi.testclient import TestClient

    from fleet_accounting.main import create_app
    from fleet_accounting.routers import get_orchestrator

    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return TestClient(app)
