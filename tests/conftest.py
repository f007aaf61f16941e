"""Pytest configuration and shared fixtures."""

import pytest
from fastapi.testclient import TestClient

from src.core.config import constants
from src.main import app


@pytest.fixture
def client():
    """FastAPI test client; the lifespan is not run, so no database is opened."""
    return TestClient(app)


@pytest.fixture
def owner_headers():
    """Request headers identifying the calling user."""
    return {constants.OWNER_HEADER: "user-1"}
