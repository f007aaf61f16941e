"""Pytest configuration and fixtures for unit tests."""

from datetime import date

import pytest

from tests.unit.mocks import InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches src.core.db_client functions to use InMemoryDBClient."""

    # Patch all db_client functions
    monkeypatch.setattr("src.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("src.core.db_client.create_records", in_memory_db.create_records)
    monkeypatch.setattr("src.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("src.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("src.core.db_client.update_records", in_memory_db.update_records)
    monkeypatch.setattr("src.core.db_client.delete_record", in_memory_db.delete_record)
    monkeypatch.setattr("src.core.db_client.delete_records", in_memory_db.delete_records)
    monkeypatch.setattr("src.core.db_client.list_records", in_memory_db.list_records)
    monkeypatch.setattr("src.core.db_client.get_first_record", in_memory_db.get_first_record)

    return in_memory_db


@pytest.fixture
def monday():
    """A fixed Monday used as 'today' by series tests (2026-01-05)."""
    return date(2026, 1, 5)


@pytest.fixture
def sample_task_data():
    """Returns sample plain task data for testing."""
    return {
        "title": "Dentist",
        "description": "Bring insurance card",
        "due_date": "2026-01-07",
        "start_time": "09:00",
        "end_time": "10:00",
        "priority": "high",
    }


@pytest.fixture
def sample_series_data():
    """Returns sample recurring task data for testing."""
    return {
        "title": "Gym",
        "recurrence_days": ["mon", "wed"],
        "start_time": "07:00",
        "end_time": "08:00",
    }
