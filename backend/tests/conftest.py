"""Pytest fixtures for backend tests."""

import pytest

# Import persistence fixtures so pytest recognizes them
from tests.conftest_persistence import test_db

# Re-export so pytest can find them
__all__ = ["test_db"]


def pytest_configure(config):
    """Register the asyncio marker."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture
def planning_settings(monkeypatch):
    """Point settings at a fake backend and make verification polling instant."""
    from planchat.config import settings

    monkeypatch.setattr(settings, "planning_api_url", "http://planner.test")
    monkeypatch.setattr(settings, "verification_initial_delay", 0)
    monkeypatch.setattr(settings, "verification_interval", 0)
    monkeypatch.setattr(settings, "verification_max_attempts", 2)
    return settings
