"""
Main pytest configuration for clinic cache tests.

Shared settings, in-memory store and service fixtures.
"""

import os

import pytest
import pytest_asyncio

# Set test environment variables before importing package modules
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_JSON"] = "false"

from clinic_cache.constants import SESSIONS_NAMESPACE
from clinic_cache.core.config import Settings
from clinic_cache.services.cache.registry import CacheRegistry
from clinic_cache.services.invalidation.engine import CacheInvalidationEngine
from clinic_cache.services.invalidation.facade import CacheInvalidation
from clinic_cache.services.sessions.session_manager import SessionManager
from tests.fakes import InMemoryKeyValueStore


@pytest.fixture
def test_settings():
    """Settings with short timings for tests."""
    return Settings(
        ENVIRONMENT="test",
        CACHE_REFRESH_RETRY_DELAY_SECONDS=0.01,
        INVALIDATION_SWEEP_INTERVAL_SECONDS=0.05,
    )


@pytest.fixture
def store():
    """Fresh in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def registry(store, test_settings):
    """Cache registry over the in-memory store."""
    return CacheRegistry(store, test_settings)


@pytest.fixture
def session_manager(registry, test_settings):
    """Session manager over the sessions namespace."""
    return SessionManager(registry.get(SESSIONS_NAMESPACE), test_settings)


@pytest_asyncio.fixture
async def engine(registry, session_manager, test_settings):
    """Invalidation engine with the default rules."""
    engine = CacheInvalidationEngine(registry, session_manager, test_settings)
    yield engine
    await engine.stop()


@pytest.fixture
def facade(engine):
    """Convenience facade over the engine."""
    return CacheInvalidation(engine)


@pytest.fixture
def session_payload():
    """Sample session data."""
    return {
        "user_id": "user-1",
        "email": "doctor@clinic.test",
        "role": "doctor",
        "ip_address": "10.0.0.1",
        "user_agent": "pytest",
    }


# Test markers and configuration
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "sessions: marks tests as session-related")
    config.addinivalue_line(
        "markers", "invalidation: marks tests as invalidation-related"
    )
    config.addinivalue_line("markers", "monitoring: marks tests as monitoring tests")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test file location."""
    for item in items:
        if "session" in item.nodeid:
            item.add_marker(pytest.mark.sessions)
        if "invalidation" in item.nodeid or "facade" in item.nodeid:
            item.add_marker(pytest.mark.invalidation)
        if "monitoring" in item.nodeid:
            item.add_marker(pytest.mark.monitoring)
