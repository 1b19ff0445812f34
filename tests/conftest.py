"""
Main pytest configuration for all tests.

Fixtures, configuration, and utilities for the offline cache tests.
"""

import os
import pytest

# Set test environment variables before importing package modules
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["AUTO_INSTALL"] = "false"
os.environ["UPSTREAM_URL"] = "http://upstream.test"

from lidkaart.monitoring.cache_metrics import CacheMetricsCollector
from lidkaart.services.offline import OfflineCachePolicyEngine
from tests.fixtures.offline_fakes import (
    FIXED_NOW,
    FakeFetcher,
    FlakyCacheStore,
    make_config,
)


@pytest.fixture
def engine_config():
    """Engine configuration pointing at the fake upstream."""
    return make_config()


@pytest.fixture
def fetcher():
    """Scripted network serving the static asset manifest."""
    fake = FakeFetcher()
    fake.serve_assets()
    return fake


@pytest.fixture
def store():
    """In-memory cache store that can be switched to fail."""
    return FlakyCacheStore()


@pytest.fixture
def metrics():
    """Metrics collector with a private registry."""
    return CacheMetricsCollector()


@pytest.fixture
def engine(store, fetcher, engine_config, metrics):
    """Freshly parsed engine with a fixed clock."""
    return OfflineCachePolicyEngine(
        store=store,
        fetcher=fetcher,
        config=engine_config,
        metrics=metrics,
        clock=lambda: FIXED_NOW,
    )


# Test markers and configuration
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "redis: marks tests as Redis-related")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test file location."""
    for item in items:
        if "redis" in item.nodeid:
            item.add_marker(pytest.mark.redis)
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)
