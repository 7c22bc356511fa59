"""
Pytest configuration and shared fixtures.
"""
import os
import sys

import pytest

# Make the src layout importable without an editable install
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from thrall import BrowserConfig, CDPSession, Page  # noqa: E402
from tests.fakes import FakeConnection  # noqa: E402


@pytest.fixture
def fake_ws():
    """A fake target WebSocket."""
    return FakeConnection()


@pytest.fixture
async def session(fake_ws):
    """A connected session talking to the fake target."""
    s = CDPSession("ws://127.0.0.1:9222/devtools/page/FAKE", connector=fake_ws.connect)
    await s.connect()
    yield s
    await s.close()


@pytest.fixture
def config():
    """Short timeouts so failing waits finish quickly."""
    return BrowserConfig(default_timeout=2.0, polling_interval=0.01, network_idle_threshold=0.05)


@pytest.fixture
async def page(session, config):
    return Page(session, config)


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires Chrome)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection."""
    for item in items:
        if "integration" in item.nodeid.lower():
            item.add_marker(pytest.mark.integration)
        if "slow" in item.nodeid.lower():
            item.add_marker(pytest.mark.slow)
