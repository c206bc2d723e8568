"""Global pytest configuration and fixtures."""

import sys
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from savesync.dashboard.context import Dashboard
from savesync.dashboard.model import DashboardConfiguration
from savesync.dashboard.store import TokenStore
from tests.utils import API_URL, FakeBackupServer


@pytest.fixture
def server():
    return FakeBackupServer()


@pytest.fixture
def token_file(tmp_path) -> Path:
    return tmp_path / "session.yaml"


@pytest.fixture
def tokens(token_file):
    return TokenStore(token_file)


@pytest.fixture
def config(token_file):
    return DashboardConfiguration(api_url=API_URL, token_file=str(token_file))


@pytest_asyncio.fixture
async def dashboard(config, tokens, server):
    instance = Dashboard(config, tokens, httpx.MockTransport(server))
    yield instance
    await instance.close()


@pytest_asyncio.fixture
async def logged_in(dashboard):
    """A dashboard with an authenticated admin session."""
    await dashboard.session.login("admin@example.com", "secret")
    return dashboard
