import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from awx_client.config.settings import Settings  # noqa: E402
from awx_client.models import TokenCache  # noqa: E402
from awx_client.utils.http_client import APIClient  # noqa: E402

TEST_BASE_URL = "https://api.test.example"


def pytest_configure(config):
    # Register the asyncio marker so pytest doesn't warn when it's used.
    config.addinivalue_line(
        "markers", "asyncio: mark test to run in an asyncio event loop"
    )
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Set environment variables for tests.

    Keeps a developer's real AWX_* variables from leaking into Settings.
    """
    monkeypatch.setenv("AWX_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("AWX_API_KEY", "test-api-key")
    monkeypatch.delenv("AWX_ACCOUNT_ID", raising=False)
    monkeypatch.delenv("AWX_BASE_URL", raising=False)
    monkeypatch.setenv("AWX_LOG_LEVEL", "INFO")
    yield


@pytest.fixture
def fast_settings():
    """Settings with retry delays short enough for unit tests."""
    return Settings(
        rate_limit_base_delay=0.01,
        server_error_retry_delay=0.01,
        operation_timeout=5.0,
    )


def fresh_token(token: str = "test-token", minutes: int = 10) -> TokenCache:
    return TokenCache(
        token=token,
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=minutes),
    )


@pytest.fixture
def client_factory(fast_settings):
    """Build APIClients backed by an httpx.MockTransport handler.

    By default the client starts with a valid cached token so tests
    exercising the retry path never hit the login endpoint.
    """

    def _make(handler, settings=None, token="test-token", **kwargs):
        client = APIClient(
            "test-client-id",
            "test-api-key",
            base_url=TEST_BASE_URL,
            settings=settings or fast_settings,
            transport=httpx.MockTransport(handler),
            **kwargs,
        )
        if token:
            client.token_manager.set_cache(fresh_token(token))
        return client

    return _make


@pytest.fixture
def sample_login_response():
    """Login endpoint response with a far-future expiry."""
    return {"token": "new-token", "expires_at": "2099-01-01T00:00:00Z"}
