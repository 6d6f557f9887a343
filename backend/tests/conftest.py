"""Test fixtures and configuration."""

import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))


TEST_STEPS = ["seo_keywords", "marketing_brief", "article_generation", "content_formatting"]


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def config():
    """Config with instant polling and a fixed reviewer."""
    from dashboard.config import AppConfig

    return AppConfig(
        api_base_url="http://test",
        timeout=5.0,
        poll_interval=0.0,
        max_poll_failures=3,
        reviewer="tester",
        keyword_step="seo_keywords",
        pipeline_steps=list(TEST_STEPS),
        recheck_before_submit=True,
        debug=False,
        env_file=None,
    )


@pytest.fixture
def backend():
    """A fresh in-memory review backend."""
    from fakes import FakeReviewBackend

    return FakeReviewBackend()


@pytest_asyncio.fixture
async def api_client(backend, config):
    """ReviewApiClient wired to the fake backend without touching the network."""
    from dashboard.client import ReviewApiClient
    from review.retry import NO_RETRY

    transport = ASGITransport(app=backend.app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield ReviewApiClient(config, http=http, retry=NO_RETRY)


@pytest.fixture
def notifier():
    from review.notify import RecordingNotifier

    return RecordingNotifier()


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: tests that take longer to run")
