"""Shared fixtures: fake chain service, fake store and a no-wait retry policy."""

import pytest
import pytest_asyncio

from fakes import FakeRPC, FakeStore
from sync import RetryPolicy

@pytest.fixture
def rpc():
    """Create a scripted chain event service."""
    return FakeRPC()

@pytest.fixture
def retry():
    """Retry transient failures a few times without waiting."""
    return RetryPolicy(interval=0, max_tries=3)

@pytest_asyncio.fixture
async def store():
    """Create an empty in-memory store."""
    yield FakeStore()
