import pytest
from unittest.mock import AsyncMock


@pytest.fixture
def mock_redis():
    """Mock Redis client for testing."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    redis.aclose = AsyncMock()
    return redis
