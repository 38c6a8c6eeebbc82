"""
Tests for retry logic implementation.
"""
import pytest
from unittest.mock import AsyncMock

from pymongo.errors import ServerSelectionTimeoutError

from app.core.retry import (
    RetryConfig,
    create_async_retry_decorator,
    get_database_retry_config,
)


class TestRetryConfig:
    """Test retry configuration."""

    def test_default_config(self):
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay == 1.0
        assert config.max_delay == 30.0

    def test_database_config_retries_connection_failures(self):
        config = get_database_retry_config(max_attempts=4)
        assert config.max_attempts == 4
        assert issubclass(ServerSelectionTimeoutError, config.retryable_exceptions)


class TestAsyncRetryDecorator:
    """Test the tenacity-backed async decorator."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        operation = AsyncMock(side_effect=[ConnectionError("refused"), "pong"])
        config = RetryConfig(max_attempts=3, base_delay=0.01, max_delay=0.02)

        @create_async_retry_decorator(config, service_name="mongodb")
        async def ping():
            return await operation()

        assert await ping() == "pong"
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_and_reraises(self):
        operation = AsyncMock(side_effect=ConnectionError("refused"))
        config = RetryConfig(max_attempts=2, base_delay=0.01, max_delay=0.02)

        @create_async_retry_decorator(config, service_name="mongodb")
        async def ping():
            return await operation()

        with pytest.raises(ConnectionError):
            await ping()
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        operation = AsyncMock(side_effect=ValueError("bad"))
        config = RetryConfig(max_attempts=3, base_delay=0.01, max_delay=0.02)

        @create_async_retry_decorator(config, service_name="mongodb")
        async def ping():
            return await operation()

        with pytest.raises(ValueError):
            await ping()
        assert operation.await_count == 1
