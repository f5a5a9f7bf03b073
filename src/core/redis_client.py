"""Redis client for device-local key-value storage."""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from functools import wraps
from typing import Any, TypeVar

from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from src.core.config import Constants, settings


logger = logging.getLogger(__name__)

# Type variable for generic retry decorator
T = TypeVar("T")


def with_retry(
    max_retries: int = Constants.REDIS_RETRY_ATTEMPTS, base_delay: float = Constants.REDIS_RETRY_BASE_DELAY_SECONDS
) -> Callable[[Callable[..., Coroutine[Any, Any, T]]], Callable[..., Coroutine[Any, Any, T]]]:
    """Decorator to retry async functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Base delay in seconds for exponential backoff (default: 0.1)

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable[..., Coroutine[Any, Any, T]]) -> Callable[..., Coroutine[Any, Any, T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:  # noqa: ANN401
            last_exception = None
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except RedisError as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        delay = base_delay * (2**attempt)
                        logger.warning(
                            "Redis operation failed (attempt %d/%d): %s. Retrying in %.2fs",
                            attempt + 1,
                            max_retries,
                            e,
                            delay,
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            "Redis operation failed after %d attempts: %s",
                            max_retries,
                            e,
                        )
            # If we get here, all retries failed
            raise last_exception  # type: ignore[misc]

        return wrapper

    return decorator


class RedisClient:
    """Async Redis client wrapper with connection pooling.

    Every operation degrades to a falsy result instead of raising, so callers can
    fall back to process memory when Redis is absent or failing.
    """

    def __init__(self) -> None:
        """Initialize Redis client."""
        self._client: Redis | None = None
        self._pool: ConnectionPool | None = None
        self._enabled = bool(settings.redis_url)

        # Health tracking
        self._last_successful_operation: datetime | None = None
        self._failure_count = 0
        self._total_operations = 0

        if self._enabled and settings.redis_url:
            try:
                self._pool = ConnectionPool.from_url(
                    settings.redis_url,
                    decode_responses=True,
                    max_connections=Constants.REDIS_MAX_CONNECTIONS,
                )
                self._client = Redis(connection_pool=self._pool)
                logger.info("Redis client initialized with URL: %s", settings.redis_url)
            except RedisError as e:
                logger.warning("Failed to initialize Redis client: %s. Using in-memory storage.", e)
                self._enabled = False
                self._client = None
                self._pool = None
        else:
            logger.info("Redis URL not configured. Using in-memory storage.")

    @property
    def is_available(self) -> bool:
        """Check if Redis is available."""
        return self._enabled and self._client is not None

    def get_health_status(self) -> dict[str, Any]:
        """Get Redis health status."""
        return {
            "enabled": self._enabled,
            "connected": self.is_available,
            "last_successful_operation": self._last_successful_operation.isoformat()
            if self._last_successful_operation
            else None,
            "failure_count": self._failure_count,
            "total_operations": self._total_operations,
        }

    def _record_success(self) -> None:
        self._last_successful_operation = datetime.now(UTC)
        self._total_operations += 1

    def _record_failure(self) -> None:
        self._failure_count += 1
        self._total_operations += 1

    async def get(self, key: str) -> str | None:
        """Get value from Redis.

        Args:
            key: Storage key

        Returns:
            Stored value or None if not found or error occurred
        """
        if not self.is_available or not self._client:
            return None

        try:
            value = await self._client.get(key)
            self._record_success()
            return value
        except RedisError as e:
            self._record_failure()
            logger.warning("Redis GET error for key %s: %s", key, e)
            return None

    async def set_with_retry(self, key: str, value: str) -> bool:
        """Set a value without TTL, retrying transient failures.

        Args:
            key: Storage key
            value: Value to store

        Returns:
            True if successful, False otherwise
        """
        if not self.is_available or not self._client:
            return False

        @with_retry()
        async def _set_operation() -> None:
            if self._client:
                await self._client.set(key, value)

        try:
            await _set_operation()
            self._record_success()
            logger.debug("Stored key with retry: %s", key)
            return True
        except RedisError as e:
            self._record_failure()
            logger.error("Redis SET failed after retries for key %s: %s", key, e)
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            logger.info("Redis client closed")

    async def ping(self) -> bool:
        """Ping Redis to check connection.

        Returns:
            True if Redis is responsive, False otherwise
        """
        if not self.is_available or not self._client:
            return False

        try:
            result = await self._client.ping()  # type: ignore[misc]
            return bool(result)
        except RedisError as e:
            logger.warning("Redis PING failed: %s", e)
            return False


# Global Redis client instance
redis_client = RedisClient()
