"""
Redis client wrapper for the webhook gateway's shared state.

This service provides Redis operations for:
- Duplicate-delivery suppression keys (strings with millisecond expiry)
- Automation job queues using lists
- Last-seen pull request state (JSON strings with a TTL)

Includes connection pooling and retry logic for resilience.
"""

import json
import logging
import asyncio
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextlib import asynccontextmanager
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError, ConnectionError, TimeoutError

from review_gateway.models.code_management import StoredPullRequest


logger = logging.getLogger(__name__)


class RedisConnectionError(Exception):
    """Raised when Redis connection fails after retries."""
    pass


class RedisClient:
    """
    Redis client wrapper with connection pooling and retry logic.

    Provides methods for:
    - Cache operations (exists/put/set_if_absent)
    - Job queue operations (list push)
    - Pull request state storage
    """

    # Redis key prefixes
    PR_STATE_PREFIX = "pull_request:{repository_id}:{number}:state"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        connection_timeout: int = 5
    ):
        """
        Initialize Redis client.

        Args:
            redis_url: Redis connection URL. If None, will load from settings.
            max_retries: Maximum number of retry attempts for transient errors
            retry_delay: Base delay between retries (exponential backoff)
            connection_timeout: Connection timeout in seconds
        """
        self._redis_url = redis_url
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._connection_timeout = connection_timeout

    async def initialize(self) -> None:
        """
        Initialize Redis connection pool.

        Should be called during application startup.

        Raises:
            RedisConnectionError: If connection fails
        """
        try:
            if not self._redis_url:
                from review_gateway.config import settings
                self._redis_url = settings.redis_url

            self._pool = ConnectionPool.from_url(
                self._redis_url,
                max_connections=10,
                decode_responses=True,
                socket_timeout=self._connection_timeout,
                socket_connect_timeout=self._connection_timeout
            )

            self._client = redis.Redis(connection_pool=self._pool)

            await self._client.ping()

            logger.info("Redis connection pool initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Redis connection pool: {e}")
            raise RedisConnectionError(f"Failed to connect to Redis: {e}")

    async def close(self) -> None:
        """
        Close Redis connection pool.

        Should be called during application shutdown.
        """
        if self._client:
            await self._client.aclose()

        if self._pool:
            await self._pool.disconnect()

        logger.info("Redis connection pool closed")

    @asynccontextmanager
    async def _get_client(self):
        """
        Get Redis client with connection check.

        Yields:
            redis.Redis: Redis client instance

        Raises:
            RuntimeError: If client not initialized
        """
        if not self._client:
            raise RuntimeError("Redis client not initialized. Call initialize() first.")

        yield self._client

    async def _retry_operation(self, operation, *args, **kwargs):
        """
        Execute Redis operation with retry logic.

        Args:
            operation: Async function to execute
            *args: Positional arguments for operation
            **kwargs: Keyword arguments for operation

        Returns:
            Operation result

        Raises:
            RedisConnectionError: If operation fails after all retries
        """
        last_error = None

        for attempt in range(self._max_retries):
            try:
                return await operation(*args, **kwargs)

            except (ConnectionError, TimeoutError) as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    delay = self._retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Redis operation failed (attempt {attempt + 1}/{self._max_retries}), "
                        f"retrying in {delay}s: {e}"
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(f"Redis operation failed after {self._max_retries} attempts: {e}")

            except RedisError as e:
                # Non-transient errors, don't retry
                logger.error(f"Redis operation failed with non-transient error: {e}")
                raise

        raise RedisConnectionError(f"Redis operation failed after {self._max_retries} retries: {last_error}")

    # ========== Cache Operations (String) ==========

    async def exists(self, key: str) -> bool:
        """
        Check whether a key is present and not expired.

        Args:
            key: Cache key

        Returns:
            True if the key exists
        """
        async def _exists():
            async with self._get_client() as client:
                return await client.exists(key) > 0

        return await self._retry_operation(_exists)

    async def put(self, key: str, value: str, ttl_ms: int) -> None:
        """
        Store a value with a millisecond expiry.

        Args:
            key: Cache key
            value: Value to store
            ttl_ms: Time to live in milliseconds
        """
        async def _put():
            async with self._get_client() as client:
                await client.set(key, value, px=ttl_ms)

        await self._retry_operation(_put)

    async def set_if_absent(self, key: str, value: str, ttl_ms: int) -> bool:
        """
        Atomically store a value only if the key does not exist (SET NX PX).

        Args:
            key: Cache key
            value: Value to store
            ttl_ms: Time to live in milliseconds

        Returns:
            True if the key was created, False if it already existed
        """
        async def _set():
            async with self._get_client() as client:
                created = await client.set(key, value, px=ttl_ms, nx=True)
                return bool(created)

        return await self._retry_operation(_set)

    # ========== Job Queue Operations (List) ==========

    async def push_job(self, queue_key: str, job_payload: Dict[str, Any]) -> None:
        """
        Append a job to a queue.

        Args:
            queue_key: Redis list key
            job_payload: JSON-serializable job payload

        Raises:
            RedisConnectionError: If operation fails after retries
        """
        async def _enqueue():
            async with self._get_client() as client:
                job_json = json.dumps(job_payload, default=str)
                # Right push for FIFO
                await client.rpush(queue_key, job_json)
                logger.debug(f"Enqueued job on {queue_key}")

        await self._retry_operation(_enqueue)

    # ========== Pull Request State Operations ==========

    def _pr_state_key(self, repository_id: str, number: int) -> str:
        """Get Redis key for stored pull request state."""
        return self.PR_STATE_PREFIX.format(repository_id=repository_id, number=number)

    async def save_pull_request_state(self, state: StoredPullRequest, ttl_days: Optional[int] = None) -> None:
        """
        Save the last-seen state of a pull request.

        Args:
            state: StoredPullRequest to save
            ttl_days: Expiry in days. If None, will load from settings.

        Raises:
            RedisConnectionError: If operation fails after retries
        """
        if ttl_days is None:
            from review_gateway.config import settings
            ttl_days = settings.pr_state_ttl_days

        if state.updated_at is None:
            state = state.model_copy(update={"updated_at": datetime.now(timezone.utc)})

        async def _save():
            async with self._get_client() as client:
                key = self._pr_state_key(state.repository_id, state.number)
                state_json = json.dumps(state.model_dump(mode='json'))
                await client.set(key, state_json, ex=ttl_days * 24 * 60 * 60)
                logger.debug(f"Saved state for PR {state.number} in repository {state.repository_id}")

        await self._retry_operation(_save)

    async def get_pull_request_state(self, repository_id: str, number: int) -> Optional[StoredPullRequest]:
        """
        Retrieve the last-seen state of a pull request.

        Args:
            repository_id: Repository identifier
            number: Pull request number

        Returns:
            StoredPullRequest if found, None otherwise

        Raises:
            RedisConnectionError: If operation fails after retries
        """
        async def _get():
            async with self._get_client() as client:
                state_json = await client.get(self._pr_state_key(repository_id, number))

                if not state_json:
                    return None

                return StoredPullRequest(**json.loads(state_json))

        return await self._retry_operation(_get)

    # ========== Utility Methods ==========

    async def ping(self) -> bool:
        """
        Test Redis connection.

        Returns:
            True if connection is healthy

        Raises:
            RedisConnectionError: If ping fails
        """
        async def _ping():
            async with self._get_client() as client:
                return await client.ping()

        return await self._retry_operation(_ping)


_redis_client: Optional[RedisClient] = None


def get_redis_client() -> RedisClient:
    """
    Get or create the global Redis client instance.

    Returns:
        RedisClient instance
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = RedisClient()
    return _redis_client
