"""
Redis-backed storage for conversation contexts.

Each (tenant, user) pair owns one key holding the whole context as JSON.
Reads refresh the key's TTL, giving a sliding expiration window. Writes
overwrite the whole record, so callers serialize read-modify-write per
user with ``lock()``.
"""

from contextlib import contextmanager
from typing import Generator, Optional

import redis
from loguru import logger
from pydantic import ValidationError
from redis.exceptions import LockError, RedisError

from error_handling.exceptions import SessionStoreError
from .context import ConversationContext


class SessionStore:
    """
    Stores ConversationContext records in Redis.

    Attributes:
        client: Redis client (anything with get/set/expire/delete/lock)
        ttl_seconds: Sliding expiration applied on every read and write
        key_prefix: Prefix of every session key
    """

    def __init__(
        self,
        client: "redis.Redis",
        ttl_seconds: int = 1800,
        key_prefix: str = "line:conversation:",
        lock_timeout_seconds: float = 10,
        lock_wait_seconds: float = 5,
    ):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self.lock_timeout_seconds = lock_timeout_seconds
        self.lock_wait_seconds = lock_wait_seconds

    @classmethod
    def from_url(cls, redis_url: str, **kwargs) -> "SessionStore":
        """
        Build a store connected to the Redis server at redis_url.

        Args:
            redis_url: Redis connection string
            **kwargs: Passed to SessionStore()

        Returns:
            SessionStore instance
        """
        client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=5,
        )
        return cls(client, **kwargs)

    def build_key(self, tenant_id: str, user_id: str) -> str:
        """Session key for one user of one tenant."""
        return f"{self.key_prefix}{tenant_id}:{user_id}"

    def get(self, tenant_id: str, user_id: str) -> Optional[ConversationContext]:
        """
        Load a context and refresh its TTL.

        A record that cannot be decoded is logged and treated as missing, so
        the user simply starts over.

        Args:
            tenant_id: Tenant identifier
            user_id: Chat platform user identifier

        Returns:
            ConversationContext, or None if there is no live session

        Raises:
            SessionStoreError: If Redis is unreachable
        """
        key = self.build_key(tenant_id, user_id)
        try:
            raw = self.client.get(key)
            if raw is None:
                return None
            self.client.expire(key, self.ttl_seconds)
        except RedisError as e:
            raise SessionStoreError(f"Failed to read session {key}: {e}", key=key, original_error=e) from e

        try:
            return ConversationContext.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable session {key}: {e.error_count()} validation errors")
            return None

    def get_or_create(self, tenant_id: str, user_id: str) -> ConversationContext:
        """
        Load a context, or build a fresh IDLE one when none is stored.

        A fresh context is not written until the caller saves it.

        Args:
            tenant_id: Tenant identifier
            user_id: Chat platform user identifier

        Returns:
            Existing or new ConversationContext
        """
        context = self.get(tenant_id, user_id)
        if context is None:
            logger.debug(f"No session for tenant={tenant_id} user={user_id}, starting fresh")
            context = ConversationContext.create(tenant_id, user_id)
        return context

    def save(self, context: ConversationContext) -> None:
        """
        Overwrite the stored context and reset its TTL.

        Args:
            context: Context to store

        Raises:
            SessionStoreError: If Redis is unreachable
        """
        key = self.build_key(context.tenant_id, context.user_id)
        try:
            self.client.set(key, context.model_dump_json(), ex=self.ttl_seconds)
        except RedisError as e:
            raise SessionStoreError(f"Failed to write session {key}: {e}", key=key, original_error=e) from e

    def delete(self, tenant_id: str, user_id: str) -> None:
        """
        Remove a session. Deleting a missing session is not an error.

        Raises:
            SessionStoreError: If Redis is unreachable
        """
        key = self.build_key(tenant_id, user_id)
        try:
            self.client.delete(key)
        except RedisError as e:
            raise SessionStoreError(f"Failed to delete session {key}: {e}", key=key, original_error=e) from e

    @contextmanager
    def lock(self, tenant_id: str, user_id: str) -> Generator[None, None, None]:
        """
        Hold the per-user lock for one read-modify-write cycle.

        Args:
            tenant_id: Tenant identifier
            user_id: Chat platform user identifier

        Raises:
            SessionStoreError: If the lock cannot be acquired in time
        """
        key = self.build_key(tenant_id, user_id)
        lock = self.client.lock(
            f"lock:{key}",
            timeout=self.lock_timeout_seconds,
            blocking_timeout=self.lock_wait_seconds,
        )
        try:
            acquired = lock.acquire()
        except RedisError as e:
            raise SessionStoreError(f"Failed to lock session {key}: {e}", key=key, original_error=e) from e
        if not acquired:
            raise SessionStoreError(
                f"Timed out after {self.lock_wait_seconds}s waiting for session lock {key}", key=key
            )

        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                # Lease expired while we worked; another writer may already hold it
                logger.warning(f"Session lock {key} was lost before release: {e}")
