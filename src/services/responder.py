"""
Outbound Responder - Delivers booking flow messages to the chat platform.

Handles:
- Reply vs push selection (a reply token is free but single-use and short-lived)
- Per-tenant monthly push quota
- HTTP delivery through the platform's messaging API

Delivery problems never undo the business action that produced the message:
every failure is logged and swallowed here.
"""
from datetime import datetime
from typing import Callable, Optional, Protocol

import httpx
import redis
from loguru import logger
from redis.exceptions import RedisError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from error_handling.exceptions import NotificationError, PushQuotaExceededError
from response.messages import OutboundMessage


class MessagingClient(Protocol):
    """Transport that can answer a reply token or push to a user."""

    def reply(self, tenant_id: str, reply_token: str, message: OutboundMessage) -> None:
        ...

    def push(self, tenant_id: str, user_id: str, message: OutboundMessage) -> None:
        ...


class PushQuota(Protocol):
    """Budget of push messages per tenant."""

    def try_consume(self, tenant_id: str) -> bool:
        ...


class HttpMessagingClient:
    """
    Messaging API client over HTTP.

    Sends the plain-text rendering of each message; rich templates are
    rendered by the platform integration layer.
    """

    def __init__(
        self,
        base_url: str,
        channel_token: Optional[str],
        timeout_seconds: float = 10,
        http_client: Optional[httpx.Client] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Messaging API base URL, without trailing slash
            channel_token: Bearer token for the channel
            timeout_seconds: Request timeout
            http_client: Optional preconfigured httpx.Client
        """
        self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if channel_token:
            headers["Authorization"] = f"Bearer {channel_token}"
        self.http = http_client or httpx.Client(timeout=timeout_seconds, headers=headers)

    @staticmethod
    def _messages(message: OutboundMessage) -> list:
        return [{"type": "text", "text": message.text}]

    def reply(self, tenant_id: str, reply_token: str, message: OutboundMessage) -> None:
        """
        Answer a reply token. Never retried: tokens are single-use.

        Raises:
            NotificationError: If the API rejects the reply or is unreachable
        """
        body = {"replyToken": reply_token, "messages": self._messages(message)}
        try:
            response = self.http.post(f"{self.base_url}/message/reply", json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(
                f"Reply failed for tenant={tenant_id}: {e}",
                channel="reply",
                original_error=e
            ) from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.ConnectError),
        reraise=True
    )
    def _post_push(self, body: dict) -> httpx.Response:
        # Only connection failures are retried; the request never reached the API
        response = self.http.post(f"{self.base_url}/message/push", json=body)
        response.raise_for_status()
        return response

    def push(self, tenant_id: str, user_id: str, message: OutboundMessage) -> None:
        """
        Push a message to a user.

        Raises:
            NotificationError: If the API rejects the push or is unreachable
        """
        body = {"to": user_id, "messages": self._messages(message)}
        try:
            self._post_push(body)
        except httpx.HTTPError as e:
            raise NotificationError(
                f"Push failed for tenant={tenant_id} user={user_id}: {e}",
                channel="push",
                original_error=e
            ) from e


class RedisPushQuota:
    """
    Monthly push counter per tenant, kept in Redis.

    Keys look like ``quota:{tenant_id}:{YYYYMM}`` and expire after the month
    is long over.
    """

    KEY_TTL_SECONDS = 40 * 24 * 3600

    def __init__(
        self,
        client: "redis.Redis",
        monthly_quota: int,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.client = client
        self.monthly_quota = monthly_quota
        self.clock = clock

    def build_key(self, tenant_id: str) -> str:
        return f"quota:{tenant_id}:{self.clock().strftime('%Y%m')}"

    def used(self, tenant_id: str) -> int:
        value = self.client.get(self.build_key(tenant_id))
        return int(value) if value else 0

    def try_consume(self, tenant_id: str) -> bool:
        """
        Take one push from this month's budget.

        Args:
            tenant_id: Tenant identifier

        Returns:
            True if the push may be sent, False if the budget is spent
        """
        key = self.build_key(tenant_id)
        count = self.client.incr(key)
        if count == 1:
            self.client.expire(key, self.KEY_TTL_SECONDS)
        if count > self.monthly_quota:
            self.client.decr(key)
            return False
        return True


class Responder:
    """
    Sends one OutboundMessage per event to the user who triggered it.
    """

    def __init__(self, client: MessagingClient, quota: Optional[PushQuota] = None):
        """
        Args:
            client: Messaging transport
            quota: Push budget; pushes are unmetered when None
        """
        self.client = client
        self.quota = quota

    def send(
        self,
        tenant_id: str,
        user_id: str,
        reply_token: Optional[str],
        message: OutboundMessage
    ) -> bool:
        """
        Deliver a message, by reply when a token is present, otherwise by push.

        Args:
            tenant_id: Tenant identifier
            user_id: Recipient
            reply_token: Token from the inbound event, if any
            message: Message to deliver

        Returns:
            True if the transport accepted the message, False otherwise
        """
        try:
            if reply_token:
                self.client.reply(tenant_id, reply_token, message)
                channel = "reply"
            else:
                if self.quota is not None and not self.quota.try_consume(tenant_id):
                    raise PushQuotaExceededError(tenant_id, getattr(self.quota, "monthly_quota", 0))
                self.client.push(tenant_id, user_id, message)
                channel = "push"
        except NotificationError as e:
            logger.warning(
                f"Could not deliver {message.prompt} to user={user_id} of tenant={tenant_id}: {e.message}"
            )
            return False
        except RedisError as e:
            logger.error(f"Push quota check failed for tenant={tenant_id}, message dropped: {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error delivering {message.prompt} to user={user_id}: {e}")
            return False

        logger.debug(f"Delivered {message.prompt} to user={user_id} via {channel}")
        return True
