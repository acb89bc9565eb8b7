"""Delivery channels for identity sync events.

Primary: a Redis stream per action (``<prefix>.<action>``), appended with
XADD and trimmed to an approximate max length.
Fallback: a JSON POST to a downstream endpoint.

Both raise DeliveryError on any failure and carry bounded timeouts.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from identity_service.core.exceptions import DeliveryError

logger = logging.getLogger(__name__)


class RedisStreamPublisher:
    channel = "stream"

    def __init__(
        self,
        client: aioredis.Redis,
        prefix: str = "user.events",
        maxlen: int | None = 100_000,
        timeout: float = 5.0,
    ):
        self.client = client
        self.prefix = prefix
        self.maxlen = maxlen
        self.timeout = timeout

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisStreamPublisher:
        timeout = kwargs.get("timeout", 5.0)
        client = aioredis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        return cls(client, **kwargs)

    def stream_for(self, topic: str) -> str:
        return f"{self.prefix}.{topic}"

    async def publish(self, topic: str, payload: dict[str, Any]) -> str:
        stream = self.stream_for(topic)
        try:
            entry_id = await asyncio.wait_for(
                self.client.xadd(
                    stream,
                    {"data": json.dumps(payload, separators=(",", ":"))},
                    maxlen=self.maxlen,
                    approximate=True,
                ),
                timeout=self.timeout,
            )
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise DeliveryError(f"Publish to {stream} failed: {exc.__class__.__name__}", self.channel) from exc
        logger.debug("Published to %s (entry %s)", stream, entry_id)
        return entry_id

    async def close(self) -> None:
        await self.client.aclose()


class HttpSyncClient:
    channel = "http"

    def __init__(self, url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def post(self, payload: dict[str, Any]) -> None:
        try:
            response = await self._client.post(self.url, json=payload)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"HTTP sync request failed: {exc.__class__.__name__}", self.channel) from exc
        if not response.is_success:
            raise DeliveryError(f"HTTP sync returned status {response.status_code}", self.channel)

    async def close(self) -> None:
        await self._client.aclose()
