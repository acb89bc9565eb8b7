"""Downstream identity synchronization.

Each round tries the event stream first (unless the SYNC_USE_EVENTS toggle
is off), then the HTTP fallback; the round succeeds if either accepts the
payload. Up to ``max_attempts`` rounds run, with ``base_delay * 2**n``
seconds of backoff after failed round ``n``. A task that exhausts its
rounds is logged and dropped.

``submit`` detaches delivery from the caller: the request that triggered
the event never waits for it and never sees its failure.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from identity_service.core.config import BaseAppSettings, settings
from identity_service.core.exceptions import DeliveryError

from .channels import HttpSyncClient, RedisStreamPublisher
from .task import SyncTask

logger = logging.getLogger(__name__)


class SyncPipeline:
    def __init__(
        self,
        publisher: RedisStreamPublisher | None = None,
        http_client: HttpSyncClient | None = None,
        *,
        use_events: bool = True,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ):
        self.publisher = publisher
        self.http_client = http_client
        self.use_events = use_events and publisher is not None
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.use_events or self.http_client is not None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def start(self) -> None:
        """Bind to the running loop so threadpool callers can submit too."""
        self._loop = asyncio.get_running_loop()

    # ---- delivery ---------------------------------------------------------

    async def deliver_once(self, task: SyncTask) -> str:
        """One round: stream, then HTTP. Returns the channel that accepted."""
        payload = task.to_payload()
        if self.use_events:
            try:
                await self.publisher.publish(task.topic, payload)
                return self.publisher.channel
            except DeliveryError as exc:
                logger.warning(
                    "Event sync failed, falling back to HTTP | identity=%s action=%s error=%s",
                    task.identity_id,
                    task.topic,
                    exc.message,
                )
        if self.http_client is None:
            raise DeliveryError("No HTTP fallback configured", "http")
        await self.http_client.post(payload)
        return self.http_client.channel

    async def deliver(self, task: SyncTask) -> bool:
        """Deliver with bounded retry. Returns False when the task was dropped."""
        for attempt in range(self.max_attempts):
            try:
                channel = await self.deliver_once(task)
            except DeliveryError as exc:
                if attempt + 1 >= self.max_attempts:
                    logger.error(
                        "Failed to sync identity after all retries | identity=%s username=%s action=%s attempts=%d error=%s",
                        task.identity_id,
                        task.username,
                        task.topic,
                        self.max_attempts,
                        exc.message,
                    )
                    return False
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    "Retrying sync | identity=%s action=%s attempt=%d max=%d delay_s=%.1f",
                    task.identity_id,
                    task.topic,
                    attempt + 2,
                    self.max_attempts,
                    delay,
                )
                await self._sleep(delay)
                continue
            logger.info("Identity %s synced via %s (action: %s)", task.identity_id, channel, task.topic)
            return True
        return False

    # ---- detached dispatch ------------------------------------------------

    def submit(self, task: SyncTask) -> None:
        """Fire-and-forget; safe to call from the event loop or a worker thread."""
        if not self.enabled:
            logger.debug("Sync disabled; skipping %s event for %s", task.topic, task.identity_id)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None and self._loop in (None, running):
            self._loop = running
            self._spawn(task)
        elif self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._spawn, task)
        else:
            logger.error("Sync pipeline not started; dropping %s event for %s", task.topic, task.identity_id)

    def _spawn(self, task: SyncTask) -> None:
        background = asyncio.get_running_loop().create_task(
            self._run(task), name=f"sync-{task.topic}-{task.identity_id}"
        )
        self._tasks.add(background)
        background.add_done_callback(self._tasks.discard)

    async def _run(self, task: SyncTask) -> None:
        try:
            await self.deliver(task)
        except asyncio.CancelledError:
            logger.warning("Sync of %s cancelled before delivery (action: %s)", task.identity_id, task.topic)
            raise
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error syncing identity %s", task.identity_id)

    async def close(self, grace: float = 5.0) -> None:
        """Give in-flight deliveries ``grace`` seconds, cancel the rest, release channels."""
        if self._tasks:
            _, still_running = await asyncio.wait(set(self._tasks), timeout=grace)
            for background in still_running:
                background.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)
        if self.publisher is not None:
            await self.publisher.close()
        if self.http_client is not None:
            await self.http_client.close()


def create_sync_pipeline(config: BaseAppSettings = settings) -> SyncPipeline:
    publisher = None
    if config.SYNC_USE_EVENTS and config.REDIS_URL:
        publisher = RedisStreamPublisher.from_url(
            config.REDIS_URL,
            prefix=config.SYNC_STREAM_PREFIX,
            maxlen=config.SYNC_STREAM_MAXLEN,
            timeout=config.SYNC_PUBLISH_TIMEOUT_SECONDS,
        )
    elif config.SYNC_USE_EVENTS:
        logger.warning("SYNC_USE_EVENTS is on but REDIS_URL is not configured; using HTTP sync only")

    http_client = None
    if config.SYNC_HTTP_URL:
        http_client = HttpSyncClient(config.SYNC_HTTP_URL, timeout=config.SYNC_HTTP_TIMEOUT_SECONDS)

    pipeline = SyncPipeline(
        publisher,
        http_client,
        use_events=config.SYNC_USE_EVENTS,
        max_attempts=config.SYNC_MAX_ATTEMPTS,
        base_delay=config.SYNC_BASE_DELAY_SECONDS,
    )
    if not pipeline.enabled:
        logger.warning("Identity sync disabled (no event stream or HTTP endpoint configured)")
    return pipeline
