"""
Tests for downstream identity sync.

Tests cover:
- Stream-first, HTTP-fallback delivery per round
- Bounded retry with exponential backoff (1s, 2s, no jitter)
- The events toggle
- Detached submission from the loop and from worker threads
- Redis stream and HTTP channel error mapping
"""
import asyncio
import json

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from identity_service.core.exceptions import DeliveryError
from identity_service.services.sync import (
    HttpSyncClient,
    RedisStreamPublisher,
    SyncAction,
    SyncPipeline,
    SyncTask,
)


class FakePublisher:
    channel = "stream"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, dict]] = []
        self.closed = False

    async def publish(self, topic, payload):
        self.calls.append((topic, payload))
        if self.fail:
            raise DeliveryError("stream down", self.channel)
        return "1-0"

    async def close(self):
        self.closed = True


class FakeHttp:
    channel = "http"

    def __init__(self, outcomes: list[bool] | None = None, default: bool = True):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.calls: list[dict] = []
        self.closed = False

    async def post(self, payload):
        self.calls.append(payload)
        ok = self.outcomes.pop(0) if self.outcomes else self.default
        if not ok:
            raise DeliveryError("HTTP sync returned status 503", self.channel)

    async def close(self):
        self.closed = True


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def task():
    return SyncTask(
        identity_id="id-1",
        email="alice@example.com",
        username="alice_1a2b3c4d",
        action=SyncAction.CREATED,
        request_id="req-1",
    )


@pytest.fixture
def sleep():
    return SleepRecorder()


def test_task_payload_shape(task):
    payload = task.to_payload()

    assert set(payload) == {"id", "email", "username", "action", "request_id", "timestamp", "service_name"}
    assert payload["action"] == "created"
    assert payload["timestamp"].endswith("Z")
    assert task.topic == "created"


# ========== Retry and fallback ==========

@pytest.mark.asyncio
async def test_stream_success_skips_http(task, sleep):
    publisher, http = FakePublisher(), FakeHttp()
    pipeline = SyncPipeline(publisher, http, sleep=sleep)

    assert await pipeline.deliver(task) is True

    assert publisher.calls == [("created", task.to_payload())]
    assert http.calls == []
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_http_fallback_succeeds_on_second_round(task, sleep):
    publisher, http = FakePublisher(fail=True), FakeHttp(outcomes=[False, True])
    pipeline = SyncPipeline(publisher, http, sleep=sleep)

    assert await pipeline.deliver(task) is True

    assert len(publisher.calls) == 2
    assert len(http.calls) == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_all_channels_failing_drops_after_three_rounds(task, sleep, caplog):
    publisher, http = FakePublisher(fail=True), FakeHttp(default=False)
    pipeline = SyncPipeline(publisher, http, sleep=sleep)

    assert await pipeline.deliver(task) is False

    assert len(publisher.calls) == 3
    assert len(http.calls) == 3
    assert sleep.delays == [1.0, 2.0]
    assert "after all retries" in caplog.text


@pytest.mark.asyncio
async def test_events_toggle_off_goes_straight_to_http(task, sleep):
    publisher, http = FakePublisher(), FakeHttp()
    pipeline = SyncPipeline(publisher, http, use_events=False, sleep=sleep)

    assert await pipeline.deliver(task) is True

    assert publisher.calls == []
    assert len(http.calls) == 1


@pytest.mark.asyncio
async def test_missing_http_fallback_counts_as_failure(task, sleep):
    publisher = FakePublisher(fail=True)
    pipeline = SyncPipeline(publisher, None, sleep=sleep)

    assert await pipeline.deliver(task) is False
    assert len(publisher.calls) == 3


@pytest.mark.asyncio
async def test_backoff_scales_with_base_delay(task, sleep):
    pipeline = SyncPipeline(None, FakeHttp(default=False), max_attempts=4, base_delay=0.5, sleep=sleep)

    await pipeline.deliver(task)

    assert sleep.delays == [0.5, 1.0, 2.0]


# ========== Detached submission ==========

@pytest.mark.asyncio
async def test_submit_does_not_block_caller(task):
    gate = asyncio.Event()

    class SlowHttp(FakeHttp):
        async def post(self, payload):
            await gate.wait()
            await super().post(payload)

    http = SlowHttp()
    pipeline = SyncPipeline(None, http)
    pipeline.start()

    pipeline.submit(task)

    assert pipeline.pending == 1
    assert http.calls == []
    gate.set()
    await pipeline.close()
    assert http.calls == [task.to_payload()]
    assert http.closed is True


@pytest.mark.asyncio
async def test_submit_from_worker_thread(task):
    http = FakeHttp()
    pipeline = SyncPipeline(None, http)
    pipeline.start()

    await asyncio.to_thread(pipeline.submit, task)
    for _ in range(10):
        if http.calls:
            break
        await asyncio.sleep(0.01)

    assert http.calls == [task.to_payload()]
    await pipeline.close()


@pytest.mark.asyncio
async def test_submit_when_disabled_is_a_noop(task):
    pipeline = SyncPipeline(None, None)

    assert pipeline.enabled is False
    pipeline.submit(task)
    assert pipeline.pending == 0


@pytest.mark.asyncio
async def test_close_cancels_deliveries_past_grace(task):
    never = asyncio.Event()

    class StuckHttp(FakeHttp):
        async def post(self, payload):
            await never.wait()

    pipeline = SyncPipeline(None, StuckHttp())
    pipeline.start()
    pipeline.submit(task)
    await asyncio.sleep(0)

    await pipeline.close(grace=0.01)

    assert pipeline.pending == 0


# ========== Channels ==========

class FakeRedis:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.entries: list[tuple[str, dict, dict]] = []

    async def xadd(self, name, fields, **kwargs):
        if self.error:
            raise self.error
        self.entries.append((name, fields, kwargs))
        return "1700000000000-0"

    async def aclose(self):
        pass


@pytest.mark.asyncio
async def test_redis_publisher_appends_to_action_stream(task):
    client = FakeRedis()
    publisher = RedisStreamPublisher(client, prefix="user.events", maxlen=1000)

    entry_id = await publisher.publish(task.topic, task.to_payload())

    assert entry_id == "1700000000000-0"
    name, fields, kwargs = client.entries[0]
    assert name == "user.events.created"
    assert json.loads(fields["data"]) == task.to_payload()
    assert kwargs == {"maxlen": 1000, "approximate": True}


@pytest.mark.asyncio
async def test_redis_publisher_maps_errors_to_delivery_error(task):
    publisher = RedisStreamPublisher(FakeRedis(error=RedisConnectionError("refused")))

    with pytest.raises(DeliveryError) as exc_info:
        await publisher.publish(task.topic, task.to_payload())

    assert exc_info.value.channel == "stream"


@pytest.mark.asyncio
async def test_redis_publisher_times_out(task):
    class HangingRedis(FakeRedis):
        async def xadd(self, name, fields, **kwargs):
            await asyncio.sleep(10)

    publisher = RedisStreamPublisher(HangingRedis(), timeout=0.01)

    with pytest.raises(DeliveryError, match="TimeoutError"):
        await publisher.publish(task.topic, task.to_payload())


@pytest.mark.asyncio
async def test_http_client_posts_json_payload(task):
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(201)

    client = HttpSyncClient("https://downstream.test/sync/users", transport=httpx.MockTransport(handler))

    await client.post(task.to_payload())
    await client.close()

    assert received == [task.to_payload()]


@pytest.mark.asyncio
async def test_http_client_non_2xx_is_delivery_error(task):
    client = HttpSyncClient(
        "https://downstream.test/sync/users",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )

    with pytest.raises(DeliveryError) as exc_info:
        await client.post(task.to_payload())
    await client.close()

    assert exc_info.value.channel == "http"
