"""Unit tests for analytics event publishers."""

from __future__ import annotations

import json
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from keyword_intel.config import settings
from keyword_intel.services.analytics import (
    EVENT_KEYWORDS_FILTERED,
    EVENT_STEP_RETRIED,
    InMemoryEventPublisher,
    RedisEventPublisher,
)


class _FakeRedis:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.pushed: list[tuple[str, str]] = []

    async def rpush(self, key: str, value: str) -> int:
        if self.error is not None:
            raise self.error
        self.pushed.append((key, value))
        return len(self.pushed)


@pytest.mark.asyncio
async def test_redis_publisher_pushes_json_event(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "analytics_enabled", True)
    redis = _FakeRedis()
    publisher = RedisEventPublisher(redis_client=redis, queue_key="test:events")  # type: ignore[arg-type]

    await publisher.publish(EVENT_KEYWORDS_FILTERED, {"workflow_id": "wf-1", "remaining_keywords": 4})

    key, raw = redis.pushed[0]
    event: dict[str, Any] = json.loads(raw)
    assert key == "test:events"
    assert event["event_type"] == EVENT_KEYWORDS_FILTERED
    assert event["workflow_id"] == "wf-1"
    assert event["remaining_keywords"] == 4
    assert event["timestamp"]


@pytest.mark.asyncio
async def test_redis_publisher_swallows_redis_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "analytics_enabled", True)
    publisher = RedisEventPublisher(redis_client=_FakeRedis(RedisConnectionError("down")))  # type: ignore[arg-type]

    await publisher.publish(EVENT_STEP_RETRIED, {"workflow_id": "wf-1"})


@pytest.mark.asyncio
async def test_redis_publisher_respects_disabled_analytics(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "analytics_enabled", False)
    redis = _FakeRedis()

    await RedisEventPublisher(redis_client=redis).publish(EVENT_STEP_RETRIED, {})  # type: ignore[arg-type]

    assert redis.pushed == []


@pytest.mark.asyncio
async def test_in_memory_publisher_filters_by_type() -> None:
    publisher = InMemoryEventPublisher()

    await publisher.publish(EVENT_STEP_RETRIED, {"attempt_number": 1})
    await publisher.publish(EVENT_KEYWORDS_FILTERED, {"remaining_keywords": 2})
    await publisher.publish(EVENT_STEP_RETRIED, {"attempt_number": 2})

    assert [event["attempt_number"] for event in publisher.of_type(EVENT_STEP_RETRIED)] == [1, 2]
    assert len(publisher.events) == 3
