"""Best-effort analytics events for pipeline steps."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from keyword_intel.config import settings
from keyword_intel.core.redis import get_redis_client

logger = logging.getLogger(__name__)

EVENT_STEP_RETRIED = "workflow_step_retried"
EVENT_STEP_FAILED = "workflow_step_failed"
EVENT_LONGTAILS_EXPANDED = "longtail_keywords_expanded"
EVENT_KEYWORDS_FILTERED = "keywords_filtered"
EVENT_CLUSTERING_STARTED = "workflow.topic_clustering.started"
EVENT_CLUSTERING_COMPLETED = "workflow.topic_clustering.completed"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EventPublisher(Protocol):
    """Sink for analytics events. Publishing must never fail the caller."""

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None: ...


class RedisEventPublisher:
    """Pushes JSON events onto the analytics list in Redis."""

    def __init__(self, redis_client: Redis | None = None, queue_key: str | None = None) -> None:
        self._redis = redis_client
        self.queue_key = queue_key or settings.analytics_queue_key

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_client()
        return self._redis

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        if not settings.analytics_enabled:
            return
        event = {"event_type": event_type, "timestamp": utc_now_iso(), **payload}
        try:
            await self.redis.rpush(self.queue_key, json.dumps(event, default=str))
        except (RedisError, OSError) as e:
            logger.warning(
                "Failed to publish analytics event",
                extra={"event_type": event_type, "error": str(e)},
            )


@dataclass
class RecordedEvent:
    event_type: str
    payload: dict[str, Any]


@dataclass
class InMemoryEventPublisher:
    """Collects events in memory; used by tests and local runs."""

    events: list[RecordedEvent] = field(default_factory=list)

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append(
            RecordedEvent(event_type=event_type, payload={"timestamp": utc_now_iso(), **payload})
        )

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [event.payload for event in self.events if event.event_type == event_type]
