"""
Mastery update events

Published after every successful update on the 'bkt.mastery.updated'
channel. Delivery is fire-and-forget: a failing sink is logged and the
event is dropped.
"""
from datetime import datetime
from typing import Optional, Protocol
import logging

import redis.asyncio as redis
from pydantic import BaseModel

from mastery_engine.core.config import settings
from mastery_engine.schemas.mastery import PracticeContext

logger = logging.getLogger(__name__)


class MasteryUpdatedEvent(BaseModel):
    learner_id: str
    tenant_id: str
    skill_id: str
    p_mastery: float
    p_retention: float
    correct: bool
    context: PracticeContext
    streak_current: int
    version: int = 0
    timestamp: Optional[datetime] = None


class EventPublisher(Protocol):
    async def publish(self, event: MasteryUpdatedEvent) -> None:
        ...


class LoggingEventPublisher:
    """Writes events to the log"""

    def __init__(self, channel: str = settings.MASTERY_EVENT_CHANNEL):
        self.channel = channel

    async def publish(self, event: MasteryUpdatedEvent) -> None:
        logger.info(
            f"{self.channel}: learner={event.learner_id} tenant={event.tenant_id} "
            f"skill={event.skill_id} p_mastery={event.p_mastery:.3f} correct={event.correct}"
        )


class RedisEventPublisher:
    """
    Publishes events as JSON on a Redis pub/sub channel.
    """

    def __init__(self, redis_url: str = settings.REDIS_URL, channel: str = settings.MASTERY_EVENT_CHANNEL):
        self.redis_url = redis_url
        self.channel = channel
        self._client: Optional[redis.Redis] = None

    async def get_client(self) -> redis.Redis:
        if not self._client:
            self._client = redis.from_url(self.redis_url, decode_responses=True)
        return self._client

    async def publish(self, event: MasteryUpdatedEvent) -> None:
        client = await self.get_client()
        try:
            receivers = await client.publish(self.channel, event.model_dump_json())
            logger.debug(f"Published mastery event for {event.learner_id}/{event.skill_id} to {receivers} subscribers")
        except redis.RedisError as e:
            logger.error(f"Failed to publish mastery event for learner {event.learner_id}: {e}")

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None
