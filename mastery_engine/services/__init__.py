"""
Engine services: storage, caching, events and the update pipeline
"""
from .storage import MasteryStore, InMemoryMasteryStore, SqlAlchemyMasteryStore
from .state_cache import TTLStateCache
from .events import MasteryUpdatedEvent, EventPublisher, LoggingEventPublisher, RedisEventPublisher
from .mastery_engine import MasteryEngine

__all__ = [
    "MasteryStore",
    "InMemoryMasteryStore",
    "SqlAlchemyMasteryStore",
    "TTLStateCache",
    "MasteryUpdatedEvent",
    "EventPublisher",
    "LoggingEventPublisher",
    "RedisEventPublisher",
    "MasteryEngine",
]
