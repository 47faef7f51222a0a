"""
Mastery Engine - Application wiring

Builds a MasteryEngine from settings: loguru logging, SQLAlchemy store,
and a Redis event publisher when requested.
"""
import logging

from mastery_engine.core.config import Settings, settings
from mastery_engine.core.database import create_engine, create_session_factory, init_db
from mastery_engine.core.logging import setup_logging
from mastery_engine.services import (
    LoggingEventPublisher,
    MasteryEngine,
    RedisEventPublisher,
    SqlAlchemyMasteryStore,
)

logger = logging.getLogger(__name__)


async def create_mastery_engine(config: Settings = settings, use_redis_events: bool = False) -> MasteryEngine:
    """
    Create a fully wired engine

    Args:
        config: Engine settings
        use_redis_events: Publish mastery events to Redis instead of the log

    Returns:
        Engine backed by the configured database
    """
    setup_logging(config.LOG_LEVEL)
    logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION} ({config.ENVIRONMENT})")

    db_engine = create_engine(config.DATABASE_URL)
    await init_db(db_engine)
    store = SqlAlchemyMasteryStore(create_session_factory(db_engine))

    if use_redis_events:
        publisher = RedisEventPublisher(config.REDIS_URL, config.MASTERY_EVENT_CHANNEL)
    else:
        publisher = LoggingEventPublisher(config.MASTERY_EVENT_CHANNEL)

    return MasteryEngine(store, publisher=publisher, config=config)
