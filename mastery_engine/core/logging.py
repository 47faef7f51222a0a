"""
Logging configuration
"""
import logging
import sys
from pathlib import Path

from loguru import logger
from mastery_engine.core.config import settings


class InterceptHandler(logging.Handler):
    """
    Intercept standard logging and redirect to loguru
    """

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )

# Driver and pool chatter stays out of engine logs unless it is a problem
QUIET_LOGGERS = ("aiosqlite", "asyncio", "sqlalchemy.engine", "sqlalchemy.pool")

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = None, log_dir: str = "logs"):
    """
    Route engine logging (stdlib loggers included) through loguru

    Args:
        level: Minimum level, defaults to LOG_LEVEL
        log_dir: Directory for the JSON file sink used in production
    """
    level = level or settings.LOG_LEVEL

    logger.remove()
    logger.add(sys.stdout, enqueue=True, colorize=True, format=CONSOLE_FORMAT, level=level)

    if settings.ENVIRONMENT == "production":
        log_path = Path(log_dir)
        log_path.mkdir(exist_ok=True)

        # One JSON record per line for log shipping
        logger.add(
            log_path / "mastery_engine_{time:YYYY-MM-DD}.log",
            rotation="500 MB",
            retention="30 days",
            enqueue=True,
            serialize=True,
            level=level,
        )

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(level)

    for name in list(logging.root.manager.loggerDict.keys()):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logging configured - Level: {level}, Environment: {settings.ENVIRONMENT}")
