"""
Dramatiq broker configuration.

Redis-based message broker for the commission and notification queues.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from ib_network.config.logging import setup_logging
from ib_network.config.settings import settings
from ib_network.utils.exceptions import MUST_CORRECT


_logging_configured = False


def configure_worker_logging() -> None:
    """
    Install the configured log sinks once per process.

    Worker processes import this module before any actor, so they log with
    the configured level and rotating file instead of loguru's default sink.
    """
    global _logging_configured
    if _logging_configured:
        return
    setup_logging()
    _logging_configured = True


def should_retry(retries_so_far: int, exception: Exception) -> bool:
    """
    Retry transient failures only.

    Malformed events and invariant/state errors fail the same way every
    time, so they are not retried.
    """
    if isinstance(exception, MUST_CORRECT):
        return False
    return retries_so_far < 3


configure_worker_logging()

# Initialize Redis broker with graceful shutdown middleware
redis_broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password if settings.redis_password else None,
    db=settings.redis_db,
)

# ShutdownNotifications: lets workers finish the current event on shutdown
# CurrentMessage: gives actors access to the message id
# Retries: exponential backoff for transient failures
redis_broker.add_middleware(ShutdownNotifications())
redis_broker.add_middleware(CurrentMessage())
redis_broker.add_middleware(
    Retries(
        max_retries=3,
        min_backoff=1000,  # 1 second
        max_backoff=60000,  # 1 minute
        retry_when=should_retry,
    )
)

# Set as default broker
dramatiq.set_broker(redis_broker)

# Export broker
broker = redis_broker

logger.info(
    f"Dramatiq broker initialized: "
    f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
)
