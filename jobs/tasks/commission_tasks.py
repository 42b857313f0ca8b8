"""
Trade commission task.

Consumes trade-close events from the queue and posts commissions through
the engine. Redelivered messages are harmless: posting is idempotent per
(event, beneficiary).
"""

from typing import Any

import dramatiq
from loguru import logger

from ib_network.config.constants import DRAMATIQ_TIME_LIMIT_STANDARD
from ib_network.services.commission import (
    CommissionEngine,
    CommissionResult,
    TradeCloseEvent,
)
from ib_network.services.notification import NotificationDispatcher
from ib_network.services.settings_service import IBSettingsService
from ib_network.utils.exceptions import ValidationError
from jobs.async_runner import run_async
from jobs.broker import broker
from jobs.tasks.notification_tasks import DramatiqNotificationHook
from jobs.utils.database import task_session_maker


@dramatiq.actor(
    broker=broker,
    queue_name="ib_commissions",
    max_retries=3,
    time_limit=DRAMATIQ_TIME_LIMIT_STANDARD,
)  # 5 min timeout
def process_trade_commission(message: dict[str, Any]) -> None:
    """
    Post commissions for one closed trade.

    Malformed events are logged and dropped; storage and concurrency
    failures propagate so the message is retried.
    """
    try:
        result = run_async(process_trade_event(message))
    except ValidationError as e:
        logger.error(
            "Dropping malformed trade event",
            extra={"event": message, "error": e.message},
        )
        return

    logger.info(
        f"Trade commission processed: {result.entry_count} entries, "
        f"{result.duplicates} duplicates",
        extra={"event_id": result.event_id},
    )


async def process_trade_event(
    message: dict[str, Any], session_maker=None
) -> CommissionResult:
    """
    Run the commission engine for a queued trade event.

    Args:
        message: Serialized TradeCloseEvent
        session_maker: Session factory (defaults to the task session maker)

    Returns:
        Engine result
    """
    event = TradeCloseEvent.from_message(message)
    dispatcher = NotificationDispatcher(DramatiqNotificationHook())

    async with (session_maker or task_session_maker)() as session:
        snapshot = await IBSettingsService(session).load_snapshot()
        result = await CommissionEngine(session, dispatcher).process(
            event, snapshot
        )

    await dispatcher.drain()
    return result


def enqueue_trade_close(event: TradeCloseEvent) -> None:
    """Queue a closed trade for commission processing."""
    process_trade_commission.send(event.to_message())
