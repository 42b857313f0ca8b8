"""
Notification delivery task.

Services hand events to DramatiqNotificationHook after commit; the
deliver_ib_event actor forwards them to the configured webhook.
"""

from typing import Any

import aiohttp
import dramatiq
from loguru import logger

from ib_network.config.constants import DRAMATIQ_TIME_LIMIT_SHORT
from ib_network.config.settings import settings
from ib_network.services.notification import IBEvent
from jobs.async_runner import run_async
from jobs.broker import broker


class DramatiqNotificationHook:
    """NotificationHook that enqueues events for background delivery."""

    async def publish(self, event: IBEvent) -> None:
        deliver_ib_event.send(event.to_message())


@dramatiq.actor(
    broker=broker,
    queue_name="ib_notifications",
    max_retries=5,
    time_limit=DRAMATIQ_TIME_LIMIT_SHORT,
)  # 1 min timeout
def deliver_ib_event(message: dict[str, Any]) -> None:
    """
    Deliver one partner network event.

    HTTP failures raise so the Retries middleware backs off and retries.
    """
    run_async(post_to_webhook(message))


async def post_to_webhook(
    message: dict[str, Any], url: str | None = None
) -> bool:
    """
    POST an event to the notification webhook.

    Args:
        message: Serialized IBEvent
        url: Webhook URL (defaults to settings.notification_webhook_url)

    Returns:
        True if delivered, False when no webhook is configured

    Raises:
        aiohttp.ClientError: Delivery failed
    """
    url = url or settings.notification_webhook_url
    if not url:
        logger.debug(
            "No notification webhook configured, event dropped",
            extra={"event_type": message.get("event_type")},
        )
        return False

    timeout = aiohttp.ClientTimeout(total=settings.notification_timeout_seconds)
    async with aiohttp.ClientSession(timeout=timeout) as client:
        async with client.post(
            url,
            json=message,
            headers={"Content-Type": "application/json"},
        ) as response:
            response.raise_for_status()

    logger.info(
        "IB notification delivered",
        extra={
            "event_type": message.get("event_type"),
            "ib_id": message.get("ib_id"),
        },
    )
    return True
