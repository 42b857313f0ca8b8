"""
Notification dispatcher.

Delivers IBEvents to a NotificationHook off the critical path. A failing hook
is logged and never propagates: the state change it reports is already
committed.
"""

import asyncio
from typing import Protocol

from loguru import logger

from ib_network.services.notification.events import IBEvent


class NotificationHook(Protocol):
    """Collaborator receiving partner network events."""

    async def publish(self, event: IBEvent) -> None:
        """Handle one event."""
        ...


class NotificationDispatcher:
    """
    Schedules hook calls as background tasks.

    Tasks are tracked so they are not garbage collected mid-flight and so
    tests (or graceful shutdown) can wait for them with drain().
    """

    def __init__(self, hook: NotificationHook | None = None) -> None:
        """
        Initialize dispatcher.

        Args:
            hook: Receiver of events; None disables delivery
        """
        self.hook = hook
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, events: list[IBEvent]) -> None:
        """
        Schedule delivery of events without waiting for it.

        Args:
            events: Events in the order they happened
        """
        if self.hook is None or not events:
            return

        task = asyncio.create_task(self._deliver(list(events)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, events: list[IBEvent]) -> None:
        for event in events:
            try:
                await self.hook.publish(event)
            except Exception as e:
                logger.warning(
                    "Failed to deliver IB notification",
                    extra={
                        "event_type": str(event.event_type),
                        "ib_id": event.ib_id,
                        "error": str(e),
                    },
                )

    async def drain(self) -> None:
        """Wait until all scheduled deliveries have finished."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class RecordingHook:
    """Hook that keeps events in memory (admin previews and tests)."""

    def __init__(self) -> None:
        self.events: list[IBEvent] = []

    async def publish(self, event: IBEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[IBEvent]:
        """Events of one type, in delivery order."""
        return [e for e in self.events if e.event_type == event_type]
