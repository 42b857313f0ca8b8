"""
Notification package.

Events, the dispatcher that delivers them after commit, and hooks.
"""

from ib_network.services.notification.dispatcher import (
    NotificationDispatcher,
    NotificationHook,
    RecordingHook,
)
from ib_network.services.notification.events import IBEvent, IBEventType


__all__ = [
    "IBEvent",
    "IBEventType",
    "NotificationDispatcher",
    "NotificationHook",
    "RecordingHook",
]
