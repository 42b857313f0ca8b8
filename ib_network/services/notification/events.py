"""
Notification events.

Fire-and-forget events published to the notification collaborator after the
change they describe has been committed.
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class IBEventType(StrEnum):
    """Kinds of events published by the partner network."""

    APPLICATION_RECEIVED = "application_received"
    STATUS_CHANGED = "status_changed"
    LEVEL_PROMOTED = "level_promoted"
    LEVEL_CHANGED = "level_changed"
    COMMISSION_POSTED = "commission_posted"
    REFERRAL_ATTACHED = "referral_attached"
    REFERRALS_TRANSFERRED = "referrals_transferred"


@dataclass(frozen=True)
class IBEvent:
    """Event payload handed to a NotificationHook."""

    event_type: IBEventType
    ib_id: int | None
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_message(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dict (task queue / webhook body)."""
        data = asdict(self)
        data["event_type"] = str(self.event_type)
        data["occurred_at"] = self.occurred_at.isoformat()
        data["payload"] = {
            key: value if isinstance(value, (int, float, bool, type(None))) else str(value)
            for key, value in self.payload.items()
        }
        return data
