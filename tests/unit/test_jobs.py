"""Unit tests for background job wiring."""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from unittest.mock import patch

import pytest

from ib_network.services.commission import TradeCloseEvent
from ib_network.services.notification import IBEvent, IBEventType
from ib_network.utils.exceptions import (
    ConcurrencyConflict,
    CycleDetected,
    StorageError,
    ValidationError,
)
import jobs.broker
from jobs.broker import configure_worker_logging, should_retry
from jobs.tasks.commission_tasks import enqueue_trade_close, process_trade_commission
from jobs.tasks.notification_tasks import (
    DramatiqNotificationHook,
    deliver_ib_event,
    post_to_webhook,
)


class TestTradeCloseEvent:
    """Test queue message parsing."""

    def test_from_message(self):
        event = TradeCloseEvent.from_message(
            {
                "event_id": "trade-1",
                "originating_user_id": 42,
                "lots": "1.5",
                "notional_amount": "1000",
            }
        )

        assert event.lots == Decimal("1.5")
        assert event.notional_amount == Decimal("1000")

    def test_message_roundtrip(self):
        event = TradeCloseEvent("trade-2", 7, Decimal("2"), Decimal("0"))

        assert TradeCloseEvent.from_message(event.to_message()) == event

    def test_missing_field(self):
        with pytest.raises(ValidationError) as exc_info:
            TradeCloseEvent.from_message({"event_id": "trade-3"})

        assert exc_info.value.context["field"] == "originating_user_id"

    def test_malformed_lots(self):
        with pytest.raises(ValidationError):
            TradeCloseEvent.from_message(
                {"event_id": "t", "originating_user_id": 1, "lots": "many"}
            )


class TestShouldRetry:
    """Test Retries middleware predicate."""

    def test_transient_errors_retried(self):
        assert should_retry(0, ConcurrencyConflict("x"))
        assert should_retry(1, StorageError("x"))

    def test_corrections_not_retried(self):
        assert not should_retry(0, ValidationError("x"))
        assert not should_retry(0, CycleDetected("x"))

    def test_bounded(self):
        assert not should_retry(3, StorageError("x"))


class TestWorkerLogging:
    """Test log setup of worker processes."""

    def test_configured_on_broker_import(self):
        assert jobs.broker._logging_configured is True

    def test_configured_once(self, monkeypatch):
        monkeypatch.setattr(jobs.broker, "_logging_configured", False)

        with patch("jobs.broker.setup_logging") as setup:
            configure_worker_logging()
            configure_worker_logging()

        setup.assert_called_once_with()
        assert jobs.broker._logging_configured is True


class TestNotificationTasks:
    """Test notification hook and webhook delivery."""

    @pytest.mark.asyncio
    async def test_hook_enqueues_message(self):
        event = IBEvent(IBEventType.STATUS_CHANGED, 3, {"to_status": "ACTIVE"})

        with patch.object(deliver_ib_event, "send") as send:
            await DramatiqNotificationHook().publish(event)

        send.assert_called_once_with(event.to_message())

    @pytest.mark.asyncio
    async def test_webhook_not_configured(self):
        """Without a webhook the event is dropped, not failed."""
        with patch(
            "jobs.tasks.notification_tasks.settings.notification_webhook_url",
            None,
        ):
            assert await post_to_webhook({"event_type": "status_changed"}) is False


class TestCommissionTasks:
    """Test trade event queueing."""

    def test_enqueue_trade_close(self):
        event = TradeCloseEvent("trade-9", 5, Decimal("1"), Decimal("0"))

        with patch.object(process_trade_commission, "send") as send:
            enqueue_trade_close(event)

        send.assert_called_once_with(event.to_message())

    def test_malformed_message_dropped(self):
        """The actor logs malformed events instead of raising."""
        # Worker threads own their event loop
        with ThreadPoolExecutor(max_workers=1) as pool:
            pool.submit(
                process_trade_commission.fn, {"event_id": "trade-10"}
            ).result()
