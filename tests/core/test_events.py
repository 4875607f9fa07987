# tests/core/test_events.py

import asyncio
import logging
from unittest.mock import MagicMock

import pytest

from metratec_rfid.core.events import EventBus, EventKind, InputEvent, StatusEvent
from metratec_rfid.core.status import ReaderStatus


class TestEventBus:

    @pytest.fixture(autouse=True)
    def setup_bus(self):
        self.bus = EventBus()

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self):
        received = []
        self.bus.subscribe(EventKind.INPUT, received.append)

        for pin in range(1, 4):
            self.bus.publish(EventKind.INPUT, InputEvent(pin, True))
        await self.bus.join(1.0)

        assert [event.pin for event in received] == [1, 2, 3]
        await self.bus.close()

    @pytest.mark.asyncio
    async def test_coroutine_subscriber_awaited(self):
        received = []

        async def on_status(event):
            await asyncio.sleep(0)
            received.append(event.status)

        self.bus.subscribe(EventKind.STATUS, on_status)
        self.bus.publish(EventKind.STATUS, StatusEvent(ReaderStatus.READY))
        await self.bus.join(1.0)

        assert received == [ReaderStatus.READY]
        await self.bus.close()

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_stop_delivery(self, caplog):
        received = []
        failing = MagicMock(side_effect=RuntimeError("boom"), __name__="failing")
        self.bus.subscribe(EventKind.INPUT, failing)
        self.bus.subscribe(EventKind.INPUT, received.append)

        with caplog.at_level(logging.ERROR, logger="metratec_rfid.core.events"):
            self.bus.publish(EventKind.INPUT, InputEvent(1, False))
            self.bus.publish(EventKind.INPUT, InputEvent(2, False))
            await self.bus.join(1.0)

        assert [event.pin for event in received] == [1, 2]
        assert failing.call_count == 2
        assert "Error executing INPUT callback failing" in caplog.text
        await self.bus.close()

    @pytest.mark.asyncio
    async def test_kinds_are_separate(self):
        inputs = []
        self.bus.subscribe(EventKind.INPUT, inputs.append)

        self.bus.publish(EventKind.STATUS, StatusEvent(ReaderStatus.READY))
        await self.bus.join(1.0)

        assert inputs == []
        assert not self.bus.has_subscribers(EventKind.STATUS)
        await self.bus.close()

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        received = []
        self.bus.subscribe(EventKind.INPUT, received.append)
        self.bus.unsubscribe(EventKind.INPUT, received.append)

        self.bus.publish(EventKind.INPUT, InputEvent(1, True))
        await self.bus.join(1.0)

        assert received == []

    def test_subscribe_rejects_non_callable(self):
        with pytest.raises(TypeError):
            self.bus.subscribe(EventKind.INPUT, "not callable")

    @pytest.mark.asyncio
    async def test_close_stops_workers(self):
        received = []
        self.bus.subscribe(EventKind.INPUT, received.append)
        self.bus.publish(EventKind.INPUT, InputEvent(1, True))

        await self.bus.close()

        assert received[0].pin == 1
        assert self.bus._workers == {}
        # Publishing again starts a new worker
        self.bus.publish(EventKind.INPUT, InputEvent(2, False))
        await self.bus.join(1.0)
        assert [event.pin for event in received] == [1, 2]
        await self.bus.close()

    @pytest.mark.asyncio
    async def test_close_from_subscriber(self):
        inputs = []
        closed = asyncio.Event()

        async def closing(event):
            await self.bus.close()
            closed.set()

        self.bus.subscribe(EventKind.INPUT, inputs.append)
        self.bus.subscribe(EventKind.STATUS, closing)
        self.bus.publish(EventKind.INPUT, InputEvent(1, True))
        await self.bus.join(1.0)

        self.bus.publish(EventKind.STATUS, StatusEvent(ReaderStatus.DISCONNECTED))
        await asyncio.wait_for(closed.wait(), 1.0)

        assert list(self.bus._workers) == [EventKind.STATUS]
        self.bus.publish(EventKind.INPUT, InputEvent(2, False))
        await self.bus.join(1.0)
        assert [event.pin for event in inputs] == [1, 2]
        await self.bus.close()
