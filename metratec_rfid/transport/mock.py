# metratec_rfid/transport/mock.py

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Dict, Iterable, List, Optional

from metratec_rfid.transport.base import BaseTransport
from metratec_rfid.core.exceptions import ConnectionError, ConnectionLostError, ReadError, WriteError

logger = logging.getLogger(__name__)

# Maps a sent command to the lines the simulated device answers with
Responder = Callable[[str], Optional[Iterable[str]]]


class MockTransport(BaseTransport):
    """
    A mock transport layer for testing and simulation.

    Simulates connection, disconnection, sending, and receiving data
    without actual hardware interaction. Device lines can be queued up
    with add_response() or produced per command by a responder.
    """

    def __init__(self, connection_details: Optional[Dict[str, Any]] = None, name: str = "Mock",
                 keepalive_required: bool = False):
        """
        Initializes the Mock Transport.

        Args:
            connection_details: Optional common transport settings.
            name: A name for this mock instance for logging purposes.
            keepalive_required: Simulate a network link that needs the device heartbeat.
        """
        super().__init__(connection_details if connection_details is not None else {})
        self._name = name
        self.keepalive_required = keepalive_required
        # Queue for simulated received data (bytes, terminator included)
        self._response_queue: deque[bytes] = deque()
        # Record of the data "sent" to the device (can be inspected by tests)
        self._sent_data_queue: deque[bytes] = deque()
        self._data_available_event = asyncio.Event()
        self._responder: Optional[Responder] = None
        self._connection_delay = 0.0
        self._receive_delay = 0.0
        self._fail_connect: Optional[Exception] = None
        self._fail_send: Optional[Exception] = None
        self._baudrate: Optional[int] = None

        logger.info(f"MockTransport '{self._name}' initialized.")

    @property
    def baudrate(self) -> int:
        if self._baudrate is None:
            return super().baudrate
        return self._baudrate

    @baudrate.setter
    def baudrate(self, value: int) -> None:
        self._baudrate = value

    async def connect(self) -> None:
        """Simulates establishing a connection."""
        async with self._connection_lock:
            if self._connected:
                logger.warning(f"[{self._name}] Already connected.")
                return

            logger.info(f"[{self._name}] Simulating connection...")
            await asyncio.sleep(self._connection_delay)
            if self._fail_connect is not None:
                error, self._fail_connect = self._fail_connect, None
                raise ConnectionError(f"[{self._name}] Simulated connection failure.", original_exception=error)

            # Lines queued before connect() are kept, only stale framing state goes
            self._receive_buffer.clear()
            while not self._lines.empty():
                self._lines.get_nowait()
            self._connected = True
            logger.info(f"[{self._name}] Mock connection established.")
            await self._start_reader()
            if self._response_queue:
                self._data_available_event.set()

    async def disconnect(self) -> None:
        """Simulates closing the connection."""
        async with self._connection_lock:
            if not self._connected and not (self._reader_task and not self._reader_task.done()):
                return

            logger.info(f"[{self._name}] Simulating disconnection...")
            self._connected = False
            await self._stop_reader()
            self._signal_failure(ConnectionLostError(f"[{self._name}] Mock connection closed."))
            logger.info(f"[{self._name}] Mock connection closed.")

    async def send(self, data: bytes) -> None:
        """Simulates sending data."""
        if not self.is_connected():
            raise ConnectionLostError(f"[{self._name}] Cannot send data: Not connected.")
        if self._fail_send is not None:
            error, self._fail_send = self._fail_send, None
            logger.error(f"[{self._name}] Simulated write failure: {error}")
            raise WriteError(f"[{self._name}] Failed to write data.", original_exception=error)

        logger.debug(f"[{self._name}] Simulating send: {data!r}")
        self._sent_data_queue.append(data)
        if self._responder is not None:
            command = data.decode(self._encoding).rstrip("\r\n")
            lines = self._responder(command)
            if lines:
                self.add_responses(list(lines))

    async def _read_data_loop(self) -> None:
        """Simulates the background task reading data."""
        logger.debug(f"[{self._name}] Mock reader loop started.")
        try:
            while self._connected:
                await self._data_available_event.wait()
                if not self._connected:
                    break

                while self._response_queue:
                    data_to_receive = self._response_queue.popleft()
                    if self._receive_delay:
                        await asyncio.sleep(self._receive_delay)
                        if not self._connected:
                            break
                    logger.debug(f"[{self._name}] Mock reader loop 'receiving': {data_to_receive!r}")
                    self._feed(data_to_receive)

                self._data_available_event.clear()
        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Mock reader loop cancelled.")
            raise
        finally:
            logger.debug(f"[{self._name}] Mock reader loop stopped.")

    # --- Mock Control Methods ---

    def add_response(self, line: str, terminator: Optional[str] = None) -> None:
        """Adds one device line to the incoming data queue. The current line terminator is appended."""
        data = self.encode(line + (self._line_terminator if terminator is None else terminator))
        logger.debug(f"[{self._name}] Adding mock response: {data!r}")
        self._response_queue.append(data)
        self._data_available_event.set()

    def add_responses(self, lines: List[str]) -> None:
        """Adds multiple device lines to the incoming data queue."""
        for line in lines:
            self.add_response(line)

    def add_raw(self, data: bytes) -> None:
        """Adds raw bytes, for testing line framing."""
        self._response_queue.append(data)
        self._data_available_event.set()

    def set_responder(self, responder: Optional[Responder]) -> None:
        """Installs a function answering every sent command with a list of lines."""
        self._responder = responder

    def get_sent_data(self) -> Optional[bytes]:
        """Retrieves the oldest 'sent' data from the queue (FIFO)."""
        try:
            return self._sent_data_queue.popleft()
        except IndexError:
            return None

    def get_all_sent_data(self) -> List[bytes]:
        """Retrieves and clears all 'sent' data."""
        data = list(self._sent_data_queue)
        self._sent_data_queue.clear()
        return data

    def get_sent_commands(self) -> List[str]:
        """Sent data decoded and stripped of line endings. Does not clear the record."""
        return [data.decode(self._encoding).rstrip("\r\n") for data in self._sent_data_queue]

    def clear_response_queue(self) -> None:
        """Clears any pending responses."""
        logger.debug(f"[{self._name}] Clearing mock response queue ({len(self._response_queue)} items).")
        self._response_queue.clear()
        self._data_available_event.clear()

    def clear_send_queue(self) -> None:
        """Clears the record of sent data."""
        logger.debug(f"[{self._name}] Clearing mock sent data queue ({len(self._sent_data_queue)} items).")
        self._sent_data_queue.clear()

    def set_connection_delay(self, delay: float) -> None:
        """Sets the simulated connection delay."""
        self._connection_delay = max(0, delay)

    def set_receive_delay(self, delay: float) -> None:
        """Sets the simulated delay before delivering received data."""
        self._receive_delay = max(0, delay)

    def fail_next_connect(self, error: Optional[Exception] = None) -> None:
        """Makes the next connect() raise ConnectionError."""
        error = error if error is not None else OSError("Simulated failure")
        self._fail_connect = error

    def fail_next_send(self, error: Optional[Exception] = None) -> None:
        """Makes the next send() raise WriteError."""
        self._fail_send = error if error is not None else OSError("Simulated write failure")

    def simulate_connection_loss(self, error: Optional[Exception] = None) -> None:
        """Drops the simulated link as if the device vanished."""
        logger.info(f"[{self._name}] Simulating connection loss.")
        self._connected = False
        self._signal_failure(ReadError(f"[{self._name}] Simulated connection loss.", original_exception=error))
        self._data_available_event.set()
