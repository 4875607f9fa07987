# metratec_rfid/transport/base.py

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from metratec_rfid.core.exceptions import CommunicationError, ConnectionLostError, TimeoutError

logger = logging.getLogger(__name__)

DEFAULT_LINE_TERMINATOR = "\r\n"
DEFAULT_RECEIVE_TIMEOUT = 0.25 # Seconds read_line() waits when no timeout is given
DEFAULT_ENCODING = "latin-1"


class BaseTransport(ABC):
    """
    Abstract base class for all communication transport layers.

    A transport owns a background task that reads raw bytes from the device
    and splits them into lines on ``line_terminator``. Consumers pull
    complete lines with ``read_line()`` and never see partial data.
    Concrete implementations handle the specifics of Serial, TCP or Mock
    communication.
    """

    # Network links are torn down by the peer when idle, so the session
    # enables the device heartbeat for them.
    keepalive_required: bool = False

    def __init__(self, connection_details: dict[str, Any]):
        """
        Initializes the transport base.

        Args:
            connection_details: A dictionary containing parameters needed to
                                establish the connection (e.g., {'port': '/dev/ttyUSB0', 'baudrate': 115200}
                                for serial, {'host': '192.168.1.100', 'port': 10001} for TCP).
                                Optional common keys: 'line_terminator', 'receive_timeout', 'encoding'.
        """
        self._connection_details = connection_details
        self._receive_buffer = bytearray()
        self._lines: asyncio.Queue[Union[str, Exception]] = asyncio.Queue()
        self._reader_task: Optional[asyncio.Task] = None
        self._connected = False
        self._connection_lock = asyncio.Lock() # Prevent race conditions during connect/disconnect
        self._line_terminator: str = connection_details.get('line_terminator', DEFAULT_LINE_TERMINATOR)
        self._receive_timeout: float = connection_details.get('receive_timeout', DEFAULT_RECEIVE_TIMEOUT)
        self._encoding: str = connection_details.get('encoding', DEFAULT_ENCODING)

    @abstractmethod
    async def connect(self) -> None:
        """
        Establishes the connection to the reader device asynchronously.

        Raises:
            ConnectionError: If the connection cannot be established.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Closes the connection. Safe to call even if not connected."""

    @abstractmethod
    async def send(self, data: bytes) -> None:
        """
        Sends data over the transport layer asynchronously.

        Raises:
            ConnectionLostError: If not connected.
            WriteError: If writing fails.
        """

    @abstractmethod
    async def _read_data_loop(self) -> None:
        """
        Internal loop that continuously reads bytes from the transport and
        passes them to ``_feed()``. Started as an asyncio Task by connect().
        """

    # --- Line framing ---

    @property
    def line_terminator(self) -> str:
        return self._line_terminator

    @line_terminator.setter
    def line_terminator(self, terminator: str) -> None:
        if not terminator:
            raise ValueError("Line terminator must not be empty")
        if terminator != self._line_terminator:
            logger.debug(f"Line terminator changed to {terminator!r}")
        self._line_terminator = terminator

    @property
    def receive_timeout(self) -> float:
        """Default number of seconds read_line() waits for a complete line."""
        return self._receive_timeout

    @receive_timeout.setter
    def receive_timeout(self, timeout: float) -> None:
        if timeout <= 0:
            raise ValueError("Receive timeout must be positive")
        self._receive_timeout = timeout

    @property
    def baudrate(self) -> int:
        """
        Baud rate of the link.

        Raises:
            CommunicationError: If the transport has no baud rate (e.g. TCP).
        """
        raise CommunicationError(f"{type(self).__name__} does not support a baud rate")

    @baudrate.setter
    def baudrate(self, value: int) -> None:
        raise CommunicationError(f"{type(self).__name__} does not support a baud rate")

    def _feed(self, data: bytes) -> None:
        """Appends received bytes and queues every complete line."""
        self._receive_buffer.extend(data)
        terminator = self._line_terminator.encode(self._encoding)
        while True:
            index = self._receive_buffer.find(terminator)
            if index < 0:
                break
            raw = bytes(self._receive_buffer[:index])
            del self._receive_buffer[:index + len(terminator)]
            line = raw.decode(self._encoding, errors='replace')
            logger.debug(f"Line received: {line!r}")
            self._lines.put_nowait(line)

    def _signal_failure(self, error: Exception) -> None:
        """Makes the next read_line() call raise ``error``."""
        self._lines.put_nowait(error)

    async def read_line(self, timeout: Optional[float] = None) -> str:
        """
        Returns the next complete line without its terminator.

        Args:
            timeout: Seconds to wait, defaults to ``receive_timeout``.

        Raises:
            TimeoutError: If no complete line arrived in time.
            CommunicationError: If the link failed or is closed.
        """
        if self._lines.empty() and not self.is_connected():
            raise ConnectionLostError("Cannot read: Not connected.")
        wait = self._receive_timeout if timeout is None else timeout
        try:
            item = await asyncio.wait_for(self._lines.get(), wait)
        except asyncio.TimeoutError:
            raise TimeoutError(f"No line received within {wait}s") from None
        if isinstance(item, Exception):
            raise item
        return item

    def clear_buffer(self) -> None:
        """Discards partial data and queued lines."""
        logger.debug(f"Clearing receive buffer ({len(self._receive_buffer)} bytes, {self._lines.qsize()} lines)")
        self._receive_buffer.clear()
        while not self._lines.empty():
            self._lines.get_nowait()

    def is_connected(self) -> bool:
        """Returns True if the transport layer is currently connected, False otherwise."""
        return self._connected

    def encode(self, text: str) -> bytes:
        return text.encode(self._encoding)

    async def _start_reader(self) -> None:
        """Starts the background reading task."""
        if self._reader_task is None or self._reader_task.done():
            logger.debug("Starting transport reader task...")
            self._reader_task = asyncio.create_task(self._read_data_loop())
        else:
            logger.debug("Transport reader task already running.")

    async def _stop_reader(self) -> None:
        """Stops the background reading task gracefully."""
        if self._reader_task and not self._reader_task.done():
            logger.debug("Stopping transport reader task...")
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                logger.debug("Transport reader task cancelled successfully.")
            except Exception as e:
                logger.error(f"Error stopping transport reader task: {e}")
            finally:
                self._reader_task = None
        self._reader_task = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()

    @property
    def connection_details(self) -> dict[str, Any]:
        """Returns the connection details provided during initialization."""
        return self._connection_details
