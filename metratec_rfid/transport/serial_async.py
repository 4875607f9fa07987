# metratec_rfid/transport/serial_async.py

import asyncio
import logging
from typing import Any, Dict, Optional

import serial # For SerialException
import serial_asyncio

from metratec_rfid.transport.base import BaseTransport
from metratec_rfid.core.exceptions import CommunicationError, ConnectionError, ConnectionLostError, \
    SerialConnectionError, ReadError, WriteError

logger = logging.getLogger(__name__)

DEFAULT_SERIAL_SETTINGS = {
    'baudrate': 115200,
    'bytesize': serial.EIGHTBITS,
    'parity': serial.PARITY_NONE,
    'stopbits': serial.STOPBITS_ONE,
    'timeout': None, # Must be None for async operation
    'xonxoff': False,
    'rtscts': False,
    'dsrdtr': False,
}

# Keys consumed by BaseTransport, not by pyserial
_TRANSPORT_KEYS = ('port', 'url', 'line_terminator', 'receive_timeout', 'encoding')


class SerialTransport(BaseTransport):
    """
    Asynchronous serial communication transport using pyserial-asyncio.
    """

    def __init__(self, connection_details: Dict[str, Any]):
        """
        Initializes the Serial Transport.

        Args:
            connection_details: Dictionary containing serial port settings.
                Required: 'port' (e.g., '/dev/ttyUSB0', 'COM3')
                Optional: 'baudrate', 'bytesize', 'parity', 'stopbits', etc.
                          Defaults are taken from DEFAULT_SERIAL_SETTINGS.
        """
        super().__init__(connection_details)

        if 'port' not in self._connection_details:
            raise ValueError("Missing 'port' in connection_details for SerialTransport.")

        self._serial_settings = DEFAULT_SERIAL_SETTINGS.copy()
        self._serial_settings.update(self._connection_details)
        self._serial_settings['timeout'] = None

        self._port = self._serial_settings['port']
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

        logger.info(f"SerialTransport initialized for port {self._port} with baudrate {self._serial_settings['baudrate']}")

    @property
    def port(self) -> str:
        return self._port

    @property
    def baudrate(self) -> int:
        return int(self._serial_settings['baudrate'])

    @baudrate.setter
    def baudrate(self, value: int) -> None:
        self._serial_settings['baudrate'] = value
        if self._writer is not None:
            try:
                self._writer.transport.serial.baudrate = value
            except (serial.SerialException, AttributeError, ValueError) as e:
                raise CommunicationError(f"Failed to change baudrate on {self._port}", original_exception=e) from e
        logger.info(f"Baudrate on {self._port} set to {value}")

    async def connect(self) -> None:
        """Establishes the asynchronous serial connection."""
        async with self._connection_lock:
            if self._connected:
                logger.warning(f"Serial port {self._port} already connected.")
                return

            logger.info(f"Connecting to serial port {self._port}...")
            settings_for_open = {k: v for k, v in self._serial_settings.items() if k not in _TRANSPORT_KEYS}
            try:
                self._reader, self._writer = await serial_asyncio.open_serial_connection(
                    url=self._port, **settings_for_open
                )
            except serial.SerialException as e:
                logger.error(f"Failed to connect to serial port {self._port}: {e}")
                self._reader = None
                self._writer = None
                raise SerialConnectionError(port=self._port, message=str(e), original_exception=e) from e
            except OSError as e:
                logger.error(f"OS error connecting to {self._port}: {e}")
                self._reader = None
                self._writer = None
                raise ConnectionError(f"OS error connecting to {self._port}: {e}", original_exception=e) from e

            self.clear_buffer()
            self._connected = True
            logger.info(f"Serial port {self._port} connected successfully.")
            await self._start_reader()

    async def disconnect(self) -> None:
        """Closes the asynchronous serial connection."""
        async with self._connection_lock:
            if not self._connected and not (self._reader_task and not self._reader_task.done()):
                return

            logger.info(f"Disconnecting from serial port {self._port}...")
            self._connected = False
            await self._stop_reader()

            writer = self._writer
            if writer:
                self._writer = None
                self._reader = None
                if not writer.is_closing():
                    try:
                        writer.close()
                        await writer.wait_closed()
                        logger.debug(f"Serial writer for {self._port} closed.")
                    except (OSError, serial.SerialException) as e:
                        # Log errors during close but continue disconnect process
                        logger.error(f"Error closing serial writer for {self._port}: {e}")

            self._signal_failure(ConnectionLostError(f"Serial port {self._port} closed."))
            logger.info(f"Serial port {self._port} disconnected.")

    async def send(self, data: bytes) -> None:
        """Sends data over the serial port asynchronously."""
        if not self.is_connected() or not self._writer:
            raise ConnectionLostError(f"Cannot send data: Serial port {self._port} not connected or writer is invalid.")

        logger.debug(f"Serial sending ({len(data)} bytes) on {self._port}: {data!r}")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except (OSError, serial.SerialException) as e:
            logger.error(f"Failed to write to serial port {self._port}: {e}")
            raise WriteError(f"Failed to write to serial port {self._port}", original_exception=e) from e

    async def _read_data_loop(self) -> None:
        """Background task to continuously read data from the serial port."""
        logger.debug(f"Serial reader loop started for {self._port}.")
        try:
            while self._connected and self._reader:
                data = await self._reader.read(4096)
                if data:
                    self._feed(data)
                else:
                    # read() returning empty bytes usually means EOF or connection closed
                    logger.warning(f"Serial port {self._port} read returned empty data. Assuming connection closed remotely.")
                    self._connected = False
                    self._signal_failure(ConnectionLostError(f"Serial port {self._port} closed remotely."))
                    break
        except asyncio.CancelledError:
            logger.debug(f"Serial reader loop for {self._port} cancelled.")
            raise
        except (OSError, serial.SerialException) as e:
            logger.error(f"Serial error during read on {self._port}: {e}")
            self._connected = False
            self._signal_failure(ReadError(f"Serial read failed on {self._port}", original_exception=e))
        finally:
            logger.debug(f"Serial reader loop for {self._port} stopped.")
