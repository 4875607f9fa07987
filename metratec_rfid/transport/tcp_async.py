# metratec_rfid/transport/tcp_async.py

import asyncio
import logging
from typing import Any, Dict, Optional

from metratec_rfid.transport.base import BaseTransport
from metratec_rfid.core.exceptions import ConnectionLostError, NetworkConnectionError, ReadError, WriteError

logger = logging.getLogger(__name__)

DEFAULT_TCP_BUFFER_SIZE = 4096 # Bytes to read at a time
DEFAULT_CONNECT_TIMEOUT = 5.0 # Seconds


class TcpTransport(BaseTransport):
    """
    Asynchronous TCP communication transport using asyncio streams.
    """

    keepalive_required = True

    def __init__(self, connection_details: Dict[str, Any]):
        """
        Initializes the TCP Transport.

        Args:
            connection_details: Dictionary containing TCP connection settings.
                Required: 'host' (string, IP address or hostname)
                          'port' (integer)
                Optional: 'buffer_size', 'connect_timeout'
        """
        super().__init__(connection_details)

        if 'host' not in self._connection_details or 'port' not in self._connection_details:
            raise ValueError("Missing 'host' or 'port' in connection_details for TcpTransport.")

        self._host = str(self._connection_details['host'])
        self._port = int(self._connection_details['port'])

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_buffer_size = self._connection_details.get('buffer_size', DEFAULT_TCP_BUFFER_SIZE)
        self._connect_timeout = self._connection_details.get('connect_timeout', DEFAULT_CONNECT_TIMEOUT)

        logger.info(f"TcpTransport initialized for {self._host}:{self._port}")

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    async def connect(self) -> None:
        """Establishes the asynchronous TCP connection."""
        async with self._connection_lock:
            if self._connected:
                logger.warning(f"TCP connection to {self.host}:{self.port} already established.")
                return

            logger.info(f"Connecting to TCP endpoint {self.host}:{self.port}...")
            try:
                self._reader, self._writer = await asyncio.wait_for(
                    asyncio.open_connection(host=self.host, port=self.port),
                    self._connect_timeout
                )
            except ConnectionRefusedError as e:
                logger.error(f"Connection refused when connecting to {self.host}:{self.port}: {e}")
                self._reader = None
                self._writer = None
                raise NetworkConnectionError(host=self.host, port=self.port, message="Connection refused.", original_exception=e) from e
            except asyncio.TimeoutError as e:
                logger.error(f"Timeout during TCP connection attempt to {self.host}:{self.port}")
                self._reader = None
                self._writer = None
                raise NetworkConnectionError(host=self.host, port=self.port, message="Connection attempt timed out.", original_exception=e) from e
            except OSError as e: # Catches host unreachable, network errors etc.
                logger.error(f"OS error connecting to {self.host}:{self.port}: {e}")
                self._reader = None
                self._writer = None
                raise NetworkConnectionError(host=self.host, port=self.port, message=f"OS error: {e}", original_exception=e) from e

            self.clear_buffer()
            self._connected = True
            peername = self._writer.get_extra_info('peername', ('Unknown', 'Unknown'))
            logger.info(f"TCP connection to {self.host}:{self.port} established (peer: {peername}).")
            await self._start_reader()

    async def disconnect(self) -> None:
        """Closes the asynchronous TCP connection."""
        async with self._connection_lock:
            if not self._connected and not (self._reader_task and not self._reader_task.done()):
                return

            logger.info(f"Disconnecting from TCP endpoint {self.host}:{self.port}...")
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
                        logger.debug(f"TCP writer for {self.host}:{self.port} closed.")
                    except OSError as e:
                        logger.error(f"Error closing TCP writer for {self.host}:{self.port}: {e}")

            self._signal_failure(ConnectionLostError(f"TCP connection to {self.host}:{self.port} closed."))
            logger.info(f"TCP connection to {self.host}:{self.port} disconnected.")

    async def send(self, data: bytes) -> None:
        """Sends data over the TCP connection asynchronously."""
        if not self.is_connected() or not self._writer:
            raise ConnectionLostError(f"Cannot send data: TCP connection to {self.host}:{self.port} not established or writer is invalid.")

        logger.debug(f"TCP sending ({len(data)} bytes) to {self.host}:{self.port}: {data!r}")
        try:
            self._writer.write(data)
            await self._writer.drain() # Wait until the OS buffer accepts all data
        except (ConnectionResetError, BrokenPipeError) as e:
            logger.error(f"Connection error while writing to {self.host}:{self.port}: {e}")
            raise WriteError(f"Connection error during send to {self.host}:{self.port}", original_exception=e) from e
        except OSError as e:
            logger.error(f"OS error while writing to {self.host}:{self.port}: {e}")
            raise WriteError(f"OS error during send to {self.host}:{self.port}", original_exception=e) from e

    async def _read_data_loop(self) -> None:
        """Background task to continuously read data from the TCP connection."""
        peer = f"{self.host}:{self.port}"
        logger.debug(f"TCP reader loop started for {peer}.")
        try:
            while self._connected and self._reader:
                data = await self._reader.read(self._read_buffer_size)
                if data:
                    self._feed(data)
                else:
                    # read() returning empty bytes means EOF - connection closed by peer
                    logger.warning(f"TCP connection closed by peer {peer}.")
                    self._connected = False
                    self._signal_failure(ConnectionLostError(f"TCP connection closed by peer {peer}."))
                    break
        except asyncio.CancelledError:
            logger.debug(f"TCP reader loop for {peer} cancelled.")
            raise
        except (asyncio.IncompleteReadError, OSError) as e:
            logger.error(f"Error while reading from {peer}: {e}")
            self._connected = False
            self._signal_failure(ReadError(f"TCP read failed on {peer}", original_exception=e))
        finally:
            logger.debug(f"TCP reader loop for {peer} stopped.")
