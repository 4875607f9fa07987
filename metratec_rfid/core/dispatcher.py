# metratec_rfid/core/dispatcher.py

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, List, Optional, Union

from metratec_rfid.core.exceptions import (
    CommunicationError, ConnectionLostError, MalformedResponseError, RfidError, TimeoutError
)
from metratec_rfid.core.tags import Tag
from metratec_rfid.protocols.base_dialect import BaseDialect, LineKind
from metratec_rfid.transport.base import BaseTransport

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE_TIMEOUT = 2.0 # Seconds to wait for a command response
DEFAULT_POLL_INTERVAL = 0.25 # Seconds read_line() blocks before the watchdog is checked

# Callback types
InventoryCallback = Callable[[List[Tag]], Coroutine[Any, Any, None]]
InputCallback = Callable[[int, bool], Coroutine[Any, Any, None]]
ConnectionLostCallback = Callable[[Exception], Coroutine[Any, Any, None]]


@dataclass
class PendingCommand:
    """The one command waiting for its reply."""
    command: str
    lines: "asyncio.Queue[Union[str, Exception]]" = field(default_factory=asyncio.Queue)
    received: List[str] = field(default_factory=list)


class Dispatcher:
    """
    Reads lines from the transport, routes events to callbacks and feeds
    reply lines to the single outstanding command.

    Only one command is in flight at a time: ``execute()`` holds the command
    slot from sending until the reply is complete or the deadline passed.
    Events (heartbeats, inventory reports, input changes) are recognized by
    the dialect and never reach the waiting command.
    """

    def __init__(self, transport: BaseTransport, dialect: BaseDialect,
                 response_timeout: float = DEFAULT_RESPONSE_TIMEOUT,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 on_inventory: Optional[InventoryCallback] = None,
                 on_input: Optional[InputCallback] = None,
                 on_connection_lost: Optional[ConnectionLostCallback] = None):
        self._transport = transport
        self._dialect = dialect
        self._response_timeout = response_timeout
        self._poll_interval = poll_interval
        self._on_inventory = on_inventory
        self._on_input = on_input
        self._on_connection_lost = on_connection_lost

        self._command_lock = asyncio.Lock() # The command slot
        self._pending: Optional[PendingCommand] = None
        self._inventory_waiter: Optional[asyncio.Future] = None
        self._inventory_command: Optional[str] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._lost_task: Optional[asyncio.Task] = None
        self._watchdog_timeout: Optional[float] = None
        self._last_receive = time.monotonic()

    @property
    def response_timeout(self) -> float:
        return self._response_timeout

    @response_timeout.setter
    def response_timeout(self, timeout: float) -> None:
        if timeout <= 0:
            raise ValueError("Response timeout must be positive")
        self._response_timeout = timeout

    @property
    def is_running(self) -> bool:
        return self._reader_task is not None and not self._reader_task.done()

    @property
    def busy(self) -> bool:
        """True while a command occupies the command slot."""
        return self._command_lock.locked()

    def start(self) -> None:
        """Starts the background task reading lines from the transport."""
        if self.is_running:
            logger.debug("Dispatcher already running.")
            return
        self._last_receive = time.monotonic()
        self._lost_task = None
        self._reader_task = asyncio.create_task(self._read_loop())
        logger.debug("Dispatcher started.")

    async def stop(self) -> None:
        """Stops the reader task and fails whatever is still waiting."""
        task, self._reader_task = self._reader_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Dispatcher reader task cancelled.")
        self._fail_waiting(ConnectionLostError("Dispatcher stopped."))
        logger.debug("Dispatcher stopped.")

    def set_watchdog(self, timeout: Optional[float]) -> None:
        """
        Declares the connection lost when nothing was received for ``timeout`` seconds.

        Args:
            timeout: Seconds of silence tolerated, None or 0 to disable.
        """
        self._watchdog_timeout = timeout or None
        self._last_receive = time.monotonic()
        if self._watchdog_timeout:
            logger.debug(f"Receive watchdog set to {self._watchdog_timeout}s")
        else:
            logger.debug("Receive watchdog disabled")

    # --- Receive path ---

    async def _read_loop(self) -> None:
        logger.debug("Dispatcher reader loop started.")
        try:
            while True:
                try:
                    line = await self._transport.read_line(self._poll_interval)
                except TimeoutError:
                    if self._watchdog_expired():
                        self._fail_connection(ConnectionLostError("Connection lost (timeout)"))
                        break
                    continue
                except CommunicationError as e:
                    self._fail_connection(e)
                    break
                self._last_receive = time.monotonic()
                await self.handle_line(line)
        except asyncio.CancelledError:
            logger.debug("Dispatcher reader loop cancelled.")
            raise
        finally:
            logger.debug("Dispatcher reader loop stopped.")

    def _watchdog_expired(self) -> bool:
        if not self._watchdog_timeout:
            return False
        return time.monotonic() - self._last_receive > self._watchdog_timeout

    async def handle_line(self, line: str) -> None:
        """Routes one received line to the event handlers or the outstanding command."""
        if not line or line[0] in "\r\n":
            logger.debug(f"Ignoring empty line {line!r}")
            return

        kind = self._dialect.classify(line)
        if kind is LineKind.HEARTBEAT:
            logger.debug("Heartbeat received.")
        elif kind is LineKind.INVENTORY:
            await self._handle_inventory(line)
        elif kind is LineKind.INPUT:
            await self._handle_input(line)
        else:
            self._handle_reply(line)

    def _handle_reply(self, line: str) -> None:
        pending = self._pending
        if pending is not None:
            pending.lines.put_nowait(line)
            return
        waiter = self._inventory_waiter
        if waiter is not None and not waiter.done():
            # The device refused the inventory command instead of reporting
            try:
                self._dialect.interpret_reply(self._inventory_command or "", line, None)
            except RfidError as e:
                waiter.set_exception(e)
                return
        logger.warning(f"Unexpected reply dropped: {line!r}")

    async def _handle_inventory(self, line: str) -> None:
        waiter = self._inventory_waiter
        requested = waiter is not None and not waiter.done()
        try:
            tags = self._dialect.parse_inventory(line, raise_errors=requested)
        except RfidError as e:
            if requested:
                waiter.set_exception(e)
            else:
                logger.warning(f"Inventory report dropped: {e}")
            return

        if requested:
            waiter.set_result(tags)
            return
        logger.debug(f"Inventory report with {len(tags)} tags")
        if self._on_inventory is not None:
            try:
                await self._on_inventory(tags)
            except Exception as e:
                logger.error(f"Error handling inventory report: {e}", exc_info=True)

    async def _handle_input(self, line: str) -> None:
        try:
            pin, is_high = self._dialect.parse_input_event(line)
        except (RfidError, NotImplementedError) as e:
            logger.warning(f"Input event dropped ({line!r}): {e}")
            return
        logger.debug(f"Input {pin} changed to {'HIGH' if is_high else 'LOW'}")
        if self._on_input is not None:
            try:
                await self._on_input(pin, is_high)
            except Exception as e:
                logger.error(f"Error handling input event: {e}", exc_info=True)

    # --- Failure handling ---

    def _fail_waiting(self, error: Exception) -> None:
        pending = self._pending
        if pending is not None:
            pending.lines.put_nowait(error)
        waiter = self._inventory_waiter
        if waiter is not None and not waiter.done():
            waiter.set_exception(error)

    def _fail_connection(self, error: Exception) -> None:
        logger.error(f"Connection failure: {error}")
        if not isinstance(error, ConnectionLostError):
            error = ConnectionLostError(str(error), original_exception=error)
        self._fail_waiting(error)
        # Reading and sending may both notice the same failure
        if self._on_connection_lost is not None and self._lost_task is None:
            self._lost_task = asyncio.create_task(self._on_connection_lost(error))

    # --- Send path ---

    async def _send(self, command: str) -> None:
        text = self._dialect.encode_command(command) + self._transport.line_terminator
        logger.debug(f"Sending command: {text!r}")
        try:
            await self._transport.send(self._transport.encode(text))
        except CommunicationError as e:
            self._fail_connection(e)
            raise

    def _check_connected(self) -> None:
        if not self._transport.is_connected() or not self.is_running:
            raise ConnectionLostError("Cannot send command: Not connected.")

    async def execute(self, command: str, timeout: Optional[float] = None) -> str:
        """
        Sends a command and collects its reply.

        Args:
            command: The command without terminator.
            timeout: Seconds to wait for the complete reply, defaults to ``response_timeout``.

        Returns:
            The reply payload as interpreted by the dialect.

        Raises:
            TimeoutError: If no reply line arrived in time.
            MalformedResponseError: If the reply started but never completed.
            ReaderError: If the device rejected the command.
            CommunicationError: If the link failed.
        """
        self._check_connected()
        wait = self._response_timeout if timeout is None else timeout
        async with self._command_lock:
            pending = PendingCommand(command)
            self._pending = pending
            try:
                await self._send(command)
                return await self._collect(pending, wait)
            finally:
                self._pending = None

    async def _collect(self, pending: PendingCommand, wait: float) -> str:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait
        data: Optional[str] = None
        while True:
            remaining = deadline - loop.time()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError
                item = await asyncio.wait_for(pending.lines.get(), remaining)
            except asyncio.TimeoutError:
                if pending.received:
                    logger.error(f"Malformed response to {pending.command}: {pending.received}")
                    raise MalformedResponseError(pending.command, pending.received) from None
                logger.error(f"Timeout waiting for response to {pending.command}")
                raise TimeoutError(f"Response timeout ({pending.command})", command=pending.command) from None
            if isinstance(item, Exception):
                raise item
            pending.received.append(item)
            done, data = self._dialect.interpret_reply(pending.command, item, data)
            if done:
                return data if data is not None else ""

    async def send_only(self, command: str) -> None:
        """Sends a command the device does not answer."""
        self._check_connected()
        async with self._command_lock:
            await self._send(command)

    async def request_inventory(self, command: str, timeout: Optional[float] = None) -> List[Tag]:
        """
        Sends a command whose result arrives as an inventory report.

        Returns:
            The tags of the report.
        """
        self._check_connected()
        wait = self._response_timeout if timeout is None else timeout
        async with self._command_lock:
            waiter = asyncio.get_running_loop().create_future()
            self._inventory_waiter = waiter
            self._inventory_command = command
            try:
                await self._send(command)
                return await asyncio.wait_for(waiter, wait)
            except asyncio.TimeoutError:
                logger.error(f"Timeout waiting for inventory of {command}")
                raise TimeoutError(f"Response timeout ({command})", command=command) from None
            finally:
                self._inventory_waiter = None
                self._inventory_command = None
