# metratec_rfid/core/reader.py

import asyncio
import logging
from typing import Any, Callable, List, Optional, Sequence, Union

from metratec_rfid.core.dispatcher import DEFAULT_RESPONSE_TIMEOUT, Dispatcher
from metratec_rfid.core.events import EventBus, EventCallback, EventKind, InputEvent, InventoryEvent, StatusEvent
from metratec_rfid.core.exceptions import (
    CommunicationError, ConnectionError, ConnectionLostError, ErrorCode, ReaderError, RfidError, ValidationError,
    check_range
)
from metratec_rfid.core.inventory import Inventory
from metratec_rfid.core.profile import (
    GENERIC_PROFILE, INPUT_EVENTS_MIN_FIRMWARE, QUIRK_INPUT_EVENTS_MIN_FIRMWARE, DeviceProfile
)
from metratec_rfid.core.status import ReaderStatus
from metratec_rfid.core.tags import MemoryBank, Tag
from metratec_rfid.protocols.base_dialect import BaseDialect, DeviceInfo
from metratec_rfid.transport.base import BaseTransport

logger = logging.getLogger(__name__)

DEFAULT_RESET_DELAY = 1.5 # Seconds the device needs to restart
DEFAULT_RESET_ATTEMPTS = 4
KEEPALIVE_HEARTBEAT_INTERVAL = 10 # Seconds, for links that need traffic to stay up
WATCHDOG_FACTOR = 2.5 # Missed heartbeats tolerated before the link counts as lost
MULTIPLEX_TIMEOUT_FACTOR = 4


class Reader:
    """
    Main class for interacting with a metraTec RFID reader.

    Owns the session with one device: connection and initialization,
    command execution, inventories and their aggregation, antennas, I/O
    pins and the status/input/inventory notifications.

    Example::

        reader = Reader(SerialTransport({'port': '/dev/ttyUSB0', 'baudrate': 115200}), ATUhfDialect())
        reader.subscribe_inventory(print)
        async with reader:
            await reader.start_inventory()
    """

    def __init__(self, transport: BaseTransport, dialect: BaseDialect, profile: Optional[DeviceProfile] = None,
                 response_timeout: float = DEFAULT_RESPONSE_TIMEOUT, reset_delay: float = DEFAULT_RESET_DELAY,
                 reset_attempts: int = DEFAULT_RESET_ATTEMPTS, fire_empty_inventories: bool = False):
        """
        Initializes the Reader.

        Args:
            transport: An instance of a BaseTransport implementation.
            dialect: An instance of a BaseDialect implementation.
            profile: The device model, used to validate pins, antennas and power.
            response_timeout: Default timeout in seconds for waiting command responses.
            reset_delay: Seconds to wait after a reset before reconnecting.
            reset_attempts: Reconnection attempts after a reset.
            fire_empty_inventories: Notify inventory subscribers about reports without tags.
        """
        if not isinstance(transport, BaseTransport):
            raise TypeError("transport must be an instance of BaseTransport")
        if not isinstance(dialect, BaseDialect):
            raise TypeError("dialect must be an instance of BaseDialect")

        self._transport = transport
        self._dialect = dialect
        self._profile = profile or GENERIC_PROFILE
        self._response_timeout = response_timeout
        self._reset_delay = reset_delay
        self._reset_attempts = reset_attempts
        self._fire_empty_inventories = fire_empty_inventories

        self._dispatcher: Optional[Dispatcher] = None
        self._status = ReaderStatus.DISCONNECTED
        self._status_lock = asyncio.Lock()
        self._events = EventBus()
        self._inventory = Inventory()

        self._device_info = DeviceInfo()
        self._current_antenna = 1
        self._single_antenna = True
        self._heartbeat_interval = 0
        self._input_events_enabled = False

        logger.debug(f"Reader initialized with transport: {type(transport).__name__}, "
                     f"dialect: {dialect.NAME}, profile: {self._profile.name}")

    # --- Properties ---

    @property
    def status(self) -> ReaderStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        """True while the session is READY or SCANNING."""
        return self._status.is_connected

    @property
    def transport(self) -> BaseTransport:
        return self._transport

    @property
    def dialect(self) -> BaseDialect:
        return self._dialect

    @property
    def profile(self) -> DeviceProfile:
        return self._profile

    @property
    def device_info(self) -> DeviceInfo:
        return self._device_info

    @property
    def firmware_name(self) -> str:
        return self._device_info.firmware_name

    @property
    def firmware_version(self) -> str:
        return self._device_info.firmware_version

    @property
    def hardware_name(self) -> str:
        return self._device_info.hardware_name

    @property
    def hardware_version(self) -> str:
        return self._device_info.hardware_version

    @property
    def serial_number(self) -> str:
        return self._device_info.serial_number

    @property
    def current_antenna(self) -> int:
        return self._current_antenna

    @property
    def single_antenna_in_use(self) -> bool:
        return self._single_antenna

    @property
    def heartbeat_interval(self) -> int:
        return self._heartbeat_interval

    @property
    def input_events_enabled(self) -> bool:
        return self._input_events_enabled

    @property
    def inventory(self) -> Inventory:
        """The tags aggregated by the running (or last) continuous inventory."""
        return self._inventory

    # --- Status ---

    async def _update_status(self, new_status: ReaderStatus, message: str = "",
                             error: Optional[Exception] = None) -> None:
        """Atomically updates the session status and notifies status subscribers."""
        async with self._status_lock:
            if self._status == new_status:
                return
            suffix = f" ({message})" if message else ""
            logger.info(f"Reader status changed: {self._status.name} -> {new_status.name}{suffix}")
            self._status = new_status
            self._events.publish(EventKind.STATUS, StatusEvent(new_status, message, error=error))

    # --- Subscriptions ---

    def subscribe(self, kind: EventKind, callback: EventCallback) -> None:
        """Registers a callback (plain or coroutine function) for one event kind."""
        self._events.subscribe(kind, callback)

    def unsubscribe(self, kind: EventKind, callback: EventCallback) -> None:
        self._events.unsubscribe(kind, callback)

    def subscribe_status(self, callback: Callable[[StatusEvent], Any]) -> None:
        self._events.subscribe(EventKind.STATUS, callback)

    def subscribe_input(self, callback: Callable[[InputEvent], Any]) -> None:
        self._events.subscribe(EventKind.INPUT, callback)

    def subscribe_inventory(self, callback: Callable[[InventoryEvent], Any]) -> None:
        self._events.subscribe(EventKind.INVENTORY, callback)

    async def wait_for_events(self, timeout: Optional[float] = None) -> None:
        """Waits until all published notifications have been delivered."""
        await self._events.join(timeout)

    # --- Connection ---

    async def connect(self) -> None:
        """
        Opens the link and initializes the device session.

        Raises:
            ConnectionError: If the link cannot be opened.
            RfidError: If initialization fails. The link is closed again.
        """
        if self._status is not ReaderStatus.DISCONNECTED:
            logger.warning(f"Connect ignored, reader is {self._status.name}.")
            return

        await self._update_status(ReaderStatus.CONNECTING, "Connecting...")
        try:
            await self._transport.connect()
        except CommunicationError as e:
            logger.error(f"Connection failed: {e}")
            await self._update_status(ReaderStatus.DISCONNECTED, str(e), error=e)
            await self._events.close()
            raise

        self._transport.line_terminator = self._dialect.initial_line_terminator
        self._dispatcher = Dispatcher(
            transport=self._transport,
            dialect=self._dialect,
            response_timeout=self._response_timeout,
            on_inventory=self._handle_inventory_report,
            on_input=self._handle_input_event,
            on_connection_lost=self._handle_connection_lost,
        )
        self._dispatcher.start()
        await self._update_status(ReaderStatus.INITIALIZING, "Initializing...")

        try:
            await self._initialize()
        except Exception as e:
            logger.error(f"Error during preparing reader: {e}")
            await self._teardown(f"Error during preparing reader - {e}", error=e)
            raise

        await self._update_status(ReaderStatus.READY, "Connected")
        logger.info(f"Reader connected via {type(self._transport).__name__}: "
                    f"{self.firmware_name} {self.firmware_version} (serial {self.serial_number})")

    async def _initialize(self) -> None:
        await self._dialect.prepare(self)
        await self._stop_running_inventory()
        self._device_info = await self._dialect.read_device_info(self)
        logger.debug(f"Device info: {self._device_info}")
        interval = KEEPALIVE_HEARTBEAT_INTERVAL if self._transport.keepalive_required else 0
        await self.set_heartbeat_interval(interval)
        await self._dialect.configure(self)

    async def disconnect(self) -> None:
        """Stops a running inventory, restores the device defaults and closes the link."""
        if self._status is ReaderStatus.DISCONNECTED:
            return
        if self._status is ReaderStatus.SCANNING:
            try:
                await self.stop_inventory()
            except RfidError as e:
                logger.warning(f"Could not stop inventory before disconnect: {e}")
        if self._dispatcher is not None and self._transport.is_connected():
            try:
                await self._dialect.shutdown(self)
            except RfidError as e:
                logger.warning(f"Error while shutting down the session: {e}")
        await self._teardown("Disconnected")

    async def _teardown(self, message: str, error: Optional[Exception] = None) -> None:
        dispatcher, self._dispatcher = self._dispatcher, None
        if dispatcher is not None:
            await dispatcher.stop()
        try:
            await self._transport.disconnect()
        except CommunicationError as e:
            logger.error(f"Error during transport disconnection: {e}")
        await self._inventory.clear()
        self._heartbeat_interval = 0
        self._input_events_enabled = False
        await self._update_status(ReaderStatus.DISCONNECTED, message, error=error)
        await self._events.close()

    async def _handle_connection_lost(self, error: Exception) -> None:
        if self._status is ReaderStatus.DISCONNECTED:
            return
        logger.error(f"Connection lost: {error}")
        await self._teardown(str(error), error=error)

    async def reset(self) -> None:
        """
        Restarts the device and reconnects once it is back.

        Raises:
            ConnectionError: If the device did not come back within ``reset_attempts`` tries.
        """
        dispatcher = self._require_session()
        logger.info("Resetting reader...")
        command = self._dialect_command("reset", self._dialect.reset_command)
        if self._dialect.reset_acknowledged:
            await self.set_command(command)
        else:
            await dispatcher.send_only(command)
        await self._teardown("Reset")

        last_error: Optional[Exception] = None
        for attempt in range(1, self._reset_attempts + 1):
            await asyncio.sleep(self._reset_delay)
            try:
                await self.connect()
                return
            except RfidError as e:
                last_error = e
                logger.warning(f"Reconnect after reset failed (attempt {attempt}/{self._reset_attempts}): {e}")
        raise ConnectionError("Reader did not come back after reset.", original_exception=last_error)

    # --- Commands ---

    def _require_session(self) -> Dispatcher:
        if self._dispatcher is None or self._status in (ReaderStatus.DISCONNECTED, ReaderStatus.CONNECTING):
            raise ConnectionLostError("Reader not connected.")
        return self._dispatcher

    def _dialect_command(self, operation: str, builder: Callable[..., str], *args) -> str:
        try:
            return builder(*args)
        except NotImplementedError:
            raise ReaderError(f"{operation} is not supported by the {self._dialect.NAME} dialect",
                              code=ErrorCode.NOT_SUPPORTED) from None

    def set_line_terminator(self, terminator: str) -> None:
        """Changes the line terminator of the link, used while the dialect switches framing modes."""
        self._transport.line_terminator = terminator

    async def execute(self, command: str, timeout: Optional[float] = None) -> str:
        """
        Sends a raw command and returns the reply payload.

        Raises:
            TimeoutError: If the device did not answer in time.
            ReaderError: If the device rejected the command.
            ConnectionLostError: If the reader is not connected.
        """
        dispatcher = self._require_session()
        return await dispatcher.execute(command, timeout)

    async def get_command(self, command: str, timeout: Optional[float] = None) -> str:
        """Sends a query and returns its payload."""
        return await self.execute(command, timeout)

    async def set_command(self, command: str, timeout: Optional[float] = None) -> None:
        """Sends a command that only acknowledges."""
        payload = await self.execute(command, timeout)
        self._dialect.check_set_reply(command, payload)

    # --- Inventory ---

    async def _stop_running_inventory(self) -> None:
        try:
            await self.execute(self._dialect.stop_inventory_command())
        except ReaderError as e:
            if e.code is not ErrorCode.NOT_RUNNING:
                raise
            logger.debug("No inventory was running.")

    async def start_inventory(self) -> None:
        """Starts a continuous inventory. Reports are aggregated and notified until stop_inventory()."""
        dispatcher = self._require_session()
        if self._status is ReaderStatus.SCANNING:
            logger.warning("Inventory already running.")
            return
        command = self._dialect.start_inventory_command(not self._single_antenna)
        await self._inventory.clear()
        # Reports may follow the start command immediately
        await self._update_status(ReaderStatus.SCANNING, "Inventory started")
        try:
            if self._dialect.start_inventory_acknowledged:
                await self.set_command(command)
            else:
                await dispatcher.send_only(command)
        except RfidError:
            if self._status is ReaderStatus.SCANNING:
                await self._update_status(ReaderStatus.READY)
            raise

    async def stop_inventory(self) -> None:
        """Stops a continuous inventory. A device reporting that none is running is not an error."""
        self._require_session()
        await self._stop_running_inventory()
        if self._status is ReaderStatus.SCANNING:
            await self._update_status(ReaderStatus.READY, "Inventory stopped")

    async def get_inventory(self) -> List[Tag]:
        """
        Runs a single inventory round.

        The tags are notified to inventory subscribers (not continuous) and
        are not added to the aggregated inventory.
        """
        dispatcher = self._require_session()
        multiplex = not self._single_antenna
        command = self._dialect.single_inventory_command(multiplex)
        timeout = self._response_timeout * (MULTIPLEX_TIMEOUT_FACTOR if multiplex else 1)
        if self._dialect.single_inventory_is_event:
            tags = await dispatcher.request_inventory(command, timeout)
        else:
            payload = await self.get_command(command, timeout)
            tags = self._dialect.parse_inventory(payload, raise_errors=True)
        self._apply_default_antenna(tags)
        if tags or self._fire_empty_inventories:
            self._events.publish(EventKind.INVENTORY,
                                 InventoryEvent([tag.copy() for tag in tags], continuous=False))
        return tags

    async def fetch_inventory(self) -> List[Tag]:
        """Returns the aggregated tags and clears the inventory."""
        return await self._inventory.fetch()

    async def clear_inventory(self) -> None:
        await self._inventory.clear()

    def _apply_default_antenna(self, tags: List[Tag]) -> None:
        for tag in tags:
            if tag.antenna is None:
                tag.antenna = self._current_antenna

    async def _handle_inventory_report(self, tags: List[Tag]) -> None:
        self._apply_default_antenna(tags)
        if not tags and not self._fire_empty_inventories:
            return
        if self._status is ReaderStatus.SCANNING:
            touched = await self._inventory.update(tags)
            self._events.publish(EventKind.INVENTORY, InventoryEvent(touched, continuous=True))
        else:
            self._events.publish(EventKind.INVENTORY, InventoryEvent(tags, continuous=False))

    async def _handle_input_event(self, pin: int, is_high: bool) -> None:
        self._events.publish(EventKind.INPUT, InputEvent(pin, is_high))

    # --- Antennas ---

    def _check_antenna(self, port: int) -> None:
        if self._profile.antenna_ports is not None:
            check_range(port, 1, self._profile.antenna_ports)
        elif not isinstance(port, int) or isinstance(port, bool) or port < 1:
            raise ValidationError(f"Antenna port must be a positive number, got {port!r}")

    async def set_antenna(self, port: int) -> None:
        """Selects a single antenna port."""
        self._check_antenna(port)
        await self.set_command(self._dialect_command("set_antenna", self._dialect.antenna_command, port))
        self._current_antenna = port
        self._single_antenna = True

    async def get_antenna(self) -> int:
        payload = await self.get_command(self._dialect_command("get_antenna", self._dialect.antenna_query))
        self._current_antenna = self._dialect.parse_antenna(payload)
        return self._current_antenna

    async def set_antenna_multiplex(self, ports: Union[int, Sequence[int]]) -> None:
        """
        Cycles the inventory over several antennas.

        Args:
            ports: The number of antennas (1..n) or an explicit port sequence.
        """
        if isinstance(ports, int):
            self._check_antenna(ports)
        else:
            ports = list(ports)
            if not ports:
                raise ValueError("Antenna sequence must not be empty")
            for port in ports:
                self._check_antenna(port)
        await self.set_command(self._dialect_command("set_antenna_multiplex", self._dialect.multiplex_command, ports))
        self._single_antenna = False

    async def get_antenna_multiplex(self) -> List[int]:
        payload = await self.get_command(self._dialect_command("get_antenna_multiplex", self._dialect.multiplex_query))
        return self._dialect.parse_multiplex(payload)

    # --- I/O pins ---

    async def set_output(self, pin: int, value: bool) -> None:
        check_range(pin, 1, self._profile.output_count)
        command = self._dialect_command("set_output", self._dialect.output_command,
                                        pin, value, self._profile.output_count)
        await self.set_command(command)

    async def get_output(self, pin: int) -> bool:
        check_range(pin, 1, self._profile.output_count)
        payload = await self.get_command(self._dialect_command("get_output", self._dialect.output_query, pin))
        return self._dialect.parse_pin_level(payload, pin)

    async def get_input(self, pin: int) -> bool:
        check_range(pin, 1, self._profile.input_count)
        payload = await self.get_command(self._dialect_command("get_input", self._dialect.input_query, pin))
        return self._dialect.parse_pin_level(payload, pin)

    async def enable_input_events(self, enable: bool = True) -> None:
        """
        Enables or disables the notification of input pin changes.

        Models that need a minimum firmware for input events keep them off
        on older firmware; the call then only logs.
        """
        if self._profile.quirks.get(QUIRK_INPUT_EVENTS_MIN_FIRMWARE):
            version = (self._device_info.firmware_major, self._device_info.firmware_minor)
            if version < INPUT_EVENTS_MIN_FIRMWARE:
                logger.info(f"Input events disabled, minimum firmware version "
                            f"{'.'.join(map(str, INPUT_EVENTS_MIN_FIRMWARE))} required.")
                self._input_events_enabled = False
                return
        commands = self._dialect_command("enable_input_events", self._dialect.input_events_commands,
                                         enable, self._profile.input_count)
        for command in commands:
            await self.set_command(command)
        self._input_events_enabled = enable

    # --- Tag memory ---

    async def read_tag_data(self, bank: MemoryBank, start_address: int, length: int,
                            epc_mask: Optional[str] = None) -> List[Tag]:
        """
        Reads a memory bank of every tag in the field (or those matching ``epc_mask``).

        Args:
            bank: The memory bank to read.
            start_address: First word address to read.
            length: Number of bytes to read.
            epc_mask: Only tags whose EPC starts with this hex string answer.

        Returns:
            One tag per answering transponder. Read data lands in ``data``
            (``tid`` for the TID bank); tags the operation failed on have
            ``has_error`` set and the device message in ``message``.
        """
        command = self._dialect_command("read_tag_data", self._dialect.read_tag_data_command,
                                        bank, start_address, length, epc_mask)
        payload = await self.get_command(command)
        tags = self._dialect.parse_tag_operation(payload, bank, start_address)
        self._apply_default_antenna(tags)
        return tags

    async def read_tag_tid(self, start_address: int = 0, length: int = 4,
                           epc_mask: Optional[str] = None) -> List[Tag]:
        return await self.read_tag_data(MemoryBank.TID, start_address, length, epc_mask)

    async def read_tag_user_data(self, start_address: int, length: int,
                                 epc_mask: Optional[str] = None) -> List[Tag]:
        return await self.read_tag_data(MemoryBank.USR, start_address, length, epc_mask)

    async def write_tag_data(self, bank: MemoryBank, start_address: int, data: str,
                             epc_mask: Optional[str] = None) -> List[Tag]:
        """
        Writes hex ``data`` to a memory bank of every tag in the field (or those matching ``epc_mask``).

        Returns:
            One tag per answering transponder, failed writes flagged with ``has_error``.
        """
        command = self._dialect_command("write_tag_data", self._dialect.write_tag_data_command,
                                        bank, start_address, data, epc_mask)
        payload = await self.get_command(command)
        tags = self._dialect.parse_tag_operation(payload)
        self._apply_default_antenna(tags)
        return tags

    async def write_tag_user_data(self, start_address: int, data: str,
                                  epc_mask: Optional[str] = None) -> List[Tag]:
        return await self.write_tag_data(MemoryBank.USR, start_address, data, epc_mask)

    # --- Settings ---

    async def set_heartbeat_interval(self, interval: int) -> None:
        """
        Sets the device heartbeat. With an interval active the link counts as
        lost when nothing was received for 2.5 intervals.

        Args:
            interval: Seconds between heartbeats, 0 to disable.
        """
        dispatcher = self._require_session()
        command = self._dialect_command("set_heartbeat_interval", self._dialect.heartbeat_command, interval)
        try:
            await self.set_command(command)
        except ReaderError as e:
            if not self._dialect.heartbeat_optional:
                raise
            logger.warning(f"Heartbeat not available, leaving it disabled: {e}")
            interval = 0
        self._heartbeat_interval = interval
        dispatcher.set_watchdog(interval * WATCHDOG_FACTOR if interval else None)

    async def set_power(self, power: int) -> None:
        """Sets the transmit power, validated against the profile's power range."""
        if self._profile.power_range is not None:
            check_range(power, *self._profile.power_range)
        await self.set_command(self._dialect_command("set_power", self._dialect.power_command, power))

    async def get_power(self) -> int:
        payload = await self.get_command(self._dialect_command("get_power", self._dialect.power_query))
        return self._dialect.parse_power(payload)

    # --- Context manager ---

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
