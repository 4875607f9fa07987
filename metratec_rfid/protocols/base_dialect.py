# metratec_rfid/protocols/base_dialect.py

import abc
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple, Union

from metratec_rfid.core.exceptions import ReaderError
from metratec_rfid.core.tags import MemoryBank, Tag, TagKind

if TYPE_CHECKING:
    from metratec_rfid.core.reader import Reader


class LineKind(Enum):
    """What a line received from the device is."""
    HEARTBEAT = auto()
    INVENTORY = auto()
    INPUT = auto()
    REPLY = auto()


@dataclass
class DeviceInfo:
    firmware_name: str = "Unknown"
    firmware_version: str = "0.0"
    firmware_major: int = 0
    firmware_minor: int = 0
    hardware_name: str = "Unknown"
    hardware_version: str = "0.0"
    serial_number: str = ""


# (done, data): whether the command completed, and the data collected so far
ReplyStep = Tuple[bool, Optional[str]]


class BaseDialect(abc.ABC):
    """
    Abstract Base Class for the line protocols spoken by the readers.

    A dialect knows how to classify received lines, how to turn reply lines
    into a result or an error, how to parse inventory reports, and how the
    commands for the common reader operations are spelled. It holds no
    connection state of its own apart from settings read from the device
    during initialization.
    """

    NAME: str = "base"
    DESCRIPTION: str = ""
    TAG_KIND: TagKind = TagKind.HF

    @property
    @abc.abstractmethod
    def line_terminator(self) -> str:
        """Terminator used by the device once the session is initialized."""

    @property
    def initial_line_terminator(self) -> str:
        """Terminator in effect right after the link is opened."""
        return self.line_terminator

    def encode_command(self, command: str) -> str:
        """Final wire text of a command, without terminator."""
        return command

    # --- Receive path ---

    @abc.abstractmethod
    def classify(self, line: str) -> LineKind:
        """Decides whether a line is an event or belongs to the outstanding command."""

    @abc.abstractmethod
    def parse_inventory(self, text: str, raise_errors: bool = False) -> List[Tag]:
        """
        Parses an inventory report into tags.

        Args:
            text: The report (event line or command reply).
            raise_errors: Raise ReaderError for device messages embedded in the report.
                          Continuous reports only log them.
        """

    def parse_input_event(self, line: str) -> Tuple[int, bool]:
        """Returns (pin, is_high) for an input change event line."""
        raise NotImplementedError

    @abc.abstractmethod
    def interpret_reply(self, command: str, line: str, data: Optional[str]) -> ReplyStep:
        """
        Feeds one reply line of the outstanding command.

        Returns:
            (True, payload) when the command completed, (False, data) to keep waiting.

        Raises:
            ReaderError: If the device rejected the command.
        """

    @abc.abstractmethod
    def classify_error(self, detail: str) -> ReaderError:
        """Builds the exception for an error detail reported by the device."""

    def check_set_reply(self, command: str, payload: str) -> None:
        """Validates the payload of a command that only acknowledges."""

    # --- Command spelling ---

    def antenna_command(self, port: int) -> str:
        raise NotImplementedError

    def antenna_query(self) -> str:
        raise NotImplementedError

    def parse_antenna(self, payload: str) -> int:
        raise NotImplementedError

    def multiplex_command(self, ports: Union[int, Sequence[int]]) -> str:
        raise NotImplementedError

    def multiplex_query(self) -> str:
        raise NotImplementedError

    def parse_multiplex(self, payload: str) -> List[int]:
        raise NotImplementedError

    def output_command(self, pin: int, value: bool, output_count: int) -> str:
        raise NotImplementedError

    def output_query(self, pin: int) -> str:
        raise NotImplementedError

    def input_query(self, pin: int) -> str:
        raise NotImplementedError

    def parse_pin_level(self, payload: str, pin: int) -> bool:
        raise NotImplementedError

    def input_events_command(self, enable: bool) -> str:
        raise NotImplementedError

    def input_events_commands(self, enable: bool, input_count: int) -> List[str]:
        """All commands switching the input change events, sent in order."""
        return [self.input_events_command(enable)]

    def heartbeat_command(self, interval: int) -> str:
        raise NotImplementedError

    @property
    def heartbeat_optional(self) -> bool:
        """Whether a rejected heartbeat command just leaves the heartbeat off."""
        return False

    def power_command(self, power: int) -> str:
        raise NotImplementedError

    def power_query(self) -> str:
        raise NotImplementedError

    def parse_power(self, payload: str) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    def start_inventory_command(self, multiplex: bool) -> str:
        """Command starting a continuous inventory."""

    @property
    def start_inventory_acknowledged(self) -> bool:
        """Whether the device answers the start command before sending reports."""
        return True

    @abc.abstractmethod
    def stop_inventory_command(self) -> str:
        """Command stopping a continuous inventory."""

    @abc.abstractmethod
    def single_inventory_command(self, multiplex: bool) -> str:
        """Command running one inventory round."""

    @property
    def single_inventory_is_event(self) -> bool:
        """Whether a single inventory is reported like a continuous one instead of as a reply."""
        return False

    def reset_command(self) -> str:
        raise NotImplementedError

    @property
    def reset_acknowledged(self) -> bool:
        """Whether the device answers the reset command before restarting."""
        return True

    def read_tag_data_command(self, bank: MemoryBank, start_address: int, length: int,
                              epc_mask: Optional[str] = None) -> str:
        raise NotImplementedError

    def write_tag_data_command(self, bank: MemoryBank, start_address: int, data: str,
                               epc_mask: Optional[str] = None) -> str:
        raise NotImplementedError

    def parse_tag_operation(self, payload: str, bank: Optional[MemoryBank] = None,
                            start_address: Optional[int] = None) -> List[Tag]:
        """
        Parses the per tag results of a tag memory operation.

        Args:
            payload: The reply of the read or write command.
            bank: The bank that was read, None for write operations.
            start_address: Address the read data starts at.
        """
        raise NotImplementedError

    # --- Session hooks ---

    async def prepare(self, reader: "Reader") -> None:
        """Runs right after the link is opened, before anything else is sent."""

    async def configure(self, reader: "Reader") -> None:
        """Reads dialect specific settings once the session is initialized."""

    @abc.abstractmethod
    async def read_device_info(self, reader: "Reader") -> DeviceInfo:
        """Queries firmware, hardware and serial number."""

    async def shutdown(self, reader: "Reader") -> None:
        """Runs before an orderly disconnect while the link is still up."""
