# metratec_rfid/protocols/ascii/dialect.py

import datetime
import logging
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple, Union

from metratec_rfid.core.exceptions import (
    ErrorCode, ProtocolError, ReaderError, TimeoutError, TransponderError, ValidationError, check_range
)
from metratec_rfid.core.tags import Tag, TagKind
from metratec_rfid.protocols.ascii import constants as ascii_const
from metratec_rfid.protocols.ascii.crc import append_crc, check_crc
from metratec_rfid.protocols.base_dialect import BaseDialect, DeviceInfo, LineKind, ReplyStep

if TYPE_CHECKING:
    from metratec_rfid.core.reader import Reader

logger = logging.getLogger(__name__)


def is_error_code(text: str) -> bool:
    """True if the text is one of the three letter error codes, alone or followed by a space."""
    return text[:3] in ascii_const.ERROR_CODES and (len(text) == 3 or text[3] == " ")


def _is_status_entry(text: str) -> bool:
    # Three letter codes ("IVF 02", "ARP 1", "TOE"), never a tag ID
    return len(text) <= 3 or text[3] == " "


def _device_pin(pin: int) -> int:
    # The devices count pins from 0, the reader API from 1
    return pin - 1


class AsciiDialect(BaseDialect):
    """
    Legacy ASCII dialect of the first generation readers.

    Every command is answered by a single line. Until End Of Frame mode is
    switched on during ``prepare()`` lines end with CR only, afterwards with
    CR LF, which frees CR to separate the entries of an inventory block::

        E0040150954F0983<CR>E0040150954F0984<CR>IVF 02<CR><LF>

    With CRC mode on, commands and every reply entry carry a CRC-16.
    """

    NAME = "ascii"
    INPUT_COMMAND = ascii_const.CMD_HF_INPUT_TRIGGER
    INPUT_EDGE = ascii_const.CMD_HF_INPUT_TRIGGER

    def __init__(self, use_crc: bool = False):
        """
        Args:
            use_crc: Switch CRC checking on during initialization.
        """
        self.use_crc = use_crc
        self.crc_enabled = False

    @property
    def line_terminator(self) -> str:
        return ascii_const.LINE_TERMINATOR

    @property
    def initial_line_terminator(self) -> str:
        return ascii_const.INITIAL_LINE_TERMINATOR

    def encode_command(self, command: str) -> str:
        return append_crc(command) if self.crc_enabled else command

    # --- CRC handling ---

    def _strip_crc(self, text: str) -> str:
        if not self.crc_enabled:
            return text
        if check_crc(text):
            return text[:-ascii_const.CRC_SUFFIX_LENGTH]
        # Multi entry reply: every entry carries its own CRC
        return ascii_const.ENTRY_SEPARATOR.join(self._split_entries(text))

    def _split_entries(self, text: str) -> List[str]:
        entries = [entry for entry in text.split(ascii_const.ENTRY_SEPARATOR) if entry]
        if not self.crc_enabled:
            return entries
        if text.startswith(ascii_const.CODE_CRC_ERROR):
            raise ProtocolError("CRC error", line=text)
        stripped = []
        for entry in entries:
            if not check_crc(entry):
                raise ProtocolError("CRC error", line=text)
            stripped.append(entry[:-ascii_const.CRC_SUFFIX_LENGTH])
        return stripped

    # --- Receive path ---

    def classify(self, line: str) -> LineKind:
        if line.startswith(ascii_const.HEARTBEAT_PREFIX):
            return LineKind.HEARTBEAT
        if line.startswith(ascii_const.INVENTORY_END):
            return LineKind.INVENTORY
        if (len(line) >= ascii_const.INVENTORY_END_WINDOW
                and ascii_const.INVENTORY_END in line[-ascii_const.INVENTORY_END_WINDOW:]):
            return LineKind.INVENTORY
        if line.startswith(ascii_const.INPUT_EVENT_PREFIX) and line[2:3].isdigit():
            return LineKind.INPUT
        return LineKind.REPLY

    def parse_input_event(self, line: str) -> Tuple[int, bool]:
        # IN0 HI! / IN1 LOW! (the CRC is hex and never contains "HI")
        return int(line[2]) + 1, ascii_const.LEVEL_HIGH in line[3:]

    def interpret_reply(self, command: str, line: str, data: Optional[str]) -> ReplyStep:
        # One line per reply. Error codes are only raised here, they are
        # never part of the payload.
        text = self._strip_crc(line)
        if is_error_code(text):
            raise self.classify_error(text)
        return True, text

    def classify_error(self, detail: str) -> ReaderError:
        code = detail[:3]
        if code in ascii_const.HARDWARE_ERRORS:
            message = f"Hardware error detected: {ascii_const.HARDWARE_ERRORS[code]}"
            if code == "UER":
                message += f". Full error string: {detail}"
            return ReaderError(message, detail=detail, code=ErrorCode.HARDWARE)
        if code == ascii_const.CODE_NOT_SUPPORTED:
            return ReaderError("Command not supported", detail=detail, code=ErrorCode.NOT_SUPPORTED)
        if code in ascii_const.PARSER_ERRORS:
            error_code = ErrorCode.NOT_RUNNING if code == ascii_const.CODE_NOT_RUNNING else ErrorCode.PARSER
            return ReaderError(
                "Parser error detected - if using direct mode please check string sent, "
                f"otherwise contact support. Error message: {detail}",
                detail=detail, code=error_code)
        for embedded in ascii_const.EMBEDDED_HARDWARE_ERRORS:
            if embedded in detail:
                return ReaderError(f"Hardware error detected: {ascii_const.HARDWARE_ERRORS[embedded]}",
                                   detail=detail, code=ErrorCode.HARDWARE)
        if code in ascii_const.TAG_ERRORS:
            return TransponderError(f"Transponder error: {detail}", detail=detail)
        return ReaderError(f"Unhandled Error: {detail}", detail=detail)

    def check_set_reply(self, command: str, payload: str) -> None:
        if ascii_const.REPLY_OK not in payload:
            raise self.classify_error(payload)

    def parse_inventory(self, text: str, raise_errors: bool = False) -> List[Tag]:
        timestamp = datetime.datetime.now()
        entries = self._split_entries(text)
        tags: List[Tag] = []
        antenna: Optional[int] = None
        index = 0
        while index < len(entries):
            entry = entries[index]
            index += 1
            if not _is_status_entry(entry):
                tag = Tag(entry, kind=self.TAG_KIND, first_seen=timestamp, antenna=antenna)
                index = self._read_tag_extras(tag, entries, index)
                tags.append(tag)
                continue
            if entry.startswith(ascii_const.INVENTORY_END):
                break
            if entry.startswith(ascii_const.ANTENNA_REPORT):
                try:
                    antenna = int(entry[len(ascii_const.ANTENNA_REPORT):])
                except ValueError as e:
                    raise ProtocolError("Malformed antenna report.", line=entry) from e
                for tag in tags:
                    tag.antenna = antenna
                continue
            if entry[:3] in ascii_const.SKIPPABLE_INVENTORY_ERRORS:
                logger.debug(f"Inventory: {entry} skipped")
                index += self._extra_entries_per_tag()
                continue
            error = self.classify_error(entry)
            if raise_errors:
                raise error
            logger.warning(f"Inventory warning ({entry}) - {error}")
        return tags

    def _extra_entries_per_tag(self) -> int:
        """Number of entries following each tag ID."""
        return 0

    def _read_tag_extras(self, tag: Tag, entries: List[str], index: int) -> int:
        """Reads the entries following a tag ID and returns the index after them."""
        return index

    # --- Command spelling ---

    def antenna_command(self, port: int) -> str:
        return f"{ascii_const.CMD_ANTENNA} {port}"

    def multiplex_command(self, ports: Union[int, Sequence[int]]) -> str:
        if isinstance(ports, int):
            return f"{ascii_const.CMD_ANTENNA_AUTO} {ports}"
        ports = list(ports)
        if ports != list(range(1, len(ports) + 1)):
            raise ValidationError("Only antenna counts (1..n) can be multiplexed by this reader")
        return f"{ascii_const.CMD_ANTENNA_AUTO} {len(ports)}"

    def output_command(self, pin: int, value: bool, output_count: int) -> str:
        level = ascii_const.LEVEL_HIGH if value else ascii_const.LEVEL_LOW
        return f"{ascii_const.CMD_WRITE_OUTPUT} {_device_pin(pin)} {level}"

    def input_query(self, pin: int) -> str:
        return f"{ascii_const.CMD_READ_INPUT} {_device_pin(pin)}"

    def _input_event_script(self, pin: int) -> str:
        """Command run by the device on an edge of ``pin``: prints ``IN<n>`` and the level."""
        query = self.input_query(pin)
        if self.crc_enabled:
            query = append_crc(query)
        return f"{ascii_const.INPUT_EVENT_SCRIPT.format(pin=_device_pin(pin))}{query}"

    def input_events_commands(self, enable: bool, input_count: int) -> List[str]:
        """
        Edge triggers for every input, e.g. on an HF reader::

            EGC 0 #SPIN0#RIP 0
            EGC 0 BOTH

        Disabling only resets the edges (``EGC 0 NONE``).
        """
        commands = []
        for pin in range(1, input_count + 1):
            device_pin = _device_pin(pin)
            if enable:
                commands.append(f"{self.INPUT_COMMAND} {device_pin} {self._input_event_script(pin)}")
            edge = ascii_const.EDGE_BOTH if enable else ascii_const.EDGE_NONE
            commands.append(f"{self.INPUT_EDGE} {device_pin} {edge}")
        return commands

    def parse_pin_level(self, payload: str, pin: int) -> bool:
        if ascii_const.LEVEL_HIGH in payload:
            return True
        if ascii_const.LEVEL_LOW in payload:
            return False
        raise self.classify_error(payload)

    def heartbeat_command(self, interval: int) -> str:
        check_range(interval, *ascii_const.HEARTBEAT_RANGE)
        if interval == 0:
            return f"{ascii_const.CMD_HEARTBEAT} {ascii_const.HEARTBEAT_OFF}"
        return f"{ascii_const.CMD_HEARTBEAT} {interval}"

    @property
    def heartbeat_optional(self) -> bool:
        return True

    def start_inventory_command(self, multiplex: bool) -> str:
        return ascii_const.CMD_CONTINUOUS_INVENTORY

    @property
    def start_inventory_acknowledged(self) -> bool:
        return False

    def stop_inventory_command(self) -> str:
        return ascii_const.CMD_BREAK

    def single_inventory_command(self, multiplex: bool) -> str:
        return ascii_const.CMD_INVENTORY

    @property
    def single_inventory_is_event(self) -> bool:
        return True

    def reset_command(self) -> str:
        return ascii_const.CMD_RESET

    @property
    def reset_acknowledged(self) -> bool:
        # The device restarts without answering RST
        return False

    # --- Session hooks ---

    async def prepare(self, reader: "Reader") -> None:
        """
        Brings the device into a known state.

        BRK stops whatever the device is doing. A CRC error means CRC mode is
        still on from an earlier session, an unanswered BRK a sleeping
        device (woken with WAK).
        """
        self.crc_enabled = False
        command = ascii_const.CMD_BREAK
        woken = False
        while True:
            try:
                await reader.execute(command)
                break
            except TimeoutError:
                if woken:
                    raise
                logger.debug("No answer to BRK, trying to wake the device")
                woken = True
                command = ascii_const.CMD_WAKE
            except ReaderError as e:
                detail = e.detail or ""
                if detail.startswith(ascii_const.CODE_CRC_ERROR) and not self.crc_enabled:
                    logger.debug("Device expects CRC, enabling it")
                    self.crc_enabled = True
                    continue
                if e.code is ErrorCode.NOT_SUPPORTED:
                    raise ReaderError("device is not a metraTec rfid reader", detail=detail,
                                      code=ErrorCode.NOT_SUPPORTED) from e
                if detail.startswith(ascii_const.BREAK_ACCEPTED_ERRORS):
                    break
                raise
        try:
            await reader.set_command(self.heartbeat_command(0))
        except ReaderError as e:
            logger.debug(f"Heartbeat not supported: {e}")
        reader.set_line_terminator(ascii_const.LINE_TERMINATOR)
        await reader.set_command(ascii_const.CMD_END_OF_FRAME)
        if self.use_crc and not self.crc_enabled:
            await reader.set_command(ascii_const.CMD_CRC_ON)
            self.crc_enabled = True

    async def shutdown(self, reader: "Reader") -> None:
        if self.crc_enabled:
            await reader.set_command(ascii_const.CMD_CRC_OFF)
            self.crc_enabled = False
        reader.set_line_terminator(ascii_const.INITIAL_LINE_TERMINATOR)
        await reader.set_command(ascii_const.CMD_NO_END_OF_FRAME)

    async def _query(self, reader: "Reader", command: str) -> str:
        try:
            return await reader.get_command(command)
        except ReaderError as e:
            if e.code is not ErrorCode.NOT_SUPPORTED:
                raise
            return ""

    async def read_device_info(self, reader: "Reader") -> DeviceInfo:
        """
        Reads RFW/RHW, falling back to REV on devices without them::

            RFW -> "DESKID_ISO  0104"
            REV -> "QR15        01000107"
        """
        info = DeviceInfo()
        try:
            firmware = await self._query(reader, ascii_const.CMD_READ_FIRMWARE)
            if len(firmware) > 3:
                info.firmware_name = firmware[:-4].replace(" ", "")
                info.firmware_major = int(firmware[-4:-2])
                info.firmware_minor = int(firmware[-2:])
                hardware = await self._query(reader, ascii_const.CMD_READ_HARDWARE)
                if len(hardware) > 3:
                    info.hardware_name = hardware[:-4].strip()
                    info.hardware_version = f"{int(hardware[-4:-2])}.{int(hardware[-2:])}"
            else:
                revision = await self._query(reader, ascii_const.CMD_READ_REVISION)
                if len(revision) > 7:
                    info.firmware_name = revision[:-8].replace(" ", "")
                    info.firmware_major = int(revision[-4:-2])
                    info.firmware_minor = int(revision[-2:])
                    info.hardware_name = revision[:-8].strip()
                    info.hardware_version = f"{int(revision[-8:-6])}.{int(revision[-6:-4])}"
        except ValueError as e:
            raise ProtocolError("Malformed version information.") from e
        info.firmware_version = f"{info.firmware_major}.{info.firmware_minor}"
        info.serial_number = await self._query(reader, ascii_const.CMD_READ_SERIAL)
        return info


class AsciiUhfDialect(AsciiDialect):
    """ASCII dialect of the first generation UHF readers (DwarfG2)."""

    NAME = "ascii_uhf"
    INPUT_COMMAND = ascii_const.CMD_UHF_INPUT_COMMAND
    INPUT_EDGE = ascii_const.CMD_UHF_INPUT_EDGE
    DESCRIPTION = "metraTec first generation UHF readers"
    TAG_KIND = TagKind.UHF

    def __init__(self, use_crc: bool = False, with_rssi: bool = False):
        """
        Args:
            use_crc: Switch CRC checking on during initialization.
            with_rssi: Have the device report the RSSI after every EPC.
        """
        super().__init__(use_crc)
        self.with_rssi = with_rssi

    async def configure(self, reader: "Reader") -> None:
        await reader.set_command(f"{ascii_const.CMD_RSSI_REPORT} {'ON' if self.with_rssi else 'OFF'}")

    def _extra_entries_per_tag(self) -> int:
        return 1 if self.with_rssi else 0

    def _read_tag_extras(self, tag: Tag, entries: List[str], index: int) -> int:
        if self.with_rssi:
            try:
                tag.details.rssi = int(entries[index])
            except (IndexError, ValueError) as e:
                raise ProtocolError(f"No RSSI for tag {tag.id}.") from e
            index += 1
        return index

    def power_command(self, power: int) -> str:
        return f"{ascii_const.CMD_UHF_POWER} {power}"


class AsciiHfDialect(AsciiDialect):
    """ASCII dialect of the first generation HF readers (QR15, Dwarf15, QuasarLR, ...)."""

    NAME = "ascii_hf"
    DESCRIPTION = "metraTec first generation HF (ISO 15693) readers"
    TAG_KIND = TagKind.HF

    def power_command(self, power: int) -> str:
        return f"{ascii_const.CMD_HF_POWER} {power}"
