# metratec_rfid/protocols/at/dialect.py

import datetime
import logging
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple, Union

from metratec_rfid.core.exceptions import ErrorCode, ProtocolError, ReaderError, check_range
from metratec_rfid.core.tags import Tag
from metratec_rfid.protocols.at import constants as at_const
from metratec_rfid.protocols.base_dialect import BaseDialect, DeviceInfo, LineKind, ReplyStep

if TYPE_CHECKING:
    from metratec_rfid.core.reader import Reader

logger = logging.getLogger(__name__)

# Builds one tag from the fields of a report entry: (fields, is_report, timestamp) -> Tag
TagBuilder = Callable[[List[str], bool, datetime.datetime], Tag]


def reply_value(payload: str) -> str:
    """Strips the ``+XYZ:`` prefix of a reply line, if there is one."""
    if payload.startswith(at_const.EVENT_PREFIX):
        _, _, payload = payload.partition(":")
    return payload.strip()


def split_entries(payload: str) -> List[str]:
    """Splits a multi entry reply, dropping empty entries."""
    return [entry for entry in payload.split(at_const.ENTRY_SEPARATOR) if entry]


def split_fields(value: str) -> List[str]:
    """Splits comma separated fields, dropping empty ones."""
    return [item for item in value.split(at_const.FIELD_SEPARATOR) if item]


def parse_device_info(payload: str) -> DeviceInfo:
    """
    Parses the ATI reply::

        +SW: PULSAR_LR 0100<CR>+HW: PULSAR_LR 0103<CR>+SERIAL: 2020090817420000

    Raises:
        ProtocolError: If the reply does not have the expected shape.
    """
    entries = split_entries(payload)
    try:
        firmware = entries[0].split(" ")
        firmware_name = firmware[1]
        firmware_version = firmware[-1]
        major = int(firmware_version[:2])
        minor = int(firmware_version[2:])
        if len(entries[1]) >= at_const.INFO_HARDWARE_MIN_LENGTH:
            hardware = entries[1].split(" ")
            hardware_name = hardware[1]
            hardware_version = hardware[-1]
        else:
            hardware_name = firmware_name
            hardware_version = at_const.DEFAULT_HARDWARE_VERSION
        serial_number = entries[2][at_const.INFO_SERIAL_OFFSET:]
    except (IndexError, ValueError) as e:
        raise ProtocolError("Malformed device information.", line=payload) from e
    return DeviceInfo(
        firmware_name=firmware_name,
        firmware_version=firmware_version,
        firmware_major=major,
        firmware_minor=minor,
        hardware_name=hardware_name,
        hardware_version=hardware_version,
        serial_number=serial_number,
    )


class ATDialect(BaseDialect):
    """
    AT command dialect shared by the UHF and HF readers.

    Replies consist of an echo of the command, optional data lines and a
    final ``OK`` or ``ERROR``. Unsolicited events start with ``+``, the same
    prefix query replies use, so only the known event families are routed
    to the event path.
    """

    NAME = "at"

    @property
    def line_terminator(self) -> str:
        return at_const.LINE_TERMINATOR

    # --- Receive path ---

    def classify(self, line: str) -> LineKind:
        if not line.startswith(at_const.EVENT_PREFIX):
            return LineKind.REPLY
        if line.startswith(at_const.HEARTBEAT_PREFIX):
            return LineKind.HEARTBEAT
        if line.startswith(at_const.INVENTORY_PREFIXES):
            return LineKind.INVENTORY
        if line.startswith(at_const.INPUT_EVENT_PREFIX):
            return LineKind.INPUT
        return self.handle_unknown_event(line)

    def handle_unknown_event(self, line: str) -> LineKind:
        """Fallback for ``+`` lines of no known event family. Query replies such as ``+MUX: 3`` land here."""
        return LineKind.REPLY

    def parse_input_event(self, line: str) -> Tuple[int, bool]:
        fields = line[at_const.INPUT_EVENT_DATA_OFFSET:].split(at_const.FIELD_SEPARATOR)
        try:
            pin = int(fields[0])
            level = fields[1].strip().upper()
        except (IndexError, ValueError) as e:
            raise ProtocolError("Malformed input event.", line=line) from e
        return pin, level == at_const.LEVEL_HIGH

    def interpret_reply(self, command: str, line: str, data: Optional[str]) -> ReplyStep:
        marker = line[0]
        if marker == at_const.MARKER_OK:
            return True, data if data is not None else ""
        if marker == at_const.MARKER_ERROR:
            if data is not None and "<" in data and ">" in data:
                detail = data[data.index("<") + 1:data.rindex(">")]
                raise self.classify_error(detail)
            raise ReaderError(f"Error: {data or ''}", detail=data)
        if marker == at_const.MARKER_ECHO:
            if not command.startswith(line):
                logger.warning(f"Reader response warning ({command}) - {line}")
            return False, data
        # Multi entry replies arrive as one line, so the latest data line is the payload
        return False, line

    def classify_error(self, detail: str) -> ReaderError:
        if at_const.NOT_RUNNING_TEXT in detail:
            return ReaderError(detail, detail=detail, code=ErrorCode.NOT_RUNNING)
        return ReaderError(detail, detail=detail)

    def _parse_report(self, text: str, build_tag: TagBuilder, raise_errors: bool) -> List[Tag]:
        """
        Walks the entries of an inventory report or reply::

            +CINV: 3034257BF468D480000003EC,E200600311753E33,1755<CR>+CINV: <ROUND FINISHED, ANT=2>

        Entries of the form ``<...>`` are device messages. ``ROUND FINISHED``
        assigns its antenna to the tags read so far. Tags of an inventory
        report (``+CINVR``) aggregate several rounds and get antenna 0.
        """
        timestamp = datetime.datetime.now()
        tags: List[Tag] = []
        antenna: Optional[int] = None
        error: Optional[str] = None
        is_report = False
        for entry in split_entries(text):
            if not entry.startswith(at_const.EVENT_PREFIX):
                continue
            head, separator, body = entry.partition(":")
            is_report = is_report or head.endswith("R")
            body = body.strip()
            if not separator or not body:
                logger.warning(f"Inventory warning ({entry}) - no data")
                continue
            if body.startswith("<"):
                message = body.strip("<>")
                if message.startswith(at_const.MSG_ROUND_FINISHED):
                    antenna = self._round_antenna(message)
                    for tag in tags:
                        tag.antenna = antenna
                elif not message.startswith(at_const.MSG_NO_TAGS):
                    logger.debug(f"Inventory message: {message}")
                    error = message
                continue
            try:
                tag = build_tag(split_fields(body), head.endswith("R"), timestamp)
            except (IndexError, ValueError) as e:
                logger.warning(f"Inventory warning ({entry}) - {e}")
                continue
            tags.append(tag)
        if error is not None and raise_errors:
            message = f"Antenna {antenna}: {error}" if antenna is not None else error
            raise self.classify_error(message)
        if is_report:
            for tag in tags:
                tag.antenna = 0
        return tags

    @staticmethod
    def _round_antenna(message: str) -> Optional[int]:
        # ROUND FINISHED, ANT=2
        _, _, value = message.partition("=")
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Inventory warning - no antenna in '{message}'")
            return None

    # --- Command spelling ---

    def antenna_command(self, port: int) -> str:
        return f"{at_const.CMD_ANTENNA}={port}"

    def antenna_query(self) -> str:
        return f"{at_const.CMD_ANTENNA}?"

    def parse_antenna(self, payload: str) -> int:
        try:
            return int(reply_value(payload))
        except ValueError as e:
            raise ProtocolError("Malformed antenna reply.", line=payload) from e

    def multiplex_command(self, ports: Union[int, Sequence[int]]) -> str:
        if isinstance(ports, int):
            return f"{at_const.CMD_MULTIPLEX}={ports}"
        return f"{at_const.CMD_MULTIPLEX}={','.join(str(port) for port in ports)}"

    def multiplex_query(self) -> str:
        return f"{at_const.CMD_MULTIPLEX}?"

    def parse_multiplex(self, payload: str) -> List[int]:
        fields = split_fields(reply_value(payload))
        try:
            if len(fields) == 1:
                # Only the antenna count: the device cycles 1..count
                return list(range(1, int(fields[0]) + 1))
            return [int(field) for field in fields]
        except ValueError as e:
            raise ProtocolError("Malformed multiplex reply.", line=payload) from e

    def output_command(self, pin: int, value: bool, output_count: int) -> str:
        fields = [("1" if value else "0") if index == pin else "" for index in range(1, output_count + 1)]
        return f"{at_const.CMD_OUTPUT}={','.join(fields)}"

    def output_query(self, pin: int) -> str:
        return f"{at_const.CMD_OUTPUT}?"

    def input_query(self, pin: int) -> str:
        return f"{at_const.CMD_INPUT}?"

    def parse_pin_level(self, payload: str, pin: int) -> bool:
        """
        Reads the level of one pin from an ``AT+OUT?`` / ``AT+IN?`` reply.

        The device answers either with one entry per pin or with a single
        comma separated line (``,,HIGH,``).
        """
        entries = split_entries(payload)
        try:
            if len(entries) > 1:
                entry = entries[pin - 1]
            else:
                entry = reply_value(entries[0]).split(at_const.FIELD_SEPARATOR)[pin - 1]
        except IndexError as e:
            raise ProtocolError(f"No level for pin {pin}.", line=payload) from e
        return at_const.LEVEL_HIGH in entry.upper()

    def input_events_command(self, enable: bool) -> str:
        return f"{at_const.CMD_INPUT_EVENTS}={1 if enable else 0}"

    def heartbeat_command(self, interval: int) -> str:
        check_range(interval, *at_const.HEARTBEAT_RANGE)
        return f"{at_const.CMD_HEARTBEAT}={interval}"

    def power_command(self, power: int) -> str:
        return f"{at_const.CMD_POWER}={power}"

    def power_query(self) -> str:
        return f"{at_const.CMD_POWER}?"

    def parse_power(self, payload: str) -> int:
        # +PWR: 20 (readers with per antenna power list one value per antenna)
        fields = split_fields(reply_value(payload))
        try:
            return int(fields[0])
        except (IndexError, ValueError) as e:
            raise ProtocolError("Malformed power reply.", line=payload) from e

    def start_inventory_command(self, multiplex: bool) -> str:
        return at_const.CMD_CONTINUOUS_MULTI_INVENTORY if multiplex else at_const.CMD_CONTINUOUS_INVENTORY

    def stop_inventory_command(self) -> str:
        return at_const.CMD_STOP_INVENTORY

    def single_inventory_command(self, multiplex: bool) -> str:
        return at_const.CMD_MULTI_INVENTORY if multiplex else at_const.CMD_INVENTORY

    def reset_command(self) -> str:
        return at_const.CMD_RESET

    # --- Session hooks ---

    async def read_device_info(self, reader: "Reader") -> DeviceInfo:
        return parse_device_info(await reader.get_command(at_const.CMD_INFO))
