# metratec_rfid/protocols/at/uhf.py

import datetime
import logging
import string
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from metratec_rfid.core.exceptions import ErrorCode, ProtocolError, ReaderError, ValidationError, check_range
from metratec_rfid.core.tags import MemoryBank, Tag, TagKind, UhfDetails
from metratec_rfid.protocols.at import constants as at_const
from metratec_rfid.protocols.at.dialect import ATDialect, reply_value, split_entries, split_fields

if TYPE_CHECKING:
    from metratec_rfid.core.reader import Reader

logger = logging.getLogger(__name__)


def _check_hex(value: str, name: str) -> None:
    if not value or len(value) % 2 or any(char not in string.hexdigits for char in value):
        raise ValidationError(f"{name} must be a hex string of whole bytes, got {value!r}")


@dataclass
class InventorySettings:
    """
    Output options of the UHF inventory (``AT+INVS``).

    The options decide which fields follow the EPC in an inventory entry,
    so the parser needs them to read the report.
    """
    only_new_tags: bool = False
    with_rssi: bool = False
    with_tid: bool = False
    fast_start: bool = False
    with_phase: bool = False
    select: str = "ALL"
    target: str = "A"
    rssi_threshold: Optional[int] = None

    @classmethod
    def from_reply(cls, payload: str) -> "InventorySettings":
        """Parses ``+INVS: 0,1,0,0,0,ALL,A[,-80]``."""
        fields = split_fields(reply_value(payload))
        if len(fields) < 5:
            raise ProtocolError("Malformed inventory settings.", line=payload)
        flags = [value.strip() == "1" for value in fields[:5]]
        settings = cls(*flags)
        if len(fields) > 5:
            settings.select = fields[5].strip()
        if len(fields) > 6:
            settings.target = fields[6].strip()
        if len(fields) > 7:
            try:
                settings.rssi_threshold = int(fields[7])
            except ValueError as e:
                raise ProtocolError("Malformed inventory settings.", line=payload) from e
        return settings

    def to_command(self) -> str:
        flags = [self.only_new_tags, self.with_rssi, self.with_tid, self.fast_start, self.with_phase]
        fields = ["1" if flag else "0" for flag in flags] + [self.select, self.target]
        if self.rssi_threshold is not None:
            fields.append(str(self.rssi_threshold))
        return f"{at_const.CMD_INVENTORY_SETTINGS}={','.join(fields)}"


class ATUhfDialect(ATDialect):
    """AT dialect of the UHF (EPC Gen2) readers."""

    NAME = "at_uhf"
    DESCRIPTION = "metraTec UHF readers with AT command set (Pulsar, DeskID UHF, *_v2)"
    TAG_KIND = TagKind.UHF

    def __init__(self, inventory_settings: Optional[InventorySettings] = None):
        self.inventory_settings = inventory_settings or InventorySettings()

    async def prepare(self, reader: "Reader") -> None:
        await reader.set_command(at_const.CMD_ECHO_ON)
        try:
            await reader.set_command(at_const.CMD_STOP_INVENTORY_REPORT)
        except ReaderError as e:
            if e.code is not ErrorCode.NOT_RUNNING:
                raise

    async def configure(self, reader: "Reader") -> None:
        payload = await reader.get_command(f"{at_const.CMD_INVENTORY_SETTINGS}?")
        self.inventory_settings = InventorySettings.from_reply(payload)
        logger.debug(f"Inventory settings: {self.inventory_settings}")

    async def apply_inventory_settings(self, reader: "Reader", settings: InventorySettings) -> None:
        """Writes new inventory settings to the device and keeps them for parsing."""
        await reader.set_command(settings.to_command())
        self.inventory_settings = settings

    def parse_inventory(self, text: str, raise_errors: bool = False) -> List[Tag]:
        return self._parse_report(text, self._build_tag, raise_errors)

    # --- Tag memory ---

    @staticmethod
    def _mask_suffix(epc_mask: Optional[str]) -> str:
        if not epc_mask:
            return ""
        _check_hex(epc_mask, "EPC mask")
        return f",{epc_mask}"

    def read_tag_data_command(self, bank: MemoryBank, start_address: int, length: int,
                              epc_mask: Optional[str] = None) -> str:
        # AT+READ=<bank>,<start>,<length>[,<mask>]
        check_range(start_address, *at_const.TAG_ADDRESS_RANGE)
        check_range(length, *at_const.TAG_READ_LENGTH_RANGE)
        return f"{at_const.CMD_READ_TAG}={bank},{start_address},{length}{self._mask_suffix(epc_mask)}"

    def write_tag_data_command(self, bank: MemoryBank, start_address: int, data: str,
                               epc_mask: Optional[str] = None) -> str:
        # AT+WRT=<bank>,<start>,<data>[,<mask>]
        check_range(start_address, *at_const.TAG_ADDRESS_RANGE)
        _check_hex(data, "Data")
        return f"{at_const.CMD_WRITE_TAG}={bank},{start_address},{data}{self._mask_suffix(epc_mask)}"

    def parse_tag_operation(self, payload: str, bank: Optional[MemoryBank] = None,
                            start_address: Optional[int] = None) -> List[Tag]:
        """
        Parses the per tag results of ``AT+READ`` / ``AT+WRT``::

            +READ: 3034257BF468D480000003EC,OK,DEADBEEF<CR>+READ: E2003412B802011512503170,ACCESS ERROR
        """
        timestamp = datetime.datetime.now()
        tags: List[Tag] = []
        for entry in split_entries(payload):
            value = reply_value(entry)
            if value.startswith("<"):
                message = value.strip("<>")
                if message.startswith(at_const.MSG_NO_TAGS):
                    continue
                raise self.classify_error(message)
            fields = value.split(at_const.FIELD_SEPARATOR)
            if len(fields) < 2 or not fields[0]:
                raise ProtocolError("Malformed tag operation reply.", line=entry)
            tag = Tag(fields[0].strip(), kind=TagKind.UHF, first_seen=timestamp)
            status = fields[1].strip()
            if not status.startswith(at_const.TAG_RESULT_OK):
                tag.has_error = True
                tag.message = status
            elif bank is not None and len(fields) > 2:
                if bank is MemoryBank.TID:
                    tag.tid = fields[2].strip()
                else:
                    tag.data = fields[2].strip()
                    tag.data_start_address = start_address
            tags.append(tag)
        return tags

    def _build_tag(self, fields: List[str], is_report: bool, timestamp: datetime.datetime) -> Tag:
        # EPC[,TID][,RSSI][,PHASE_I,PHASE_Q] or EPC[,TID][,RSSI],COUNT for reports
        settings = self.inventory_settings
        details = UhfDetails()
        tag = Tag(fields[0], kind=TagKind.UHF, first_seen=timestamp, details=details)
        index = 1
        if settings.with_tid:
            tag.tid = fields[index]
            index += 1
        if settings.with_rssi:
            details.rssi = int(fields[index])
            index += 1
        if is_report:
            tag.seen_count = int(fields[-1])
        elif settings.with_phase:
            details.phase = (int(fields[index]), int(fields[index + 1]))
        return tag
