# metratec_rfid/protocols/at/hf.py

import datetime
import logging
from typing import TYPE_CHECKING, List

from metratec_rfid.core.exceptions import ProtocolError, ReaderError, TransponderError, ValidationError
from metratec_rfid.core.tags import Iso14ADetails, Iso15Details, Tag, TagKind
from metratec_rfid.protocols.at import constants as at_const
from metratec_rfid.protocols.at.dialect import ATDialect, reply_value, split_fields

if TYPE_CHECKING:
    from metratec_rfid.core.reader import Reader

logger = logging.getLogger(__name__)

_KIND_BY_MODE = {
    at_const.HF_MODE_AUTO: TagKind.HF,
    at_const.HF_MODE_ISO15: TagKind.ISO15,
    at_const.HF_MODE_ISO14A: TagKind.ISO14A,
}


class ATHfDialect(ATDialect):
    """
    AT dialect of the HF (NFC) readers.

    The reader runs in one of the modes AUTO, ISO15 or ISO14A. With tag
    details enabled, inventory entries carry the DSFID (ISO15) or SAK and
    ATQA (ISO14A) after the UID.
    """

    NAME = "at_hf"
    DESCRIPTION = "metraTec HF readers with AT command set (DeskID NFC, QRG2)"
    TAG_KIND = TagKind.HF

    def __init__(self, mode: str = at_const.HF_MODE_AUTO, add_tag_details: bool = False):
        self.mode = mode
        self.add_tag_details = add_tag_details

    def classify_error(self, detail: str) -> ReaderError:
        if detail in at_const.HF_TRANSPONDER_ERRORS:
            return TransponderError(detail, detail=detail)
        return super().classify_error(detail)

    async def configure(self, reader: "Reader") -> None:
        settings = split_fields(reply_value(await reader.get_command(f"{at_const.CMD_INVENTORY_SETTINGS}?")))
        if not settings:
            raise ProtocolError("Malformed inventory settings.")
        self.add_tag_details = settings[0].strip() == "1"
        mode = reply_value(await reader.get_command(f"{at_const.CMD_MODE}?"))
        if mode not in at_const.HF_MODES:
            raise ProtocolError("Unknown reader mode.", line=mode)
        self.mode = mode
        logger.debug(f"HF mode {self.mode}, tag details {'on' if self.add_tag_details else 'off'}")

    async def set_mode(self, reader: "Reader", mode: str) -> None:
        """Switches the reader mode (AUTO, ISO15 or ISO14A)."""
        if mode not in at_const.HF_MODES:
            raise ValidationError(f"Unknown mode {mode}, expected one of {', '.join(at_const.HF_MODES)}")
        await reader.set_command(f"{at_const.CMD_MODE}={mode}")
        self.mode = mode

    def parse_inventory(self, text: str, raise_errors: bool = False) -> List[Tag]:
        return self._parse_report(text, self._build_tag, raise_errors)

    def _build_tag(self, fields: List[str], is_report: bool, timestamp: datetime.datetime) -> Tag:
        uid = fields[0]
        if not self.add_tag_details:
            tag = Tag(uid, kind=_KIND_BY_MODE.get(self.mode, TagKind.HF), first_seen=timestamp)
        elif self.mode == at_const.HF_MODE_ISO15:
            tag = Tag(uid, kind=TagKind.ISO15, first_seen=timestamp, details=Iso15Details(dsfid=fields[1]))
        elif self.mode == at_const.HF_MODE_ISO14A:
            tag = Tag(uid, kind=TagKind.ISO14A, first_seen=timestamp,
                      details=Iso14ADetails(sak=fields[1], atqa=fields[2]))
        elif fields[1] == at_const.HF_MODE_ISO15:
            tag = Tag(uid, kind=TagKind.ISO15, first_seen=timestamp, details=Iso15Details(dsfid=fields[2]))
        else:
            tag = Tag(uid, kind=TagKind.ISO14A, first_seen=timestamp,
                      details=Iso14ADetails(sak=fields[2], atqa=fields[3]))
        if is_report:
            tag.seen_count = int(fields[-1])
        return tag
