# metratec_rfid/core/tags.py

"""
Transponder model.

A detected transponder is a single ``Tag`` record carrying the fields every
tag family shares, plus a ``kind`` and a kind specific ``details`` record:

    HF      -> no details
    ISO15   -> Iso15Details(dsfid)
    ISO14A  -> Iso14ADetails(sak, atqa)
    UHF     -> UhfDetails(rssi, phase)
"""

import dataclasses
import datetime
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Tuple, Union

from metratec_rfid.core.exceptions import ValidationError


class TagKind(Enum):
    HF = auto()
    ISO15 = auto()
    ISO14A = auto()
    UHF = auto()

    def __str__(self):
        return self.name


class MemoryBank(Enum):
    """UHF transponder memory banks addressed by read and write operations."""
    EPC = "EPC"
    TID = "TID"
    USR = "USR"

    def __str__(self):
        return self.value


@dataclass
class Iso15Details:
    dsfid: Optional[str] = None


@dataclass
class Iso14ADetails:
    sak: Optional[str] = None
    atqa: Optional[str] = None


@dataclass
class UhfDetails:
    rssi: Optional[int] = None
    phase: Optional[Tuple[int, int]] = None


TagDetails = Union[Iso15Details, Iso14ADetails, UhfDetails]

_DETAILS_BY_KIND = {
    TagKind.ISO15: Iso15Details,
    TagKind.ISO14A: Iso14ADetails,
    TagKind.UHF: UhfDetails,
}


def _now() -> datetime.datetime:
    return datetime.datetime.now()


@dataclass
class Tag:
    """
    A transponder seen by the reader.

    ``id`` is the chip ID for HF tags and the EPC for UHF tags.
    """
    id: str
    kind: TagKind = TagKind.HF
    first_seen: datetime.datetime = field(default_factory=_now)
    last_seen: Optional[datetime.datetime] = None
    antenna: Optional[int] = None
    seen_count: int = 1
    tid: Optional[str] = None
    data: Optional[str] = None
    data_start_address: Optional[int] = None
    has_error: bool = False
    message: Optional[str] = None
    details: Optional[TagDetails] = None

    def __post_init__(self):
        if not self.id:
            raise ValidationError("Tag id must not be empty")
        if self.last_seen is None:
            self.last_seen = self.first_seen
        expected = _DETAILS_BY_KIND.get(self.kind)
        if self.details is None and expected is not None:
            self.details = expected()
        elif expected is None and self.details is not None:
            raise ValidationError(f"{self.kind} tags carry no details, got {type(self.details).__name__}")
        elif expected is not None and not isinstance(self.details, expected):
            raise ValidationError(f"{self.kind} tags need {expected.__name__}, got {type(self.details).__name__}")

    # --- Variant accessors ---

    @property
    def epc(self) -> Optional[str]:
        return self.id if self.kind is TagKind.UHF else None

    @property
    def rssi(self) -> Optional[int]:
        return self.details.rssi if isinstance(self.details, UhfDetails) else None

    @property
    def phase(self) -> Optional[Tuple[int, int]]:
        return self.details.phase if isinstance(self.details, UhfDetails) else None

    @property
    def dsfid(self) -> Optional[str]:
        return self.details.dsfid if isinstance(self.details, Iso15Details) else None

    @property
    def sak(self) -> Optional[str]:
        return self.details.sak if isinstance(self.details, Iso14ADetails) else None

    @property
    def atqa(self) -> Optional[str]:
        return self.details.atqa if isinstance(self.details, Iso14ADetails) else None

    def copy(self) -> "Tag":
        """Returns an independent copy, details included."""
        details = dataclasses.replace(self.details) if self.details is not None else None
        return dataclasses.replace(self, details=details)

    def merge(self, other: "Tag") -> None:
        """
        Applies a re-sighting of the same transponder.

        ``seen_count`` grows by the other record's count and ``last_seen``
        never moves backwards. Optional fields are only overwritten when the
        new sighting carries a value.
        """
        if other.id != self.id:
            raise ValidationError(f"Cannot merge tag {other.id} into {self.id}")
        self.seen_count += other.seen_count
        if other.last_seen is not None and other.last_seen > self.last_seen:
            self.last_seen = other.last_seen
        if other.antenna is not None:
            self.antenna = other.antenna
        for name in ("tid", "data", "data_start_address", "message"):
            value = getattr(other, name)
            if value is not None:
                setattr(self, name, value)
        self.has_error = other.has_error
        if other.details is not None and type(other.details) is type(self.details):
            for details_field in dataclasses.fields(other.details):
                value = getattr(other.details, details_field.name)
                if value is not None:
                    setattr(self.details, details_field.name, value)
