"""Core components of the metratec_rfid library."""

from .reader import Reader
from .status import ReaderStatus
from .profile import DeviceProfile, GENERIC_PROFILE
from .tags import Tag, TagKind, MemoryBank, Iso15Details, Iso14ADetails, UhfDetails
from .events import EventKind, StatusEvent, InputEvent, InventoryEvent
from .exceptions import (
    RfidError,
    CommunicationError,
    ConnectionError,
    ConnectionLostError,
    TimeoutError,
    MalformedResponseError,
    ProtocolError,
    ReaderError,
    TransponderError,
    ValidationError,
    ErrorCode,
)

__all__ = [
    'Reader',
    'ReaderStatus',
    'DeviceProfile',
    'GENERIC_PROFILE',
    'Tag',
    'TagKind',
    'MemoryBank',
    'Iso15Details',
    'Iso14ADetails',
    'UhfDetails',
    'EventKind',
    'StatusEvent',
    'InputEvent',
    'InventoryEvent',
    'RfidError',
    'CommunicationError',
    'ConnectionError',
    'ConnectionLostError',
    'TimeoutError',
    'MalformedResponseError',
    'ProtocolError',
    'ReaderError',
    'TransponderError',
    'ValidationError',
    'ErrorCode',
]
