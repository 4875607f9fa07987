"""metratec RFID - Asynchronous library for metraTec HF and UHF RFID readers."""

from .core import (
    Reader,
    ReaderStatus,
    DeviceProfile,
    Tag,
    TagKind,
    MemoryBank,
    EventKind,
    StatusEvent,
    InputEvent,
    InventoryEvent,
    RfidError,
    CommunicationError,
    ConnectionLostError,
    TimeoutError,
    MalformedResponseError,
    ReaderError,
    TransponderError,
    ValidationError,
    ErrorCode,
)
from .transport import (
    SerialTransport,
    TcpTransport,
    MockTransport,
)
from .protocols.at import ATUhfDialect, ATHfDialect
from .protocols.ascii import AsciiUhfDialect, AsciiHfDialect
from .protocols.registry import get_installed_dialects, list_dialects, create_dialect
from .devices import PROFILES, create_reader, get_profile, list_models

__version__ = '0.1.0'

__all__ = [
    # Core components
    'Reader',
    'ReaderStatus',
    'DeviceProfile',
    'Tag',
    'TagKind',
    'MemoryBank',
    # Events
    'EventKind',
    'StatusEvent',
    'InputEvent',
    'InventoryEvent',
    # Exceptions
    'RfidError',
    'CommunicationError',
    'ConnectionLostError',
    'TimeoutError',
    'MalformedResponseError',
    'ReaderError',
    'TransponderError',
    'ValidationError',
    'ErrorCode',
    # Transport
    'SerialTransport',
    'TcpTransport',
    'MockTransport',
    # Dialects
    'ATUhfDialect',
    'ATHfDialect',
    'AsciiUhfDialect',
    'AsciiHfDialect',
    # Dialect registry
    'get_installed_dialects',
    'list_dialects',
    'create_dialect',
    # Device models
    'PROFILES',
    'create_reader',
    'get_profile',
    'list_models',
]
