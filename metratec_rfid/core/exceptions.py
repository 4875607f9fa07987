# metratec_rfid/core/exceptions.py

"""Custom exceptions for the metratec_rfid library."""

from enum import Enum, auto
from typing import Optional


class RfidError(Exception):
    """Base exception class for all metratec_rfid errors."""
    def __init__(self, message="An unspecified RFID error occurred."):
        super().__init__(message)


# --- Transport Layer Exceptions ---

class CommunicationError(RfidError):
    """
    Base exception for errors related to the communication channel
    (Serial, TCP, Mock). It often wraps a lower-level exception.

    A communication error is fatal to the link: the reader session is
    moved to DISCONNECTED when one is seen on the reading path.
    """
    def __init__(self, message="Communication error.", original_exception: Exception | None = None):
        """
        Args:
            message: A description of the communication error.
            original_exception: The underlying exception that caused this error (e.g., from pyserial-asyncio, asyncio streams).
        """
        super().__init__(message)
        self.original_exception = original_exception

    def __str__(self):
        base_msg = super().__str__()
        if self.original_exception:
            orig_exc_type = type(self.original_exception).__name__
            orig_exc_msg = str(self.original_exception)
            return f"{base_msg} Original exception: [{orig_exc_type}] {orig_exc_msg}"
        return base_msg


class ConnectionError(CommunicationError):
    """Exception raised when establishing a connection fails."""
    def __init__(self, message="Failed to establish connection.", original_exception: Exception | None = None):
        super().__init__(message, original_exception)


class SerialConnectionError(ConnectionError):
    """
    Specific connection error related to Serial transport.
    Common reasons include:
    - Port does not exist.
    - Insufficient permissions to access the port.
    - Port is already in use by another application.
    """
    def __init__(self, port: str | None = None, message="Serial connection error.", original_exception: Exception | None = None):
        msg = "Serial connection error"
        if port:
            msg += f" on port '{port}'"
        msg += f": {message}"
        super().__init__(msg, original_exception)
        self.port = port


class NetworkConnectionError(ConnectionError):
    """
    Specific connection error related to TCP transport.
    Common reasons include:
    - Host unreachable.
    - Connection refused (no service listening on the target port).
    - DNS resolution failed (invalid hostname).
    """
    def __init__(self, host: str | None = None, port: int | None = None, message="Network connection error.", original_exception: Exception | None = None):
        msg = "Network connection error"
        if host and port:
            msg += f" to {host}:{port}"
        elif host:
            msg += f" to host '{host}'"
        msg += f": {message}"
        super().__init__(msg, original_exception)
        self.host = host
        self.port = port


class ConnectionLostError(CommunicationError):
    """Raised when the link is gone while an operation needs it."""
    def __init__(self, message="Connection lost.", original_exception: Exception | None = None):
        super().__init__(message, original_exception)


class ReadError(CommunicationError):
    """Exception raised when reading data from the transport fails unexpectedly."""
    def __init__(self, message="Failed to read data from transport.", original_exception: Exception | None = None):
        super().__init__(message, original_exception)


class WriteError(CommunicationError):
    """Exception raised when writing data to the transport fails unexpectedly."""
    def __init__(self, message="Failed to write data to transport.", original_exception: Exception | None = None):
        super().__init__(message, original_exception)


# --- Command Exceptions ---

class TimeoutError(RfidError):
    """
    Raised when a command does not receive a terminal reply within its
    deadline. The connection stays usable.
    """
    def __init__(self, message="Operation timed out waiting for reader response.", command: Optional[str] = None):
        super().__init__(message)
        self.command = command


class MalformedResponseError(TimeoutError):
    """The reply to a command started but never reached OK or ERROR."""
    def __init__(self, command: str, received: Optional[list[str]] = None):
        super().__init__(f"Command ({command}) malformed response", command=command)
        self.received = list(received or [])


class ProtocolError(RfidError):
    """A line from the device could not be parsed."""
    def __init__(self, message="Protocol error.", line: Optional[str] = None):
        if line is not None:
            message = f"{message} Line: {line!r}"
        super().__init__(message)
        self.line = line


class ErrorCode(Enum):
    """Classification of a device-reported error."""
    GENERIC = auto()
    NOT_RUNNING = auto()
    NOT_SUPPORTED = auto()
    HARDWARE = auto()
    PARSER = auto()
    TRANSPONDER = auto()

    def __str__(self):
        return self.name


class ReaderError(RfidError):
    """
    The device rejected a command or reported a general fault.

    Attributes:
        detail: The raw error detail sent by the device, if any.
        code: The classification assigned by the dialect.
    """
    def __init__(self, message: str = "Reader reported an error.", detail: Optional[str] = None,
                 code: ErrorCode = ErrorCode.GENERIC):
        super().__init__(message)
        self.detail = detail
        self.code = code


class TransponderError(ReaderError):
    """A device-reported fault tied to a tag operation."""
    def __init__(self, message: str = "Transponder error.", detail: Optional[str] = None):
        super().__init__(message, detail=detail, code=ErrorCode.TRANSPONDER)


class ValidationError(RfidError, ValueError):
    """An argument is outside the device's legal range. Nothing was sent."""
    def __init__(self, message="Invalid argument."):
        super().__init__(message)


def check_range(value: int, low: int, high: int) -> int:
    """Raises ValidationError unless ``value`` is an int within [low, high]."""
    if not isinstance(value, int) or isinstance(value, bool) or not low <= value <= high:
        raise ValidationError(f"Number out of range ([{low},{high}])")
    return value
