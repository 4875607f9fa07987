# metratec_rfid/core/status.py

from enum import Enum, auto

class ReaderStatus(Enum):
    """Represents the session state of the reader."""
    DISCONNECTED = auto()
    CONNECTING = auto()
    INITIALIZING = auto()
    READY = auto()
    SCANNING = auto()

    @property
    def is_connected(self) -> bool:
        """True while commands can be sent to the device."""
        return self in (ReaderStatus.READY, ReaderStatus.SCANNING)

    def __str__(self):
        return self.name
