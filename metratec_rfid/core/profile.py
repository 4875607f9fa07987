# metratec_rfid/core/profile.py

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class DeviceProfile:
    """
    Static description of a reader model.

    The reader validates pin numbers, antenna ports and power values against
    the profile before anything is sent to the device.

    Attributes:
        name: Model name.
        dialect: Name of the registered dialect the model speaks.
        input_count: Number of input pins (numbered from 1).
        output_count: Number of output pins (numbered from 1).
        antenna_ports: Number of antenna ports (numbered from 1), None if unknown (not checked).
        power_range: Inclusive (min, max) power setting, None if not settable.
        baudrate: Serial baud rate of the model, if it has a serial interface.
        tcp_port: TCP port of the model, if it has a network interface.
        quirks: Model specific flags, see the QUIRK_* names.
    """
    name: str
    dialect: str
    input_count: int = 2
    output_count: int = 4
    antenna_ports: Optional[int] = 1
    power_range: Optional[Tuple[int, int]] = None
    baudrate: Optional[int] = None
    tcp_port: Optional[int] = None
    quirks: Dict[str, bool] = field(default_factory=dict)


# Input change events need firmware 3.14 or later (first generation readers)
QUIRK_INPUT_EVENTS_MIN_FIRMWARE = "input_events_min_firmware_3_14"
INPUT_EVENTS_MIN_FIRMWARE = (3, 14)

# Used when a reader is built without a model: the common 2 in / 4 out layout,
# antenna ports are left to the device to check
GENERIC_PROFILE = DeviceProfile(name="Generic", dialect="at_uhf", antenna_ports=None)
