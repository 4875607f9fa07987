# metratec_rfid/devices.py

"""
Catalogue of supported reader models.

Each model is a ``DeviceProfile`` record naming its dialect, pin counts,
antenna ports and power range. ``create_reader`` builds a ready to use
``Reader`` for a model name.
"""

import logging
from typing import Dict, List, Optional

from metratec_rfid.core.profile import GENERIC_PROFILE, QUIRK_INPUT_EVENTS_MIN_FIRMWARE, DeviceProfile
from metratec_rfid.core.reader import Reader
from metratec_rfid.protocols.registry import create_dialect
from metratec_rfid.transport.base import BaseTransport

logger = logging.getLogger(__name__)

DEFAULT_TCP_PORT = 10001

PROFILES: Dict[str, DeviceProfile] = {profile.name: profile for profile in (
    # AT readers
    DeviceProfile("PulsarLR", "at_uhf", input_count=2, output_count=4, antenna_ports=4,
                  power_range=(0, 30), tcp_port=DEFAULT_TCP_PORT),
    DeviceProfile("DeskID_NFC", "at_hf", input_count=0, output_count=0, baudrate=115200),
    DeviceProfile("DwarfG2_v2", "at_uhf", power_range=(0, 21)),
    DeviceProfile("DwarfG2_XR_v2", "at_uhf", power_range=(0, 27)),
    DeviceProfile("DwarfG2_Mini_v2", "at_uhf", power_range=(0, 9)),
    # ASCII readers
    DeviceProfile("PulsarMX", "ascii_uhf", antenna_ports=4, power_range=(12, 27),
                  baudrate=115200, tcp_port=DEFAULT_TCP_PORT),
    DeviceProfile("DeskID_UHF", "ascii_uhf", input_count=0, output_count=0, power_range=(-2, 17),
                  baudrate=115200),
    DeviceProfile("DwarfG2", "ascii_uhf", quirks={QUIRK_INPUT_EVENTS_MIN_FIRMWARE: True}),
    DeviceProfile("QR15", "ascii_hf", tcp_port=DEFAULT_TCP_PORT),
    DeviceProfile("DMI15", "ascii_hf", tcp_port=DEFAULT_TCP_PORT),
    DeviceProfile("Dwarf15", "ascii_hf", quirks={QUIRK_INPUT_EVENTS_MIN_FIRMWARE: True}),
    DeviceProfile("QuasarLR", "ascii_hf", power_range=(500, 8000), baudrate=115200, tcp_port=DEFAULT_TCP_PORT),
    DeviceProfile("QuasarMX", "ascii_hf", tcp_port=DEFAULT_TCP_PORT,
                  quirks={QUIRK_INPUT_EVENTS_MIN_FIRMWARE: True}),
    DeviceProfile("RR15", "ascii_hf", input_count=0, output_count=0, tcp_port=DEFAULT_TCP_PORT),
    DeviceProfile("DeskID_ISO", "ascii_hf", input_count=0, output_count=0),
)}


def get_profile(model: str) -> DeviceProfile:
    """
    Looks up a model by name (case insensitive).

    Raises:
        ValueError: If the model is unknown.
    """
    profile = PROFILES.get(model)
    if profile is None:
        matches = [p for name, p in PROFILES.items() if name.lower() == model.lower()]
        if not matches:
            raise ValueError(f"Unknown reader model '{model}'. Available: {list_models()}")
        profile = matches[0]
    return profile


def list_models() -> List[str]:
    return sorted(PROFILES)


def create_reader(model: Optional[str], transport: BaseTransport, **kwargs) -> Reader:
    """
    Creates a reader for a model.

    Args:
        model: Model name from ``PROFILES``, or None for a generic AT UHF reader.
        transport: The link to the device.
        **kwargs: Passed on to ``Reader`` (response_timeout, reset_delay, ...).
            ``dialect_options`` is passed to the dialect's constructor.
    """
    profile = get_profile(model) if model is not None else GENERIC_PROFILE
    dialect = create_dialect(profile.dialect, **kwargs.pop("dialect_options", {}))
    logger.debug(f"Creating {profile.name} reader ({profile.dialect})")
    return Reader(transport, dialect, profile=profile, **kwargs)
