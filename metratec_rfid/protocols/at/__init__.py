# metratec_rfid/protocols/at/__init__.py
from .dialect import ATDialect, parse_device_info
from .hf import ATHfDialect
from .uhf import ATUhfDialect, InventorySettings

__all__ = ["ATDialect", "ATUhfDialect", "ATHfDialect", "InventorySettings", "parse_device_info"]
