# metratec_rfid/protocols/__init__.py
from .base_dialect import BaseDialect, DeviceInfo, LineKind
from .registry import (
    create_dialect,
    get_dialect_class,
    get_installed_dialects,
    list_dialects,
    register_dialect,
)

__all__ = [
    "BaseDialect",
    "DeviceInfo",
    "LineKind",
    "register_dialect",
    "get_dialect_class",
    "create_dialect",
    "list_dialects",
    "get_installed_dialects",
]
