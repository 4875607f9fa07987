# metratec_rfid/protocols/ascii/__init__.py
from .crc import append_crc, check_crc, compute_crc
from .dialect import AsciiDialect, AsciiHfDialect, AsciiUhfDialect, is_error_code

__all__ = [
    "AsciiDialect", "AsciiUhfDialect", "AsciiHfDialect",
    "compute_crc", "check_crc", "append_crc", "is_error_code",
]
