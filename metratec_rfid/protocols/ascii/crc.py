# metratec_rfid/protocols/ascii/crc.py

"""
CRC-16 used by the ASCII dialect (reflected polynomial 0x8408, start value 0xFFFF).

Commands carry the CRC of ``"<command> "`` as four upper case hex digits
after a space. Replies end with the CRC of everything before it.
"""

from metratec_rfid.protocols.ascii.constants import CRC_LENGTH

CRC_POLYNOMIAL = 0x8408
CRC_START = 0xFFFF


def compute_crc(text: str) -> str:
    """
    Calculates the CRC of a string.

    Args:
        text: The characters to checksum (latin-1).

    Returns:
        The CRC as 4 upper case hex digits.
    """
    crc = CRC_START
    for byte in text.encode("latin-1"):
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ CRC_POLYNOMIAL
            else:
                crc >>= 1
    return f"{crc:04X}"


def check_crc(text: str) -> bool:
    """True if the last 4 characters are the CRC of the characters before them."""
    if len(text) < CRC_LENGTH:
        return False
    return text[-CRC_LENGTH:] == compute_crc(text[:-CRC_LENGTH])


def append_crc(command: str) -> str:
    """Returns the command with its CRC, ready to send."""
    return f"{command} {compute_crc(command + ' ')}"
