"""Transport implementations for the metratec_rfid library."""

from .base import BaseTransport
from .serial_async import SerialTransport
from .tcp_async import TcpTransport
from .mock import MockTransport

__all__ = [
    'BaseTransport',
    'SerialTransport',
    'TcpTransport',
    'MockTransport',
]
