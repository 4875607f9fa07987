# tests/conftest.py

import asyncio
from typing import Callable, Dict, List, Set

import pytest

AT_DEVICE_INFO = "+SW: PULSAR_LR 0100\r+HW: PULSAR_LR 0103\r+SERIAL: 2020090817420000"
AT_NOT_RUNNING = "<Inventory is not running>"


class AtDeviceSimulator:
    """
    Answers AT commands the way a reader with echo on does:
    echo, optional data lines, then OK or ERROR.
    """

    def __init__(self):
        self.replies: Dict[str, List[str]] = {
            "ATI": [AT_DEVICE_INFO],
            "AT+INVS?": ["+INVS: 0,0,0,0,0,ALL,A"],
        }
        self.errors: Dict[str, str] = {
            "AT+BINV": AT_NOT_RUNNING,
            "AT+BINVR": AT_NOT_RUNNING,
        }
        self.silent: Set[str] = set()

    def __call__(self, command: str) -> List[str]:
        if command in self.silent:
            return []
        if command in self.errors:
            return [command, self.errors[command], "ERROR"]
        return [command, *self.replies.get(command, []), "OK"]


class AsciiDeviceSimulator:
    """Answers ASCII commands with single line replies."""

    def __init__(self):
        self.replies: Dict[str, str] = {
            "BRK": "NCM",
            "RFW": "PULSAR_MX   0304",
            "RHW": "PULSAR_MX   0201",
            "RSN": "2019012345",
            "CNR INV": "",
        }

    def __call__(self, command: str) -> List[str]:
        reply = self.replies.get(command, "OK!")
        return [reply] if reply else []


async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def at_device() -> AtDeviceSimulator:
    return AtDeviceSimulator()


@pytest.fixture
def ascii_device() -> AsciiDeviceSimulator:
    return AsciiDeviceSimulator()


@pytest.fixture
def wait_until():
    """Polls a condition until it holds (or fails the test after a timeout)."""
    return _wait_until
