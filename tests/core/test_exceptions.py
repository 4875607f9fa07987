# tests/core/test_exceptions.py

import pytest

from metratec_rfid.core.exceptions import (
    CommunicationError, ConnectionError, ErrorCode, MalformedResponseError, NetworkConnectionError,
    ProtocolError, ReaderError, RfidError, SerialConnectionError, TimeoutError, TransponderError,
    ValidationError, check_range
)


def test_communication_error_mentions_original_exception():
    error = CommunicationError("Write failed.", original_exception=OSError("broken pipe"))
    assert str(error) == "Write failed. Original exception: [OSError] broken pipe"


def test_serial_connection_error_message():
    error = SerialConnectionError(port="/dev/ttyUSB0", message="Port busy")
    assert str(error) == "Serial connection error on port '/dev/ttyUSB0': Port busy"
    assert isinstance(error, ConnectionError)


def test_network_connection_error_message():
    error = NetworkConnectionError(host="192.168.2.239", port=10001, message="Refused")
    assert str(error) == "Network connection error to 192.168.2.239:10001: Refused"


def test_malformed_response_is_a_timeout():
    error = MalformedResponseError("AT+INV", ["AT+INV"])
    assert isinstance(error, TimeoutError)
    assert error.command == "AT+INV"
    assert error.received == ["AT+INV"]
    assert str(error) == "Command (AT+INV) malformed response"


def test_protocol_error_keeps_line():
    error = ProtocolError("Malformed antenna reply.", line="+ANT: x")
    assert error.line == "+ANT: x"
    assert "+ANT: x" in str(error)


def test_reader_errors_carry_code():
    assert ReaderError("Error").code is ErrorCode.GENERIC
    error = TransponderError("Tag timeout", detail="Tag timeout")
    assert error.code is ErrorCode.TRANSPONDER
    assert isinstance(error, ReaderError)
    assert isinstance(error, RfidError)


def test_validation_error_is_value_error():
    assert issubclass(ValidationError, ValueError)
    assert issubclass(ValidationError, RfidError)


class TestCheckRange:

    @pytest.mark.parametrize("value", [0, 30, 15])
    def test_inside(self, value):
        assert check_range(value, 0, 30) == value

    @pytest.mark.parametrize("value", [-1, 31, True, 2.0, "5"])
    def test_outside_or_not_int(self, value):
        with pytest.raises(ValidationError, match=r"Number out of range \(\[0,30\]\)"):
            check_range(value, 0, 30)
