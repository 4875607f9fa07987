# tests/protocols/test_ascii_dialect.py

import logging

import pytest

from metratec_rfid.core.exceptions import (
    ErrorCode, ProtocolError, ReaderError, TimeoutError, TransponderError, ValidationError
)
from metratec_rfid.core.reader import Reader
from metratec_rfid.core.status import ReaderStatus
from metratec_rfid.core.tags import TagKind
from metratec_rfid.devices import PROFILES
from metratec_rfid.protocols.ascii.crc import append_crc, check_crc, compute_crc
from metratec_rfid.protocols.ascii.dialect import AsciiHfDialect, AsciiUhfDialect, is_error_code
from metratec_rfid.protocols.base_dialect import LineKind
from metratec_rfid.transport.mock import MockTransport

UID_1 = "E0040150954F0983"
UID_2 = "E0040150954F0984"
EPC = "3034257BF468D480000003EC"


# --- CRC ---

def test_crc_check_value():
    assert compute_crc("123456789") == "6F91"


def test_crc_of_command():
    command = append_crc("BRK")
    assert command.startswith("BRK ")
    assert len(command) == len("BRK ") + 4
    assert check_crc(command)


def test_crc_detects_corruption():
    reply = "OK! " + compute_crc("OK! ")
    assert check_crc(reply)
    assert not check_crc("OL! " + reply[4:])
    assert not check_crc("OK")


# --- Line classification and replies ---

@pytest.fixture
def hf_dialect() -> AsciiHfDialect:
    return AsciiHfDialect()


@pytest.mark.parametrize("line, kind", [
    ("HBT", LineKind.HEARTBEAT),
    ("IVF 00", LineKind.INVENTORY),
    (f"{UID_1}\rIVF 01", LineKind.INVENTORY),
    ("OK!", LineKind.REPLY),
    ("NCM", LineKind.REPLY),
    ("PULSAR_MX   0304", LineKind.REPLY),
    ("IN0 HI!", LineKind.INPUT),
    ("IN1 LOW!", LineKind.INPUT),
    ("INV", LineKind.REPLY),
])
def test_classify(hf_dialect, line, kind):
    assert hf_dialect.classify(line) is kind


def test_is_error_code():
    assert is_error_code("NCM")
    assert is_error_code("UER 0815")
    assert not is_error_code("OK!")
    assert not is_error_code("TOEX")


def test_reply_is_single_line(hf_dialect):
    assert hf_dialect.interpret_reply("RSN", "2019012345", None) == (True, "2019012345")
    with pytest.raises(ReaderError):
        hf_dialect.interpret_reply("RIP 1", "EDX", None)


@pytest.mark.parametrize("detail, code", [
    ("ARH", ErrorCode.HARDWARE),
    ("UCO", ErrorCode.NOT_SUPPORTED),
    ("NCM", ErrorCode.NOT_RUNNING),
    ("EDX", ErrorCode.PARSER),
    ("TOE", ErrorCode.TRANSPONDER),
    ("XYZ PLE", ErrorCode.HARDWARE),
    ("XYZ", ErrorCode.GENERIC),
])
def test_classify_error(hf_dialect, detail, code):
    assert hf_dialect.classify_error(detail).code is code


def test_error_messages(hf_dialect):
    assert "Full error string: UER 12" in str(hf_dialect.classify_error("UER 12"))
    assert str(hf_dialect.classify_error("UCO")) == "Command not supported"
    assert str(hf_dialect.classify_error("XYZ")) == "Unhandled Error: XYZ"
    error = hf_dialect.classify_error("TMT")
    assert isinstance(error, TransponderError)
    assert str(error) == "Transponder error: TMT"


def test_check_set_reply(hf_dialect):
    hf_dialect.check_set_reply("SAP 1", "OK!")
    with pytest.raises(ReaderError):
        hf_dialect.check_set_reply("SAP 1", "BOD")


def test_crc_replies():
    dialect = AsciiHfDialect()
    dialect.crc_enabled = True
    assert dialect.encode_command("RSN") == append_crc("RSN")
    assert dialect.interpret_reply("RSN", append_crc("2019012345"), None) == (True, "2019012345")
    with pytest.raises(ProtocolError, match="CRC error"):
        dialect.parse_inventory(f"{UID_1} 0000\rIVF 01 0000")


# --- Inventory ---

class TestInventory:

    def test_tags_until_end_marker(self):
        tags = AsciiHfDialect().parse_inventory(f"{UID_1}\r{UID_2}\rIVF 02")
        assert [tag.id for tag in tags] == [UID_1, UID_2]
        assert all(tag.kind is TagKind.HF for tag in tags)

    def test_antenna_report(self):
        tags = AsciiHfDialect().parse_inventory(f"ARP 2\r{UID_1}\rIVF 01")
        assert tags[0].antenna == 2

    def test_antenna_report_after_tags(self):
        tags = AsciiHfDialect().parse_inventory(f"{UID_1}\r{UID_2}\rARP 3\rIVF 02")
        assert [tag.antenna for tag in tags] == [3, 3]

    def test_rssi_entries(self):
        dialect = AsciiUhfDialect(with_rssi=True)
        tags = dialect.parse_inventory(f"{EPC}\r-60\rTOE\r-70\r{UID_1}\r-55\rIVF 02")
        assert [(tag.id, tag.rssi) for tag in tags] == [(EPC, -60), (UID_1, -55)]

    def test_skippable_tag_error(self):
        tags = AsciiHfDialect().parse_inventory(f"{UID_1}\rCER\r{UID_2}\rIVF 02", raise_errors=True)
        assert len(tags) == 2

    def test_other_errors(self):
        text = f"{UID_1}\rPLE\rIVF 01"
        assert len(AsciiHfDialect().parse_inventory(text)) == 1
        with pytest.raises(ReaderError) as exc_info:
            AsciiHfDialect().parse_inventory(text, raise_errors=True)
        assert exc_info.value.code is ErrorCode.HARDWARE


# --- Command spelling ---

def test_commands(hf_dialect):
    assert hf_dialect.antenna_command(2) == "SAP 2"
    assert hf_dialect.multiplex_command(3) == "SAP AUT 3"
    assert hf_dialect.multiplex_command([1, 2]) == "SAP AUT 2"
    with pytest.raises(ValidationError):
        hf_dialect.multiplex_command([2, 3])
    assert hf_dialect.output_command(2, True, 4) == "WOP 1 HI"
    assert hf_dialect.output_command(2, False, 4) == "WOP 1 LOW"
    assert hf_dialect.input_query(1) == "RIP 0"
    assert hf_dialect.heartbeat_command(0) == "HBT OFF"
    assert hf_dialect.heartbeat_command(10) == "HBT 10"
    assert hf_dialect.power_command(1000) == "SET PWR 1000"
    assert AsciiUhfDialect().power_command(20) == "CFG PWR 20"


def test_parse_pin_level(hf_dialect):
    assert hf_dialect.parse_pin_level("HI", 1) is True
    assert hf_dialect.parse_pin_level("LOW", 1) is False
    with pytest.raises(ReaderError):
        hf_dialect.parse_pin_level("EDX", 1)


def test_parse_input_event(hf_dialect):
    assert hf_dialect.parse_input_event("IN0 HI!") == (1, True)
    assert hf_dialect.parse_input_event("IN1 LOW!") == (2, False)


def test_input_events_commands(hf_dialect):
    assert hf_dialect.input_events_commands(True, 2) == [
        "EGC 0 #SPIN0#RIP 0", "EGC 0 BOTH", "EGC 1 #SPIN1#RIP 1", "EGC 1 BOTH",
    ]
    assert hf_dialect.input_events_commands(False, 2) == ["EGC 0 NONE", "EGC 1 NONE"]
    assert AsciiUhfDialect().input_events_commands(True, 1) == ["SEC COMM 0 #SPIN0#RIP 0", "SEC EDGE 0 BOTH"]
    assert AsciiUhfDialect().input_events_commands(False, 1) == ["SEC EDGE 0 NONE"]


def test_input_event_script_carries_crc(hf_dialect):
    hf_dialect.crc_enabled = True
    commands = hf_dialect.input_events_commands(True, 1)
    assert commands[0] == f"EGC 0 #SPIN0#{append_crc('RIP 0')}"
    assert commands[1] == "EGC 0 BOTH"


def test_reset_is_not_acknowledged(hf_dialect):
    assert not hf_dialect.reset_acknowledged


# --- Session with a simulated device ---

class CrcDevice:
    """Wraps a simulated device so it checks and appends CRCs while CRC mode is on."""

    def __init__(self, device, enabled=True):
        self.device = device
        self.enabled = enabled

    def __call__(self, command):
        if not self.enabled:
            if command == "CON":
                self.enabled = True
            return self.device(command)
        if not check_crc(command):
            return ["CCE"]
        command = command[:-5]
        reply = [append_crc(line) for line in self.device(command)]
        if command == "COF":
            self.enabled = False
        return reply


class TestAsciiSession:

    @pytest.fixture(autouse=True)
    def setup_reader(self, ascii_device):
        self.device = ascii_device
        self.transport = MockTransport(name="PulsarMX")
        self.transport.set_responder(self.device)
        self.reader = Reader(self.transport, AsciiUhfDialect(), profile=PROFILES["PulsarMX"], response_timeout=0.2)

    @pytest.mark.asyncio
    async def test_connect(self):
        await self.reader.connect()

        assert self.reader.status is ReaderStatus.READY
        assert self.transport.get_sent_commands() == [
            "BRK", "HBT OFF", "EOF", "BRK", "RFW", "RHW", "RSN", "HBT OFF", "SET TRS OFF",
        ]
        assert self.transport.line_terminator == "\r\n"
        assert self.reader.firmware_name == "PULSAR_MX"
        assert self.reader.firmware_version == "3.4"
        assert self.reader.hardware_name == "PULSAR_MX"
        assert self.reader.hardware_version == "2.1"
        assert self.reader.serial_number == "2019012345"
        await self.reader.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_restores_framing(self):
        await self.reader.connect()
        self.transport.clear_send_queue()

        await self.reader.disconnect()

        assert self.transport.get_sent_commands() == ["NEF"]
        assert self.transport.line_terminator == "\r"

    @pytest.mark.asyncio
    async def test_revision_fallback(self):
        self.device.replies["RFW"] = "UCO"
        self.device.replies["REV"] = "QR15        01000107"
        reader = Reader(self.transport, AsciiHfDialect(), profile=PROFILES["QR15"], response_timeout=0.2)

        async with reader:
            assert reader.firmware_name == "QR15"
            assert reader.firmware_version == "1.7"
            assert reader.hardware_version == "1.0"

    @pytest.mark.asyncio
    async def test_wakes_sleeping_device(self):
        woken = []

        def sleepy(command):
            if command == "WAK":
                woken.append(True)
            if command == "BRK" and not woken:
                return []
            return self.device(command)

        self.transport.set_responder(sleepy)
        await self.reader.connect()

        sent = self.transport.get_sent_commands()
        assert sent[:2] == ["BRK", "WAK"]
        await self.reader.disconnect()

    @pytest.mark.asyncio
    async def test_not_a_metratec_reader(self):
        self.device.replies["BRK"] = "UCO"

        with pytest.raises(ReaderError, match="not a metraTec rfid reader"):
            await self.reader.connect()

        assert self.reader.status is ReaderStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_device_still_in_crc_mode(self):
        self.transport.set_responder(CrcDevice(self.device))

        await self.reader.connect()

        sent = self.transport.get_sent_commands()
        assert sent[:2] == ["BRK", append_crc("BRK")]
        assert self.reader.dialect.crc_enabled
        assert self.reader.serial_number == "2019012345"

        self.transport.clear_send_queue()
        await self.reader.disconnect()
        assert self.transport.get_sent_commands() == [append_crc("COF"), "NEF"]

    @pytest.mark.asyncio
    async def test_crc_requested(self):
        reader = Reader(self.transport, AsciiUhfDialect(use_crc=True), profile=PROFILES["PulsarMX"],
                        response_timeout=0.2)
        device = CrcDevice(self.device, enabled=False)
        self.transport.set_responder(device)

        async with reader:
            assert reader.dialect.crc_enabled
            assert "CON" in self.transport.get_sent_commands()
            assert append_crc("RSN") in self.transport.get_sent_commands()

        assert not device.enabled
        assert self.transport.get_sent_commands()[-1] == "NEF"

    @pytest.mark.asyncio
    async def test_continuous_inventory(self, wait_until):
        events = []
        self.reader.subscribe_inventory(events.append)
        await self.reader.connect()

        await self.reader.start_inventory()
        self.transport.add_response(f"{EPC}\rARP 2\rIVF 01")
        await wait_until(lambda: len(events) == 1)

        assert events[0].tags[0].id == EPC
        assert events[0].tags[0].antenna == 2
        assert self.transport.get_sent_commands()[-1] == "CNR INV"

        self.device.replies["BRK"] = "BRA"
        await self.reader.stop_inventory()
        assert self.reader.status is ReaderStatus.READY
        await self.reader.disconnect()

    @pytest.mark.asyncio
    async def test_single_inventory(self):
        self.device.replies["INV"] = f"{EPC}\rIVF 01"

        async with self.reader:
            tags = await self.reader.get_inventory()

        assert [tag.id for tag in tags] == [EPC]
        assert tags[0].antenna == 1

    @pytest.mark.asyncio
    async def test_single_inventory_without_answer(self):
        self.device.replies["INV"] = ""

        async with self.reader:
            with pytest.raises(TimeoutError):
                await self.reader.get_inventory()

    @pytest.mark.asyncio
    async def test_pins(self):
        self.device.replies["RIP 1"] = "HI"

        async with self.reader:
            await self.reader.set_output(1, True)
            assert await self.reader.get_input(2) is True
            assert "WOP 0 HI" in self.transport.get_sent_commands()
            with pytest.raises(ReaderError) as exc_info:
                await self.reader.get_output(1)

        assert exc_info.value.code is ErrorCode.NOT_SUPPORTED

    @pytest.mark.asyncio
    async def test_antenna_and_power(self):
        async with self.reader:
            await self.reader.set_antenna(3)
            await self.reader.set_power(20)
            with pytest.raises(ValidationError):
                await self.reader.set_power(28)

            sent = self.transport.get_sent_commands()
            assert sent[-2:] == ["SAP 3", "CFG PWR 20"]
            assert self.reader.current_antenna == 3

    @pytest.mark.asyncio
    async def test_heartbeat_not_supported(self):
        self.device.replies["HBT 5"] = "UCO"

        async with self.reader:
            await self.reader.set_heartbeat_interval(5)
            assert self.reader.heartbeat_interval == 0

    @pytest.mark.asyncio
    async def test_input_events(self, wait_until):
        events = []
        self.reader.subscribe_input(events.append)
        await self.reader.connect()
        self.transport.clear_send_queue()

        await self.reader.enable_input_events()
        self.transport.add_response("IN1 HI!")
        await wait_until(lambda: len(events) == 1)

        assert self.transport.get_sent_commands() == [
            "SEC COMM 0 #SPIN0#RIP 0", "SEC EDGE 0 BOTH", "SEC COMM 1 #SPIN1#RIP 1", "SEC EDGE 1 BOTH",
        ]
        assert self.reader.input_events_enabled
        assert (events[0].pin, events[0].is_high) == (2, True)

        self.transport.clear_send_queue()
        await self.reader.enable_input_events(False)
        assert self.transport.get_sent_commands() == ["SEC EDGE 0 NONE", "SEC EDGE 1 NONE"]
        assert not self.reader.input_events_enabled
        await self.reader.disconnect()

    @pytest.mark.asyncio
    async def test_input_events_need_firmware_3_14(self, caplog):
        self.device.replies["RFW"] = "DWARF15     0304"
        reader = Reader(self.transport, AsciiHfDialect(), profile=PROFILES["Dwarf15"], response_timeout=0.2)

        async with reader:
            self.transport.clear_send_queue()
            with caplog.at_level(logging.INFO, logger="metratec_rfid.core.reader"):
                await reader.enable_input_events()

            assert self.transport.get_sent_commands() == []
            assert not reader.input_events_enabled
            assert "minimum firmware version 3.14" in caplog.text

    @pytest.mark.asyncio
    async def test_input_events_on_firmware_3_14(self):
        self.device.replies["RFW"] = "DWARF15     0314"
        reader = Reader(self.transport, AsciiHfDialect(), profile=PROFILES["Dwarf15"], response_timeout=0.2)

        async with reader:
            self.transport.clear_send_queue()
            await reader.enable_input_events()

            assert self.transport.get_sent_commands()[:2] == ["EGC 0 #SPIN0#RIP 0", "EGC 0 BOTH"]
            assert reader.input_events_enabled

    @pytest.mark.asyncio
    async def test_reset_sends_without_waiting(self):
        self.device.replies["RST"] = ""
        reader = Reader(self.transport, AsciiUhfDialect(), profile=PROFILES["PulsarMX"],
                        response_timeout=0.2, reset_delay=0.01)
        await reader.connect()

        await reader.reset()

        assert reader.status is ReaderStatus.READY
        sent = self.transport.get_sent_commands()
        assert "RST" in sent
        assert sent.count("RFW") == 2
        await reader.disconnect()
