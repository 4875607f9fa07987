# tests/transport/test_mock_transport.py

import pytest

from metratec_rfid.core.exceptions import (
    CommunicationError, ConnectionError, ConnectionLostError, ReadError, TimeoutError
)
from metratec_rfid.transport.mock import MockTransport


class TestMockTransport:

    @pytest.fixture(autouse=True)
    def setup_transport(self):
        self.transport = MockTransport(name="FramingTest")

    @pytest.mark.asyncio
    async def test_lines_split_across_chunks(self):
        await self.transport.connect()

        self.transport.add_raw(b"AT")
        self.transport.add_raw(b"I\r\n+SW: PULSAR")
        self.transport.add_raw(b"_LR 0100\r\nOK\r\n")

        assert await self.transport.read_line(0.5) == "ATI"
        assert await self.transport.read_line(0.5) == "+SW: PULSAR_LR 0100"
        assert await self.transport.read_line(0.5) == "OK"
        await self.transport.disconnect()

    @pytest.mark.asyncio
    async def test_carriage_return_inside_line_is_kept(self):
        await self.transport.connect()

        self.transport.add_raw(b"E0040150954F0983\rIVF 01\r\n")

        assert await self.transport.read_line(0.5) == "E0040150954F0983\rIVF 01"
        await self.transport.disconnect()

    @pytest.mark.asyncio
    async def test_terminator_switch(self):
        self.transport.line_terminator = "\r"
        await self.transport.connect()

        self.transport.add_response("NCM")
        assert await self.transport.read_line(0.5) == "NCM"

        self.transport.line_terminator = "\r\n"
        self.transport.add_response("OK!")
        assert await self.transport.read_line(0.5) == "OK!"
        await self.transport.disconnect()

    def test_empty_terminator_rejected(self):
        with pytest.raises(ValueError):
            self.transport.line_terminator = ""

    @pytest.mark.asyncio
    async def test_read_timeout(self):
        await self.transport.connect()

        with pytest.raises(TimeoutError):
            await self.transport.read_line(0.05)
        await self.transport.disconnect()

    @pytest.mark.asyncio
    async def test_responder_gets_command_without_terminator(self):
        received = []
        self.transport.set_responder(lambda command: received.append(command) or [command, "OK"])
        await self.transport.connect()

        await self.transport.send(b"AT+PWR?\r\n")

        assert received == ["AT+PWR?"]
        assert await self.transport.read_line(0.5) == "AT+PWR?"
        assert await self.transport.read_line(0.5) == "OK"
        assert self.transport.get_sent_commands() == ["AT+PWR?"]
        assert self.transport.get_all_sent_data() == [b"AT+PWR?\r\n"]
        assert self.transport.get_sent_commands() == []
        await self.transport.disconnect()

    @pytest.mark.asyncio
    async def test_send_requires_connection(self):
        with pytest.raises(ConnectionLostError):
            await self.transport.send(b"ATI\r\n")

    @pytest.mark.asyncio
    async def test_read_requires_connection(self):
        with pytest.raises(ConnectionLostError):
            await self.transport.read_line(0.05)

    @pytest.mark.asyncio
    async def test_failed_connect(self):
        self.transport.fail_next_connect()

        with pytest.raises(ConnectionError):
            await self.transport.connect()
        assert not self.transport.is_connected()

        await self.transport.connect()
        assert self.transport.is_connected()
        await self.transport.disconnect()

    @pytest.mark.asyncio
    async def test_connection_loss_reaches_reader(self):
        await self.transport.connect()

        self.transport.simulate_connection_loss()

        with pytest.raises(ReadError):
            await self.transport.read_line(0.5)
        assert not self.transport.is_connected()
        await self.transport.disconnect()

    def test_no_baudrate_by_default(self):
        with pytest.raises(CommunicationError):
            _ = self.transport.baudrate
        self.transport.baudrate = 115200
        assert self.transport.baudrate == 115200
