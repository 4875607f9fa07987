# doc/examples/example_io_pins.py

import asyncio
import logging

from metratec_rfid import InputEvent, ReaderError, ValidationError, create_reader
from metratec_rfid.transport.tcp_async import TcpTransport

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
)
logger = logging.getLogger("IoPinsExample")

READER_MODEL = 'PulsarLR'
READER_HOST = '192.168.2.239'
READER_PORT = 10001


def on_input(event: InputEvent):
    logger.info(f"Input {event.pin} is now {'HIGH' if event.is_high else 'LOW'}")


async def main():
    # Network links get a heartbeat automatically, a silent reader is reported as lost
    transport = TcpTransport({'host': READER_HOST, 'port': READER_PORT})
    reader = create_reader(READER_MODEL, transport)
    reader.subscribe_input(on_input)

    async with reader:
        await reader.enable_input_events()

        for pin in range(1, reader.profile.output_count + 1):
            await reader.set_output(pin, True)
            logger.info(f"Output {pin}: {await reader.get_output(pin)}")
            await asyncio.sleep(0.5)
            await reader.set_output(pin, False)

        for pin in range(1, reader.profile.input_count + 1):
            logger.info(f"Input {pin}: {'HIGH' if await reader.get_input(pin) else 'LOW'}")

        try:
            await reader.set_output(reader.profile.output_count + 1, True)
        except ValidationError as e:
            logger.info(f"Rejected before sending: {e}")

        try:
            await reader.set_power(27)
            logger.info(f"Power: {await reader.get_power()}")
        except ReaderError as e:
            logger.error(f"Reader refused the power setting: {e}")

        logger.info("Waiting 20 seconds for input changes...")
        await asyncio.sleep(20)

if __name__ == "__main__":
    asyncio.run(main())
