# doc/examples/example_connect_read.py

import asyncio
import logging

from metratec_rfid import InventoryEvent, ReaderStatus, StatusEvent, create_reader
from metratec_rfid.transport.serial_async import SerialTransport
# Uncomment the line below (and comment out the one above) to use TCP
# from metratec_rfid.transport.tcp_async import TcpTransport

# Logging setup (optional)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
)
logger = logging.getLogger("ConnectReadExample")

# --- Configuration ---
# Change to match your setup
READER_MODEL = 'PulsarLR'
SERIAL_PORT = '/dev/ttyUSB0'  # On Windows e.g. 'COM3'
SERIAL_BAUD_RATE = 115200

# Alternatively, for a TCP connection:
# READER_HOST = '192.168.2.239'
# READER_PORT = 10001


def on_status(event: StatusEvent):
    logger.info(f"Reader status: {event.status} {event.message}")


async def on_inventory(event: InventoryEvent):
    """Called for every inventory report."""
    for tag in event.tags:
        rssi = f", RSSI: {tag.rssi}" if tag.rssi is not None else ""
        logger.info(f"  Tag: {tag.id} (antenna {tag.antenna}, seen {tag.seen_count}x{rssi})")


async def main():
    transport = SerialTransport({'port': SERIAL_PORT, 'baudrate': SERIAL_BAUD_RATE})
    # transport = TcpTransport({'host': READER_HOST, 'port': READER_PORT})

    reader = create_reader(READER_MODEL, transport, response_timeout=3.0)
    reader.subscribe_status(on_status)
    reader.subscribe_inventory(on_inventory)

    try:
        async with reader:
            logger.info(f"Connected to {reader.firmware_name} {reader.firmware_version}, "
                        f"serial {reader.serial_number}")

            logger.info("Single inventory...")
            tags = await reader.get_inventory()
            logger.info(f"{len(tags)} tags in range")

            logger.info("Reading tags for 10 seconds...")
            await reader.start_inventory()
            await asyncio.sleep(10)
            await reader.stop_inventory()

            tags = await reader.fetch_inventory()
            logger.info(f"Inventory stopped, {len(tags)} different tags seen.")
    except Exception as e:
        logger.exception(f"An error occurred: {e}")
    finally:
        if reader.status is not ReaderStatus.DISCONNECTED:
            await reader.disconnect()
        logger.info("Connection closed.")

if __name__ == "__main__":
    asyncio.run(main())
