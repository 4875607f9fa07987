# metratec_rfid/protocols/at/constants.py
"""Constants of the AT command dialect."""

LINE_TERMINATOR = "\r\n"
# Separates entries of a multi entry reply or report inside one line
ENTRY_SEPARATOR = "\r"
FIELD_SEPARATOR = ","

# --- Reply markers (first character of a reply line) ---
MARKER_OK = "O"
MARKER_ERROR = "E"
MARKER_ECHO = "A"
EVENT_PREFIX = "+"

# --- Event prefixes ---
HEARTBEAT_PREFIX = "+H"
INVENTORY_PREFIXES = ("+CI", "+CM") # +CINV, +CINVR, +CMINV
INPUT_EVENT_PREFIX = "+IE" # +IEV: 1,HIGH
INPUT_EVENT_DATA_OFFSET = len("+IEV: ")

LEVEL_HIGH = "HIGH"
LEVEL_LOW = "LOW"

# --- Inventory messages ---
MSG_ROUND_FINISHED = "ROUND FINISHED"
MSG_NO_TAGS = "NO TAGS FOUND"

# Per tag status of a read or write (anything else is the failure message)
TAG_RESULT_OK = "OK"

# --- Commands ---
CMD_ECHO_ON = "ATE1"
CMD_INFO = "ATI"
CMD_RESET = "AT+RST"
CMD_ANTENNA = "AT+ANT"
CMD_MULTIPLEX = "AT+MUX"
CMD_OUTPUT = "AT+OUT"
CMD_INPUT = "AT+IN"
CMD_INPUT_EVENTS = "AT+IEV"
CMD_HEARTBEAT = "AT+HBT"
CMD_POWER = "AT+PWR"
CMD_INVENTORY_SETTINGS = "AT+INVS"
CMD_MODE = "AT+MOD"
CMD_READ_TAG = "AT+READ"
CMD_WRITE_TAG = "AT+WRT"

CMD_INVENTORY = "AT+INV"
CMD_MULTI_INVENTORY = "AT+MINV"
CMD_CONTINUOUS_INVENTORY = "AT+CINV"
CMD_CONTINUOUS_MULTI_INVENTORY = "AT+CMINV"
CMD_STOP_INVENTORY = "AT+BINV"
CMD_STOP_INVENTORY_REPORT = "AT+BINVR"

HEARTBEAT_RANGE = (0, 60)

# --- Tag memory (UHF) ---
TAG_ADDRESS_RANGE = (0, 0xFFFF)
TAG_READ_LENGTH_RANGE = (1, 0xFF)

# Device error detail fragment meaning "nothing to stop"
NOT_RUNNING_TEXT = "is not running"

# --- ATI reply ---
INFO_SERIAL_OFFSET = len("+SERIAL: ")
INFO_HARDWARE_MIN_LENGTH = 7
DEFAULT_HARDWARE_VERSION = "0100"

# --- HF (NFC) ---
HF_MODE_AUTO = "AUTO"
HF_MODE_ISO15 = "ISO15"
HF_MODE_ISO14A = "ISO14A"
HF_MODES = (HF_MODE_AUTO, HF_MODE_ISO15, HF_MODE_ISO14A)

# Error details that concern the transponder rather than the reader
HF_TRANSPONDER_ERRORS = frozenset({
    "No Tag selected",
    "Wrong Tag type",
    "Unexpected Tag response",
    "Block out of range",
    "Not authenticated",
    "Access prohibited",
    "Wrong block size",
    "Tag timeout",
    "Collision error",
    "Overflow",
    "Parity error",
    "Framing error",
    "Protocol violation",
    "Authentication failure",
    "Length error",
    "Received NAK",
    "NTAG invalid argument",
    "NTAG parity/crc error",
    "NTAG auth limit reached",
    "NTAG EEPROM failure (maybe locked?)",
    "Mifare NAK 0",
    "Mifare NAK 1",
    "Mifare NAK 3",
    "Mifare NAK 4",
    "Mifare NAK 5",
    "Mifare NAK 6",
    "Mifare NAK 7",
    "Mifare NAK 8",
    "Mifare NAK 9",
    "ISO15 custom command error",
    "ISO15 command not supported",
    "ISO15 command not recognized",
    "ISO15 option not supported",
    "ISO15 no information",
    "ISO15 block not available",
    "ISO15 block locked",
    "ISO15 content change failure",
    "ISO15 block programming failure",
    "ISO15 block protected",
    "ISO15 cryptographic error",
})
