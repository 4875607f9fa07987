# metratec_rfid/protocols/ascii/constants.py
"""Constants of the legacy ASCII dialect (three letter commands and error codes)."""

INITIAL_LINE_TERMINATOR = "\r"
# In effect once End Of Frame mode (EOF) is on
LINE_TERMINATOR = "\r\n"
ENTRY_SEPARATOR = "\r"

CRC_LENGTH = 4
# CRC plus the separating space
CRC_SUFFIX_LENGTH = CRC_LENGTH + 1

# --- Commands ---
CMD_BREAK = "BRK"
CMD_WAKE = "WAK"
CMD_END_OF_FRAME = "EOF"
CMD_NO_END_OF_FRAME = "NEF"
CMD_CRC_ON = "CON"
CMD_CRC_OFF = "COF"
CMD_HEARTBEAT = "HBT"
CMD_ANTENNA = "SAP"
CMD_ANTENNA_AUTO = "SAP AUT"
CMD_ANTENNA_REPORT = "SAP ARP"
CMD_WRITE_OUTPUT = "WOP"
CMD_READ_INPUT = "RIP"
CMD_INVENTORY = "INV"
CMD_CONTINUOUS_INVENTORY = "CNR INV"
CMD_RESET = "RST"
CMD_READ_FIRMWARE = "RFW"
CMD_READ_HARDWARE = "RHW"
CMD_READ_REVISION = "REV"
CMD_READ_SERIAL = "RSN"
CMD_UHF_POWER = "CFG PWR"
CMD_HF_POWER = "SET PWR"
CMD_RSSI_REPORT = "SET TRS"
# Edge triggered commands: run a command when an input pin changes
CMD_HF_INPUT_TRIGGER = "EGC"
CMD_UHF_INPUT_COMMAND = "SEC COMM"
CMD_UHF_INPUT_EDGE = "SEC EDGE"
EDGE_BOTH = "BOTH"
EDGE_NONE = "NONE"
# "#SPIN0#RIP 0": print "IN0" and the level of input 0
INPUT_EVENT_SCRIPT = "#SPIN{pin}#"

# --- Replies and events ---
REPLY_OK = "OK"
REPLY_BREAK = "BRA"
REPLY_GO_MODE = "GMO"
HEARTBEAT_PREFIX = "HBT"
INVENTORY_END = "IVF"
ANTENNA_REPORT = "ARP"
# An inventory block ends with "IVF nn", possibly followed by a CRC
INVENTORY_END_WINDOW = 14
LEVEL_HIGH = "HI"
LEVEL_LOW = "LOW"
# Input change event: "IN0 HI!"
INPUT_EVENT_PREFIX = "IN"
HEARTBEAT_OFF = "OFF"

# --- Error codes ---
CODE_NOT_SUPPORTED = "UCO"
CODE_CRC_ERROR = "CCE"
CODE_NOT_RUNNING = "NCM"
# Answers to BRK meaning the device is idle: nothing running, device not started
BREAK_ACCEPTED_ERRORS = (CODE_NOT_RUNNING, "DNS")

HARDWARE_ERRORS = {
    "ARH": "Antenna Reflectivity High. Please check hardware - especially antenna connection and tuning - or call support",
    "BOD": "Brownout detected. Please check hardware or call support",
    "BOF": "Buffer overflow. Please check hardware or call support",
    "CRT": "Command Receive Timeout. Please check hardware or call support",
    "EHF": "Hardware Failure. Please check hardware or call support",
    "PLE": "PLL Error. Please check hardware or call support",
    "SRT": "Hardware Reset. Please check hardware or call support",
    "UER": "Unknown Error. Please check hardware or call support",
    "URE": "UART Receive Error. Please check hardware or call support",
}

PARSER_ERRORS = frozenset({
    "CCE", "DNS", "EDX", "EHX", "NCM", "NOR", "NOS", "NRF", "NSS", "UPA", "WDL",
})

TAG_ERRORS = frozenset({
    "ACE", "CER", "FLE", "HBE", "PDE", "RDL", "RXE", "TCE", "TMT", "TOE", "TOR",
})

# Tag errors inside an inventory block that only affect a single tag
SKIPPABLE_INVENTORY_ERRORS = frozenset({
    "CER", "FLE", "HBE", "PDE", "RXE", "RDL", "TOE", "TCE", "TOR",
})

ERROR_CODES = frozenset(HARDWARE_ERRORS) | PARSER_ERRORS | TAG_ERRORS | {CODE_NOT_SUPPORTED}

# Codes that may appear anywhere in an unknown error reply
EMBEDDED_HARDWARE_ERRORS = ("PLE", "SRT")

HEARTBEAT_RANGE = (0, 60)
