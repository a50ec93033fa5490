"""Deployment settings for the serial link receiver."""

import os
from pathlib import Path

# ----------------------------
# RADIO (RFM12Pi on the Pi UART)
# ----------------------------
SERIAL_PORT = "/dev/ttyAMA0"
SERIAL_BAUD = 9600
SERIAL_TIMEOUT_S = 1.0
SERIAL_ERROR_BACKOFF_S = 0.5

# RF12demo settings, only written with --configure
RF12_NODE_ID = 1
RF12_GROUP = 212
RF12_BAND = 8  # 4=433MHz, 8=868MHz, 9=915MHz

# The power-meter JeeNode
POWER_METER_NODE = 5

# ----------------------------
# EmonCMS
# ----------------------------
EMONCMS_URL = "http://emoncms.org"  # without last /
EMONCMS_APIKEY = os.environ.get("EMONCMS_APIKEY", "YOUR_API_KEY")
EMONCMS_TIMEOUT_S = 5.0

# ----------------------------
# Files
# ----------------------------
STATE_PATH = Path("last_packets")
LOCK_PATH = Path("/tmp/serial_link.lock")
