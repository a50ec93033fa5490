"""rfm12pi.py

Serial helper for the RFM12Pi board running the RF12demo sketch.

Design principles:
  1) **Transport-only**: this driver moves text lines; it doesn't know
     what a frame looks like.
  2) **Never give up on the port**: a serial error is logged and the read
     is retried after a short back-off, so a flaky UART doesn't end the
     receiver.

NOTE:
  - RF12demo prints each received packet as decimal bytes, e.g.
    "OK 5 5 10 0 7 0 1 0" on newer firmware or "5 5 10 0 7 0 1 0" on the
    original RFM12Pi image. The "OK " prefix is stripped here so callers
    always see the bare bytes.
  - Settings are sent as "<value><command>": "212g" selects group 212,
    "8b" the 868 MHz band, "1i" sets our own node id.
"""

import logging
import time
from typing import Iterator, Optional

import serial

log = logging.getLogger(__name__)


class RFM12Pi:

    # RF12demo band codes
    BAND_433 = 4
    BAND_868 = 8
    BAND_915 = 9

    OK_PREFIX = "OK "

    def __init__(self, port: str, baudrate: int = 9600, timeout_s: float = 1.0,
                 error_backoff_s: float = 0.5, ser: Optional[serial.Serial] = None):
        self.port = port
        self.error_backoff_s = error_backoff_s

        if ser is None:
            # 8N1, no flow control, canonical line mode on the Pi UART
            ser = serial.Serial(
                port,
                baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                xonxoff=False,
                rtscts=False,
                timeout=timeout_s,
            )
        self.ser = ser
        self.ser.reset_input_buffer()

    def configure(self, node_id: int, group: int, band: int) -> None:
        """Write RF12demo settings (our node id, network group, frequency band)."""
        if band not in (self.BAND_433, self.BAND_868, self.BAND_915):
            raise ValueError(f"Unsupported band={band}. Choose one of 4, 8, 9")
        if not (1 <= node_id <= 30):
            raise ValueError(f"node_id out of range: {node_id}")
        if not (0 <= group <= 250):
            raise ValueError(f"group out of range: {group}")

        for cmd in (f"{band}b", f"{group}g", f"{node_id}i"):
            self.ser.write(cmd.encode("ascii"))
            # RF12demo echoes the config after each command; give it time.
            time.sleep(0.2)
        self.ser.reset_input_buffer()
        log.info("RFM12Pi configured: node=%d group=%d band=%d", node_id, group, band)

    def read_line(self) -> Optional[str]:
        """
        Read one line. Returns None on timeout (nothing arrived), otherwise
        the line with the line ending and any "OK " prefix removed.
        """
        data = self.ser.readline()
        if not data:
            return None

        line = data.decode("utf-8", errors="replace").strip()
        if line.startswith(self.OK_PREFIX):
            line = line[len(self.OK_PREFIX):]
        return line

    def lines(self) -> Iterator[str]:
        """Yield lines forever; serial errors are logged and retried."""
        while True:
            try:
                line = self.read_line()
            except serial.SerialException as e:
                log.warning("Serial RX error on %s, retrying: %s", self.port, e)
                time.sleep(self.error_backoff_s)
                continue

            if line is not None:
                yield line

    def close(self) -> None:
        self.ser.close()
