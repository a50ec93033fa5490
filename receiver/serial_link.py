#!/usr/bin/env python3
"""
serial_link.py (RECEIVER)

What this script does:
- Reads packet lines from the RFM12Pi on the Pi UART.
- Decodes power-meter frames (frame_codec.py).
- Tracks per-node counters (sequence_tracker.py) so each reading is posted once.
- Posts new readings to EmonCMS (emoncms.py).
- Writes the tracker state to last_packets after every frame (state_store.py),
  so a restart doesn't double-post.

Why we persist *after every frame*:
- The JeeNode retransmits the same reading (same count, new tx_count) until it
  has a new one. If we crash and come back without state, the first
  retransmission would be posted again.
"""

import argparse
import enum
import fcntl
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

import config
from emoncms import EmonCmsSink
from frame_codec import IncompleteFrame, UnrecognizedSource, decode
from rfm12pi import RFM12Pi
from sequence_tracker import NodeState, SequenceTracker, Transport
from state_store import load_state, save_state

log = logging.getLogger("serial_link")

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class Outcome(enum.Enum):
    SKIPPED = "skipped"            # empty line
    UNRECOGNIZED = "unrecognized"  # not from the power meter
    INCOMPLETE = "incomplete"      # malformed or short frame
    NEW = "new"                    # posted
    DUPLICATE = "duplicate"        # already posted


def process_line(
    line: str,
    tracker: SequenceTracker,
    sink: Callable[[int, int, int], bool],
    checkpoint: Callable[[Dict[int, NodeState]], None],
    recognized_src: int = config.POWER_METER_NODE,
) -> Outcome:
    """
    Handle one input line end to end.

    sink(node_id, power, count) is called for new readings only.
    checkpoint(snapshot) is called after every decoded frame.
    Failures in either are logged; they never propagate.
    """
    if not line.strip():
        return Outcome.SKIPPED

    try:
        frame = decode(line, recognized_src=recognized_src)
    except UnrecognizedSource as e:
        log.debug("Dropped packet: %s", e)
        return Outcome.UNRECOGNIZED
    except IncompleteFrame as e:
        log.warning("Packet incomplete (%s): %r", e, line)
        return Outcome.INCOMPLETE

    result = tracker.evaluate(frame)

    if result.transport is Transport.REBOOT:
        log.info("Node %d rebooted, resetting last packets.", frame.src_node_id)
    elif result.transport is Transport.GAP:
        log.warning("Node %d: %d packet(s) missed.", frame.src_node_id, result.missed)

    if result.is_new:
        log.debug("New power value #%d (%d Watt).", frame.count, frame.power)
        try:
            sink(frame.src_node_id, frame.power, frame.count)
        except Exception:
            log.exception("Telemetry sink failed for reading #%d", frame.count)
        outcome = Outcome.NEW
    else:
        log.debug("Already logged value #%d (%d Watt).", frame.count, frame.power)
        outcome = Outcome.DUPLICATE

    try:
        checkpoint(tracker.snapshot())
    except OSError as e:
        log.warning("Could not save state: %s", e)

    return outcome


def run(
    lines: Iterable[str],
    tracker: SequenceTracker,
    sink: Callable[[int, int, int], bool],
    checkpoint: Callable[[Dict[int, NodeState]], None],
    recognized_src: int = config.POWER_METER_NODE,
) -> Dict[Outcome, int]:
    """Process lines until the source runs dry. Returns a tally per outcome."""
    tally = {o: 0 for o in Outcome}
    for line in lines:
        outcome = process_line(line, tracker, sink, checkpoint, recognized_src)
        tally[outcome] += 1
    return tally


def acquire_lock(path: Path):
    """Prevent two receivers from fighting over the UART and the state file."""
    lock_fd = open(path, "w")
    try:
        fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        lock_fd.close()
        return None
    return lock_fd


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="RFM12Pi -> EmonCMS serial link")
    parser.add_argument("--port", default=config.SERIAL_PORT,
                        help=f"Serial device (default {config.SERIAL_PORT})")
    parser.add_argument("--baud", type=int, default=config.SERIAL_BAUD,
                        help=f"Baud rate (default {config.SERIAL_BAUD})")
    parser.add_argument("--url", default=config.EMONCMS_URL,
                        help="EmonCMS base URL, without trailing /")
    parser.add_argument("--apikey", default=config.EMONCMS_APIKEY,
                        help="EmonCMS write API key (or set EMONCMS_APIKEY)")
    parser.add_argument("--state", type=Path, default=config.STATE_PATH,
                        help=f"Tracker state file (default {config.STATE_PATH})")
    parser.add_argument("--lock", type=Path, default=config.LOCK_PATH,
                        help=f"Single-instance lock file (default {config.LOCK_PATH})")
    parser.add_argument("--configure", action="store_true",
                        help="Write RF12demo node/group/band settings before reading")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )

    lock_fd = acquire_lock(args.lock)
    if lock_fd is None:
        log.error("serial_link already running (lock %s held). Exiting.", args.lock)
        return 0

    radio = RFM12Pi(
        args.port,
        args.baud,
        timeout_s=config.SERIAL_TIMEOUT_S,
        error_backoff_s=config.SERIAL_ERROR_BACKOFF_S,
    )
    if args.configure:
        radio.configure(config.RF12_NODE_ID, config.RF12_GROUP, config.RF12_BAND)

    tracker = SequenceTracker(load_state(args.state))
    sink = EmonCmsSink(args.url, args.apikey, timeout_s=config.EMONCMS_TIMEOUT_S)

    log.info("Serial Link started on %s @ %d baud.", args.port, args.baud)
    try:
        run(
            radio.lines(),
            tracker,
            sink.post,
            lambda snapshot: save_state(args.state, snapshot),
        )
    except KeyboardInterrupt:
        log.info("Serial Link stopped.")
    finally:
        radio.close()
        lock_fd.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
