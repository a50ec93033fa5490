# frame_codec.py
import struct
from dataclasses import dataclass

# -------------------------
# Frame layout
# -------------------------
# The RFM12Pi prints every received packet as one line of decimal byte values,
# e.g. "5 5 10 0 7 0 1 0". The power-meter JeeNode sends:
#   DST (u8)      : destination node id
#   SRC (u8)      : source node id
#   POWER (u16)   : meter power value
#   COUNT (u16)   : reading number, bumped only when a new measurement exists
#   TX_COUNT (u16): transmission number, bumped on every send
#
# Multi-byte fields are little-endian (AVR byte order).
FRAME_FMT = "<BBHHH"
FRAME_LEN = struct.calcsize(FRAME_FMT)

# Only the power meter is decoded; other nodes use layouts we don't know.
RECOGNIZED_SRC = 5


class DecodeError(ValueError):
    """Base class for lines that can't be turned into a Frame."""


class UnrecognizedSource(DecodeError):
    """The line did not come from the recognized node."""


class IncompleteFrame(DecodeError):
    """The line is too short or holds a token that isn't a byte value."""


@dataclass(frozen=True)
class Frame:
    dst_node_id: int
    src_node_id: int
    power: int
    count: int
    tx_count: int


def _parse_decimal(token: str) -> int:
    # Plain ASCII digits only; int() alone would take "+5", "1_0" or "\u0665".
    if not (token.isascii() and token.isdigit()):
        raise ValueError(f"not a decimal byte: {token!r}")
    return int(token, 10)


def _parse_byte(token: str) -> int:
    value = _parse_decimal(token)
    if not 0 <= value <= 0xFF:
        raise ValueError(f"byte out of range: {value}")
    return value


def decode(line: str, recognized_src: int = RECOGNIZED_SRC) -> Frame:
    """
    Decode one RFM12Pi line into a Frame.

    The source filter runs first: a line whose second token isn't the
    recognized node address raises UnrecognizedSource, whatever else is wrong
    with it. After that, fewer than FRAME_LEN tokens or any token outside
    0..255 raises IncompleteFrame. Bytes past FRAME_LEN are ignored.

    Raises:
        UnrecognizedSource, IncompleteFrame (both DecodeError)
    """
    tokens = line.split()

    try:
        src = _parse_decimal(tokens[1])
    except (IndexError, ValueError):
        raise UnrecognizedSource(f"no source address in {line!r}") from None
    if src != recognized_src:
        raise UnrecognizedSource(f"node {src} is not node {recognized_src}")

    if len(tokens) < FRAME_LEN:
        raise IncompleteFrame(f"got {len(tokens)} of {FRAME_LEN} bytes")

    try:
        raw = bytes(_parse_byte(t) for t in tokens)
    except ValueError as e:
        raise IncompleteFrame(f"bad byte token: {e}") from None

    return Frame(*struct.unpack(FRAME_FMT, raw[:FRAME_LEN]))


def encode(frame: Frame) -> bytes:
    """
    Pack a Frame back into its FRAME_LEN raw bytes.

    Raises ValueError if a field doesn't fit its width.
    """
    for name, limit in (
        ("dst_node_id", 0xFF),
        ("src_node_id", 0xFF),
        ("power", 0xFFFF),
        ("count", 0xFFFF),
        ("tx_count", 0xFFFF),
    ):
        value = getattr(frame, name)
        if not 0 <= value <= limit:
            raise ValueError(f"{name} out of range: {value}")

    return struct.pack(
        FRAME_FMT,
        frame.dst_node_id,
        frame.src_node_id,
        frame.power,
        frame.count,
        frame.tx_count,
    )


def format_line(frame: Frame) -> str:
    """Render a Frame the way the RFM12Pi prints it."""
    return " ".join(str(b) for b in encode(frame))
