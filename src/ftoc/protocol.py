"""
Packet definitions and the mailbox wire codec for ftoc.

Every message placed in the shared slot is one packet:

  control  1 char   0x01 START, 0x02 END, 0x03 DATA, 0x04 NOOP
  body     Ascii85  (START and DATA only, Adobe framing "<~ ... ~>")

The binary body is big-endian with fixed-width prefixes; the last field
runs to the end of the body:

  START   Q length | I timeout | name (UTF-8)
  DATA    Q index  | payload
"""

import base64
import binascii
import logging
import struct
from dataclasses import dataclass
from typing import Union

logger = logging.getLogger(__name__)

CMD_START = "\x01"
CMD_END = "\x02"
CMD_DATA = "\x03"
CMD_NOOP = "\x04"

START_HEADER = struct.Struct("!QI")
DATA_HEADER = struct.Struct("!Q")

MAX_U32 = 0xFFFFFFFF
MAX_U64 = 0xFFFFFFFFFFFFFFFF


@dataclass(frozen=True)
class Noop:
    pass


@dataclass(frozen=True)
class Start:
    name: str
    length: int
    timeout: int


@dataclass(frozen=True)
class Data:
    index: int
    payload: bytes = b""


@dataclass(frozen=True)
class End:
    pass


Packet = Union[Noop, Start, Data, End]

NOOP = Noop()
END = End()


# ---------------------------------------------------------------------------


def _encode_body(body: bytes) -> str:
    return base64.a85encode(body, adobe=True).decode("ascii")


def _decode_body(text: str) -> bytes:
    """Ascii85 body, with or without the Adobe delimiters."""
    stripped = text.strip()
    return base64.a85decode(stripped, adobe=stripped.startswith("<~"))


def _check_range(field: str, value: int, limit: int) -> None:
    if not 0 <= value <= limit:
        raise ValueError(f"{field} out of range: {value}")


def encode(packet: Packet) -> str:
    """Encode a packet to mailbox-safe text."""
    if isinstance(packet, Noop):
        return CMD_NOOP
    elif isinstance(packet, End):
        return CMD_END
    elif isinstance(packet, Start):
        _check_range("length", packet.length, MAX_U64)
        _check_range("timeout", packet.timeout, MAX_U32)
        body = START_HEADER.pack(packet.length, packet.timeout)
        body += packet.name.encode("utf-8")
        return CMD_START + _encode_body(body)
    elif isinstance(packet, Data):
        _check_range("index", packet.index, MAX_U64)
        body = DATA_HEADER.pack(packet.index) + bytes(packet.payload)
        return CMD_DATA + _encode_body(body)
    raise TypeError(f"not a packet: {packet!r}")


def decode(text: str) -> Packet:
    """
    Decode mailbox text into a packet.

    Never raises: anything that cannot be read as a packet (foreign
    clipboard content, a truncated body, broken Ascii85, a name that is
    not UTF-8) decodes to NOOP.
    """
    if not text:
        return NOOP

    control = text[0]
    if control == CMD_NOOP:
        return NOOP
    if control == CMD_END:
        return END
    if control not in (CMD_START, CMD_DATA):
        return NOOP

    try:
        body = _decode_body(text[1:])
    except (ValueError, binascii.Error) as e:
        logger.debug("Undecodable packet body: %s", e)
        return NOOP

    if control == CMD_START:
        if len(body) < START_HEADER.size:
            logger.debug("Truncated START body (%d bytes)", len(body))
            return NOOP
        length, timeout = START_HEADER.unpack_from(body)
        try:
            name = body[START_HEADER.size :].decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("START name is not valid UTF-8")
            return NOOP
        return Start(name=name, length=length, timeout=timeout)

    if len(body) < DATA_HEADER.size:
        logger.debug("Truncated DATA body (%d bytes)", len(body))
        return NOOP
    (index,) = DATA_HEADER.unpack_from(body)
    return Data(index=index, payload=body[DATA_HEADER.size :])

