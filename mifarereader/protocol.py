"""Frame encoding and response decoding for the contactless reader protocol.

A frame is ``STX LEN BODY LRC ETX``. ``LEN`` is the length of ``BODY`` and
``LRC`` is the XOR of every byte between ``STX`` and ``LRC``. MIFARE
commands travel inside a ``DO`` instruction (``PCB=00, INS=3E``) as the
value of a ``DF 78`` TLV.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from functools import reduce
from operator import xor

STX = 0x02
ETX = 0x03
PCB = 0x00
INS_DO = 0x3E

MIFARE_TAG = b"\xDF\x78"
SUCCESS_TEMPLATE = b"\xFF\x01"
ERROR_TEMPLATE = b"\xFF\x03"

CMD_READ_BLOCK = 0xA5
CMD_LOAD_KEY = 0xA9
CMD_AUTHENTICATE = 0xB0

TAG_PICC_TYPE = b"\xDF\x16"
TAG_PICC_UID = b"\xDF\x0D"
TAG_PICC_SAK = b"\xDF\x6B"
TAG_PICC_ATQ = b"\xDF\x15"

DEFAULT_KEY = b"\xFF" * 6
_RFU = b"\xFF" * 6

_POLL_COMMAND = bytes.fromhex("020A003EDF7E01009603")

MAX_BLOCK = 255
MAX_KEY_NUMBER = 1
MAX_SECTOR = 39


class KeyType(IntEnum):
    """MIFARE key slot selector used in the MODE byte."""

    A = 0x00
    B = 0x04


class ReaderError(Exception):
    """Base class for errors reported by the reader or its responses."""


class FrameError(ReaderError):
    """A response frame is malformed or not of the expected shape."""

    def __init__(self, message: str, response: bytes = b"") -> None:
        super().__init__(message)
        self.response = bytes(response)


class CardError(ReaderError):
    """The reader answered with an error template."""

    def __init__(self, message: str, code: int | None = None, response: bytes = b"") -> None:
        if code is not None:
            message = f"{message} (error code 0x{code:X})"
        super().__init__(message)
        self.code = code
        self.response = bytes(response)


def format_hex(data: bytes) -> str:
    """Render bytes as upper-case hex pairs separated by spaces."""
    return bytes(data).hex(" ").upper()


def lrc(data: bytes) -> int:
    """Longitudinal redundancy check: the XOR of all bytes."""
    return reduce(xor, bytes(data), 0)


def build_frame(body: bytes) -> bytes:
    """Wrap a packet body in STX, LEN, LRC and ETX."""
    body = bytes(body)
    if len(body) > 0xFF:
        raise ValueError(f"frame body too long: {len(body)} bytes")
    core = bytes([len(body)]) + body
    return bytes([STX]) + core + bytes([lrc(core), ETX])


def mifare_frame(payload: bytes) -> bytes:
    """Build a DO frame carrying a MIFARE command inside a DF 78 TLV."""
    payload = bytes(payload)
    if len(payload) > 0xFF:
        raise ValueError(f"MIFARE payload too long: {len(payload)} bytes")
    tlv = MIFARE_TAG + bytes([len(payload)]) + payload
    return build_frame(bytes([PCB, INS_DO]) + tlv)


def poll_command() -> bytes:
    """The fixed POLL A PICC command."""
    return _POLL_COMMAND


def _check_range(name: str, value: int, high: int) -> int:
    value = int(value)
    if not 0 <= value <= high:
        raise ValueError(f"invalid {name} {value}: must be between 0 and {high}")
    return value


def read_block_command(block: int) -> bytes:
    """MIFARE READ BLOCK command for a block number 0-255."""
    block = _check_range("block number", block, MAX_BLOCK)
    return mifare_frame(bytes([CMD_READ_BLOCK, block]))


def load_key_command(key_type: KeyType | int, key_number: int, key: bytes = DEFAULT_KEY) -> bytes:
    """MIFARE STD LOAD NEW KEY command storing a 6-byte key in a slot."""
    mode = KeyType(key_type)
    key_number = _check_range("key number", key_number, MAX_KEY_NUMBER)
    key = bytes(key)
    if len(key) != 6:
        raise ValueError(f"key must be 6 bytes, got {len(key)}")
    return mifare_frame(bytes([CMD_LOAD_KEY, mode, key_number]) + _RFU + key)


def authenticate_command(key_type: KeyType | int, key_number: int, sector: int) -> bytes:
    """MIFARE STD AUTHENTICATE SECTOR command."""
    mode = KeyType(key_type)
    key_number = _check_range("key number", key_number, MAX_KEY_NUMBER)
    sector = _check_range("sector number", sector, MAX_SECTOR)
    return mifare_frame(bytes([CMD_AUTHENTICATE, mode, key_number, sector]))


def extract_tag(data: bytes, tag: bytes) -> bytes | None:
    """Return the value of the first complete TLV with a 2-byte ``tag``."""
    data = bytes(data)
    tag = bytes(tag)
    if len(tag) != 2:
        raise ValueError("tag must be 2 bytes")
    start = data.find(tag)
    while start != -1 and start + 3 < len(data):
        length = data[start + 2]
        end = start + 3 + length
        if end <= len(data):
            return data[start + 3:end]
        start = data.find(tag, start + 1)
    return None


@dataclass(frozen=True)
class CardInfo:
    """Result of polling for a card."""

    success: bool
    raw: bytes
    type: bytes | None = None
    uid: bytes | None = None
    sak: bytes | None = None
    atq: bytes | None = None

    def details(self) -> dict[str, str]:
        """Printable fields, with ``-`` for anything missing."""

        def show(value: bytes | None) -> str:
            return "-" if value is None else format_hex(value)

        return {
            "raw": format_hex(self.raw),
            "type": show(self.type),
            "uid": show(self.uid),
            "sak": show(self.sak),
            "atq": show(self.atq),
        }


def parse_poll_response(resp: bytes) -> CardInfo:
    """Decode the answer to a poll command."""
    resp = bytes(resp)
    if SUCCESS_TEMPLATE not in resp:
        return CardInfo(success=False, raw=resp)
    return CardInfo(
        success=True,
        raw=resp,
        type=extract_tag(resp, TAG_PICC_TYPE),
        uid=extract_tag(resp, TAG_PICC_UID),
        sak=extract_tag(resp, TAG_PICC_SAK),
        atq=extract_tag(resp, TAG_PICC_ATQ),
    )


def _check_envelope(resp: bytes) -> None:
    if not resp:
        raise FrameError("empty response", resp)
    if resp[0] != STX or resp[-1] != ETX:
        raise FrameError(f"invalid response framing (STX/ETX): {format_hex(resp)}", resp)


def _check_lrc(resp: bytes) -> None:
    received = resp[-2]
    calculated = lrc(resp[1:-2])
    if received != calculated:
        raise FrameError(
            f"LRC mismatch: received 0x{received:X}, calculated 0x{calculated:X}. "
            f"Response: {format_hex(resp)}",
            resp,
        )


def _error_code(resp: bytes) -> int | None:
    part = resp[8:]
    if len(part) >= 4 and part[:2] == MIFARE_TAG:
        return part[3]
    return None


def parse_block_response(resp: bytes) -> bytes:
    """Decode a READ BLOCK answer and return the block data."""
    resp = bytes(resp)
    _check_envelope(resp)
    if len(resp) < 8:
        raise FrameError(f"response too short: {format_hex(resp)}", resp)
    _check_lrc(resp)
    ins = resp[4]
    if ins != INS_DO:
        raise FrameError(f"unexpected INS code {ins:X}. Response: {format_hex(resp)}", resp)
    if resp[5] != 0xFF:
        raise FrameError(f"response template does not start with FF: {format_hex(resp)}", resp)

    template = resp[5:7]
    if template == SUCCESS_TEMPLATE:
        part = resp[8:]
        if len(part) < 3 or part[:2] != MIFARE_TAG:
            raise FrameError(f"DF 78 MIFARE tag missing or misplaced. Data: {format_hex(part)}", resp)
        length = part[2]
        if 3 + length > len(part):
            raise FrameError(f"DF 78 tag length exceeds packet. Data: {format_hex(part)}", resp)
        mifare_data = part[3:3 + length]
        if not mifare_data or mifare_data[0] != CMD_READ_BLOCK:
            raise FrameError(
                f"unexpected MIFARE reply (expected 0xA5). MIFARE data: {format_hex(mifare_data)}", resp
            )
        if len(mifare_data) < 17:
            raise FrameError(f"incomplete block data. MIFARE data: {format_hex(mifare_data)}", resp)
        return mifare_data[1:]

    if template == ERROR_TEMPLATE:
        code = _error_code(resp)
        if code is None:
            raise CardError(f"block read failed, error reply unparseable. Response: {format_hex(resp)}",
                            None, resp)
        if code == 0x08:
            message = "authentication error (wrong key or sector for block read)"
        else:
            message = "unknown error code"
        raise CardError(f"block read failed: {message}", code, resp)

    raise FrameError(f"unknown response template (FF xx): {format_hex(resp)}", resp)


def parse_load_key_response(resp: bytes) -> bytes:
    """Check a LOAD NEW KEY answer; return the success template's data."""
    resp = bytes(resp)
    if len(resp) >= 7 and resp[0] == STX and resp[-1] == ETX:
        template = resp[5:7]
        if template == SUCCESS_TEMPLATE:
            return resp[8:-2]
        if template == ERROR_TEMPLATE:
            code = _error_code(resp)
            if code is None:
                raise CardError("key load failed: error reply unparseable", None, resp)
            raise CardError(f"key load failed. Response: {format_hex(resp)}", code, resp)
    raise FrameError(f"key load failed: unexpected response format: {format_hex(resp)}", resp)


def parse_authenticate_response(resp: bytes) -> bytes:
    """Check an AUTHENTICATE SECTOR answer; return the success template's data."""
    resp = bytes(resp)
    _check_envelope(resp)
    if len(resp) < 3:
        raise FrameError(f"response too short: {format_hex(resp)}", resp)
    _check_lrc(resp)
    if len(resp) < 7 or resp[5] != 0xFF:
        raise FrameError(
            f"insufficient data for template check or template not FF: {format_hex(resp)}", resp
        )
    template = resp[5:7]
    if template == SUCCESS_TEMPLATE:
        return resp[8:-2]
    if template == ERROR_TEMPLATE:
        code = _error_code(resp)
        if code is None:
            raise CardError("authentication failed: error reply unparseable", None, resp)
        messages = {
            0x08: "authentication error (wrong key or sector)",
            0x05: "general operation error",
        }
        message = messages.get(code, "unknown error code")
        raise CardError(f"authentication failed: {message}", code, resp)
    raise FrameError(f"unknown response template (FF xx): {format_hex(resp)}", resp)