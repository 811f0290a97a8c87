"""Serial connection to the contactless reader and the commands it runs."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from typing import Any

import serial
from serial.tools import list_ports as _list_ports

from .protocol import (
    DEFAULT_KEY,
    CardInfo,
    KeyType,
    ReaderError,
    authenticate_command,
    load_key_command,
    parse_authenticate_response,
    parse_block_response,
    parse_load_key_response,
    parse_poll_response,
    poll_command,
    read_block_command,
)

DEFAULT_BAUDRATE = 115200
POLL_INTERVAL = 2.0

_WRITE_TIMEOUT = 0.2
_POLL_WRITE_TIMEOUT = 0.1
_POLL_READ_TIMEOUT = 0.5
_BLOCK_READ_TIMEOUT = 3.0
_LOAD_KEY_TIMEOUT = 2.0
_AUTH_TIMEOUT = 3.0
_INTER_CHUNK_TIMEOUT = 0.05

Transport = Callable[[str, int], Any]


def list_ports() -> list[str]:
    """Device names of the serial ports present on this machine."""
    return [info.device for info in _list_ports.comports()]


def _open_serial(port: str, baudrate: int) -> serial.Serial:
    return serial.Serial(
        port=port,
        baudrate=baudrate,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        xonxoff=False,
        rtscts=False,
        dsrdtr=False,
        timeout=_POLL_READ_TIMEOUT,
        write_timeout=_WRITE_TIMEOUT,
    )


class CardReader:
    """A card reader on a serial port (8N1, no flow control).

    ``transport`` is a callable taking ``(port, baudrate)`` and returning an
    open serial-like object; by default a pyserial ``Serial`` is opened.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        transport: Transport | None = None,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self._transport = transport or _open_serial
        self._conn: Any = None

    def open(self) -> None:
        """Open the port; does nothing if it is already open."""
        if self.is_open():
            return
        try:
            self._conn = self._transport(self.port, self.baudrate)
        except (serial.SerialException, OSError) as exc:
            self._conn = None
            raise ReaderError(f"could not open port {self.port}: {exc}") from exc

    def close(self) -> None:
        """Close the port if it is open."""
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    def is_open(self) -> bool:
        return self._conn is not None and bool(self._conn.is_open)

    def __enter__(self) -> CardReader:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self) -> Any:
        if not self.is_open():
            raise ReaderError("port is not open")
        return self._conn

    def _read_response(self, timeout: float) -> bytes:
        conn = self._conn
        conn.timeout = timeout
        first = conn.read(1)
        if not first:
            return b""
        chunks = [first]
        conn.timeout = _INTER_CHUNK_TIMEOUT
        while True:
            chunk = conn.read(max(1, conn.in_waiting))
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    def _exchange(self, frame: bytes, timeout: float, write_timeout: float) -> bytes:
        conn = self._require_open()
        conn.write_timeout = write_timeout
        try:
            conn.write(bytes(frame))
            conn.flush()
        except serial.SerialException as exc:
            raise ReaderError(f"command could not be sent: {exc}") from exc
        return self._read_response(timeout)

    def transact(self, frame: bytes, timeout: float) -> bytes:
        """Send a frame and collect the reply; ``b""`` if none came in time."""
        return self._exchange(frame, timeout, _WRITE_TIMEOUT)

    def poll(self) -> CardInfo:
        """Send POLL A PICC and decode whatever comes back."""
        resp = self._exchange(poll_command(), _POLL_READ_TIMEOUT, _POLL_WRITE_TIMEOUT)
        return parse_poll_response(resp)

    def monitor(self, interval: float = POLL_INTERVAL) -> Iterator[CardInfo]:
        """Poll every ``interval`` seconds while the port stays open.

        A poll whose command cannot be sent is skipped.
        """
        while self.is_open():
            time.sleep(interval)
            try:
                yield self.poll()
            except ReaderError:
                continue

    def read_block(self, block: int) -> bytes:
        """Read one 16-byte MIFARE block."""
        self._require_open()
        frame = read_block_command(block)
        resp = self.transact(frame, _BLOCK_READ_TIMEOUT)
        if not resp:
            raise ReaderError("no reply to block read (timeout)")
        return parse_block_response(resp)

    def authenticate(self, key_type: KeyType | int, key_number: int, sector: int) -> bytes:
        """Load the default key into a slot, then authenticate a sector with it."""
        self._require_open()
        load_frame = load_key_command(key_type, key_number, DEFAULT_KEY)
        auth_frame = authenticate_command(key_type, key_number, sector)

        load_resp = self.transact(load_frame, _LOAD_KEY_TIMEOUT)
        if not load_resp:
            raise ReaderError("no reply to key load (timeout)")
        parse_load_key_response(load_resp)

        auth_resp = self.transact(auth_frame, _AUTH_TIMEOUT)
        if not auth_resp:
            raise ReaderError("no reply to authentication (timeout)")
        return parse_authenticate_response(auth_resp)