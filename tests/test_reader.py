from itertools import islice
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import serial

from mifarereader.protocol import (
    DEFAULT_KEY,
    CardError,
    KeyType,
    ReaderError,
    authenticate_command,
    build_frame,
    load_key_command,
    poll_command,
    read_block_command,
)
from mifarereader.reader import CardReader, list_ports


class FakeSerial:
    def __init__(self, replies=()):
        self.replies = list(replies)
        self.written = []
        self.buffer = bytearray()
        self.timeout = None
        self.write_timeout = None
        self.is_open = True
        self.fail_write = False

    def write(self, data):
        if self.fail_write:
            raise serial.SerialTimeoutException("Write timeout")
        self.written.append(bytes(data))
        if self.replies:
            self.buffer += self.replies.pop(0)
        return len(data)

    def flush(self):
        pass

    @property
    def in_waiting(self):
        return len(self.buffer)

    def read(self, size=1):
        chunk = bytes(self.buffer[:size])
        del self.buffer[:size]
        return chunk

    def close(self):
        self.is_open = False


def reply(template, payload):
    tlv = b"\xDF\x78" + bytes([len(payload)]) + payload
    body = b"\x00\x00\x3E" + template + bytes([len(tlv)]) + tlv
    return build_frame(body)


OK = b"\xFF\x01"
ERR = b"\xFF\x03"
BLOCK = bytes(range(16))


def make_reader(*replies):
    fake = FakeSerial(replies)
    reader = CardReader("/dev/fake", transport=lambda port, baud: fake)
    reader.open()
    return reader, fake


def test_poll_success_parses_uid():
    uid = b"\x11\x22\x33\x44"
    resp = b"\x02\x10\x00\x3E\xFF\x01\x0A\xDF\x0D\x04" + uid + b"\x00\x03"
    reader, fake = make_reader(resp)
    info = reader.poll()
    assert fake.written == [poll_command()]
    assert info.success is True
    assert info.uid == uid
    assert info.raw == resp


def test_poll_without_reply_is_failure():
    reader, _ = make_reader()
    info = reader.poll()
    assert info.success is False
    assert info.raw == b""
    assert info.details()["uid"] == "-"


def test_read_block_returns_data():
    reader, fake = make_reader(reply(OK, b"\xA5" + BLOCK))
    assert reader.read_block(4) == BLOCK
    assert fake.written == [read_block_command(4)]


def test_read_block_error_template():
    reader, _ = make_reader(reply(ERR, b"\x08"))
    with pytest.raises(CardError) as info:
        reader.read_block(4)
    assert info.value.code == 0x08


def test_read_block_timeout():
    reader, _ = make_reader()
    with pytest.raises(ReaderError):
        reader.read_block(1)


def test_read_block_invalid_number():
    reader, fake = make_reader()
    with pytest.raises(ValueError):
        reader.read_block(256)
    assert fake.written == []


def test_commands_need_open_port():
    reader = CardReader("/dev/fake", transport=lambda port, baud: FakeSerial())
    assert reader.is_open() is False
    with pytest.raises(ReaderError):
        reader.read_block(0)
    with pytest.raises(ReaderError):
        reader.poll()


def test_authenticate_sends_load_then_auth():
    reader, fake = make_reader(reply(OK, b"\xA9"), reply(OK, b"\xB0"))
    result = reader.authenticate(KeyType.B, 1, 5)
    assert fake.written == [
        load_key_command(KeyType.B, 1, DEFAULT_KEY),
        authenticate_command(KeyType.B, 1, 5),
    ]
    assert result.startswith(b"\xDF\x78")


def test_authenticate_stops_when_key_load_fails():
    reader, fake = make_reader(reply(ERR, b"\x05"))
    with pytest.raises(CardError) as info:
        reader.authenticate(KeyType.A, 0, 0)
    assert info.value.code == 0x05
    assert len(fake.written) == 1


def test_authenticate_wrong_key_code():
    reader, _ = make_reader(reply(OK, b"\xA9"), reply(ERR, b"\x08"))
    with pytest.raises(CardError) as info:
        reader.authenticate(KeyType.A, 0, 3)
    assert info.value.code == 0x08


def test_write_failure_raises():
    reader, fake = make_reader()
    fake.fail_write = True
    with pytest.raises(ReaderError):
        reader.transact(read_block_command(0), 0.1)


def test_transact_returns_whole_reply():
    resp = reply(OK, b"\xA5" + BLOCK)
    reader, _ = make_reader(resp)
    assert reader.transact(read_block_command(0), 0.1) == resp


def test_context_manager_closes():
    fake = FakeSerial()
    with CardReader("/dev/fake", transport=lambda port, baud: fake) as reader:
        assert reader.is_open() is True
    assert reader.is_open() is False
    assert fake.is_open is False


def test_open_failure_raises_reader_error():
    def broken(port, baud):
        raise serial.SerialException("no such device")

    reader = CardReader("/dev/missing", transport=broken)
    with pytest.raises(ReaderError):
        reader.open()
    assert reader.is_open() is False


def test_transport_receives_port_and_baudrate():
    seen = []

    def factory(port, baud):
        seen.append((port, baud))
        return FakeSerial()

    reader = CardReader("/dev/fake", 9600, transport=factory)
    assert reader.is_open() is False
    reader.open()
    assert reader.is_open() is True
    assert seen == [("/dev/fake", 9600)]


def test_monitor_yields_polls():
    reader, fake = make_reader()
    results = list(islice(reader.monitor(0), 3))
    assert len(results) == 3
    assert all(not info.success for info in results)
    assert fake.written == [poll_command()] * 3


def test_monitor_stops_when_closed():
    reader, _ = make_reader()
    reader.close()
    assert list(reader.monitor(0)) == []


def test_list_ports():
    ports = [SimpleNamespace(device="/dev/ttyUSB0"), SimpleNamespace(device="/dev/ttyUSB1")]
    with patch("serial.tools.list_ports.comports", return_value=ports):
        assert list_ports() == ["/dev/ttyUSB0", "/dev/ttyUSB1"]