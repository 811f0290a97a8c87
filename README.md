# mifarereader

This package drives a contactless card reader over a serial line. The line
runs at 115200 baud by default, 8N1, with no flow control. The reader uses a
framed protocol:

```
STX(02) LEN PCB INS DATA... LRC ETX(03)
```

`LEN` is the number of bytes in PCB, INS and DATA. `LRC` is the XOR of
every byte between STX and LRC. MIFARE commands are sent inside a `DO`
instruction (`PCB=00`, `INS=3E`) as the value of a `DF 78` TLV.

The package does three things:

- poll for a card and return its type, UID, SAK and ATQ;
- load the default MIFARE key (`FF FF FF FF FF FF`) into a key slot, then authenticate a sector with it, using Key A or Key B;
- read a MIFARE block.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Command line

Installing the package adds the `mifarereader` command.

```
mifarereader ports
mifarereader poll --port /dev/ttyUSB0 [--baudrate 115200] [--interval 2.0] [--count N]
mifarereader read --port /dev/ttyUSB0 BLOCK
mifarereader auth --port /dev/ttyUSB0 [--key-type A|B] [--key-number 0] [--sector 0]
```

- `ports` lists the serial port devices it finds.
- `poll` polls for a card once per interval and prints each result: the status, then the type, UID, SAK, ATQ and the raw reply in hex. Fields that are missing print as `-`. Without `--count` it keeps polling until you interrupt it with Ctrl-C.
- `read` reads one block and prints its data in hex.
- `auth` loads the default key into the chosen slot, then authenticates the sector. It prints `authentication successful` if that works.

Exit status:

- `0` on success;
- `1` when the reader reports an error or a reply is malformed;
- `2` for an invalid value or a missing subcommand.

The command runs only from a terminal. The package has no graphical window.

## Library use

```python
from mifarereader.reader import CardReader, list_ports
from mifarereader.protocol import CardError, FrameError, KeyType, format_hex

print(list_ports())

with CardReader("/dev/ttyUSB0") as reader:
    card = reader.poll()
    print(card.success, card.details())

    reader.authenticate(KeyType.A, 0, 0)
    block = reader.read_block(4)
    print(format_hex(block))
```

`CardReader(port, baudrate=115200, transport=None)` opens a pyserial port
when you call `open()` or enter the `with` block. You can pass any callable
as `transport`. It takes `(port, baudrate)` and must return an open object
that behaves like a serial port.

Other methods:

- `transact(frame, timeout)` sends a raw frame and returns the reply bytes, or `b""` if nothing arrived before the timeout.
- `monitor(interval=2.0)` is a generator. While the port stays open, it waits `interval` seconds, then yields the result of a poll as a `CardInfo`. A poll whose command cannot be sent is skipped.

Value ranges:

| Value      | Allowed range |
|------------|---------------|
| Key number | 0 or 1        |
| Sector     | 0 to 39       |
| Block      | 0 to 255      |

A value outside its range raises `ValueError` before anything is sent.

Reader errors all derive from `ReaderError`:

- `FrameError` means a reply had bad STX/ETX framing, a bad LRC, or an unexpected layout.
- `CardError` means the reader sent back an error template. Its `code` attribute holds the error code when the code can be read. For example, `0x08` is an authentication error.

Both exception types keep the reply in their `response` attribute.

## Protocol helpers

`mifarereader.protocol` works without a reader attached. It provides:

- `lrc`, `build_frame` and `mifare_frame` to build frames;
- `poll_command`, `read_block_command`, `load_key_command` and `authenticate_command` for the commands the reader understands;
- `extract_tag` to pull a TLV value out of a reply;
- `parse_poll_response`, `parse_block_response`, `parse_load_key_response` and `parse_authenticate_response` to decode replies.

For example:

```python
from mifarereader.protocol import format_hex, read_block_command

print(format_hex(read_block_command(4)))   # 02 07 00 3E DF 78 02 A5 04 3D 03
```