"""Command-line front end for the card reader."""

from __future__ import annotations

import argparse
import sys
from itertools import islice

from .protocol import CardInfo, KeyType, ReaderError, format_hex
from .reader import DEFAULT_BAUDRATE, POLL_INTERVAL, CardReader, list_ports


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mifarereader", description="Talk to a contactless card reader on a serial port."
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("ports", help="list available serial ports")

    def with_port(p: argparse.ArgumentParser) -> argparse.ArgumentParser:
        p.add_argument("--port", required=True, help="serial port device")
        p.add_argument("--baudrate", type=int, default=DEFAULT_BAUDRATE)
        return p

    poll = with_port(sub.add_parser("poll", help="poll for cards repeatedly"))
    poll.add_argument("--interval", type=float, default=POLL_INTERVAL)
    poll.add_argument("--count", type=int, default=None, help="stop after this many polls")

    read = with_port(sub.add_parser("read", help="read a MIFARE block"))
    read.add_argument("block", type=int)

    auth = with_port(sub.add_parser("auth", help="authenticate a sector with the default key"))
    auth.add_argument("--key-type", choices=[k.name for k in KeyType], default="A")
    auth.add_argument("--key-number", type=int, default=0)
    auth.add_argument("--sector", type=int, default=0)
    return parser


def _print_card(info: CardInfo) -> None:
    details = info.details()
    print("status:", "card read successful" if info.success else "no card read")
    for field in ("type", "uid", "sak", "atq", "raw"):
        print(f"{field}: {details[field]}")
    print()


def _run(args: argparse.Namespace) -> int:
    if args.command == "ports":
        for name in list_ports():
            print(name)
        return 0

    with CardReader(args.port, args.baudrate) as reader:
        if args.command == "poll":
            polls = reader.monitor(args.interval)
            if args.count is not None:
                polls = islice(polls, args.count)
            for info in polls:
                _print_card(info)
            return 0
        if args.command == "read":
            data = reader.read_block(args.block)
            print("block data:")
            print(format_hex(data))
            return 0
        reader.authenticate(KeyType[args.key_type], args.key_number, args.sector)
        print("authentication successful")
        return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2
    try:
        return _run(args)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except ReaderError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())