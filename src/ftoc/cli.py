#!/usr/bin/env python3

import argparse
import logging
import sys
import os
import json

from . import __version__
from .config import MAILBOX_KINDS, parse_size
from .node import create_node
from .receive_engine import ReceiverState


def setup_logging(debug: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if debug else logging.INFO

    filename = "ftoc_debug.log" if debug else None

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        filename=filename,
        filemode='w'
    )

    if debug:
        print(f"Debug logging enabled. Writing to {filename}...")


def _dry_run(node, args) -> int:
    settings = {
        "command": args.command,
        "mailbox": node.config.mailbox.__dict__,
    }
    if args.command == "send":
        settings["file"] = args.file
        settings["sender"] = node.config.sender.__dict__
    else:
        settings["receiver"] = node.config.receiver.__dict__
    print(json.dumps(settings, indent=2))
    return 0


# ---------------------------------------------------------------------------

def cmd_send(args) -> int:
    """Handle send command."""
    try:
        node = create_node(
            config_path=args.config,
            mailbox_kind=args.mailbox,
            slot_path=args.slot_path,
        )
        sender_cfg = node.config.sender
        if args.size is not None:
            sender_cfg.chunk_size = parse_size(args.size)
        if args.skip is not None:
            sender_cfg.skip = args.skip
        if args.send_timeout is not None:
            sender_cfg.pacing_ms = args.send_timeout

        if args.dry_run:
            return _dry_run(node, args)

        setup_logging(args.debug)

        if not os.path.exists(args.file):
            print(f"Error: File '{args.file}' not found")
            return 1

        print(f"Sending {args.file} in blocks of {sender_cfg.chunk_size} bytes")
        state = node.send_file(args.file)

        print("File sent")
        print(f"Blocks sent: {state.blocks_sent}")
        print(f"Bytes sent: {state.bytes_sent}")
        if state.send_failures:
            print(f"Failed mailbox writes: {state.send_failures}")
        return 0

    except Exception as e:
        print(f"Error: {e}")
        return 1


def cmd_recv(args) -> int:
    """Handle recv command."""
    try:
        node = create_node(
            config_path=args.config,
            mailbox_kind=args.mailbox,
            slot_path=args.slot_path,
        )
        receiver_cfg = node.config.receiver
        if args.recv_timeout is not None:
            receiver_cfg.poll_timeout_ms = args.recv_timeout
        if args.output_dir is not None:
            receiver_cfg.output_dir = args.output_dir

        if args.dry_run:
            return _dry_run(node, args)

        setup_logging(args.debug)

        print("Waiting for file... (Press Ctrl+C to stop)")
        final_state = node.run_receiver()

        status = node.get_status()["recv"]
        if final_state != ReceiverState.COMPLETED:
            print(f"Transfer aborted: {status.get('output_path') or 'no output file'}")
            return 1

        print(f"File saved: {status['output_path']}")
        print(f"Bytes received: {status['received_length']}")
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ftoc",
        description="ftoc: move a file between two processes through one shared mailbox slot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start receiver on the clipboard
  ftoc recv

  # Send a file in 1 MiB blocks, one block every 3 seconds
  ftoc send -s 1m -st 3000 ./backup.7z

  # Resume after the first 40 blocks arrived
  ftoc send -s 1m -S 40 ./backup.7z

  # Use a shared file as the slot instead of the clipboard
  ftoc --slot-path /mnt/share/slot.txt recv --output-dir ./incoming
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"ftoc {__version__}",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Configuration file path",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the resolved settings and exit",
    )
    parser.add_argument(
        "--mailbox",
        choices=MAILBOX_KINDS,
        help="Slot implementation (default: clipboard)",
    )
    parser.add_argument(
        "--slot-path",
        type=str,
        help="Path of the slot file (implies --mailbox file)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Send command
    send_parser = subparsers.add_parser("send", help="Send a file")
    send_parser.add_argument("file", help="File to send")
    send_parser.add_argument(
        "--size", "-s",
        type=str,
        help="Block size, with optional k/m/g suffix (default: 500k)",
    )
    send_parser.add_argument(
        "--skip", "-S",
        type=int,
        help="Number of blocks to skip when resuming (default: 0)",
    )
    send_parser.add_argument(
        "--send-timeout", "-st",
        type=int,
        help="Pause between blocks in ms (default: 2000)",
    )

    recv_parser = subparsers.add_parser("recv", help="Receive a file")
    recv_parser.add_argument(
        "--recv-timeout", "-rt",
        type=int,
        help="Staleness added per rejected block, in ms (default: 500)",
    )
    recv_parser.add_argument(
        "--output-dir",
        type=str,
        help="Directory to write the received file into (default: .)",
    )

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "send":
        return cmd_send(args)
    elif args.command == "recv":
        return cmd_recv(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
