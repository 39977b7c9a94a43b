import json
import signal

import pytest

from ftoc.cli import build_parser, main
from ftoc.config import ReceiverConfig, load_config
from ftoc.node import Node
from ftoc.receive_engine import ReceiveEngine
from ftoc.mailbox import FileMailbox
from ftoc.protocol import END, Start, decode, encode


def test_parser_accepts_short_flags():
    args = build_parser().parse_args(
        ["send", "backup.7z", "-s", "1m", "-S", "40", "-st", "3000"]
    )
    assert args.command == "send"
    assert args.file == "backup.7z"
    assert args.size == "1m"
    assert args.skip == 40
    assert args.send_timeout == 3000

    args = build_parser().parse_args(["recv", "-rt", "250"])
    assert args.command == "recv"
    assert args.recv_timeout == 250


def test_dry_run_prints_resolved_settings(capsys):
    rc = main(["--dry-run", "send", "backup.7z", "-s", "2k", "-S", "3"])

    assert rc == 0
    settings = json.loads(capsys.readouterr().out)
    assert settings["file"] == "backup.7z"
    assert settings["sender"]["chunk_size"] == 2048
    assert settings["sender"]["skip"] == 3
    assert settings["mailbox"]["kind"] == "clipboard"


def test_slot_path_implies_file_mailbox(tmp_path, capsys):
    slot = str(tmp_path / "slot.txt")
    rc = main(["--dry-run", "--slot-path", slot, "recv", "-rt", "250"])

    assert rc == 0
    settings = json.loads(capsys.readouterr().out)
    assert settings["mailbox"] == {"kind": "file", "path": slot}
    assert settings["receiver"]["poll_timeout_ms"] == 250


def test_send_through_file_slot(tmp_path, capsys):
    config = tmp_path / "ftoc.yml"
    config.write_text("sender:\n  settle_ms: 0\n")
    slot = tmp_path / "slot.txt"
    source = tmp_path / "payload.bin"
    source.write_bytes(b"abcdefgh")

    rc = main(
        [
            "--config", str(config),
            "--slot-path", str(slot),
            "send", str(source), "-s", "4", "-st", "0",
        ]
    )

    assert rc == 0
    assert decode(FileMailbox(str(slot)).get()) == END
    out = capsys.readouterr().out
    assert "Blocks sent: 2" in out


def test_send_missing_file(tmp_path, capsys):
    rc = main(["--slot-path", str(tmp_path / "slot.txt"), "send", str(tmp_path / "nope")])

    assert rc == 1
    assert "not found" in capsys.readouterr().out


def test_recv_aborts_when_output_cannot_be_created(tmp_path, capsys):
    slot = tmp_path / "slot.txt"
    FileMailbox(str(slot)).put(encode(Start(name="x.bin", length=1, timeout=500)))

    rc = main(
        [
            "--slot-path", str(slot),
            "recv", "--output-dir", str(tmp_path / "missing"),
        ]
    )

    assert rc == 1
    assert "aborted" in capsys.readouterr().out


def test_no_command_prints_help():
    assert main([]) == 1


def test_interrupted_receive_exits_non_zero(tmp_path):
    slot = tmp_path / "slot.txt"
    mailbox = FileMailbox(str(slot))
    mailbox.put(encode(Start(name="part.bin", length=10, timeout=500)))
    node = Node(load_config(None), mailbox=mailbox, sleep_func=lambda s: None)
    node.receive_engine = ReceiveEngine(
        ReceiverConfig(output_dir=str(tmp_path)), node.channel, node.sleep
    )
    node.receive_engine.poll_once()

    with pytest.raises(SystemExit) as exc:
        node._signal_handler(signal.SIGINT, None)

    assert exc.value.code == 1
    assert node.receive_engine._writer is None


def test_interrupt_without_receive_session_exits_zero(tmp_path):
    node = Node(load_config(None), mailbox=FileMailbox(str(tmp_path / "slot.txt")))

    with pytest.raises(SystemExit) as exc:
        node._signal_handler(signal.SIGTERM, None)

    assert exc.value.code == 0
