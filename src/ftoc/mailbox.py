import os
import logging
import tempfile
from typing import Optional

import pyperclip

from .protocol import Packet, decode, encode

logger = logging.getLogger(__name__)


class MailboxError(Exception):
    """The shared slot could not be read or written."""


class Mailbox(object):
    """
    Contract for the single shared slot.

    put() overwrites the slot unconditionally. get() returns the current
    value without consuming it, so repeated calls may return the same text.
    Both raise MailboxError when the slot is unavailable.
    """

    def put(self, text: str) -> None:
        raise NotImplementedError()

    def get(self) -> str:
        raise NotImplementedError()


class ClipboardMailbox(Mailbox):
    """The system clipboard as the slot."""

    def put(self, text: str) -> None:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as e:
            raise MailboxError(f"can't set clipboard: {e}") from e

    def get(self) -> str:
        try:
            return pyperclip.paste()
        except pyperclip.PyperclipException as e:
            raise MailboxError(f"can't get clipboard data: {e}") from e


class FileMailbox(Mailbox):
    """
    A single file as the slot, e.g. on a share both machines can see.

    Writes go through a temporary file and os.replace() so a reader
    never observes a half-written value.
    """

    def __init__(self, path: str):
        self.path = path

    def put(self, text: str) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".ftoc-slot-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                    f.write(text)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise MailboxError(f"can't write slot {self.path}: {e}") from e

    def get(self) -> str:
        try:
            with open(self.path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise MailboxError(f"can't read slot {self.path}: {e}") from e


def create_mailbox(kind: str, path: Optional[str] = None) -> Mailbox:
    if kind == "clipboard":
        return ClipboardMailbox()
    elif kind == "file":
        if not path:
            raise ValueError("file mailbox needs a slot path")
        return FileMailbox(path)
    raise ValueError(f"unknown mailbox kind: {kind!r}")


# ---------------------------------------------------------------------------


class PacketChannel:
    """
    Thin packet layer over a Mailbox.
    """

    def __init__(self, mailbox: Mailbox):
        self.mailbox = mailbox

    def send_packet(self, packet: Packet) -> bool:
        """Best effort: a transport failure is logged, not raised."""
        text = encode(packet)
        try:
            self.mailbox.put(text)
        except MailboxError as e:
            logger.warning("Failed to put %s into mailbox: %s", type(packet).__name__, e)
            return False
        logger.debug("Put %s (%d chars)", type(packet).__name__, len(text))
        return True

    def recv_packet(self) -> Packet:
        """Read and decode the slot. MailboxError propagates."""
        return decode(self.mailbox.get())
