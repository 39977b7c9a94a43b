import time
import logging
import signal
import sys
from typing import Any, Callable, Dict, Optional

from .config import FtocConfig, load_config
from .mailbox import Mailbox, PacketChannel, create_mailbox
from .send_engine import SendEngine, SendState
from .receive_engine import ReceiveEngine, ReceiverState

logger = logging.getLogger(__name__)


class Node:
    """
    Orchestrator: owns the mailbox and builds the send or receive engine
    around it. One node runs one side of one transfer.
    """

    def __init__(
        self,
        config: FtocConfig,
        mailbox: Optional[Mailbox] = None,
        sleep_func: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        if mailbox is None:
            mailbox = create_mailbox(config.mailbox.kind, config.mailbox.path)
        self.mailbox = mailbox
        self.channel = PacketChannel(mailbox)
        self.sleep = sleep_func

        self.send_engine: Optional[SendEngine] = None
        self.receive_engine: Optional[ReceiveEngine] = None

        try:
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)
        except ValueError:
            logger.debug("Signal handlers not installed (non-main thread).")

    # ------------------------------------------------------------------

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        logger.info("Received signal %s, shutting down...", signum)
        self.stop()
        sys.exit(self.exit_code())

    def exit_code(self) -> int:
        """0 unless a receive session was left unfinished."""
        if self.receive_engine is None:
            return 0
        return 0 if self.receive_engine.state.state == ReceiverState.COMPLETED else 1

    def stop(self) -> None:
        if self.receive_engine is not None:
            self.receive_engine.close()

    # ------------------------------------------------------------------
    # Public API used by CLI
    # ------------------------------------------------------------------

    def send_file(self, file_path: str) -> SendState:
        """Send one file through the slot."""
        self.send_engine = SendEngine(self.config.sender, self.channel, self.sleep)
        return self.send_engine.send_file(file_path)

    def run_receiver(self) -> ReceiverState:
        """Receive one file from the slot."""
        self.receive_engine = ReceiveEngine(
            self.config.receiver, self.channel, self.sleep
        )
        logger.info("Running in receiver mode, mailbox=%s", self.config.mailbox.kind)
        try:
            return self.receive_engine.run()
        finally:
            self.receive_engine.close()

    def get_status(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {"mailbox": self.config.mailbox.kind}
        if self.send_engine is not None and self.send_engine.state is not None:
            s = self.send_engine.state
            status["send"] = {
                "file_path": s.file_path,
                "state": s.state.value,
                "total_length": s.total_length,
                "index": s.index,
                "blocks_sent": s.blocks_sent,
                "bytes_sent": s.bytes_sent,
                "send_failures": s.send_failures,
            }
        if self.receive_engine is not None:
            status["recv"] = self.receive_engine.get_receive_status()
        return status


def create_node(
    config_path: Optional[str] = None,
    mailbox_kind: Optional[str] = None,
    slot_path: Optional[str] = None,
) -> Node:
    """Create and configure a node instance."""
    config = load_config(config_path)

    if mailbox_kind is not None:
        config.mailbox.kind = mailbox_kind
    if slot_path is not None:
        config.mailbox.path = slot_path
        if mailbox_kind is None:
            config.mailbox.kind = "file"

    return Node(config)
