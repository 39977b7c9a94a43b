import os
import time
import logging
from enum import Enum
from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional

from .config import ReceiverConfig
from .mailbox import MailboxError, PacketChannel
from .protocol import Data, End, Noop, Packet, Start

logger = logging.getLogger(__name__)


class ReceiverState(Enum):
    WAITING = "waiting"
    RECEIVING = "receiving"
    COMPLETED = "completed"
    ABORTED = "aborted"


TERMINAL_STATES = (ReceiverState.COMPLETED, ReceiverState.ABORTED)


@dataclass
class ReceiveState:
    poll_ms: int
    state: ReceiverState = ReceiverState.WAITING
    started: bool = False
    output_path: Optional[str] = None
    announced_length: int = 0
    received_length: int = 0
    last_accepted_index: int = 0
    stale_ms: int = 0
    rejected_blocks: int = 0
    write_failures: int = 0
    stall_warnings: int = 0

    @property
    def progress(self) -> float:
        if self.announced_length <= 0:
            return 1.0 if self.started else 0.0
        return self.received_length / self.announced_length


class ReceiveEngine:
    """
    Receive path: poll the slot, accept blocks strictly in order, write
    them to the output file and finish once END arrives with every
    announced byte accounted for.

    Nothing is ever sent back; a gap can only be closed by the sender's
    pacing or by restarting the transfer with a skip count.
    """

    def __init__(
        self,
        config: ReceiverConfig,
        channel: PacketChannel,
        sleep_func: Callable[[float], None] = time.sleep,
    ):
        for name in ("poll_timeout_ms", "idle_poll_ms", "safety_margin_ms", "stale_threshold_ms"):
            if getattr(config, name) < 0:
                raise ValueError(f"{name} must not be negative: {getattr(config, name)}")
        if config.min_poll_ms <= 0:
            raise ValueError(f"min_poll_ms must be positive: {config.min_poll_ms}")

        self.config = config
        self.channel = channel
        self.sleep = sleep_func
        self.output_dir = config.output_dir
        self.state = ReceiveState(poll_ms=config.idle_poll_ms)
        self._writer: Optional[BinaryIO] = None

    def _sleep_ms(self, ms: int) -> None:
        if ms > 0:
            self.sleep(ms / 1000.0)

    # ------------------------------------------------------------------

    def run(self) -> ReceiverState:
        """Poll until the transfer completes or aborts."""
        logger.info("Waiting for file")
        while self.state.state not in TERMINAL_STATES:
            self.poll_once()
        return self.state.state

    def poll_once(self) -> ReceiverState:
        """One iteration: read the slot, handle the packet, sleep."""
        try:
            packet = self.channel.recv_packet()
        except MailboxError as e:
            logger.debug("Mailbox unreadable: %s", e)
            self._sleep_ms(self.config.idle_poll_ms)
            return self.state.state

        delay = self.handle_packet(packet)
        self._sleep_ms(delay)
        return self.state.state

    def handle_packet(self, packet: Packet) -> int:
        """
        Apply one decoded packet to the session.

        Returns how long the loop should sleep before the next poll, in ms.
        """
        state = self.state
        if state.state in TERMINAL_STATES:
            return 0

        if isinstance(packet, Noop):
            return self.config.idle_poll_ms
        elif isinstance(packet, Start):
            return self._handle_start(packet)
        elif isinstance(packet, Data):
            if not state.started:
                return self.config.idle_poll_ms
            self._handle_data(packet)
            return state.poll_ms
        elif isinstance(packet, End):
            if not state.started:
                return self.config.idle_poll_ms
            self._handle_end()
            return 0 if state.state in TERMINAL_STATES else state.poll_ms
        raise TypeError(f"not a packet: {packet!r}")

    # ------------------------------------------------------------------

    def _handle_start(self, packet: Start) -> int:
        state = self.state
        if state.started:
            return state.poll_ms

        state.started = True
        output_path = os.path.join(self.output_dir, os.path.basename(packet.name))
        try:
            self._writer = open(output_path, "wb")
        except OSError as e:
            logger.error("Can't create destination file %s: %s", output_path, e)
            state.state = ReceiverState.ABORTED
            return 0

        state.output_path = output_path
        state.announced_length = packet.length
        state.poll_ms = max(
            packet.timeout - self.config.safety_margin_ms,
            self.config.min_poll_ms,
        )
        state.state = ReceiverState.RECEIVING

        logger.info("Start receiving file: %s (%d bytes)", packet.name, packet.length)
        logger.info("Reset timeout from sender side to %d ms", state.poll_ms)
        return state.poll_ms

    def _handle_data(self, packet: Data) -> None:
        state = self.state

        if packet.index != state.last_accepted_index + 1:
            # duplicate read of the slot, or a block we never saw
            state.rejected_blocks += 1
            state.stale_ms += self.config.poll_timeout_ms
            if state.stale_ms > self.config.stale_threshold_ms:
                logger.warning(
                    "Receive stalled, last_index=%d", state.last_accepted_index
                )
                state.stall_warnings += 1
                state.stale_ms = 0
            return

        state.stale_ms = 0
        state.last_accepted_index = packet.index
        state.received_length += len(packet.payload)
        logger.info(
            "Received block %d (%.2f%%)", packet.index, state.progress * 100.0
        )

        try:
            self._writer.write(packet.payload)
        except OSError as e:
            state.write_failures += 1
            logger.warning("Can't write block %d to destination file: %s", packet.index, e)

    def _handle_end(self) -> None:
        state = self.state
        if state.received_length != state.announced_length:
            logger.warning(
                "Received END but data is incomplete (%d of %d bytes)",
                state.received_length,
                state.announced_length,
            )
            return

        try:
            self._writer.flush()
        except OSError as e:
            logger.warning("Can't flush destination file: %s", e)
        self.close()

        state.state = ReceiverState.COMPLETED
        logger.info("File saved: %s", state.output_path)

    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release the output file, if open."""
        if self._writer is None:
            return
        try:
            self._writer.close()
        except OSError as e:
            logger.warning("Can't close destination file: %s", e)
        self._writer = None

    def get_receive_status(self):
        state = self.state
        return {
            "state": state.state.value,
            "output_path": state.output_path,
            "announced_length": state.announced_length,
            "received_length": state.received_length,
            "last_accepted_index": state.last_accepted_index,
            "progress": state.progress,
            "rejected_blocks": state.rejected_blocks,
            "write_failures": state.write_failures,
            "stall_warnings": state.stall_warnings,
        }
