import os
import time
import logging
from enum import Enum
from typing import Callable, Optional
from dataclasses import dataclass

from .config import SenderConfig
from .mailbox import PacketChannel
from .protocol import END, Data, Start

logger = logging.getLogger(__name__)


class SenderState(Enum):
    INIT = "init"
    ANNOUNCE = "announce"
    STREAMING = "streaming"
    FINISHED = "finished"


@dataclass
class SendState:
    file_path: str
    name: str = ""
    chunk_size: int = 500 * 1024
    skip: int = 0
    total_length: int = 0
    index: int = 0
    blocks_sent: int = 0
    bytes_sent: int = 0
    send_failures: int = 0
    state: SenderState = SenderState.INIT


class SendEngine:
    """
    Send path: announce the file, then stream it block by block into the
    slot at a fixed pace. There is no feedback from the receiver; the
    pacing interval is the only flow control.
    """

    def __init__(
        self,
        config: SenderConfig,
        channel: PacketChannel,
        sleep_func: Callable[[float], None] = time.sleep,
    ):
        if config.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive: {config.chunk_size}")
        if config.skip < 0:
            raise ValueError(f"skip must not be negative: {config.skip}")

        self.config = config
        self.channel = channel
        self.sleep = sleep_func
        self.state: Optional[SendState] = None

    def _sleep_ms(self, ms: int) -> None:
        if ms > 0:
            self.sleep(ms / 1000.0)

    def _emit(self, packet) -> bool:
        ok = self.channel.send_packet(packet)
        if not ok and self.state is not None:
            self.state.send_failures += 1
        return ok

    # ------------------------------------------------------------------

    def send_file(self, file_path: str) -> SendState:
        """
        Run the whole transfer for file_path and return the final state.

        OSError from opening or measuring the file propagates before
        anything is put into the slot.
        """
        state = SendState(
            file_path=file_path,
            name=os.path.basename(file_path),
            chunk_size=self.config.chunk_size,
            skip=self.config.skip,
        )
        self.state = state

        with open(file_path, "rb") as f:
            f.seek(0, os.SEEK_END)
            state.total_length = f.tell()
            f.seek(0, os.SEEK_SET)

            if state.skip:
                logger.info("Resume mode: skipping %d block(s)", state.skip)
            logger.info(
                "Sending file %s with %d bytes", state.name, state.total_length
            )

            state.state = SenderState.ANNOUNCE
            self._announce(state)

            if state.skip:
                f.seek(state.skip * state.chunk_size, os.SEEK_SET)
                state.index = state.skip

            state.state = SenderState.STREAMING
            self._stream(state, f)

        state.state = SenderState.FINISHED
        self._emit(END)
        logger.info(
            "File sent: %d block(s), %d bytes, %d failed put(s)",
            state.blocks_sent,
            state.bytes_sent,
            state.send_failures,
        )
        return state

    def _announce(self, state: SendState) -> None:
        """Emit START and hold long enough for an idle receiver to see it."""
        packet = Start(
            name=state.name,
            length=state.total_length,
            timeout=self.config.pacing_ms,
        )
        self._emit(packet)
        logger.debug("Announced %s, settling for %d ms", state.name, self.config.settle_ms)
        self._sleep_ms(self.config.settle_ms)

    def _stream(self, state: SendState, f) -> None:
        while True:
            payload = f.read(state.chunk_size)
            if not payload:
                return

            state.index += 1
            if self._emit(Data(index=state.index, payload=payload)):
                state.blocks_sent += 1
                state.bytes_sent += len(payload)
            logger.info("Sending block %d", state.index)

            self._sleep_ms(self.config.pacing_ms)
