import os
import yaml
from dataclasses import dataclass, field
from typing import Optional

MAILBOX_KINDS = ("clipboard", "file")

SIZE_MULTIPLIERS = {
    "k": 1024,
    "m": 1024 * 1024,
    "g": 1024 * 1024 * 1024,
}


@dataclass
class SenderConfig:
    chunk_size: int = 500 * 1024
    pacing_ms: int = 2000
    settle_ms: int = 2000
    skip: int = 0


@dataclass
class ReceiverConfig:
    poll_timeout_ms: int = 500
    idle_poll_ms: int = 1000
    safety_margin_ms: int = 150
    min_poll_ms: int = 10
    stale_threshold_ms: int = 10000
    output_dir: str = "."


@dataclass
class MailboxConfig:
    kind: str = "clipboard"
    path: Optional[str] = None


@dataclass
class FtocConfig:
    sender: SenderConfig = field(default_factory=SenderConfig)
    receiver: ReceiverConfig = field(default_factory=ReceiverConfig)
    mailbox: MailboxConfig = field(default_factory=MailboxConfig)


def parse_size(value) -> int:
    """Parse a byte count such as "4096", "500k", "2M" or "1g"."""
    text = str(value).strip()
    if not text:
        raise ValueError("invalid size value: empty")

    multiplier = SIZE_MULTIPLIERS.get(text[-1].lower(), 1)
    digits = text[:-1] if multiplier > 1 else text
    try:
        base = int(digits)
    except ValueError:
        raise ValueError(f"invalid size value: {value!r}") from None

    size = base * multiplier
    if size <= 0:
        raise ValueError(f"size must be positive: {value!r}")
    return size


def load_config(config_path: Optional[str] = None) -> FtocConfig:
    """Load configuration from file or use defaults."""
    if config_path and os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        sender_data = dict(config_data.get('sender') or {})
        if 'chunk_size' in sender_data:
            sender_data['chunk_size'] = parse_size(sender_data['chunk_size'])

        sender_config = SenderConfig(**sender_data)
        receiver_config = ReceiverConfig(**(config_data.get('receiver') or {}))
        mailbox_config = MailboxConfig(**(config_data.get('mailbox') or {}))
    else:
        sender_config = SenderConfig()
        receiver_config = ReceiverConfig()
        mailbox_config = MailboxConfig()

    if mailbox_config.kind not in MAILBOX_KINDS:
        raise ValueError(f"unknown mailbox kind: {mailbox_config.kind!r}")

    return FtocConfig(
        sender=sender_config,
        receiver=receiver_config,
        mailbox=mailbox_config,
    )
