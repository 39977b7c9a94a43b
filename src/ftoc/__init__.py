"""
ftoc: file transfer through a single shared, overwritable mailbox slot

Sender and receiver never talk to each other directly. The sender
announces a file and then overwrites the slot with one framed block at a
fixed pace; the receiver polls the slot, keeps blocks strictly in order
and finishes once every announced byte has arrived. Supported slots:
- the system clipboard
- a shared file
"""

__version__ = "0.1.0"

from .node import Node, create_node
from .config import FtocConfig, load_config

__all__ = ['Node', 'create_node', 'FtocConfig', 'load_config']
