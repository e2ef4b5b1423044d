"""
Transfer Module - Single File over TCP

Wire protocol, single-shot listener, sender and receiver loops.
"""

from .protocol import (
    CHUNK_SIZE, HEADER_SIZE, TransferHeader, TransferStream, open_stream
)
from .listener import Listener, ListenerState, local_ipv4_address
from .receiver import FileReceiver
from .sender import FileSender, validate_target

__all__ = [
    'CHUNK_SIZE',
    'HEADER_SIZE',
    'TransferHeader',
    'TransferStream',
    'open_stream',
    'Listener',
    'ListenerState',
    'local_ipv4_address',
    'FileReceiver',
    'FileSender',
    'validate_target',
]
