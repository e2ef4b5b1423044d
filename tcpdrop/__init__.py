"""
tcpdrop - single file transfer over a direct TCP connection.
"""

from .config import Config, load_config
from .errors import (
    TransferError, BindError, AcceptError, ConnectError, InvalidArgumentError,
    FileAccessError, NetworkError, ProtocolError, SessionError
)
from .node import TransferNode
from .progress import (
    ProgressEvent, ProgressReporter, TransferCallbacks, TransferResult,
    TransferState
)

__version__ = '0.1.0'

__all__ = [
    'Config',
    'load_config',
    'TransferError',
    'BindError',
    'AcceptError',
    'ConnectError',
    'InvalidArgumentError',
    'FileAccessError',
    'NetworkError',
    'ProtocolError',
    'SessionError',
    'TransferNode',
    'ProgressEvent',
    'ProgressReporter',
    'TransferCallbacks',
    'TransferResult',
    'TransferState',
]
