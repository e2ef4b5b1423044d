"""
Transfer Errors

Every error is terminal for the transfer attempt that raised it. The
message is short and human-readable so the boundary can show it as-is
through the status callback.
"""


class TransferError(Exception):
    """Base class for all transfer failures."""


class BindError(TransferError):
    """The listening socket could not be created or bound."""


class AcceptError(TransferError):
    """No inbound connection could be accepted."""


class ConnectError(TransferError):
    """The outbound connection was refused, timed out or unreachable."""


class InvalidArgumentError(TransferError):
    """Bad target address or port."""


class FileAccessError(TransferError):
    """The source or destination file could not be opened, read or written."""


class NetworkError(TransferError):
    """A socket read or write failed mid-transfer."""


class ProtocolError(TransferError):
    """Malformed or incomplete header, or a size mismatch when verified."""


class SessionError(TransferError):
    """A single-use session was reused, or a transfer is already running."""
