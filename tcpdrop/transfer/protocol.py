"""
File Transfer Protocol

Design Decision: Header Byte Order
==================================

Options Considered:
1. Host-native order
   - Byte-compatible with existing peers that write a raw size_t
   - Breaks between hosts of different endianness

2. Network (big-endian) order
   - Portable
   - Incompatible with existing peers on little-endian hosts

Decision: configurable, native by default
- 'native' keeps the wire identical to existing peers
- 'little' / 'big' pin the order for mixed-architecture setups
- Both ends must agree; nothing on the wire says which was used

Wire Format:
```
+--------------------+---------------------------------------+
| total_size (8B)    | payload (total_size bytes)            |
+--------------------+---------------------------------------+
```
The payload is written in chunks of at most CHUNK_SIZE bytes. There is no
acknowledgement, checksum or trailer: the sender closing the connection
marks the end of the transfer.
"""

import asyncio
import logging
import struct
from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import ConnectError, NetworkError, ProtocolError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024
HEADER_SIZE = 8
MAX_TOTAL_SIZE = 2 ** 64 - 1

BYTE_ORDERS = {
    'native': '=',
    'little': '<',
    'big': '>',
}


def header_format(byte_order: str = 'native') -> str:
    """Get the struct format for the size header."""
    try:
        return BYTE_ORDERS[byte_order] + 'Q'
    except KeyError:
        raise ValueError(f"Unknown byte order: {byte_order!r}") from None


@dataclass
class TransferHeader:
    """The 8-byte preamble declaring the payload size."""
    total_size: int

    def to_bytes(self, byte_order: str = 'native') -> bytes:
        """Serialize header to bytes."""
        if not 0 <= self.total_size <= MAX_TOTAL_SIZE:
            raise ProtocolError(f"Size out of range: {self.total_size}")
        return struct.pack(header_format(byte_order), self.total_size)

    @classmethod
    def from_bytes(cls, data: bytes, byte_order: str = 'native') -> 'TransferHeader':
        """Parse a header from exactly HEADER_SIZE bytes."""
        if len(data) != HEADER_SIZE:
            raise ProtocolError("incomplete header")
        (total_size,) = struct.unpack(header_format(byte_order), data)
        return cls(total_size=total_size)


class TransferStream:
    """
    One TCP connection carrying a single transfer.

    Wraps the asyncio reader/writer pair and maps socket failures onto
    NetworkError / ProtocolError.
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter,
                 byte_order: str = 'native'):
        self.reader = reader
        self.writer = writer
        self.byte_order = byte_order
        self._closed = False

    @property
    def remote_address(self) -> Optional[Tuple[str, int]]:
        """Get remote peer address."""
        return self.writer.get_extra_info('peername')

    @property
    def closed(self) -> bool:
        return self._closed

    async def send_header(self, total_size: int):
        """Write the size header as a single framed write."""
        data = TransferHeader(total_size).to_bytes(self.byte_order)
        await self._write(data, "header")

    async def read_header(self) -> TransferHeader:
        """Read exactly HEADER_SIZE bytes and parse them."""
        try:
            data = await self.reader.readexactly(HEADER_SIZE)
        except asyncio.IncompleteReadError as e:
            logger.debug(f"Peer closed after {len(e.partial)} header bytes")
            raise ProtocolError("incomplete header") from e
        except OSError as e:
            raise NetworkError(f"Error reading header: {e}") from e
        return TransferHeader.from_bytes(data, self.byte_order)

    async def send_chunk(self, data: bytes):
        """Write one chunk and wait until it is flushed to the socket."""
        await self._write(data, "chunk")

    async def read_chunk(self, size: int = CHUNK_SIZE) -> bytes:
        """
        Read up to `size` bytes.

        Returns:
            The bytes read, or b'' once the peer closed the connection
        """
        try:
            return await self.reader.read(size)
        except OSError as e:
            raise NetworkError(f"Error during file transfer: {e}") from e

    async def _write(self, data: bytes, what: str):
        if self._closed:
            raise NetworkError("Connection closed")
        try:
            self.writer.write(data)
            await self.writer.drain()
        except OSError as e:
            raise NetworkError(f"Error sending {what}: {e}") from e

    async def close(self):
        """Close the connection."""
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            # Peer already reset the connection; nothing left to release.
            logger.debug(f"Error while closing connection: {e}")


async def open_stream(ip: str, port: int, timeout: float = 10.0,
                      byte_order: str = 'native') -> TransferStream:
    """
    Connect to a listening receiver.

    Single attempt, no retry.

    Raises:
        ConnectError: refused, unreachable or timed out
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(ip, port),
            timeout=timeout
        )
    except asyncio.TimeoutError as e:
        logger.error(f"Timed out connecting to {ip}:{port}")
        raise ConnectError(f"Connection failed: timed out after {timeout}s") from e
    except OSError as e:
        logger.error(f"Failed to connect to {ip}:{port}: {e}")
        raise ConnectError(f"Connection failed: {e}") from e
    return TransferStream(reader, writer, byte_order=byte_order)
